"""Redaction of credentials and payment secrets in log records."""

import io
import logging

from coursepay.security.logging_filters import (
    REDACTED,
    SensitiveFilter,
    install_sensitive_filter,
    scrub,
)


def test_scrub_masks_gateway_secrets() -> None:
    line = (
        "key=sk_test_51Habc secret=pi_3Nx_secret_Zy9 hook=whsec_abc123 "
        'body={"client_secret": "pi_3Nx_secret_Zy9"}'
    )
    cleaned = scrub(line)
    assert "sk_test_51Habc" not in cleaned
    assert "whsec_abc123" not in cleaned
    assert "_secret_Zy9" not in cleaned
    assert cleaned.count(REDACTED) == 4


def test_scrub_leaves_intent_ids_alone() -> None:
    assert scrub("Payment intent pi_3Nx created") == "Payment intent pi_3Nx created"


def test_filter_scrubs_message_and_args() -> None:
    record = logging.LogRecord(
        name="coursepay",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Authorization: Bearer abc.def.ghi for %s",
        args=("rk_live_xyz",),
        exc_info=None,
    )
    assert SensitiveFilter().filter(record) is True
    assert record.getMessage() == f"{REDACTED} for {REDACTED}"


def test_installed_filter_covers_child_loggers() -> None:
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    parent = logging.getLogger("coursepay_redaction_test")
    parent.addHandler(handler)
    parent.setLevel(logging.INFO)
    try:
        install_sensitive_filter(("coursepay_redaction_test",))
        install_sensitive_filter(("coursepay_redaction_test",))

        logging.getLogger("coursepay_redaction_test.services").info(
            "Created intent with secret %s", "pi_3Nx_secret_Zy9"
        )

        output = stream.getvalue()
        assert "_secret_Zy9" not in output
        assert REDACTED in output
        assert sum(isinstance(flt, SensitiveFilter) for flt in handler.filters) == 1
    finally:
        parent.removeHandler(handler)
