"""Logging filters that scrub credentials and payment secrets."""

from __future__ import annotations

import logging
import re

REDACTED = "**REDACTED**"

_SENSITIVE_PATTERN = re.compile(
    r"(Authorization: Bearer\s+[\w\.-]+"
    r"|\bpi_[A-Za-z0-9]+_secret_[A-Za-z0-9]+"
    r"|\b(?:sk|rk)_(?:test|live)_[A-Za-z0-9]+"
    r"|\bwhsec_[A-Za-z0-9]+"
    r"|client_secret\"\s*:\s*\"[^\"]+\")",
    re.IGNORECASE,
)


def scrub(value: str) -> str:
    return _SENSITIVE_PATTERN.sub(REDACTED, value)


class SensitiveFilter(logging.Filter):
    """Replace sensitive tokens in log records with a redaction marker."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = scrub(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                scrub(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


def _attach(target: logging.Filterer) -> None:
    if not any(isinstance(flt, SensitiveFilter) for flt in target.filters):
        target.addFilter(SensitiveFilter())


def install_sensitive_filter(logger_names: tuple[str, ...]) -> None:
    """Attach the filter to the named loggers and to their handlers.

    Logger filters only see records logged on that exact logger, so child
    module loggers are covered through the handlers they propagate to.
    Call again after handlers are configured; repeated calls are no-ops.
    """
    for logger_name in logger_names:
        target = logging.getLogger(logger_name)
        _attach(target)
        for handler in target.handlers:
            _attach(handler)


__all__ = ["REDACTED", "SensitiveFilter", "install_sensitive_filter", "scrub"]
