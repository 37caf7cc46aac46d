"""Translate settlement errors into HTTP responses."""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import HTTPException, status

from coursepay.services.errors import SettlementError, SettlementErrorKind

STATUS_BY_KIND: Mapping[SettlementErrorKind, int] = {
    SettlementErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    SettlementErrorKind.ALREADY_OWNED: status.HTTP_409_CONFLICT,
    SettlementErrorKind.AMOUNT_MISMATCH: status.HTTP_400_BAD_REQUEST,
    SettlementErrorKind.GATEWAY_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    SettlementErrorKind.GATEWAY_REJECTED: status.HTTP_502_BAD_GATEWAY,
    SettlementErrorKind.INVALID_SIGNATURE: status.HTTP_400_BAD_REQUEST,
    SettlementErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
}

_missing = set(SettlementErrorKind) - set(STATUS_BY_KIND)
if _missing:  # pragma: no cover - guarded by tests
    raise RuntimeError(f"Unmapped settlement error kinds: {sorted(_missing)}")


def to_http_exception(exc: SettlementError) -> HTTPException:
    headers = None
    if exc.kind is SettlementErrorKind.GATEWAY_UNAVAILABLE:
        headers = {"Retry-After": "5"}
    return HTTPException(
        status_code=STATUS_BY_KIND[exc.kind],
        detail={"code": exc.kind.value, "message": exc.message},
        headers=headers,
    )
