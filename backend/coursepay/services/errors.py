"""Error kinds and outcomes shared by the settlement services."""

from __future__ import annotations

import enum


class SettlementErrorKind(str, enum.Enum):
    """Closed set of failures surfaced to callers of the settlement services."""

    NOT_FOUND = "not_found"
    ALREADY_OWNED = "already_owned"
    AMOUNT_MISMATCH = "amount_mismatch"
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    GATEWAY_REJECTED = "gateway_rejected"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_TRANSITION = "invalid_transition"


class SettlementOutcome(str, enum.Enum):
    """Non-error results of a settlement write."""

    APPLIED = "applied"
    ALREADY_SETTLED = "already_settled"


class SettlementError(Exception):
    """Raised when a settlement operation cannot proceed."""

    def __init__(self, kind: SettlementErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"SettlementError({self.kind.value!r}, {self.message!r})"


__all__ = ["SettlementError", "SettlementErrorKind", "SettlementOutcome"]
