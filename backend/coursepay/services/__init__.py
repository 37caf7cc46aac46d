"""Service layer exports."""
from coursepay.services import (
    catalog_service,
    ledger_service,
    access_service,
    purchase_service,
    reconciliation_service,
)

__all__ = [
    "access_service",
    "catalog_service",
    "ledger_service",
    "purchase_service",
    "reconciliation_service",
]
