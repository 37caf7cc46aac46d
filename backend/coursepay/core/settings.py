"""Specialized settings adapters for integrations."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from coursepay.core.config import get_settings


class PaymentSettings(BaseModel):
    """Slim view of payment-related configuration."""

    stripe_secret_key: str | None = None
    stripe_publishable_key: str | None = None
    stripe_webhook_secret: str | None = None
    currency: str = "usd"
    amount_tolerance: Decimal = Decimal("0.01")
    idempotency_window_seconds: int = 900
    idempotency_prefix: str = "coursepay"
    reconcile_after_minutes: int = 30


def get_payment_settings() -> PaymentSettings:
    """Return payment-specific configuration."""

    settings = get_settings()
    return PaymentSettings(
        stripe_secret_key=settings.stripe_secret_key or None,
        stripe_publishable_key=settings.stripe_publishable_key or None,
        stripe_webhook_secret=settings.stripe_webhook_secret or None,
        currency=settings.payments_currency,
        amount_tolerance=settings.payments_amount_tolerance,
        idempotency_window_seconds=settings.payments_idempotency_window_seconds,
        idempotency_prefix=settings.payments_idempotency_prefix,
        reconcile_after_minutes=settings.payments_reconcile_after_minutes,
    )
