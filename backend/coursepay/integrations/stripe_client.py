"""Stripe SDK adapter for course purchase intents and signed webhooks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, cast

import stripe

logger = logging.getLogger(__name__)

# Currencies Stripe charges in whole units.
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif",
        "clp",
        "djf",
        "gnf",
        "jpy",
        "kmf",
        "krw",
        "mga",
        "pyg",
        "rwf",
        "ugx",
        "vnd",
        "vuv",
        "xaf",
        "xof",
        "xpf",
    }
)


@dataclass(slots=True)
class ProviderIntent:
    """Simplified provider-side payment intent payload."""

    id: str
    client_secret: str | None
    status: str
    amount: int | None = None
    currency: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class GatewayEvent:
    """A webhook event whose signature has been verified."""

    id: str
    type: str
    object_id: str | None
    amount: int | None = None
    failure_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class GatewayClientError(RuntimeError):
    """Raised when the gateway rejects a request."""


class GatewayUnavailableError(GatewayClientError):
    """Raised when the gateway cannot be reached."""


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a decimal amount to the smallest currency unit."""
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return int(amount.to_integral_value())
    quantized = amount.quantize(Decimal("0.01"))
    return int((quantized * 100).to_integral_value())


def from_minor_units(value: int, currency: str) -> Decimal:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(value)
    return Decimal(value) / Decimal("100")


def _to_provider_intent(intent: Any) -> ProviderIntent:
    intent_data = cast(dict[str, Any], intent)
    metadata_dict = cast(dict[str, Any], intent_data.get("metadata") or {})
    amount = intent_data.get("amount")
    return ProviderIntent(
        id=str(intent_data.get("id")),
        client_secret=cast(str | None, intent_data.get("client_secret")),
        status=str(intent_data.get("status", "unknown")),
        amount=int(amount) if amount is not None else None,
        currency=cast(str | None, intent_data.get("currency")),
        metadata=dict(metadata_dict),
    )


class StripeGateway:
    """Thin wrapper around the Stripe SDK.

    The adapter only translates calls and errors; pricing, ownership and
    state transitions are decided by the settlement services.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        webhook_secret: str | None = None,
        idempotency_prefix: str = "coursepay",
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._idempotency_prefix = idempotency_prefix
        stripe.api_key = secret_key
        stripe.max_network_retries = 2

    @property
    def webhook_secret(self) -> str | None:
        return self._webhook_secret

    def _idempotency_key(self, token: str) -> str:
        return f"{self._idempotency_prefix}_{token}"

    @staticmethod
    def _translate(exc: Exception, action: str) -> GatewayClientError:
        if isinstance(exc, (stripe.APIConnectionError, stripe.APIError)):
            return GatewayUnavailableError(f"Payment provider unavailable: {action}")
        return GatewayClientError(f"Payment provider rejected request: {action}")

    def create_provider_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
        idempotency_token: str,
        description: str | None = None,
    ) -> ProviderIntent:
        kwargs: dict[str, Any] = {
            "amount": to_minor_units(amount, currency),
            "currency": currency,
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        if description:
            kwargs["description"] = description
        try:
            intent = stripe.PaymentIntent.create(
                **kwargs,
                idempotency_key=self._idempotency_key(idempotency_token),
            )
        except stripe.StripeError as exc:
            raise self._translate(exc, "create payment intent") from exc
        return _to_provider_intent(intent)

    def retrieve_status(self, provider_intent_id: str) -> ProviderIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(provider_intent_id)
        except stripe.StripeError as exc:
            raise self._translate(exc, "retrieve payment intent") from exc
        return _to_provider_intent(intent)

    def cancel(self, provider_intent_id: str) -> ProviderIntent:
        try:
            intent = stripe.PaymentIntent.cancel(provider_intent_id)
        except stripe.StripeError as exc:
            raise self._translate(exc, "cancel payment intent") from exc
        return _to_provider_intent(intent)

    def verify_signature(
        self, payload: bytes, signature: str, secret: str | None = None
    ) -> GatewayEvent | None:
        """Return the verified event, or ``None`` when verification fails."""
        secret = secret or self._webhook_secret
        if not secret:
            logger.error("Webhook secret is not configured")
            return None
        try:
            event = stripe.Webhook.construct_event(
                payload=payload, sig_header=signature, secret=secret
            )
        except (stripe.SignatureVerificationError, ValueError):
            logger.warning("Webhook signature verification failed")
            return None

        data = cast(dict[str, Any], event)
        data_object = cast(dict[str, Any], (data.get("data") or {}).get("object") or {})
        last_error = cast(dict[str, Any], data_object.get("last_payment_error") or {})
        amount = data_object.get("amount_received", data_object.get("amount"))
        object_id = data_object.get("id")
        return GatewayEvent(
            id=str(data.get("id", "")),
            type=str(data.get("type", "")),
            object_id=str(object_id) if object_id else None,
            amount=int(amount) if amount is not None else None,
            failure_message=cast(str | None, last_error.get("message")),
            metadata=dict(cast(dict[str, Any], data_object.get("metadata") or {})),
        )
