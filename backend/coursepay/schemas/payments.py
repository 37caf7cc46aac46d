"""Schemas for payment operations."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from coursepay.models.payment import PaymentIntentStatus


class PaymentIntentCreateRequest(BaseModel):
    """Request payload for opening a course purchase."""

    course_id: str = Field(min_length=1, max_length=120)
    amount: Decimal = Field(ge=Decimal("0"))
    currency: str = Field(default="usd", pattern=r"^[A-Za-z]{3}$")


class PaymentIntentCreateResponse(BaseModel):
    """Response payload returned when opening a course purchase."""

    gateway_intent_id: str | None = None
    client_secret: str | None = None
    status: PaymentIntentStatus | None = None
    payment_required: bool = True
    message: str | None = None


class PaymentIntentStatusRead(BaseModel):
    gateway_intent_id: str
    status: PaymentIntentStatus

    model_config = ConfigDict(from_attributes=True)


class WebhookAck(BaseModel):
    """Webhook acknowledgement."""

    received: bool = True
    status: str
