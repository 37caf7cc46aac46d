"""Stripe webhook receiver for payment intent events."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api import deps
from coursepay.api.errors import to_http_exception
from coursepay.core.settings import get_payment_settings
from coursepay.integrations import StripeGateway
from coursepay.schemas.payments import WebhookAck
from coursepay.services import reconciliation_service
from coursepay.services.errors import SettlementError, SettlementErrorKind

router = APIRouter(prefix="/payments", tags=["payments-webhook"])


@router.post("/webhook", status_code=status.HTTP_200_OK, response_model=WebhookAck)
async def handle_webhook(
    request: Request,
    session: AsyncSession = Depends(deps.get_db_session),
    gateway: StripeGateway = Depends(deps.get_gateway_client),
) -> WebhookAck:
    # signature verification needs the exact bytes the gateway signed
    payload_bytes = await request.body()
    signature = request.headers.get("Stripe-Signature")

    result = await reconciliation_service.apply_event(
        session,
        gateway,
        payload=payload_bytes,
        signature=signature,
        secret=get_payment_settings().stripe_webhook_secret,
    )
    if not result.accepted:
        raise to_http_exception(
            SettlementError(
                SettlementErrorKind.INVALID_SIGNATURE,
                result.reason or "Invalid signature",
            )
        )
    return WebhookAck(status=result.disposition.value)
