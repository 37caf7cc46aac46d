"""Payments API: course purchase intents, status polling and cancellation."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.api import deps
from coursepay.api.errors import to_http_exception
from coursepay.integrations import StripeGateway
from coursepay.schemas.payments import (
    PaymentIntentCreateRequest,
    PaymentIntentCreateResponse,
    PaymentIntentStatusRead,
)
from coursepay.services import purchase_service, reconciliation_service
from coursepay.services.errors import SettlementError

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-intent", response_model=PaymentIntentCreateResponse)
async def create_payment_intent(
    payload: PaymentIntentCreateRequest,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    gateway: Annotated[StripeGateway, Depends(deps.get_gateway_client)],
    user_id: Annotated[uuid.UUID, Depends(deps.get_current_user_id)],
) -> PaymentIntentCreateResponse:
    try:
        result = await purchase_service.create_intent(
            session,
            gateway,
            user_id=user_id,
            course_ref=payload.course_id,
            claimed_amount=payload.amount,
            currency=payload.currency,
        )
    except SettlementError as exc:
        raise to_http_exception(exc) from exc

    if not result.payment_required:
        return PaymentIntentCreateResponse(
            payment_required=False,
            message="Course enrolled; no payment required.",
        )

    return PaymentIntentCreateResponse(
        gateway_intent_id=result.gateway_intent_id,
        client_secret=result.client_secret,
        status=result.status,
    )


@router.get(
    "/intent-status/{gateway_intent_id}",
    response_model=PaymentIntentStatusRead,
    summary="Poll the settlement status of a payment intent",
)
async def get_payment_intent_status(
    gateway_intent_id: str,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    user_id: Annotated[uuid.UUID, Depends(deps.get_current_user_id)],
    gateway: Annotated[
        StripeGateway | None, Depends(deps.get_optional_gateway_client)
    ],
    refresh: Annotated[bool, Query()] = False,
) -> PaymentIntentStatusRead:
    try:
        record = await purchase_service.get_intent_status(
            session, user_id=user_id, gateway_intent_id=gateway_intent_id
        )
        if refresh and gateway is not None and not record.status.is_terminal:
            await reconciliation_service.reconcile_intent(
                session, gateway, gateway_intent_id
            )
            record = await purchase_service.get_intent_status(
                session, user_id=user_id, gateway_intent_id=gateway_intent_id
            )
    except SettlementError as exc:
        raise to_http_exception(exc) from exc
    return PaymentIntentStatusRead.model_validate(record)


@router.post("/cancel/{gateway_intent_id}", response_model=PaymentIntentStatusRead)
async def cancel_payment_intent(
    gateway_intent_id: str,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    gateway: Annotated[StripeGateway, Depends(deps.get_gateway_client)],
    user_id: Annotated[uuid.UUID, Depends(deps.get_current_user_id)],
) -> PaymentIntentStatusRead:
    try:
        record = await purchase_service.cancel_intent(
            session, gateway, user_id=user_id, gateway_intent_id=gateway_intent_id
        )
    except SettlementError as exc:
        raise to_http_exception(exc) from exc
    return PaymentIntentStatusRead.model_validate(record)

