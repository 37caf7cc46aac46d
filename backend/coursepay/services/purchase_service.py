"""Purchase coordination: turning a buy request into a tracked payment intent."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.core.settings import PaymentSettings, get_payment_settings
from coursepay.integrations import (
    GatewayClientError,
    GatewayUnavailableError,
    ProviderIntent,
    StripeGateway,
)
from coursepay.models import Course, PaymentIntentRecord, PaymentIntentStatus
from coursepay.models.mixins import utcnow
from coursepay.services import catalog_service, ledger_service
from coursepay.services.errors import (
    SettlementError,
    SettlementErrorKind,
    SettlementOutcome,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("coursepay.audit")

# Provider states in which an existing intent can still be paid.
_OPEN_PROVIDER_STATUSES = frozenset(
    {
        "requires_payment_method",
        "requires_confirmation",
        "requires_action",
        "processing",
    }
)


@dataclass(slots=True)
class IntentCreation:
    """Result of a purchase request."""

    gateway_intent_id: str | None
    client_secret: str | None
    status: PaymentIntentStatus | None
    payment_required: bool
    outcome: SettlementOutcome = SettlementOutcome.APPLIED


def idempotency_token(
    user_id: UUID,
    course_id: UUID,
    *,
    window_seconds: int,
    attempt: int = 0,
    now: datetime | None = None,
) -> str:
    """Deterministic gateway idempotency token for a purchase attempt.

    Requests for the same user and course inside one window share a token,
    so the gateway collapses them into a single provider-side intent.
    ``attempt`` counts the pair's failed or canceled intents; once an intent
    closes, the next request gets a fresh token and a fresh provider intent.
    """
    moment = now or utcnow()
    bucket = int(moment.timestamp()) // max(window_seconds, 1)
    return f"purchase:{user_id}:{course_id}:{attempt}:{bucket}"


def _gateway_failure(exc: GatewayClientError) -> SettlementError:
    if isinstance(exc, GatewayUnavailableError):
        return SettlementError(
            SettlementErrorKind.GATEWAY_UNAVAILABLE,
            "Payment provider unavailable; please retry",
        )
    return SettlementError(
        SettlementErrorKind.GATEWAY_REJECTED,
        "Payment provider rejected the request",
    )


def _check_claimed_price(
    course: Course,
    *,
    user_id: UUID,
    claimed_amount: Decimal,
    currency: str,
    price: Decimal,
    settings: PaymentSettings,
) -> None:
    if currency != settings.currency:
        logger.warning(
            "Payment currency mismatch for user %s course %s: claimed=%s expected=%s",
            user_id,
            course.slug,
            currency,
            settings.currency,
        )
        raise SettlementError(
            SettlementErrorKind.AMOUNT_MISMATCH,
            "Payment currency does not match course pricing",
        )
    if abs(claimed_amount - price) > settings.amount_tolerance:
        logger.warning(
            "Payment amount mismatch for user %s course %s: claimed=%s expected=%s",
            user_id,
            course.slug,
            claimed_amount,
            price,
        )
        raise SettlementError(
            SettlementErrorKind.AMOUNT_MISMATCH,
            "Payment amount does not match course price",
        )


async def _enroll_without_payment(
    session: AsyncSession, *, user_id: UUID, course: Course
) -> IntentCreation:
    course_id, slug = course.id, course.slug
    try:
        await ledger_service.add_enrollment(
            session,
            user_id=user_id,
            course_id=course_id,
            amount_paid=Decimal("0"),
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.info(
            "Free enrollment for user %s course %s already settled", user_id, slug
        )
        return IntentCreation(
            gateway_intent_id=None,
            client_secret=None,
            status=None,
            payment_required=False,
            outcome=SettlementOutcome.ALREADY_SETTLED,
        )

    audit_logger.info("course_enrolled user=%s course=%s amount=0", user_id, slug)
    return IntentCreation(
        gateway_intent_id=None,
        client_secret=None,
        status=None,
        payment_required=False,
    )


async def _reuse_open_intent(
    session: AsyncSession,
    gateway: StripeGateway,
    *,
    user_id: UUID,
    course: Course,
    price: Decimal,
    currency: str,
) -> IntentCreation | None:
    open_intent = await ledger_service.get_open_intent(
        session, user_id=user_id, course_id=course.id
    )
    if open_intent is None:
        return None
    if open_intent.amount != price or open_intent.currency != currency:
        return None
    try:
        provider_intent = gateway.retrieve_status(open_intent.gateway_intent_id)
    except GatewayClientError:
        logger.warning(
            "Could not refresh open intent %s; creating a new one",
            open_intent.gateway_intent_id,
        )
        return None
    if provider_intent.status not in _OPEN_PROVIDER_STATUSES:
        return None
    if not provider_intent.client_secret:
        return None
    logger.info(
        "Reusing open payment intent %s for user %s course %s",
        open_intent.gateway_intent_id,
        user_id,
        course.slug,
    )
    return IntentCreation(
        gateway_intent_id=open_intent.gateway_intent_id,
        client_secret=provider_intent.client_secret,
        status=open_intent.status,
        payment_required=True,
    )


async def _persist_intent(
    session: AsyncSession,
    *,
    provider_intent: ProviderIntent,
    user_id: UUID,
    course_id: UUID,
    amount: Decimal,
    currency: str,
    token: str,
) -> PaymentIntentRecord:
    existing = await ledger_service.get_intent(session, provider_intent.id)
    if existing is not None:
        if existing.status.is_terminal:
            # a closed intent can never settle a new payment
            logger.error(
                "Gateway returned intent %s which is already %s",
                existing.gateway_intent_id,
                existing.status.value,
            )
            raise SettlementError(
                SettlementErrorKind.GATEWAY_REJECTED,
                "Payment provider returned a closed payment intent",
            )
        return existing
    try:
        record = await ledger_service.add_intent(
            session,
            gateway_intent_id=provider_intent.id,
            user_id=user_id,
            course_id=course_id,
            amount=amount,
            currency=currency,
            idempotency_key=token,
        )
        await session.commit()
    except IntegrityError:
        # a concurrent duplicate request persisted the same provider intent
        await session.rollback()
        winner = await ledger_service.get_intent(session, provider_intent.id)
        if winner is None:
            raise
        return winner
    return record


async def create_intent(
    session: AsyncSession,
    gateway: StripeGateway,
    *,
    user_id: UUID,
    course_ref: str,
    claimed_amount: Decimal,
    currency: str,
    settings: PaymentSettings | None = None,
    now: datetime | None = None,
) -> IntentCreation:
    """Validate a purchase request and open a payment intent for it.

    The claimed amount is only a pre-check against tampering; the gateway is
    always charged the catalog price. Free and zero-priced courses are
    enrolled immediately without contacting the gateway.
    """

    settings = settings or get_payment_settings()
    currency = currency.strip().lower()

    course = await catalog_service.get_course(session, course_ref)
    existing = await ledger_service.get_enrollment(
        session, user_id=user_id, course_id=course.id
    )
    if existing is not None:
        logger.info(
            "Purchase rejected: user %s already owns course %s", user_id, course.slug
        )
        raise SettlementError(
            SettlementErrorKind.ALREADY_OWNED, "Course already purchased"
        )

    price = catalog_service.authoritative_price(course)
    _check_claimed_price(
        course,
        user_id=user_id,
        claimed_amount=claimed_amount,
        currency=currency,
        price=price,
        settings=settings,
    )

    if price <= Decimal("0"):
        return await _enroll_without_payment(session, user_id=user_id, course=course)

    reused = await _reuse_open_intent(
        session,
        gateway,
        user_id=user_id,
        course=course,
        price=price,
        currency=currency,
    )
    if reused is not None:
        return reused

    course_id, slug, title = course.id, course.slug, course.title
    attempt = await ledger_service.count_closed_intents(
        session, user_id=user_id, course_id=course_id
    )
    token = idempotency_token(
        user_id,
        course_id,
        window_seconds=settings.idempotency_window_seconds,
        attempt=attempt,
        now=now,
    )
    try:
        provider_intent = gateway.create_provider_intent(
            amount=price,
            currency=currency,
            metadata={
                "user_id": str(user_id),
                "course_id": slug,
                "internal_course_id": str(course_id),
            },
            idempotency_token=token,
            description=f"Purchase of course: {title}",
        )
    except GatewayClientError as exc:
        logger.error(
            "Gateway intent creation failed for user %s course %s: %s",
            user_id,
            slug,
            exc,
        )
        raise _gateway_failure(exc) from exc
    if not provider_intent.client_secret:
        raise SettlementError(
            SettlementErrorKind.GATEWAY_REJECTED,
            "Payment provider did not return a client secret",
        )

    record = await _persist_intent(
        session,
        provider_intent=provider_intent,
        user_id=user_id,
        course_id=course_id,
        amount=price,
        currency=currency,
        token=token,
    )
    logger.info(
        "Payment intent %s created for user %s course %s",
        record.gateway_intent_id,
        user_id,
        slug,
    )
    return IntentCreation(
        gateway_intent_id=record.gateway_intent_id,
        client_secret=provider_intent.client_secret,
        status=record.status,
        payment_required=True,
    )


async def get_intent_status(
    session: AsyncSession, *, user_id: UUID, gateway_intent_id: str
) -> PaymentIntentRecord:
    """Return the caller's locally tracked intent."""
    record = await ledger_service.get_intent(session, gateway_intent_id)
    if record is None or record.user_id != user_id:
        raise SettlementError(SettlementErrorKind.NOT_FOUND, "Payment intent not found")
    return record


async def cancel_intent(
    session: AsyncSession,
    gateway: StripeGateway,
    *,
    user_id: UUID,
    gateway_intent_id: str,
) -> PaymentIntentRecord:
    """Cancel an open intent at the gateway and record the terminal state."""
    record = await get_intent_status(
        session, user_id=user_id, gateway_intent_id=gateway_intent_id
    )
    if record.status is PaymentIntentStatus.CANCELED:
        return record
    if record.status.is_terminal:
        raise SettlementError(
            SettlementErrorKind.INVALID_TRANSITION,
            f"Payment intent is already {record.status.value}",
        )

    try:
        gateway.cancel(gateway_intent_id)
    except GatewayClientError as exc:
        logger.error("Gateway cancel failed for intent %s: %s", gateway_intent_id, exc)
        raise _gateway_failure(exc) from exc

    transitioned = await ledger_service.transition_intent(
        session, gateway_intent_id, PaymentIntentStatus.CANCELED
    )
    await session.commit()
    await session.refresh(record)
    if transitioned:
        logger.info("Payment intent %s canceled by user %s", gateway_intent_id, user_id)
    else:
        logger.info(
            "Payment intent %s settled concurrently as %s",
            gateway_intent_id,
            record.status.value,
        )
    return record
