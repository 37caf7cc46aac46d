"""Webhook-driven settlement of payment intents.

Every transition here is idempotent: the intent's current state is checked
and terminal writes are compare-and-set, so redelivered, replayed or
out-of-order gateway events collapse into no-ops.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.integrations import (
    GatewayClientError,
    GatewayEvent,
    GatewayUnavailableError,
    StripeGateway,
)
from coursepay.integrations.stripe_client import to_minor_units
from coursepay.models import PaymentIntentRecord, PaymentIntentStatus
from coursepay.models.mixins import utcnow
from coursepay.services import ledger_service
from coursepay.services.errors import (
    SettlementError,
    SettlementErrorKind,
    SettlementOutcome,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("coursepay.audit")


class EventDisposition(str, enum.Enum):
    """How a gateway event or status refresh was handled."""

    APPLIED = "applied"
    ALREADY_SETTLED = "already_settled"
    IGNORED = "ignored"
    UNMATCHED = "unmatched"
    REJECTED = "rejected"


EVENT_TRANSITIONS: Mapping[str, PaymentIntentStatus] = {
    "payment_intent.succeeded": PaymentIntentStatus.SUCCEEDED,
    "payment_intent.payment_failed": PaymentIntentStatus.FAILED,
    "payment_intent.canceled": PaymentIntentStatus.CANCELED,
}

_PROVIDER_TERMINAL_STATUSES: Mapping[str, PaymentIntentStatus] = {
    "succeeded": PaymentIntentStatus.SUCCEEDED,
    "canceled": PaymentIntentStatus.CANCELED,
}


@dataclass(slots=True, frozen=True)
class WebhookResult:
    disposition: EventDisposition
    event_id: str | None = None
    event_type: str | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.disposition is not EventDisposition.REJECTED


async def _settle_success(
    session: AsyncSession,
    record: PaymentIntentRecord,
    *,
    reported_amount: int | None,
) -> SettlementOutcome:
    # rollback expires the record, so keep plain values around
    intent_pk = record.id
    gateway_intent_id = record.gateway_intent_id
    user_id = record.user_id
    course_id = record.course_id
    amount = record.amount
    currency = record.currency

    if reported_amount is not None and reported_amount != to_minor_units(
        amount, currency
    ):
        logger.warning(
            "Gateway reported amount %s for intent %s, tracked amount is %s %s",
            reported_amount,
            gateway_intent_id,
            amount,
            currency,
        )

    try:
        transitioned = await ledger_service.transition_intent(
            session, gateway_intent_id, PaymentIntentStatus.SUCCEEDED
        )
        if not transitioned:
            await session.rollback()
            return SettlementOutcome.ALREADY_SETTLED
        await ledger_service.add_enrollment(
            session,
            user_id=user_id,
            course_id=course_id,
            amount_paid=amount,
            payment_intent_id=intent_pk,
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning(
            "User %s already enrolled in course %s; intent %s settled without a "
            "new enrollment and needs manual review",
            user_id,
            course_id,
            gateway_intent_id,
        )
        await ledger_service.transition_intent(
            session, gateway_intent_id, PaymentIntentStatus.SUCCEEDED
        )
        await session.commit()
        return SettlementOutcome.ALREADY_SETTLED

    audit_logger.info(
        "course_purchased user=%s course=%s intent=%s amount=%s %s",
        user_id,
        course_id,
        gateway_intent_id,
        amount,
        currency,
    )
    return SettlementOutcome.APPLIED


async def settle_intent(
    session: AsyncSession,
    gateway_intent_id: str,
    target: PaymentIntentStatus,
    *,
    reported_amount: int | None = None,
    failure_reason: str | None = None,
) -> EventDisposition:
    """Apply a gateway-confirmed terminal state to a tracked intent."""
    record = await ledger_service.get_intent(session, gateway_intent_id)
    if record is None:
        logger.warning(
            "No local payment intent for gateway id %s; event dropped",
            gateway_intent_id,
        )
        return EventDisposition.UNMATCHED
    if record.status.is_terminal:
        logger.info(
            "Payment intent %s already %s; %s ignored",
            gateway_intent_id,
            record.status.value,
            target.value,
        )
        return EventDisposition.ALREADY_SETTLED

    if target is PaymentIntentStatus.SUCCEEDED:
        outcome = await _settle_success(
            session, record, reported_amount=reported_amount
        )
        if outcome is SettlementOutcome.APPLIED:
            return EventDisposition.APPLIED
        return EventDisposition.ALREADY_SETTLED

    transitioned = await ledger_service.transition_intent(
        session, gateway_intent_id, target, failure_reason=failure_reason
    )
    await session.commit()
    if not transitioned:
        return EventDisposition.ALREADY_SETTLED
    if target is PaymentIntentStatus.FAILED:
        logger.warning("Payment intent %s failed", gateway_intent_id)
    else:
        logger.info("Payment intent %s marked %s", gateway_intent_id, target.value)
    return EventDisposition.APPLIED


async def _record_delivery(
    session: AsyncSession, event: GatewayEvent, disposition: EventDisposition
) -> None:
    if not event.id:
        return
    try:
        await ledger_service.record_event(
            session,
            provider_event_id=event.id,
            event_type=event.type,
            gateway_intent_id=event.object_id,
            disposition=disposition.value,
        )
        await session.commit()
    except IntegrityError:  # redelivered events are recorded once
        await session.rollback()


async def apply_event(
    session: AsyncSession,
    gateway: StripeGateway,
    *,
    payload: bytes,
    signature: str | None,
    secret: str | None = None,
) -> WebhookResult:
    """Verify a raw webhook delivery and apply it.

    Nothing is read from the payload or the database until the signature
    has been verified against the shared secret.
    """
    if not signature:
        logger.warning("Webhook received without signature")
        return WebhookResult(EventDisposition.REJECTED, reason="Missing signature")
    event = gateway.verify_signature(payload, signature, secret)
    if event is None:
        return WebhookResult(EventDisposition.REJECTED, reason="Invalid signature")

    logger.info("Webhook %s received: %s", event.id, event.type)
    target = EVENT_TRANSITIONS.get(event.type)
    if target is None:
        logger.info("Unhandled webhook event type %s", event.type)
        disposition = EventDisposition.IGNORED
    else:
        disposition = await settle_intent(
            session,
            event.object_id or "",
            target,
            reported_amount=event.amount,
            failure_reason=event.failure_message,
        )

    await _record_delivery(session, event, disposition)
    return WebhookResult(disposition, event_id=event.id, event_type=event.type)


async def reconcile_intent(
    session: AsyncSession, gateway: StripeGateway, gateway_intent_id: str
) -> EventDisposition:
    """Pull the gateway's view of an intent and settle it locally."""
    try:
        provider_intent = gateway.retrieve_status(gateway_intent_id)
    except GatewayUnavailableError as exc:
        raise SettlementError(
            SettlementErrorKind.GATEWAY_UNAVAILABLE,
            "Payment provider unavailable; please retry",
        ) from exc
    except GatewayClientError as exc:
        raise SettlementError(
            SettlementErrorKind.GATEWAY_REJECTED,
            "Payment provider rejected the request",
        ) from exc

    target = _PROVIDER_TERMINAL_STATUSES.get(provider_intent.status)
    if target is None:
        return EventDisposition.IGNORED
    return await settle_intent(
        session, gateway_intent_id, target, reported_amount=provider_intent.amount
    )


async def reconcile_pending_intents(
    session: AsyncSession,
    gateway: StripeGateway,
    *,
    older_than: timedelta,
    limit: int = 100,
) -> dict[str, int]:
    """Reconcile ``created`` intents older than ``older_than``.

    Returns a count per disposition, plus ``skipped`` for intents whose
    gateway lookup failed.
    """
    stale = await ledger_service.list_stale_intents(
        session, created_before=utcnow() - older_than, limit=limit
    )
    intent_ids = [record.gateway_intent_id for record in stale]
    summary: Counter[str] = Counter()
    for gateway_intent_id in intent_ids:
        try:
            disposition = await reconcile_intent(session, gateway, gateway_intent_id)
        except SettlementError as exc:
            logger.warning(
                "Reconciliation skipped for intent %s: %s",
                gateway_intent_id,
                exc.message,
            )
            summary["skipped"] += 1
            continue
        summary[disposition.value] += 1
    logger.info("Reconciled %d stale payment intents: %s", len(intent_ids), dict(summary))
    return dict(summary)
