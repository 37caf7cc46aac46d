"""Storage access for payment intents and the enrollment ledger.

Uniqueness is enforced by the database: ``payment_intents.gateway_intent_id``
and ``enrollments (user_id, course_id)`` both carry unique constraints, and
terminal transitions are compare-and-set updates guarded on the ``created``
status. Callers own the transaction boundary; nothing here commits.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from coursepay.models import (
    Enrollment,
    PaymentEvent,
    PaymentIntentRecord,
    PaymentIntentStatus,
)
from coursepay.models.mixins import utcnow

logger = logging.getLogger(__name__)

_TIMESTAMP_FIELD: dict[PaymentIntentStatus, str] = {
    PaymentIntentStatus.SUCCEEDED: "completed_at",
    PaymentIntentStatus.FAILED: "failed_at",
    PaymentIntentStatus.CANCELED: "canceled_at",
}


async def get_enrollment(
    session: AsyncSession, *, user_id: UUID, course_id: UUID
) -> Enrollment | None:
    stmt = select(Enrollment).where(
        Enrollment.user_id == user_id, Enrollment.course_id == course_id
    )
    return (await session.execute(stmt)).scalars().first()


async def list_enrollments(session: AsyncSession, user_id: UUID) -> Sequence[Enrollment]:
    """Return a user's enrollments, newest first, with their courses loaded."""
    stmt = (
        select(Enrollment)
        .where(Enrollment.user_id == user_id)
        .options(selectinload(Enrollment.course))
        .order_by(Enrollment.purchased_at.desc())
    )
    return (await session.execute(stmt)).scalars().all()


async def add_enrollment(
    session: AsyncSession,
    *,
    user_id: UUID,
    course_id: UUID,
    amount_paid: Decimal,
    payment_intent_id: UUID | None = None,
) -> Enrollment:
    """Stage and flush an enrollment row.

    Raises ``IntegrityError`` when the (user, course) pair is already
    enrolled; the caller decides how to roll back.
    """
    enrollment = Enrollment(
        user_id=user_id,
        course_id=course_id,
        amount_paid=amount_paid.quantize(Decimal("0.01")),
        payment_intent_id=payment_intent_id,
    )
    session.add(enrollment)
    await session.flush()
    return enrollment


async def get_intent(
    session: AsyncSession, gateway_intent_id: str
) -> PaymentIntentRecord | None:
    if not gateway_intent_id:
        return None
    stmt = (
        select(PaymentIntentRecord)
        .where(PaymentIntentRecord.gateway_intent_id == gateway_intent_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalars().first()


async def get_open_intent(
    session: AsyncSession, *, user_id: UUID, course_id: UUID
) -> PaymentIntentRecord | None:
    """Return the most recent non-terminal intent for a user and course."""
    stmt = (
        select(PaymentIntentRecord)
        .where(
            PaymentIntentRecord.user_id == user_id,
            PaymentIntentRecord.course_id == course_id,
            PaymentIntentRecord.status == PaymentIntentStatus.CREATED,
        )
        .order_by(PaymentIntentRecord.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalars().first()


async def count_closed_intents(
    session: AsyncSession, *, user_id: UUID, course_id: UUID
) -> int:
    """Number of terminal intents a user holds for a course."""
    stmt = (
        select(func.count())
        .select_from(PaymentIntentRecord)
        .where(
            PaymentIntentRecord.user_id == user_id,
            PaymentIntentRecord.course_id == course_id,
            PaymentIntentRecord.status != PaymentIntentStatus.CREATED,
        )
    )
    return int((await session.execute(stmt)).scalar_one())


async def list_stale_intents(
    session: AsyncSession, *, created_before: datetime, limit: int = 100
) -> Sequence[PaymentIntentRecord]:
    stmt = (
        select(PaymentIntentRecord)
        .where(
            PaymentIntentRecord.status == PaymentIntentStatus.CREATED,
            PaymentIntentRecord.created_at < created_before,
        )
        .order_by(PaymentIntentRecord.created_at)
        .limit(limit)
    )
    return (await session.execute(stmt)).scalars().all()


async def add_intent(
    session: AsyncSession,
    *,
    gateway_intent_id: str,
    user_id: UUID,
    course_id: UUID,
    amount: Decimal,
    currency: str,
    idempotency_key: str,
) -> PaymentIntentRecord:
    """Stage and flush a new intent in ``created`` state.

    Raises ``IntegrityError`` if the gateway id is already tracked.
    """
    record = PaymentIntentRecord(
        gateway_intent_id=gateway_intent_id,
        user_id=user_id,
        course_id=course_id,
        amount=amount.quantize(Decimal("0.01")),
        currency=currency,
        status=PaymentIntentStatus.CREATED,
        idempotency_key=idempotency_key,
    )
    session.add(record)
    await session.flush()
    return record


async def transition_intent(
    session: AsyncSession,
    gateway_intent_id: str,
    target: PaymentIntentStatus,
    *,
    failure_reason: str | None = None,
) -> bool:
    """Move a ``created`` intent to a terminal state.

    Returns ``False`` when the intent was not in ``created`` (or does not
    exist), in which case nothing is written.
    """
    if not target.is_terminal:
        raise ValueError(f"Cannot transition an intent to {target.value}")
    values: dict[str, object] = {
        "status": target,
        _TIMESTAMP_FIELD[target]: utcnow(),
        "updated_at": utcnow(),
    }
    if target is PaymentIntentStatus.FAILED:
        values["failure_reason"] = failure_reason
    stmt = (
        update(PaymentIntentRecord)
        .where(
            PaymentIntentRecord.gateway_intent_id == gateway_intent_id,
            PaymentIntentRecord.status == PaymentIntentStatus.CREATED,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if int(getattr(result, "rowcount", 0) or 0) != 1:
        logger.debug(
            "Intent %s not in created state; %s transition skipped",
            gateway_intent_id,
            target.value,
        )
        return False
    return True


async def record_event(
    session: AsyncSession,
    *,
    provider_event_id: str,
    event_type: str,
    gateway_intent_id: str | None,
    disposition: str,
) -> None:
    """Stage an audit row for a processed webhook delivery."""
    session.add(
        PaymentEvent(
            provider_event_id=provider_event_id,
            event_type=event_type,
            gateway_intent_id=gateway_intent_id,
            disposition=disposition,
        )
    )
    await session.flush()

