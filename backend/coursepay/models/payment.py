"""Payment intent tracking and webhook event models."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from coursepay.db.base import Base
from coursepay.models.mixins import TimestampMixin, utcnow


class PaymentIntentStatus(str, enum.Enum):
    """Lifecycle states for locally tracked payment intents."""

    CREATED = "created"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentIntentStatus.CREATED


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class PaymentIntentRecord(TimestampMixin, Base):
    """Local tracking record for a gateway-side payment intent."""

    __tablename__ = "payment_intents"

    __table_args__ = (
        Index("ix_payment_intents_user_course", "user_id", "course_id"),
        Index("ix_payment_intents_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    gateway_intent_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(12), nullable=False, default="usd")
    status: Mapped[PaymentIntentStatus] = mapped_column(
        Enum(
            PaymentIntentStatus,
            name="payment_intent_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=PaymentIntentStatus.CREATED,
    )
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class PaymentEvent(Base):
    """Processed gateway webhook deliveries, ids only."""

    __tablename__ = "payment_events"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    provider_event_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(120), nullable=False)
    gateway_intent_id: Mapped[str | None] = mapped_column(String(255))
    disposition: Mapped[str] = mapped_column(String(32), nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
