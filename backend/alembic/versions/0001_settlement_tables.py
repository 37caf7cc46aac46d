"""Course catalog, payment intent, enrollment and webhook event tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    intent_status_enum = sa.Enum(
        "created",
        "succeeded",
        "failed",
        "canceled",
        name="payment_intent_status",
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column(
            "price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "is_free", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        *_timestamps(),
        sa.UniqueConstraint("slug", name="uq_courses_slug"),
        sa.CheckConstraint("price >= 0", name="ck_courses_price_non_negative"),
    )

    op.create_table(
        "payment_intents",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("gateway_intent_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "course_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("courses.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "currency", sa.String(length=12), nullable=False, server_default="usd"
        ),
        sa.Column("status", intent_status_enum, nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "gateway_intent_id", name="uq_payment_intents_gateway_intent_id"
        ),
    )
    op.create_index(
        "ix_payment_intents_user_course",
        "payment_intents",
        ["user_id", "course_id"],
    )
    op.create_index(
        "ix_payment_intents_status_created",
        "payment_intents",
        ["status", "created_at"],
    )

    op.create_table(
        "enrollments",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "course_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("courses.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "amount_paid",
            sa.Numeric(12, 2),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "payment_intent_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("payment_intents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "purchased_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id", "course_id", name="uq_enrollments_user_course"
        ),
        sa.UniqueConstraint(
            "payment_intent_id", name="uq_enrollments_payment_intent_id"
        ),
    )

    op.create_table(
        "payment_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("provider_event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("gateway_intent_id", sa.String(length=255), nullable=True),
        sa.Column("disposition", sa.String(length=32), nullable=False),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "provider_event_id", name="uq_payment_events_provider_event_id"
        ),
    )


def downgrade() -> None:
    op.drop_table("payment_events")
    op.drop_table("enrollments")
    op.drop_index("ix_payment_intents_status_created", table_name="payment_intents")
    op.drop_index("ix_payment_intents_user_course", table_name="payment_intents")
    op.drop_table("payment_intents")
    op.drop_table("courses")
    sa.Enum(name="payment_intent_status").drop(op.get_bind(), checkfirst=True)
