"""initial schema

Revision ID: 3b7e9d2c41a0
Revises:
Create Date: 2026-02-02

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3b7e9d2c41a0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _owner_column() -> sa.Column:
    return sa.Column(
        "owner_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False
    )


def upgrade() -> None:
    op.create_table(
        "identity_user",
        *_base_columns(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_identity_user_email", "identity_user", ["email"], unique=True)

    op.create_table(
        "mail_raw_email",
        *_base_columns(),
        _owner_column(),
        sa.Column("source_message_id", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=998), nullable=False),
        sa.Column("sender", sa.String(length=320), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("body_plain", sa.Text(), nullable=True),
        sa.Column("body_html", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("owner_id", "source_message_id", name="uq_raw_email_owner_message"),
    )
    op.create_index("ix_mail_raw_email_owner_id", "mail_raw_email", ["owner_id"])
    op.create_index(
        "ix_mail_raw_email_source_message_id", "mail_raw_email", ["source_message_id"]
    )

    op.create_table(
        "bills_bill",
        *_base_columns(),
        _owner_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=11), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurrence_interval", sa.String(length=8), nullable=True),
        sa.Column("source", sa.String(length=6), nullable=False),
        sa.Column("source_message_id", sa.String(length=255), nullable=True),
        sa.Column("payment_url", sa.String(length=2048), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "parent_bill_id", sa.Uuid(as_uuid=True), sa.ForeignKey("bills_bill.id"), nullable=True
        ),
        sa.UniqueConstraint("owner_id", "source_message_id", name="uq_bill_owner_message"),
    )
    op.create_index("ix_bills_bill_owner_id", "bills_bill", ["owner_id"])
    op.create_index("ix_bills_bill_due_date", "bills_bill", ["due_date"])
    op.create_index("ix_bills_bill_is_paid", "bills_bill", ["is_paid"])

    op.create_table(
        "bills_ignored_suggestion",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        _owner_column(),
        sa.Column("source_message_id", sa.String(length=255), nullable=False),
        sa.Column("ignored_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("owner_id", "source_message_id", name="uq_ignored_owner_message"),
    )
    op.create_index(
        "ix_bills_ignored_suggestion_owner_id", "bills_ignored_suggestion", ["owner_id"]
    )

    op.create_table(
        "extraction_extraction",
        *_base_columns(),
        _owner_column(),
        sa.Column(
            "email_id", sa.Uuid(as_uuid=True), sa.ForeignKey("mail_raw_email.id"), nullable=False
        ),
        sa.Column("source_message_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("category", sa.String(length=11), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurrence_interval", sa.String(length=8), nullable=True),
        sa.Column("confidence_overall", sa.Float(), nullable=False),
        sa.Column("field_confidences", sa.JSON(), nullable=False),
        sa.Column("confidence_source", sa.String(length=20), nullable=False),
        sa.Column("payment_url", sa.String(length=2048), nullable=True),
        sa.Column("payment_confidence", sa.Float(), nullable=False),
        sa.Column("payment_link_candidates", sa.JSON(), nullable=False),
        sa.Column("is_duplicate", sa.Boolean(), nullable=False),
        sa.Column("duplicate_reason", sa.String(length=50), nullable=True),
        sa.Column(
            "duplicate_of_bill_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bills_bill.id"),
            nullable=True,
        ),
        sa.Column("skip_reason", sa.String(length=50), nullable=True),
        sa.Column(
            "created_bill_id", sa.Uuid(as_uuid=True), sa.ForeignKey("bills_bill.id"), nullable=True
        ),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("owner_id", "email_id", name="uq_extraction_owner_email"),
    )
    for column in ("owner_id", "email_id", "source_message_id", "status", "confidence_overall"):
        op.create_index(f"ix_extraction_extraction_{column}", "extraction_extraction", [column])

    op.create_table(
        "extraction_ai_cache",
        *_base_columns(),
        sa.Column("text_hash", sa.String(length=64), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("response_json", sa.JSON(), nullable=False),
    )
    op.create_index(
        "ix_extraction_ai_cache_text_hash", "extraction_ai_cache", ["text_hash"], unique=True
    )

    op.create_table(
        "notifications_queue_entry",
        *_base_columns(),
        _owner_column(),
        sa.Column("bill_id", sa.Uuid(as_uuid=True), sa.ForeignKey("bills_bill.id"), nullable=False),
        sa.Column("channel", sa.String(length=20), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lead_days", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("message", sa.String(length=500), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "owner_id", "bill_id", "channel", "scheduled_date", name="uq_notification_slot"
        ),
    )
    for column in ("owner_id", "bill_id", "scheduled_date"):
        op.create_index(
            f"ix_notifications_queue_entry_{column}", "notifications_queue_entry", [column]
        )


def downgrade() -> None:
    op.drop_table("notifications_queue_entry")
    op.drop_index("ix_extraction_ai_cache_text_hash", table_name="extraction_ai_cache")
    op.drop_table("extraction_ai_cache")
    op.drop_table("extraction_extraction")
    op.drop_table("bills_ignored_suggestion")
    op.drop_table("bills_bill")
    op.drop_table("mail_raw_email")
    op.drop_index("ix_identity_user_email", table_name="identity_user")
    op.drop_table("identity_user")
