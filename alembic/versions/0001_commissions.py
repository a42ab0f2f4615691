"""commission requests, proposals, timeline, payments, messages

Revision ID: 0001_commissions
Revises:
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_commissions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "commission_requests",
        sa.Column("request_id", sa.String(length=36), primary_key=True),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("customer_name", sa.String(length=255)),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("material", sa.String(length=255), nullable=False),
        sa.Column("budget_cents", sa.Integer()),
        sa.Column("timeframe", sa.String(length=120), nullable=False),
        sa.Column("size", sa.String(length=64)),
        sa.Column("additional_details", sa.Text()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("accepted_proposal_id", sa.String(length=36)),
        sa.Column("accepted_price_cents", sa.Integer()),
        sa.Column("designer_id", sa.String(length=64)),
        sa.Column("designer_name", sa.String(length=255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            # ORM-managed updated_at (no database trigger).
            nullable=False,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(
            "status IN ('open', 'assigned', 'completed')", name="ck_commission_requests_status"
        ),
    )
    op.create_index("ix_commission_requests_customer_id", "commission_requests", ["customer_id"])
    op.create_index("ix_commission_requests_designer_id", "commission_requests", ["designer_id"])
    op.create_index("ix_commission_requests_status", "commission_requests", ["status"])

    op.create_table(
        "commission_request_images",
        sa.Column("image_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "request_id",
            sa.String(length=36),
            sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_commission_request_images_request_id", "commission_request_images", ["request_id"]
    )

    op.create_table(
        "proposals",
        sa.Column("proposal_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "request_id",
            sa.String(length=36),
            sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("designer_id", sa.String(length=64), nullable=False),
        sa.Column("designer_name", sa.String(length=255)),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("estimated_time", sa.String(length=120), nullable=False),
        sa.Column("message", sa.Text()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("request_id", "designer_id", name="uq_proposals_request_designer"),
        sa.CheckConstraint("price_cents > 0", name="ck_proposals_price_positive"),
        sa.CheckConstraint("status IN ('pending', 'accepted', 'rejected')", name="ck_proposals_status"),
    )
    op.create_index("ix_proposals_designer_id", "proposals", ["designer_id"])
    op.create_index("ix_proposals_request_status", "proposals", ["request_id", "status"])

    op.create_table(
        "timeline_updates",
        sa.Column("update_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "request_id",
            sa.String(length=36),
            sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("designer_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("payment_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payment_amount_cents", sa.Integer()),
        sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="not_required"),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("request_id", "status", name="uq_timeline_updates_request_stage"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'not_required')",
            name="ck_timeline_updates_payment_status",
        ),
    )
    op.create_index("ix_timeline_updates_request_position", "timeline_updates", ["request_id", "position"])

    op.create_table(
        "milestone_payments",
        sa.Column("payment_id", sa.String(length=36), primary_key=True),
        sa.Column(
            "request_id",
            sa.String(length=36),
            sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "update_id",
            sa.String(length=36),
            sa.ForeignKey("timeline_updates.update_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("payer_id", sa.String(length=64), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_milestone_payments_amount_positive"),
        sa.CheckConstraint("status IN ('pending', 'paid', 'failed')", name="ck_milestone_payments_status"),
    )
    op.create_index("ix_milestone_payments_request_id", "milestone_payments", ["request_id"])
    op.create_index("ix_milestone_payments_update_id", "milestone_payments", ["update_id"])

    op.create_table(
        "messages",
        sa.Column("message_id", sa.String(length=36), primary_key=True),
        sa.Column("sender_id", sa.String(length=64), nullable=False),
        sa.Column("receiver_id", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("image_url", sa.Text()),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_messages_pair_created", "messages", ["sender_id", "receiver_id", "created_at"])
    op.create_index("ix_messages_receiver_read", "messages", ["receiver_id", "read"])

    op.create_table(
        "lifecycle_events",
        sa.Column("event_id", sa.String(length=36), primary_key=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("request_id", sa.String(length=36), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("request_id", "sequence", name="uq_lifecycle_events_request_sequence"),
    )
    op.create_index("ix_lifecycle_events_kind", "lifecycle_events", ["kind"])


def downgrade() -> None:
    op.drop_index("ix_lifecycle_events_kind", table_name="lifecycle_events")
    op.drop_table("lifecycle_events")
    op.drop_index("ix_messages_receiver_read", table_name="messages")
    op.drop_index("ix_messages_pair_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_milestone_payments_update_id", table_name="milestone_payments")
    op.drop_index("ix_milestone_payments_request_id", table_name="milestone_payments")
    op.drop_table("milestone_payments")
    op.drop_index("ix_timeline_updates_request_position", table_name="timeline_updates")
    op.drop_table("timeline_updates")
    op.drop_index("ix_proposals_request_status", table_name="proposals")
    op.drop_index("ix_proposals_designer_id", table_name="proposals")
    op.drop_table("proposals")
    op.drop_index("ix_commission_request_images_request_id", table_name="commission_request_images")
    op.drop_table("commission_request_images")
    op.drop_index("ix_commission_requests_status", table_name="commission_requests")
    op.drop_index("ix_commission_requests_designer_id", table_name="commission_requests")
    op.drop_index("ix_commission_requests_customer_id", table_name="commission_requests")
    op.drop_table("commission_requests")
