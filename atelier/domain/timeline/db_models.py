from __future__ import annotations

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from atelier.infra.db import Base
from atelier.shared.clock import utcnow


class TimelineUpdate(Base):
    __tablename__ = "timeline_updates"

    update_id: Mapped[str] = mapped_column(
        sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    request_id: Mapped[str] = mapped_column(
        sa.String(36),
        sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
        nullable=False,
    )
    designer_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    message: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    position: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
    payment_required: Mapped[bool] = mapped_column(sa.Boolean(), nullable=False, default=False)
    payment_amount_cents: Mapped[int | None] = mapped_column(sa.Integer())
    payment_status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, default="not_required"
    )
    paid_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        sa.UniqueConstraint("request_id", "status", name="uq_timeline_updates_request_stage"),
        sa.Index("ix_timeline_updates_request_position", "request_id", "position"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'not_required')",
            name="ck_timeline_updates_payment_status",
        ),
    )


class MilestonePayment(Base):
    __tablename__ = "milestone_payments"

    payment_id: Mapped[str] = mapped_column(
        sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    request_id: Mapped[str] = mapped_column(
        sa.String(36),
        sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
        nullable=False,
    )
    update_id: Mapped[str] = mapped_column(
        sa.String(36),
        sa.ForeignKey("timeline_updates.update_id", ondelete="CASCADE"),
        nullable=False,
    )
    payer_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    amount_cents: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        sa.Index("ix_milestone_payments_request_id", "request_id"),
        sa.Index("ix_milestone_payments_update_id", "update_id"),
        sa.CheckConstraint("amount_cents > 0", name="ck_milestone_payments_amount_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'paid', 'failed')", name="ck_milestone_payments_status"
        ),
    )
