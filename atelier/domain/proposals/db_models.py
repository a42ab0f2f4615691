from __future__ import annotations

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from atelier.infra.db import Base
from atelier.shared.clock import utcnow


class Proposal(Base):
    __tablename__ = "proposals"

    proposal_id: Mapped[str] = mapped_column(
        sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    request_id: Mapped[str] = mapped_column(
        sa.String(36),
        sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
        nullable=False,
    )
    designer_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    designer_name: Mapped[str | None] = mapped_column(sa.String(255))
    price_cents: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
    estimated_time: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    message: Mapped[str | None] = mapped_column(sa.Text())
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    decided_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))

    __table_args__ = (
        sa.UniqueConstraint("request_id", "designer_id", name="uq_proposals_request_designer"),
        sa.Index("ix_proposals_designer_id", "designer_id"),
        sa.Index("ix_proposals_request_status", "request_id", "status"),
        sa.CheckConstraint("price_cents > 0", name="ck_proposals_price_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')", name="ck_proposals_status"
        ),
    )
