from __future__ import annotations

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from atelier.infra.db import Base
from atelier.shared.clock import utcnow


class CommissionRequest(Base):
    __tablename__ = "commission_requests"

    request_id: Mapped[str] = mapped_column(
        sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    customer_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    customer_name: Mapped[str | None] = mapped_column(sa.String(255))
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    material: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    budget_cents: Mapped[int | None] = mapped_column(sa.Integer())
    timeframe: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    size: Mapped[str | None] = mapped_column(sa.String(64))
    additional_details: Mapped[str | None] = mapped_column(sa.Text())
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="open")
    accepted_proposal_id: Mapped[str | None] = mapped_column(sa.String(36))
    accepted_price_cents: Mapped[int | None] = mapped_column(sa.Integer())
    designer_id: Mapped[str | None] = mapped_column(sa.String(64))
    designer_name: Mapped[str | None] = mapped_column(sa.String(255))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True))
    version: Mapped[int] = mapped_column(sa.Integer(), nullable=False)

    images: Mapped[list["CommissionRequestImage"]] = relationship(
        "CommissionRequestImage",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="CommissionRequestImage.position",
        lazy="selectin",
    )

    __table_args__ = (
        sa.Index("ix_commission_requests_customer_id", "customer_id"),
        sa.Index("ix_commission_requests_designer_id", "designer_id"),
        sa.Index("ix_commission_requests_status", "status"),
        sa.CheckConstraint(
            "status IN ('open', 'assigned', 'completed')", name="ck_commission_requests_status"
        ),
    )
    # Concurrent lifecycle transitions on the same row fail with StaleDataError.
    __mapper_args__ = {"version_id_col": version}

    @property
    def image_urls(self) -> list[str]:
        return [image.url for image in self.images]


class CommissionRequestImage(Base):
    __tablename__ = "commission_request_images"

    image_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(
        sa.String(36),
        sa.ForeignKey("commission_requests.request_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(sa.Integer(), nullable=False, default=0)
    url: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False
    )

    request: Mapped["CommissionRequest"] = relationship(
        "CommissionRequest", back_populates="images"
    )

    __table_args__ = (
        sa.Index("ix_commission_request_images_request_id", "request_id"),
    )
