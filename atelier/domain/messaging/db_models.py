from __future__ import annotations

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from atelier.infra.db import Base
from atelier.shared.clock import utcnow


class Message(Base):
    __tablename__ = "messages"

    message_id: Mapped[str] = mapped_column(
        sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    sender_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    receiver_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    content: Mapped[str] = mapped_column(sa.Text(), nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(sa.Text())
    read: Mapped[bool] = mapped_column(sa.Boolean(), nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        sa.Index("ix_messages_pair_created", "sender_id", "receiver_id", "created_at"),
        sa.Index("ix_messages_receiver_read", "receiver_id", "read"),
    )
