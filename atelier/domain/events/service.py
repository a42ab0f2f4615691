"""Transactional outbox of lifecycle events for the notification layer."""

from __future__ import annotations

import logging

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.events.db_models import LifecycleEvent
from atelier.domain.events.schemas import EventKind
from atelier.infra.db import flush_or_conflict

logger = logging.getLogger(__name__)


async def record_event(
    session: AsyncSession,
    *,
    kind: EventKind,
    request_id: str,
    payload: dict,
) -> LifecycleEvent:
    """Stage an event in the caller's transaction; it commits or rolls back with the change.

    Callers hold the request row lock, which serializes sequence allocation.
    """
    last_sequence = await session.scalar(
        sa.select(sa.func.max(LifecycleEvent.sequence)).where(LifecycleEvent.request_id == request_id)
    )
    event = LifecycleEvent(
        kind=kind.value,
        request_id=request_id,
        payload_json=payload,
        sequence=int(last_sequence or 0) + 1,
    )
    session.add(event)
    await flush_or_conflict(session, detail="Lifecycle event sequence was taken concurrently")
    logger.info(
        "lifecycle_event_recorded",
        extra={"extra": {"event": kind.value, "request_id": request_id, "event_id": event.event_id}},
    )
    return event


async def list_events(
    session: AsyncSession, request_id: str, *, kind: EventKind | None = None
) -> list[LifecycleEvent]:
    stmt = sa.select(LifecycleEvent).where(LifecycleEvent.request_id == request_id)
    if kind is not None:
        stmt = stmt.where(LifecycleEvent.kind == kind.value)
    stmt = stmt.order_by(LifecycleEvent.sequence.asc())
    return list((await session.execute(stmt)).scalars().all())
