"""Messaging between customers and the designers they hired.

Two users may talk only while an accepted proposal ties a request owned by one
of them to the other as designer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import AsyncIterator

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.errors import AuthorizationError, ValidationError
from atelier.domain.messaging.db_models import Message
from atelier.domain.messaging.schemas import ConversationPartner, MessageResponse
from atelier.domain.requests.db_models import CommissionRequest
from atelier.domain.requests.schemas import RequestStatus
from atelier.domain.requests.service import PAGE_SIZE
from atelier.settings import settings

logger = logging.getLogger(__name__)

_HIRED_STATUSES = (RequestStatus.ASSIGNED.value, RequestStatus.COMPLETED.value)


@dataclass
class _PartnerLink:
    user_id: str
    name: str | None
    role: str
    request_ids: list[str] = field(default_factory=list)


def _pair_clause(user_a: str, user_b: str):
    return sa.or_(
        sa.and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        sa.and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


def _hired_pair_clause(user_a: str, user_b: str):
    return sa.and_(
        CommissionRequest.status.in_(_HIRED_STATUSES),
        CommissionRequest.accepted_proposal_id.is_not(None),
        sa.or_(
            sa.and_(CommissionRequest.customer_id == user_a, CommissionRequest.designer_id == user_b),
            sa.and_(CommissionRequest.customer_id == user_b, CommissionRequest.designer_id == user_a),
        ),
    )


async def can_message(session: AsyncSession, user_a: str, user_b: str) -> bool:
    if not user_a or not user_b or user_a == user_b:
        return False
    stmt = sa.select(CommissionRequest.request_id).where(_hired_pair_clause(user_a, user_b)).limit(1)
    return (await session.scalar(stmt)) is not None


async def _iter_partner_ids(session: AsyncSession, user_id: str) -> AsyncIterator[str]:
    """Yield counterpart ids page by page, ordered by their first shared request."""
    partner_id = sa.case(
        (CommissionRequest.customer_id == user_id, CommissionRequest.designer_id),
        else_=CommissionRequest.customer_id,
    ).label("partner_id")
    links = (
        sa.select(partner_id, CommissionRequest.created_at)
        .where(
            CommissionRequest.status.in_(_HIRED_STATUSES),
            sa.or_(
                CommissionRequest.customer_id == user_id,
                CommissionRequest.designer_id == user_id,
            ),
        )
        .subquery()
    )
    stmt = (
        sa.select(links.c.partner_id)
        .where(links.c.partner_id.is_not(None), links.c.partner_id != user_id)
        .group_by(links.c.partner_id)
        .order_by(sa.func.min(links.c.created_at).asc(), links.c.partner_id.asc())
    )
    offset = 0
    while True:
        page = (await session.execute(stmt.limit(PAGE_SIZE).offset(offset))).scalars().all()
        for partner in page:
            yield partner
        if len(page) < PAGE_SIZE:
            return
        offset += PAGE_SIZE


async def _partner_link(session: AsyncSession, user_id: str, partner_id: str) -> _PartnerLink | None:
    stmt = (
        sa.select(CommissionRequest)
        .where(_hired_pair_clause(user_id, partner_id))
        .order_by(CommissionRequest.created_at.asc(), CommissionRequest.request_id.asc())
    )
    shared = (await session.execute(stmt)).scalars().all()
    if not shared:
        return None
    first = shared[0]
    if first.customer_id == user_id:
        name, role = first.designer_name, "designer"
    else:
        name, role = first.customer_name, "customer"
    return _PartnerLink(
        user_id=partner_id,
        name=name,
        role=role,
        request_ids=[request.request_id for request in shared],
    )


async def iter_conversation_partners(
    session: AsyncSession, user_id: str
) -> AsyncIterator[ConversationPartner]:
    """Yield one entry per counterpart; each iteration re-reads the current state."""
    async for partner_id in _iter_partner_ids(session, user_id):
        link = await _partner_link(session, user_id, partner_id)
        if link is None:
            continue
        last = await session.scalar(
            sa.select(Message)
            .where(_pair_clause(user_id, link.user_id))
            .order_by(Message.created_at.desc(), Message.message_id.desc())
            .limit(1)
        )
        unread = await session.scalar(
            sa.select(sa.func.count(Message.message_id)).where(
                Message.sender_id == link.user_id,
                Message.receiver_id == user_id,
                Message.read.is_(False),
            )
        )
        yield ConversationPartner(
            user_id=link.user_id,
            name=link.name,
            role=link.role,
            request_ids=link.request_ids,
            last_message=MessageResponse.model_validate(last) if last is not None else None,
            unread_count=int(unread or 0),
        )


async def list_conversation_partners(session: AsyncSession, user_id: str) -> list[ConversationPartner]:
    return [partner async for partner in iter_conversation_partners(session, user_id)]


async def send_message(
    session: AsyncSession,
    *,
    sender_id: str,
    receiver_id: str,
    content: str | None,
    image_url: str | None = None,
) -> Message:
    if not await can_message(session, sender_id, receiver_id):
        logger.info(
            "message_blocked",
            extra={"extra": {"sender_id": sender_id, "receiver_id": receiver_id}},
        )
        raise AuthorizationError(detail="Messaging requires an accepted proposal between both users")

    text = (content or "").strip()
    image = (image_url or "").strip() or None
    if not text and image is None:
        raise ValidationError(
            detail="Message needs text or an image",
            errors=[{"field": "content", "message": "Field is required"}],
        )
    if len(text) > settings.message_max_length:
        raise ValidationError(
            detail=f"Message exceeds {settings.message_max_length} characters",
            errors=[{"field": "content", "message": "Message is too long"}],
        )

    message = Message(
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=text,
        image_url=image,
        read=False,
    )
    session.add(message)
    await session.flush()
    logger.info(
        "message_sent",
        extra={"extra": {"message_id": message.message_id, "sender_id": sender_id}},
    )
    return message


async def _ensure_partners(session: AsyncSession, user_id: str, partner_id: str) -> None:
    if not await can_message(session, user_id, partner_id):
        raise AuthorizationError(detail="No conversation exists with this user")


async def list_conversation(
    session: AsyncSession, *, user_id: str, partner_id: str
) -> list[Message]:
    await _ensure_partners(session, user_id, partner_id)
    stmt = (
        sa.select(Message)
        .where(_pair_clause(user_id, partner_id))
        .order_by(Message.created_at.asc(), Message.message_id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def mark_conversation_read(session: AsyncSession, *, reader_id: str, partner_id: str) -> int:
    await _ensure_partners(session, reader_id, partner_id)
    result = await session.execute(
        sa.update(Message)
        .where(
            Message.sender_id == partner_id,
            Message.receiver_id == reader_id,
            Message.read.is_(False),
        )
        .values(read=True)
    )
    count = int(result.rowcount or 0)
    if count:
        logger.info(
            "conversation_marked_read",
            extra={"extra": {"reader_id": reader_id, "partner_id": partner_id, "count": count}},
        )
    return count
