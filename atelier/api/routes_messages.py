import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.api.identity import Identity, require_identity
from atelier.dependencies import get_metrics
from atelier.domain.errors import AuthorizationError
from atelier.domain.messaging import schemas as messaging_schemas
from atelier.domain.messaging import service as messaging_service
from atelier.infra.db import get_db_session
from atelier.infra.metrics import Metrics

router = APIRouter(tags=["messages"])
logger = logging.getLogger(__name__)


@router.get("/v1/messages/partners", response_model=list[messaging_schemas.ConversationPartner])
async def list_partners(
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
) -> list[messaging_schemas.ConversationPartner]:
    return await messaging_service.list_conversation_partners(session, identity.user_id)


@router.get("/v1/messages/{partner_id}", response_model=messaging_schemas.ConversationResponse)
async def list_conversation(
    partner_id: str,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
) -> messaging_schemas.ConversationResponse:
    messages = await messaging_service.list_conversation(
        session, user_id=identity.user_id, partner_id=partner_id
    )
    return messaging_schemas.ConversationResponse(
        partner_id=partner_id,
        items=[messaging_schemas.MessageResponse.model_validate(message) for message in messages],
    )


@router.post(
    "/v1/messages",
    status_code=status.HTTP_201_CREATED,
    response_model=messaging_schemas.MessageResponse,
)
async def send_message(
    payload: messaging_schemas.MessageCreate,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
    metrics: Metrics = Depends(get_metrics),
) -> messaging_schemas.MessageResponse:
    try:
        message = await messaging_service.send_message(
            session,
            sender_id=identity.user_id,
            receiver_id=payload.receiver_id,
            content=payload.content,
            image_url=payload.image_url,
        )
    except AuthorizationError:
        metrics.record_message("blocked")
        raise
    await session.commit()
    metrics.record_message("sent")
    return messaging_schemas.MessageResponse.model_validate(message)


@router.post("/v1/messages/{partner_id}/read", response_model=messaging_schemas.MarkReadResponse)
async def mark_conversation_read(
    partner_id: str,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
) -> messaging_schemas.MarkReadResponse:
    count = await messaging_service.mark_conversation_read(
        session, reader_id=identity.user_id, partner_id=partner_id
    )
    await session.commit()
    return messaging_schemas.MarkReadResponse(partner_id=partner_id, marked_read=count)
