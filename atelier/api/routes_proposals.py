import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.api.caching import cached_listing, invalidate_request_views, listing_key
from atelier.api.identity import Identity, Role, require_customer, require_designer, require_identity
from atelier.dependencies import get_cache, get_metrics
from atelier.domain.errors import AuthorizationError
from atelier.domain.proposals import schemas as proposal_schemas
from atelier.domain.proposals import service as proposals_service
from atelier.domain.requests import service as requests_service
from atelier.infra.cache import ResponseCache
from atelier.infra.db import get_db_session
from atelier.infra.metrics import Metrics

router = APIRouter(tags=["proposals"])
logger = logging.getLogger(__name__)


def _to_response(proposal) -> proposal_schemas.ProposalResponse:
    return proposal_schemas.ProposalResponse.model_validate(proposal)


@router.get(
    "/v1/requests/{request_id}/proposals",
    response_model=proposal_schemas.ProposalListResponse,
)
async def list_request_proposals(
    request_id: str,
    http_request: Request,
    status_filter: proposal_schemas.ProposalStatus | None = Query(None, alias="status"),
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
    cache: ResponseCache = Depends(get_cache),
) -> Response:
    request = await requests_service.get_request(session, request_id)
    designer_id: str | None = None
    if identity.role == Role.DESIGNER:
        # Designers only see their own bid on someone else's request.
        designer_id = identity.user_id
    elif identity.role == Role.CUSTOMER and request.customer_id != identity.user_id:
        raise AuthorizationError(detail="Only the requesting customer may review proposals")

    async def _build() -> proposal_schemas.ProposalListResponse:
        proposals = await proposals_service.list_proposals(
            session, request_id=request_id, designer_id=designer_id, status=status_filter
        )
        items = [_to_response(proposal) for proposal in proposals]
        return proposal_schemas.ProposalListResponse(items=items, total=len(items))

    return await cached_listing(cache, listing_key(http_request, identity.user_id), _build)


@router.post(
    "/v1/requests/{request_id}/proposals",
    status_code=status.HTTP_201_CREATED,
    response_model=proposal_schemas.ProposalResponse,
)
async def submit_proposal(
    request_id: str,
    payload: proposal_schemas.ProposalCreate,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_designer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> proposal_schemas.ProposalResponse:
    proposal = await proposals_service.submit_proposal(
        session,
        request_id,
        designer_id=identity.user_id,
        designer_name=identity.name,
        price_cents=payload.price_cents,
        estimated_time=payload.estimated_time,
        message=payload.message,
    )
    await session.commit()
    metrics.record_proposal("submitted")
    await invalidate_request_views(cache, request_id)
    return _to_response(proposal)


@router.post(
    "/v1/requests/{request_id}/proposals/{proposal_id}/accept",
    response_model=proposal_schemas.ProposalResponse,
)
async def accept_proposal(
    request_id: str,
    proposal_id: str,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_customer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> proposal_schemas.ProposalResponse:
    proposal = await proposals_service.accept_proposal(
        session, request_id, proposal_id, customer_id=identity.user_id
    )
    await session.commit()
    metrics.record_proposal("accepted")
    metrics.record_request("assigned")
    await invalidate_request_views(cache, request_id)
    return _to_response(proposal)


@router.post(
    "/v1/requests/{request_id}/proposals/{proposal_id}/reject",
    response_model=proposal_schemas.ProposalResponse,
)
async def reject_proposal(
    request_id: str,
    proposal_id: str,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_customer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> proposal_schemas.ProposalResponse:
    proposal = await proposals_service.reject_proposal(
        session, request_id, proposal_id, customer_id=identity.user_id
    )
    await session.commit()
    metrics.record_proposal("rejected")
    await invalidate_request_views(cache, request_id)
    return _to_response(proposal)


@router.get("/v1/proposals", response_model=proposal_schemas.ProposalListResponse)
async def list_my_proposals(
    http_request: Request,
    status_filter: proposal_schemas.ProposalStatus | None = Query(None, alias="status"),
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_designer),
    cache: ResponseCache = Depends(get_cache),
) -> Response:
    async def _build() -> proposal_schemas.ProposalListResponse:
        proposals = await proposals_service.list_proposals(
            session, designer_id=identity.user_id, status=status_filter
        )
        items = [_to_response(proposal) for proposal in proposals]
        return proposal_schemas.ProposalListResponse(items=items, total=len(items))

    return await cached_listing(cache, listing_key(http_request, identity.user_id), _build)


@router.patch("/v1/proposals/{proposal_id}", response_model=proposal_schemas.ProposalResponse)
async def revise_proposal(
    proposal_id: str,
    payload: proposal_schemas.ProposalRevision,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_designer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> proposal_schemas.ProposalResponse:
    proposal = await proposals_service.revise_proposal(
        session, proposal_id, designer_id=identity.user_id, changes=payload
    )
    await session.commit()
    metrics.record_proposal("revised")
    await invalidate_request_views(cache, proposal.request_id)
    return _to_response(proposal)


@router.delete("/v1/proposals/{proposal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_proposal(
    proposal_id: str,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_designer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> Response:
    request_id = await proposals_service.withdraw_proposal(
        session, proposal_id, designer_id=identity.user_id
    )
    await session.commit()
    metrics.record_proposal("withdrawn")
    await invalidate_request_views(cache, request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
