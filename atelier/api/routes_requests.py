import logging

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.api.caching import cached_listing, invalidate_request_views, listing_key
from atelier.api.identity import Identity, Role, require_customer, require_identity
from atelier.dependencies import get_cache, get_metrics, get_storage
from atelier.domain.events import service as events_service
from atelier.domain.events.db_models import LifecycleEvent
from atelier.domain.events.schemas import EventKind, LifecycleEventResponse
from atelier.domain.requests import images as images_service
from atelier.domain.requests import schemas as request_schemas
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.db_models import CommissionRequest
from atelier.infra.cache import ResponseCache
from atelier.infra.db import get_db_session
from atelier.infra.metrics import Metrics
from atelier.infra.storage import StorageBackend

router = APIRouter(tags=["requests"])
logger = logging.getLogger(__name__)


def to_response(request: CommissionRequest) -> request_schemas.RequestResponse:
    return request_schemas.RequestResponse(
        request_id=request.request_id,
        customer_id=request.customer_id,
        customer_name=request.customer_name,
        title=request.title,
        description=request.description,
        material=request.material,
        budget_cents=request.budget_cents,
        timeframe=request.timeframe,
        size=request.size,
        additional_details=request.additional_details,
        images=request.image_urls,
        status=request_schemas.RequestStatus(request.status),
        created_at=request.created_at,
        accepted_proposal_id=request.accepted_proposal_id,
        accepted_price_cents=request.accepted_price_cents,
        designer_id=request.designer_id,
        designer_name=request.designer_name,
        completed_at=request.completed_at,
    )


def _event_response(event: LifecycleEvent) -> LifecycleEventResponse:
    return LifecycleEventResponse(
        event_id=event.event_id,
        kind=EventKind(event.kind),
        request_id=event.request_id,
        payload=event.payload_json,
        created_at=event.created_at,
    )


def ensure_can_view(request: CommissionRequest, identity: Identity) -> None:
    if identity.role == Role.ADMIN:
        return
    requests_service.ensure_participant(request, identity.user_id)


@router.post(
    "/v1/requests",
    status_code=status.HTTP_201_CREATED,
    response_model=request_schemas.RequestResponse,
)
async def create_request(
    payload: request_schemas.RequestCreate,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_customer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> request_schemas.RequestResponse:
    request = await requests_service.create_request(
        session,
        customer_id=identity.user_id,
        customer_name=identity.name,
        fields=payload,
    )
    await session.commit()
    metrics.record_request("created")
    await invalidate_request_views(cache)
    return to_response(request)


@router.get("/v1/requests", response_model=request_schemas.RequestListResponse)
async def list_requests(
    http_request: Request,
    status_filter: request_schemas.RequestStatus | None = Query(None, alias="status"),
    customer_id: str | None = None,
    designer_id: str | None = None,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
    cache: ResponseCache = Depends(get_cache),
) -> Response:
    filters = request_schemas.RequestFilters(
        status=status_filter,
        customer_id=customer_id,
        designer_id=designer_id,
    )

    async def _build() -> request_schemas.RequestListResponse:
        items = [to_response(request) for request in await requests_service.list_requests(session, filters)]
        return request_schemas.RequestListResponse(items=items, total=len(items))

    return await cached_listing(cache, listing_key(http_request, identity.user_id), _build)


@router.get("/v1/requests/{request_id}", response_model=request_schemas.RequestResponse)
async def get_request(
    request_id: str,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
) -> request_schemas.RequestResponse:
    request = await requests_service.get_request(session, request_id)
    return to_response(request)


@router.patch("/v1/requests/{request_id}", response_model=request_schemas.RequestResponse)
async def update_request(
    request_id: str,
    payload: request_schemas.RequestUpdate,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_customer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> request_schemas.RequestResponse:
    request = await requests_service.update_request_details(
        session, request_id, customer_id=identity.user_id, changes=payload
    )
    await session.commit()
    metrics.record_request("updated")
    await invalidate_request_views(cache, request_id)
    return to_response(request)


@router.post(
    "/v1/requests/{request_id}/images",
    status_code=status.HTTP_201_CREATED,
    response_model=request_schemas.RequestResponse,
)
async def upload_request_image(
    request_id: str,
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_customer),
    storage: StorageBackend = Depends(get_storage),
    cache: ResponseCache = Depends(get_cache),
) -> request_schemas.RequestResponse:
    request = await images_service.store_request_image(
        session, request_id, customer_id=identity.user_id, upload=file, storage=storage
    )
    await session.commit()
    await invalidate_request_views(cache, request_id)
    return to_response(request)


@router.get("/v1/requests/{request_id}/events", response_model=list[LifecycleEventResponse])
async def list_request_events(
    request_id: str,
    kind: EventKind | None = None,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
) -> list[LifecycleEventResponse]:
    request = await requests_service.get_request(session, request_id)
    ensure_can_view(request, identity)
    events = await events_service.list_events(session, request_id, kind=kind)
    return [_event_response(event) for event in events]
