import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.api.caching import cached_listing, invalidate_request_views, listing_key
from atelier.api.identity import Identity, require_customer, require_designer, require_identity
from atelier.api.routes_requests import ensure_can_view
from atelier.dependencies import get_cache, get_metrics, get_payment_schedule
from atelier.domain.errors import DomainError
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.schemas import RequestStatus
from atelier.domain.timeline import schemas as timeline_schemas
from atelier.domain.timeline import service as timeline_service
from atelier.domain.timeline.schedule import PaymentSchedule
from atelier.infra.cache import ResponseCache
from atelier.infra.db import get_db_session
from atelier.infra.metrics import Metrics

router = APIRouter(tags=["timeline"])
logger = logging.getLogger(__name__)


@router.get("/v1/requests/{request_id}/timeline", response_model=timeline_schemas.TimelineResponse)
async def list_timeline(
    request_id: str,
    http_request: Request,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
    cache: ResponseCache = Depends(get_cache),
) -> Response:
    request = await requests_service.get_request(session, request_id)
    ensure_can_view(request, identity)

    async def _build() -> timeline_schemas.TimelineResponse:
        updates = await timeline_service.list_timeline(session, request_id)
        return timeline_schemas.TimelineResponse(
            request_id=request_id,
            request_status=request.status,
            items=[timeline_schemas.TimelineUpdateResponse.model_validate(update) for update in updates],
        )

    return await cached_listing(cache, listing_key(http_request, identity.user_id), _build)


@router.post(
    "/v1/requests/{request_id}/timeline",
    status_code=status.HTTP_201_CREATED,
    response_model=timeline_schemas.TimelineUpdateResponse,
)
async def add_timeline_update(
    request_id: str,
    payload: timeline_schemas.TimelineUpdateCreate,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_designer),
    schedule: PaymentSchedule = Depends(get_payment_schedule),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> timeline_schemas.TimelineUpdateResponse:
    update = await timeline_service.add_update(
        session,
        request_id,
        designer_id=identity.user_id,
        status=payload.status,
        message=payload.message,
        payment_required=payload.payment_required,
        payment_amount_cents=payload.payment_amount_cents,
        schedule=schedule,
    )
    request = await requests_service.get_request(session, request_id)
    await session.commit()
    metrics.record_timeline_update(update.status)
    if request.status == RequestStatus.COMPLETED.value:
        metrics.record_request("completed")
    await invalidate_request_views(cache, request_id)
    return timeline_schemas.TimelineUpdateResponse.model_validate(update)


@router.get("/v1/requests/{request_id}/payments", response_model=timeline_schemas.PaymentsResponse)
async def list_payments(
    request_id: str,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_identity),
    schedule: PaymentSchedule = Depends(get_payment_schedule),
) -> timeline_schemas.PaymentsResponse:
    request = await requests_service.get_request(session, request_id)
    ensure_can_view(request, identity)
    payments = await timeline_service.list_payments(session, request_id)
    summary = await timeline_service.payment_summary(session, request_id, schedule=schedule)
    return timeline_schemas.PaymentsResponse(
        items=[timeline_schemas.MilestonePaymentResponse.model_validate(payment) for payment in payments],
        summary=summary,
    )


@router.post(
    "/v1/timeline/{update_id}/payments",
    status_code=status.HTTP_201_CREATED,
    response_model=timeline_schemas.MilestonePaymentResponse,
)
async def record_payment(
    update_id: str,
    payload: timeline_schemas.PaymentCreate,
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(require_customer),
    cache: ResponseCache = Depends(get_cache),
    metrics: Metrics = Depends(get_metrics),
) -> timeline_schemas.MilestonePaymentResponse:
    try:
        payment = await timeline_service.record_payment(
            session, update_id, payer_id=identity.user_id, amount_cents=payload.amount_cents
        )
    except DomainError as exc:
        metrics.record_payment(exc.kind)
        raise
    await session.commit()
    metrics.record_payment("paid")
    await invalidate_request_views(cache, payment.request_id)
    return timeline_schemas.MilestonePaymentResponse.model_validate(payment)
