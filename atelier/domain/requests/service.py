from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncIterator

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from atelier.domain.requests.db_models import CommissionRequest, CommissionRequestImage
from atelier.domain.requests.schemas import RequestCreate, RequestFilters, RequestStatus, RequestUpdate
from atelier.infra.db import flush_or_conflict
from atelier.shared.clock import utcnow

if TYPE_CHECKING:
    from atelier.domain.proposals.db_models import Proposal

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "description", "material", "timeframe")
EDITABLE_FIELDS = (
    "title",
    "description",
    "material",
    "timeframe",
    "budget_cents",
    "size",
    "additional_details",
)
PAGE_SIZE = 100


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _validate_budget(budget_cents: int | None, errors: list[dict]) -> None:
    if budget_cents is not None and budget_cents <= 0:
        errors.append({"field": "budget_cents", "message": "Budget must be positive"})


async def create_request(
    session: AsyncSession,
    *,
    customer_id: str,
    customer_name: str | None,
    fields: RequestCreate,
) -> CommissionRequest:
    errors: list[dict] = []
    cleaned = {name: _clean(getattr(fields, name)) for name in REQUIRED_FIELDS}
    for name, value in cleaned.items():
        if value is None:
            errors.append({"field": name, "message": "Field is required"})
    _validate_budget(fields.budget_cents, errors)
    images = [_clean(url) for url in fields.images]
    if any(url is None for url in images):
        errors.append({"field": "images", "message": "Image URLs must not be empty"})
    if errors:
        raise ValidationError(detail="Invalid commission request", errors=errors)

    request = CommissionRequest(
        customer_id=customer_id,
        customer_name=customer_name,
        budget_cents=fields.budget_cents,
        size=_clean(fields.size),
        additional_details=_clean(fields.additional_details),
        status=RequestStatus.OPEN.value,
        images=[
            CommissionRequestImage(position=position, url=url)
            for position, url in enumerate(images)
        ],
        **cleaned,
    )
    session.add(request)
    await session.flush()
    logger.info(
        "commission_request_created",
        extra={"extra": {"request_id": request.request_id, "customer_id": customer_id}},
    )
    return request


async def get_request(session: AsyncSession, request_id: str) -> CommissionRequest:
    request = await session.get(CommissionRequest, request_id)
    if request is None:
        raise NotFoundError(detail="Request not found")
    return request


async def get_request_for_update(session: AsyncSession, request_id: str) -> CommissionRequest:
    """Load the request row with a row lock held until the transaction ends."""
    stmt = (
        sa.select(CommissionRequest)
        .where(CommissionRequest.request_id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    request = await session.scalar(stmt)
    if request is None:
        raise NotFoundError(detail="Request not found")
    return request


def _filtered_statement(filters: RequestFilters) -> sa.Select:
    stmt = sa.select(CommissionRequest)
    if filters.status is not None:
        stmt = stmt.where(CommissionRequest.status == RequestStatus(filters.status).value)
    if filters.customer_id is not None:
        stmt = stmt.where(CommissionRequest.customer_id == filters.customer_id)
    if filters.designer_id is not None:
        stmt = stmt.where(CommissionRequest.designer_id == filters.designer_id)
    return stmt.order_by(CommissionRequest.created_at.desc(), CommissionRequest.request_id.desc())


async def iter_requests(
    session: AsyncSession, filters: RequestFilters | None = None
) -> AsyncIterator[CommissionRequest]:
    """Yield matching requests page by page; calling again restarts from the first page."""
    stmt = _filtered_statement(filters or RequestFilters())
    offset = 0
    while True:
        page = (await session.execute(stmt.limit(PAGE_SIZE).offset(offset))).scalars().all()
        for request in page:
            yield request
        if len(page) < PAGE_SIZE:
            return
        offset += PAGE_SIZE


async def list_requests(
    session: AsyncSession, filters: RequestFilters | None = None
) -> list[CommissionRequest]:
    return [request async for request in iter_requests(session, filters)]


def ensure_owner(request: CommissionRequest, customer_id: str) -> None:
    if request.customer_id != customer_id:
        raise AuthorizationError(detail="Only the requesting customer may change this request")


def ensure_participant(request: CommissionRequest, user_id: str) -> None:
    if user_id not in {request.customer_id, request.designer_id}:
        raise AuthorizationError(detail="Only the customer or assigned designer may view this")


async def update_request_details(
    session: AsyncSession,
    request_id: str,
    *,
    customer_id: str,
    changes: RequestUpdate,
) -> CommissionRequest:
    request = await get_request_for_update(session, request_id)
    ensure_owner(request, customer_id)
    if request.status != RequestStatus.OPEN.value:
        raise ConflictError(detail="Request details are locked once a proposal is accepted")

    provided = changes.model_dump(exclude_unset=True)
    errors: list[dict] = []
    updates: dict[str, object] = {}
    for name, value in provided.items():
        if name not in EDITABLE_FIELDS:
            continue
        if name == "budget_cents":
            _validate_budget(value, errors)
            updates[name] = value
            continue
        cleaned = _clean(value)
        if cleaned is None and name in REQUIRED_FIELDS:
            errors.append({"field": name, "message": "Field is required"})
        updates[name] = cleaned
    if errors:
        raise ValidationError(detail="Invalid commission request", errors=errors)

    for name, value in updates.items():
        setattr(request, name, value)
    await flush_or_conflict(session, detail="Request was modified concurrently")
    return request


async def attach_image(
    session: AsyncSession, request_id: str, *, customer_id: str, url: str
) -> CommissionRequest:
    request = await get_request(session, request_id)
    ensure_owner(request, customer_id)
    cleaned = _clean(url)
    if cleaned is None:
        raise ValidationError(detail="Image URL must not be empty")
    request.images.append(CommissionRequestImage(position=len(request.images), url=cleaned))
    await session.flush()
    return request


async def transition_to_assigned(
    session: AsyncSession, request: CommissionRequest, proposal: "Proposal"
) -> CommissionRequest:
    if proposal.request_id != request.request_id:
        raise ValidationError(detail="Proposal does not belong to this request")
    if request.status != RequestStatus.OPEN.value:
        raise ConflictError(detail=f"Request is {request.status}, expected open")

    request.status = RequestStatus.ASSIGNED.value
    request.accepted_proposal_id = proposal.proposal_id
    request.accepted_price_cents = proposal.price_cents
    request.designer_id = proposal.designer_id
    request.designer_name = proposal.designer_name
    await flush_or_conflict(session, detail="Request was assigned concurrently")
    logger.info(
        "commission_request_assigned",
        extra={
            "extra": {
                "request_id": request.request_id,
                "proposal_id": proposal.proposal_id,
                "designer_id": proposal.designer_id,
            }
        },
    )
    return request


async def transition_to_completed(
    session: AsyncSession, request: CommissionRequest
) -> CommissionRequest:
    if request.status != RequestStatus.ASSIGNED.value:
        raise ConflictError(detail=f"Request is {request.status}, expected assigned")

    request.status = RequestStatus.COMPLETED.value
    request.completed_at = utcnow()
    await flush_or_conflict(session, detail="Request was completed concurrently")
    logger.info(
        "request_completed",
        extra={"extra": {"request_id": request.request_id, "designer_id": request.designer_id}},
    )
    return request
