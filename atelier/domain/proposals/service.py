from __future__ import annotations

import logging

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from atelier.domain.events import service as events_service
from atelier.domain.events.schemas import EventKind
from atelier.domain.proposals.db_models import Proposal
from atelier.domain.proposals.schemas import ProposalRevision, ProposalStatus
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.db_models import CommissionRequest
from atelier.domain.requests.schemas import RequestStatus
from atelier.infra.db import flush_or_conflict
from atelier.shared.clock import utcnow

logger = logging.getLogger(__name__)


def _validate_terms(price_cents: int | None, estimated_time: str | None) -> list[dict]:
    errors: list[dict] = []
    if price_cents is not None and price_cents <= 0:
        errors.append({"field": "price_cents", "message": "Price must be positive"})
    if estimated_time is not None and not estimated_time.strip():
        errors.append({"field": "estimated_time", "message": "Estimated time is required"})
    return errors


def _ensure_open(request: CommissionRequest) -> None:
    if request.status != RequestStatus.OPEN.value:
        raise ConflictError(detail=f"Request is {request.status}, no longer accepting proposals")


async def get_proposal(session: AsyncSession, proposal_id: str) -> Proposal:
    proposal = await session.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError(detail="Proposal not found")
    return proposal


async def _get_proposal_of_request(
    session: AsyncSession, request_id: str, proposal_id: str
) -> Proposal:
    stmt = (
        sa.select(Proposal)
        .where(Proposal.proposal_id == proposal_id, Proposal.request_id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    proposal = await session.scalar(stmt)
    if proposal is None:
        raise NotFoundError(detail="Proposal not found for this request")
    return proposal


async def submit_proposal(
    session: AsyncSession,
    request_id: str,
    *,
    designer_id: str,
    designer_name: str | None,
    price_cents: int,
    estimated_time: str,
    message: str | None = None,
) -> Proposal:
    errors = _validate_terms(price_cents, estimated_time)
    if errors:
        raise ValidationError(detail="Invalid proposal", errors=errors)

    request = await requests_service.get_request_for_update(session, request_id)
    _ensure_open(request)

    existing = await session.scalar(
        sa.select(Proposal).where(
            Proposal.request_id == request_id, Proposal.designer_id == designer_id
        )
    )
    if existing is not None and existing.status != ProposalStatus.REJECTED.value:
        raise ConflictError(detail="Designer already has a proposal on this request")

    if existing is not None:
        # Re-bid after rejection reuses the designer's row for this request.
        proposal = existing
        proposal.designer_name = designer_name
        proposal.price_cents = price_cents
        proposal.estimated_time = estimated_time.strip()
        proposal.message = message
        proposal.status = ProposalStatus.PENDING.value
        proposal.decided_at = None
    else:
        proposal = Proposal(
            request_id=request_id,
            designer_id=designer_id,
            designer_name=designer_name,
            price_cents=price_cents,
            estimated_time=estimated_time.strip(),
            message=message,
            status=ProposalStatus.PENDING.value,
        )
        session.add(proposal)
    await flush_or_conflict(session, detail="Designer already has a proposal on this request")
    logger.info(
        "proposal_submitted",
        extra={
            "extra": {
                "proposal_id": proposal.proposal_id,
                "request_id": request_id,
                "designer_id": designer_id,
                "revived": existing is not None,
            }
        },
    )
    return proposal


async def accept_proposal(
    session: AsyncSession,
    request_id: str,
    proposal_id: str,
    *,
    customer_id: str,
) -> Proposal:
    """Accept one proposal, reject its siblings and assign the request in one transaction."""
    request = await requests_service.get_request_for_update(session, request_id)
    requests_service.ensure_owner(request, customer_id)
    proposal = await _get_proposal_of_request(session, request_id, proposal_id)
    _ensure_open(request)
    if proposal.status != ProposalStatus.PENDING.value:
        raise ConflictError(detail=f"Proposal is {proposal.status}, expected pending")

    decided_at = utcnow()
    siblings = (
        await session.execute(
            sa.select(Proposal)
            .where(
                Proposal.request_id == request_id,
                Proposal.proposal_id != proposal_id,
                Proposal.status == ProposalStatus.PENDING.value,
            )
            .with_for_update()
        )
    ).scalars().all()
    for sibling in siblings:
        sibling.status = ProposalStatus.REJECTED.value
        sibling.decided_at = decided_at
    proposal.status = ProposalStatus.ACCEPTED.value
    proposal.decided_at = decided_at

    await requests_service.transition_to_assigned(session, request, proposal)
    await events_service.record_event(
        session,
        kind=EventKind.PROPOSAL_ACCEPTED,
        request_id=request_id,
        payload={
            "proposal_id": proposal.proposal_id,
            "designer_id": proposal.designer_id,
            "price_cents": proposal.price_cents,
            "rejected_proposal_ids": [sibling.proposal_id for sibling in siblings],
        },
    )
    logger.info(
        "proposal_accepted",
        extra={
            "extra": {
                "request_id": request_id,
                "proposal_id": proposal_id,
                "rejected": len(siblings),
            }
        },
    )
    return proposal


async def reject_proposal(
    session: AsyncSession,
    request_id: str,
    proposal_id: str,
    *,
    customer_id: str,
) -> Proposal:
    request = await requests_service.get_request_for_update(session, request_id)
    requests_service.ensure_owner(request, customer_id)
    proposal = await _get_proposal_of_request(session, request_id, proposal_id)
    if proposal.status == ProposalStatus.REJECTED.value:
        return proposal
    if proposal.status == ProposalStatus.ACCEPTED.value:
        raise ConflictError(detail="An accepted proposal cannot be rejected")
    _ensure_open(request)

    proposal.status = ProposalStatus.REJECTED.value
    proposal.decided_at = utcnow()
    await flush_or_conflict(session, detail="Proposal was decided concurrently")
    logger.info(
        "proposal_rejected",
        extra={"extra": {"request_id": request_id, "proposal_id": proposal_id}},
    )
    return proposal


async def _get_own_pending(
    session: AsyncSession, proposal_id: str, designer_id: str
) -> tuple[Proposal, CommissionRequest]:
    proposal = await get_proposal(session, proposal_id)
    if proposal.designer_id != designer_id:
        raise AuthorizationError(detail="Only the submitting designer may change this proposal")
    request = await requests_service.get_request_for_update(session, proposal.request_id)
    # Re-read under the request lock.
    proposal = await _get_proposal_of_request(session, request.request_id, proposal_id)
    if proposal.status != ProposalStatus.PENDING.value:
        raise ConflictError(detail=f"Proposal is {proposal.status}, expected pending")
    _ensure_open(request)
    return proposal, request


async def revise_proposal(
    session: AsyncSession,
    proposal_id: str,
    *,
    designer_id: str,
    changes: ProposalRevision,
) -> Proposal:
    proposal, _ = await _get_own_pending(session, proposal_id, designer_id)
    provided = changes.model_dump(exclude_unset=True)
    if "price_cents" in provided and provided["price_cents"] is None:
        provided.pop("price_cents")
    if "estimated_time" in provided and provided["estimated_time"] is None:
        provided.pop("estimated_time")
    errors = _validate_terms(provided.get("price_cents"), provided.get("estimated_time"))
    if errors:
        raise ValidationError(detail="Invalid proposal", errors=errors)

    if "price_cents" in provided:
        proposal.price_cents = provided["price_cents"]
    if "estimated_time" in provided:
        proposal.estimated_time = provided["estimated_time"].strip()
    if "message" in provided:
        proposal.message = provided["message"]
    await flush_or_conflict(session, detail="Proposal was modified concurrently")
    return proposal


async def withdraw_proposal(session: AsyncSession, proposal_id: str, *, designer_id: str) -> str:
    proposal, request = await _get_own_pending(session, proposal_id, designer_id)
    await session.delete(proposal)
    await flush_or_conflict(session, detail="Proposal was decided concurrently")
    logger.info(
        "proposal_withdrawn",
        extra={"extra": {"request_id": request.request_id, "proposal_id": proposal_id}},
    )
    return request.request_id


async def list_proposals(
    session: AsyncSession,
    *,
    request_id: str | None = None,
    designer_id: str | None = None,
    status: ProposalStatus | None = None,
) -> list[Proposal]:
    stmt = sa.select(Proposal)
    if request_id is not None:
        stmt = stmt.where(Proposal.request_id == request_id)
    if designer_id is not None:
        stmt = stmt.where(Proposal.designer_id == designer_id)
    if status is not None:
        stmt = stmt.where(Proposal.status == ProposalStatus(status).value)
    stmt = stmt.order_by(Proposal.created_at.asc(), Proposal.proposal_id.asc())
    return list((await session.execute(stmt)).scalars().all())
