"""Production timeline and milestone payments for assigned requests."""

from __future__ import annotations

import logging

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from atelier.domain.events import service as events_service
from atelier.domain.events.schemas import EventKind
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.schemas import RequestStatus
from atelier.domain.timeline.db_models import MilestonePayment, TimelineUpdate
from atelier.domain.timeline.schedule import PaymentSchedule
from atelier.domain.timeline.schemas import (
    MilestonePaymentStatus,
    PaymentStatus,
    PaymentSummary,
    TimelineStage,
)
from atelier.infra.db import flush_or_conflict
from atelier.shared.clock import utcnow

logger = logging.getLogger(__name__)


def _parse_stage(value: str) -> TimelineStage:
    try:
        return TimelineStage((value or "").strip().lower())
    except ValueError as exc:
        raise ValidationError(
            detail=f"Unknown timeline stage: {value}",
            errors=[{"field": "status", "message": "Unknown stage"}],
        ) from exc


async def add_update(
    session: AsyncSession,
    request_id: str,
    *,
    designer_id: str,
    status: str,
    message: str,
    payment_required: bool | None = None,
    payment_amount_cents: int | None = None,
    schedule: PaymentSchedule | None = None,
) -> TimelineUpdate:
    stage = _parse_stage(status)
    if not (message or "").strip():
        raise ValidationError(
            detail="Timeline message is required",
            errors=[{"field": "message", "message": "Field is required"}],
        )
    schedule = schedule or PaymentSchedule.from_settings()

    request = await requests_service.get_request_for_update(session, request_id)
    if request.designer_id != designer_id:
        raise AuthorizationError(detail="Only the assigned designer may post timeline updates")
    if request.status != RequestStatus.ASSIGNED.value:
        raise ConflictError(detail=f"Request is {request.status}, expected assigned")

    duplicate = await session.scalar(
        sa.select(TimelineUpdate.update_id).where(
            TimelineUpdate.request_id == request_id, TimelineUpdate.status == stage.value
        )
    )
    if duplicate is not None:
        raise ConflictError(detail=f"Stage {stage.value} already recorded for this request")

    required = schedule.requires_payment(stage.value) if payment_required is None else payment_required
    amount: int | None = None
    if required:
        amount = payment_amount_cents
        if amount is None:
            amount = schedule.default_amount(stage.value, request.accepted_price_cents)
        if amount is None or amount <= 0:
            raise ValidationError(
                detail="A required payment needs a positive amount",
                errors=[{"field": "payment_amount_cents", "message": "Amount must be positive"}],
            )

    position = await session.scalar(
        sa.select(sa.func.count(TimelineUpdate.update_id)).where(
            TimelineUpdate.request_id == request_id
        )
    )
    update = TimelineUpdate(
        request_id=request_id,
        designer_id=designer_id,
        status=stage.value,
        message=message.strip(),
        position=int(position or 0) + 1,
        payment_required=required,
        payment_amount_cents=amount,
        payment_status=(PaymentStatus.PENDING if required else PaymentStatus.NOT_REQUIRED).value,
    )
    session.add(update)
    await flush_or_conflict(session, detail=f"Stage {stage.value} already recorded for this request")
    await events_service.record_event(
        session,
        kind=EventKind.TIMELINE_UPDATED,
        request_id=request_id,
        payload={
            "update_id": update.update_id,
            "status": stage.value,
            "payment_required": required,
            "payment_amount_cents": amount,
        },
    )
    logger.info(
        "timeline_update_added",
        extra={"extra": {"request_id": request_id, "stage": stage.value, "payment_required": required}},
    )

    if stage.value == schedule.terminal_stage:
        await requests_service.transition_to_completed(session, request)
        await events_service.record_event(
            session,
            kind=EventKind.REQUEST_COMPLETED,
            request_id=request_id,
            payload={"update_id": update.update_id, "designer_id": designer_id},
        )
    return update


async def get_update(session: AsyncSession, update_id: str, *, for_update: bool = False) -> TimelineUpdate:
    stmt = sa.select(TimelineUpdate).where(TimelineUpdate.update_id == update_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    update = await session.scalar(stmt)
    if update is None:
        raise NotFoundError(detail="Timeline update not found")
    return update


async def record_payment(
    session: AsyncSession,
    update_id: str,
    *,
    payer_id: str,
    amount_cents: int,
) -> MilestonePayment:
    update = await get_update(session, update_id)
    request = await requests_service.get_request_for_update(session, update.request_id)
    update = await get_update(session, update_id, for_update=True)
    if request.customer_id != payer_id:
        raise AuthorizationError(detail="Only the requesting customer may pay milestones")
    if update.payment_status == PaymentStatus.NOT_REQUIRED.value:
        raise ConflictError(detail="This timeline update does not require payment")
    if update.payment_status == PaymentStatus.PAID.value:
        raise ConflictError(detail="This milestone is already paid")
    if amount_cents != update.payment_amount_cents:
        raise ValidationError(
            detail=f"Payment amount must be {update.payment_amount_cents}",
            errors=[{"field": "amount_cents", "message": "Amount does not match the milestone"}],
        )

    update.payment_status = PaymentStatus.PAID.value
    update.paid_at = utcnow()
    payment = MilestonePayment(
        request_id=update.request_id,
        update_id=update.update_id,
        payer_id=payer_id,
        amount_cents=amount_cents,
        status=MilestonePaymentStatus.PAID.value,
    )
    session.add(payment)
    await flush_or_conflict(session, detail="This milestone is already paid")
    await events_service.record_event(
        session,
        kind=EventKind.PAYMENT_RECORDED,
        request_id=update.request_id,
        payload={
            "payment_id": payment.payment_id,
            "update_id": update.update_id,
            "stage": update.status,
            "amount_cents": amount_cents,
        },
    )
    logger.info(
        "milestone_payment_recorded",
        extra={
            "extra": {
                "request_id": update.request_id,
                "update_id": update.update_id,
                "amount_cents": amount_cents,
            }
        },
    )
    return payment


async def list_timeline(session: AsyncSession, request_id: str) -> list[TimelineUpdate]:
    stmt = (
        sa.select(TimelineUpdate)
        .where(TimelineUpdate.request_id == request_id)
        .order_by(TimelineUpdate.position.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_payments(session: AsyncSession, request_id: str) -> list[MilestonePayment]:
    stmt = (
        sa.select(MilestonePayment)
        .where(MilestonePayment.request_id == request_id)
        .order_by(MilestonePayment.created_at.asc(), MilestonePayment.payment_id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def payment_summary(
    session: AsyncSession, request_id: str, *, schedule: PaymentSchedule | None = None
) -> PaymentSummary:
    schedule = schedule or PaymentSchedule.from_settings()
    request = await requests_service.get_request(session, request_id)
    paid = await session.scalar(
        sa.select(sa.func.coalesce(sa.func.sum(MilestonePayment.amount_cents), 0)).where(
            MilestonePayment.request_id == request_id,
            MilestonePayment.status == MilestonePaymentStatus.PAID.value,
        )
    )
    total = request.accepted_price_cents or 0
    paid_cents = int(paid or 0)
    return PaymentSummary(
        request_id=request_id,
        total_price_cents=total,
        paid_cents=paid_cents,
        outstanding_cents=max(total - paid_cents, 0),
        schedule=schedule.preview(request.accepted_price_cents),
    )
