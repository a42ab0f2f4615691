"""Schemas for production timelines and milestone payments."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class TimelineStage(StrEnum):
    # Tailoring flow
    ASSIGNED = "assigned"
    STITCHED = "stitched"
    DYED = "dyed"
    FITTING = "fitting"
    OUT_FOR_DELIVERY = "out_for_delivery"
    # Generic production flow
    DESIGN = "design"
    MATERIAL = "material"
    PRODUCTION = "production"
    QUALITY = "quality"
    SHIPPING = "shipping"
    # Shared terminal stage
    DELIVERED = "delivered"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    NOT_REQUIRED = "not_required"


class MilestonePaymentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class TimelineUpdateCreate(BaseModel):
    # Unknown stages are rejected by the service as a 400.
    status: str
    message: str
    payment_required: bool | None = None
    payment_amount_cents: int | None = None


class TimelineUpdateResponse(BaseModel):
    update_id: str
    request_id: str
    designer_id: str
    status: TimelineStage
    message: str
    payment_required: bool
    payment_amount_cents: int | None = None
    payment_status: PaymentStatus
    paid_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimelineResponse(BaseModel):
    request_id: str
    request_status: str
    items: list[TimelineUpdateResponse]


class PaymentCreate(BaseModel):
    amount_cents: int


class MilestonePaymentResponse(BaseModel):
    payment_id: str
    request_id: str
    update_id: str
    payer_id: str
    amount_cents: int
    status: MilestonePaymentStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScheduledPayment(BaseModel):
    stage: str
    percent: int
    amount_cents: int


class PaymentSummary(BaseModel):
    request_id: str
    total_price_cents: int
    paid_cents: int
    outstanding_cents: int
    schedule: list[ScheduledPayment]


class PaymentsResponse(BaseModel):
    items: list[MilestonePaymentResponse]
    summary: PaymentSummary
