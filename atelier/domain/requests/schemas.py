from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class RequestStatus(StrEnum):
    OPEN = "open"
    ASSIGNED = "assigned"
    COMPLETED = "completed"


@dataclass(frozen=True)
class RequestFilters:
    status: RequestStatus | None = None
    customer_id: str | None = None
    designer_id: str | None = None


class RequestCreate(BaseModel):
    # Required fields are checked by the service so a missing one is a 400 with field errors.
    title: str | None = None
    description: str | None = None
    material: str | None = None
    timeframe: str | None = None
    budget_cents: int | None = None
    size: str | None = None
    additional_details: str | None = None
    images: list[str] = Field(default_factory=list)


class RequestUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    material: str | None = None
    timeframe: str | None = None
    budget_cents: int | None = None
    size: str | None = None
    additional_details: str | None = None


class RequestResponse(BaseModel):
    request_id: str
    customer_id: str
    customer_name: str | None = None
    title: str
    description: str
    material: str
    budget_cents: int | None = None
    timeframe: str
    size: str | None = None
    additional_details: str | None = None
    images: list[str]
    status: RequestStatus
    created_at: datetime
    accepted_proposal_id: str | None = None
    accepted_price_cents: int | None = None
    designer_id: str | None = None
    designer_name: str | None = None
    completed_at: datetime | None = None


class RequestListResponse(BaseModel):
    items: list[RequestResponse]
    total: int
