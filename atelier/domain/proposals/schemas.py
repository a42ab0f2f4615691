from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ProposalStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ProposalCreate(BaseModel):
    price_cents: int
    estimated_time: str
    message: str | None = Field(default=None, max_length=4000)


class ProposalRevision(BaseModel):
    price_cents: int | None = None
    estimated_time: str | None = None
    message: str | None = Field(default=None, max_length=4000)


class ProposalResponse(BaseModel):
    proposal_id: str
    request_id: str
    designer_id: str
    designer_name: str | None = None
    price_cents: int
    estimated_time: str
    message: str | None = None
    status: ProposalStatus
    created_at: datetime
    updated_at: datetime
    decided_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ProposalListResponse(BaseModel):
    items: list[ProposalResponse]
    total: int
