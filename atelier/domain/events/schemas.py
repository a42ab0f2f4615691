from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class EventKind(StrEnum):
    PROPOSAL_ACCEPTED = "proposal_accepted"
    TIMELINE_UPDATED = "timeline_updated"
    REQUEST_COMPLETED = "request_completed"
    PAYMENT_RECORDED = "payment_recorded"


class LifecycleEventResponse(BaseModel):
    event_id: str
    kind: EventKind
    request_id: str
    payload: dict
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
