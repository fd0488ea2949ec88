from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class TriageStep(str, Enum):
    OPENING = "opening"  # created, greeting not sent yet
    AREA = "area"
    PRISON_STATUS = "prison_status"
    CUSTODY = "custody"
    CALL_PERMISSION = "call_permission"
    HAS_LAWYER = "has_lawyer"
    LAWYER_SWITCH = "lawyer_switch"
    LEAD_DATA = "lead_data"
    PROCESS_DATA = "process_data"


class PracticeArea(str, Enum):
    CRIMINAL = "criminal"
    FAMILY = "family"
    CIVIL = "civil"
    LABOR = "labor"
    OTHER = "other"


class PrisonStatus(str, Enum):
    ARRESTED_TODAY = "arrested_today"
    ALREADY_IN_CUSTODY = "already_in_custody"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    sender_id: str
    step: TriageStep = TriageStep.OPENING
    area: Optional[PracticeArea] = None
    prison_status: Optional[PrisonStatus] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _prison_status_requires_criminal(self) -> "Session":
        if self.prison_status is not None and self.area != PracticeArea.CRIMINAL:
            raise ValueError("prison_status is only valid for criminal cases")
        return self
