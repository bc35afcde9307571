from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from scheduly.core.config import settings
from scheduly.core.timeutils import is_valid_tzid, localize
from scheduly.models import CandidateStatus, ScheduleCandidate, VersionState
from scheduly.schemas.common import ExpectedVersion


class CandidateInput(BaseModel):
    """User-editable fields of a schedule candidate.

    Field order matters: ``tzid`` is validated before the timestamps so naive
    datetimes can be read as wall time in that zone.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    summary: str = Field(..., min_length=1, max_length=120)
    description: str = Field(default="", max_length=2000)
    location: str = Field(default="", max_length=120)
    status: CandidateStatus = "TENTATIVE"
    tzid: str = Field(default_factory=lambda: settings.DEFAULT_TZID, max_length=120)
    dtstart: datetime
    dtend: datetime

    @field_validator("description", "location", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if value is None:
            return "TENTATIVE"
        if isinstance(value, str):
            return value.strip().upper() or "TENTATIVE"
        return value

    @field_validator("tzid", mode="before")
    @classmethod
    def fallback_tzid(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return settings.DEFAULT_TZID
        return value

    @field_validator("tzid")
    @classmethod
    def check_tzid(cls, value: str) -> str:
        if not is_valid_tzid(value):
            raise ValueError("tzid must look like Area/City or X-SCHEDULY-*")
        return value

    @field_validator("dtstart")
    @classmethod
    def localize_start(cls, dtstart: datetime, info: ValidationInfo) -> datetime:
        return localize(dtstart, info.data.get("tzid"))

    @field_validator("dtend")
    @classmethod
    def check_ends_after_start(cls, dtend: datetime, info: ValidationInfo) -> datetime:
        dtend = localize(dtend, info.data.get("tzid"))
        dtstart: datetime | None = info.data.get("dtstart")
        if dtstart and dtend <= dtstart:
            raise ValueError("dtend must be after dtstart")
        return dtend


class CandidateCreate(CandidateInput):
    id: Optional[str] = Field(default=None, max_length=120)
    uid: Optional[str] = Field(default=None, max_length=255)


class CandidateUpdate(BaseModel):
    candidate: CandidateInput
    version: ExpectedVersion


class CandidateResult(BaseModel):
    candidate: ScheduleCandidate
    versions: VersionState


class CandidateListResult(BaseModel):
    candidates: List[ScheduleCandidate]
    version: int
