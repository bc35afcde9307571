from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from scheduly.models import (
    Participant,
    ParticipantResponse,
    ParticipantStatus,
    ScheduleCandidate,
    VersionState,
)
from scheduly.schemas.common import ExpectedVersion
from scheduly.schemas.tally import Tally


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _normalize_status(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower() or "active"
    return value


class ParticipantCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(default=None, max_length=120)
    display_name: str = Field(..., min_length=1, max_length=80)
    email: Optional[EmailStr] = None
    comment: str = Field(default="", max_length=500)
    status: ParticipantStatus = "active"

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("comment", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return "active" if value is None else _normalize_status(value)


class ParticipantPatch(BaseModel):
    """Partial participant update; only the fields sent are applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=80)
    email: Optional[EmailStr] = None
    comment: Optional[str] = Field(default=None, max_length=500)
    status: Optional[ParticipantStatus] = None

    @field_validator("display_name", mode="before")
    @classmethod
    def require_name(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("display_name cannot be empty")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return _normalize_status(value)


class ParticipantUpdate(BaseModel):
    participant: ParticipantPatch
    version: ExpectedVersion


class ParticipantResult(BaseModel):
    participant: Participant
    versions: VersionState


class ParticipantListResult(BaseModel):
    participants: List[Participant]
    version: int


class ParticipantResponseItem(BaseModel):
    response: ParticipantResponse
    candidate: Optional[ScheduleCandidate] = None


class ParticipantResponsesResult(BaseModel):
    participant: Participant
    responses: List[ParticipantResponseItem]
    tallies: Tally
