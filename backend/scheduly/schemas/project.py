from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scheduly.core.config import settings
from scheduly.core.timeutils import is_valid_tzid
from scheduly.models import (
    Participant,
    ParticipantResponse,
    ProjectMeta,
    ScheduleCandidate,
    ShareTokens,
    VersionState,
)
from scheduly.schemas.common import ExpectedVersion


class ProjectMetaInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=120)
    description: str = Field(default="", max_length=2000)
    default_tzid: str = Field(default_factory=lambda: settings.DEFAULT_TZID, max_length=120)

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("default_tzid", mode="before")
    @classmethod
    def fallback_tzid(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return settings.DEFAULT_TZID
        return value

    @field_validator("default_tzid")
    @classmethod
    def check_tzid(cls, value: str) -> str:
        if not is_valid_tzid(value):
            raise ValueError("default_tzid must look like Area/City or X-SCHEDULY-*")
        return value


class ProjectCreate(BaseModel):
    meta: ProjectMetaInput


class ProjectMetaUpdate(BaseModel):
    meta: ProjectMetaInput
    version: ExpectedVersion


class MetaResult(BaseModel):
    meta: ProjectMeta
    version: int


class ProjectSnapshot(BaseModel):
    """Full project state plus every version counter."""

    project_id: str
    project: ProjectMeta
    candidates: List[ScheduleCandidate] = []
    participants: List[Participant] = []
    responses: List[ParticipantResponse] = []
    share_tokens: ShareTokens
    versions: VersionState


class SnapshotImport(BaseModel):
    snapshot: Dict[str, Any]
    version: ExpectedVersion


class ProjectSummaryRead(BaseModel):
    project_id: str
    name: Optional[str] = None
    candidate_count: int
    participant_count: int
    response_count: int
