from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from scheduly.core.timeutils import utcnow


class ProjectMeta(BaseModel):
    """Project-level metadata. Versioned by ``VersionState.meta_version``."""

    id: str
    name: str = ""
    description: str = ""
    default_tzid: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def touch(self) -> None:
        self.updated_at = utcnow()


class VersionState(BaseModel):
    """Every version counter of a project, returned alongside all reads."""

    meta_version: int = 1
    candidates_version: int = 0
    candidates_list_version: int = 0
    participants_version: int = 0
    participants_list_version: int = 0
    responses_version: int = 0
    share_tokens_version: int = 1
