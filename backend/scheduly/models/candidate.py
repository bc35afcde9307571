from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from scheduly.core.timeutils import utcnow

CandidateStatus = Literal["CONFIRMED", "TENTATIVE", "CANCELLED"]


class ScheduleCandidate(BaseModel):
    """Proposed meeting slot of a project."""

    id: str
    uid: str
    summary: str
    description: str = ""
    location: str = ""
    status: CandidateStatus = "TENTATIVE"
    dtstart: datetime
    dtend: datetime
    tzid: str
    # Calendar sequence counter, bumped on every export
    sequence: int = 0
    # Calendar modification timestamp, used to arbitrate import freshness
    dtstamp: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    def touch(self) -> None:
        self.updated_at = utcnow()
