from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from scheduly.core.timeutils import localize
from scheduly.models import ScheduleCandidate, VersionState
from scheduly.schemas.candidate import CandidateInput

ImportClassification = Literal["new", "update", "older"]


class ImportedCandidate(CandidateInput):
    """Candidate fields read from one VEVENT."""

    uid: str = Field(..., min_length=1, max_length=255)
    sequence: int = Field(default=0, ge=0)
    dtstamp: datetime

    @field_validator("dtstamp")
    @classmethod
    def stamp_in_utc(cls, value: datetime) -> datetime:
        return localize(value, None)


class ImportDecision(BaseModel):
    uid: str
    classification: ImportClassification
    selected: bool
    existing_candidate_id: Optional[str] = None
    existing_dtstamp: Optional[datetime] = None
    imported_dtstamp: datetime
    candidate: ImportedCandidate


class ImportPreview(BaseModel):
    decisions: List[ImportDecision] = []
    skipped_no_uid: int = 0
    skipped_no_dtstamp: int = 0
    skipped_invalid: int = 0
    skipped_duplicate: int = 0

    @property
    def skipped_total(self) -> int:
        return (
            self.skipped_no_uid
            + self.skipped_no_dtstamp
            + self.skipped_invalid
            + self.skipped_duplicate
        )


class IcsImportRequest(BaseModel):
    ics: str = Field(..., min_length=1)


class IcsImportCommit(BaseModel):
    entries: List[ImportDecision]


class ImportResult(BaseModel):
    added: int = 0
    updated: int = 0
    skipped: int = 0
    candidates: List[ScheduleCandidate] = []
    versions: VersionState
