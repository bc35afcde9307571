from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from scheduly.core.timeutils import utcnow

Mark = Literal["o", "d", "x"]


class ParticipantResponse(BaseModel):
    """One participant's mark for one candidate.

    Identity is the (participant_id, candidate_id) pair. A pair without a row
    is pending; pending is never stored.
    """

    participant_id: str
    candidate_id: str
    mark: Mark
    comment: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    @property
    def key(self) -> tuple[str, str]:
        return (self.participant_id, self.candidate_id)

    def touch(self) -> None:
        self.updated_at = utcnow()
