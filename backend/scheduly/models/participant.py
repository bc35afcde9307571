from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from scheduly.core.timeutils import utcnow

ParticipantStatus = Literal["active", "archived"]


class Participant(BaseModel):
    id: str
    display_name: str
    email: Optional[str] = None
    comment: str = ""
    status: ParticipantStatus = "active"
    token: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    def touch(self) -> None:
        self.updated_at = utcnow()
