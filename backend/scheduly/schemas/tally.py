from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class Tally(BaseModel):
    """Counts of marks. ``total`` is the responded count (o + d + x)."""

    o: int = 0
    d: int = 0
    x: int = 0
    total: int = 0
    pending: int = Field(default=0, description="Expected responses not given yet")


class CandidateTally(BaseModel):
    candidate_id: str
    tally: Tally


class ParticipantTally(BaseModel):
    participant_id: str
    tally: Tally


class ResponsesSummary(BaseModel):
    candidates: List[CandidateTally] = []
    participants: List[ParticipantTally] = []
    candidate_count: int = 0
    participant_count: int = 0

    def for_candidate(self, candidate_id: str) -> Optional[Tally]:
        for entry in self.candidates:
            if entry.candidate_id == candidate_id:
                return entry.tally
        return None

    def for_participant(self, participant_id: str) -> Optional[Tally]:
        for entry in self.participants:
            if entry.participant_id == participant_id:
                return entry.tally
        return None
