"""Response tallies, derived from candidates, participants and responses.

Nothing here is stored; callers recompute after any change that can alter
membership.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from scheduly.models import ParticipantResponse, Participant, ScheduleCandidate
from scheduly.schemas.tally import CandidateTally, ParticipantTally, ResponsesSummary, Tally

VALID_MARKS = ("o", "d", "x")


def tally_marks(responses: Iterable[ParticipantResponse], expected: int) -> Tally:
    tally = Tally()
    for response in responses:
        if response.mark not in VALID_MARKS:
            continue
        setattr(tally, response.mark, getattr(tally, response.mark) + 1)
        tally.total += 1
    tally.pending = max(expected - tally.total, 0)
    return tally


def compute_participant_tally(
    responses: Iterable[ParticipantResponse],
    participant_id: str,
    candidate_count: int,
) -> Tally:
    return tally_marks(
        (r for r in responses if r.participant_id == participant_id),
        candidate_count,
    )


def compute_summary(
    candidates: Sequence[ScheduleCandidate],
    participants: Sequence[Participant],
    responses: Iterable[ParticipantResponse],
) -> ResponsesSummary:
    """Tally every candidate and participant in one pass over the responses."""
    by_candidate: dict[str, list[ParticipantResponse]] = {c.id: [] for c in candidates}
    by_participant: dict[str, list[ParticipantResponse]] = {p.id: [] for p in participants}

    for response in responses:
        # Rows pointing at unknown entities are ignored rather than counted
        if response.candidate_id not in by_candidate or response.participant_id not in by_participant:
            continue
        by_candidate[response.candidate_id].append(response)
        by_participant[response.participant_id].append(response)

    participant_count = len(participants)
    candidate_count = len(candidates)
    return ResponsesSummary(
        candidates=[
            CandidateTally(
                candidate_id=candidate.id,
                tally=tally_marks(by_candidate[candidate.id], participant_count),
            )
            for candidate in candidates
        ],
        participants=[
            ParticipantTally(
                participant_id=participant.id,
                tally=tally_marks(by_participant[participant.id], candidate_count),
            )
            for participant in participants
        ],
        candidate_count=candidate_count,
        participant_count=participant_count,
    )
