from datetime import datetime, timezone

import pytest

from scheduly.models import Participant, ParticipantResponse, ScheduleCandidate
from scheduly.services.tally import compute_participant_tally, compute_summary, tally_marks

START = datetime(2025, 5, 1, 1, 0, tzinfo=timezone.utc)
END = datetime(2025, 5, 1, 2, 0, tzinfo=timezone.utc)


def _candidate(candidate_id: str) -> ScheduleCandidate:
    return ScheduleCandidate(
        id=candidate_id,
        uid=f"uid-{candidate_id}",
        summary=candidate_id,
        dtstart=START,
        dtend=END,
        tzid="Asia/Tokyo",
    )


def _participant(participant_id: str) -> Participant:
    return Participant(id=participant_id, display_name=participant_id.upper(), token=f"tok-{participant_id}")


def _response(participant_id: str, candidate_id: str, mark: str) -> ParticipantResponse:
    return ParticipantResponse(participant_id=participant_id, candidate_id=candidate_id, mark=mark)


@pytest.fixture
def project():
    candidates = [_candidate("c1"), _candidate("c2"), _candidate("c3")]
    participants = [_participant("p1"), _participant("p2"), _participant("p3"), _participant("p4")]
    responses = [
        _response("p1", "c1", "o"),
        _response("p2", "c1", "d"),
        _response("p3", "c1", "x"),
        _response("p1", "c2", "o"),
        _response("p2", "c2", "o"),
        _response("p4", "c3", "x"),
    ]
    return candidates, participants, responses


class TestTallyMarks:
    def test_counts_and_pending(self):
        tally = tally_marks([_response("p1", "c1", "o"), _response("p2", "c1", "d")], expected=5)
        assert (tally.o, tally.d, tally.x, tally.total, tally.pending) == (1, 1, 0, 2, 3)

    def test_pending_never_negative(self):
        tally = tally_marks([_response("p1", "c1", "o"), _response("p2", "c1", "o")], expected=1)
        assert tally.pending == 0

    def test_participant_tally_filters_by_participant(self, project):
        candidates, _, responses = project
        tally = compute_participant_tally(responses, "p2", len(candidates))
        assert (tally.o, tally.d, tally.total, tally.pending) == (1, 1, 2, 1)


class TestComputeSummary:
    def test_candidate_tallies(self, project):
        summary = compute_summary(*project)
        c1 = summary.for_candidate("c1")
        assert (c1.o, c1.d, c1.x, c1.total, c1.pending) == (1, 1, 1, 3, 1)
        c3 = summary.for_candidate("c3")
        assert (c3.x, c3.total, c3.pending) == (1, 1, 3)

    def test_participant_tallies(self, project):
        summary = compute_summary(*project)
        p1 = summary.for_participant("p1")
        assert (p1.o, p1.total, p1.pending) == (2, 2, 1)
        p4 = summary.for_participant("p4")
        assert (p4.x, p4.total, p4.pending) == (1, 1, 2)

    def test_totals_add_up(self, project):
        candidates, participants, _ = project
        summary = compute_summary(*project)
        for entry in summary.candidates:
            tally = entry.tally
            assert tally.o + tally.d + tally.x == tally.total
            assert tally.total + tally.pending == len(participants)
        for entry in summary.participants:
            assert entry.tally.total + entry.tally.pending == len(candidates)

    def test_dangling_responses_are_ignored(self, project):
        candidates, participants, responses = project
        responses = responses + [_response("ghost", "c1", "o"), _response("p1", "gone", "o")]
        summary = compute_summary(candidates, participants, responses)
        assert summary.for_candidate("c1").total == 3
        assert summary.for_participant("p1").total == 2
        assert summary.for_candidate("gone") is None

    def test_empty_project(self):
        summary = compute_summary([], [], [])
        assert summary.candidates == []
        assert summary.candidate_count == 0
