from __future__ import annotations

from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from scheduly.api.deps import get_store
from scheduly.main import app
from scheduly.services.store import ProjectStore

PROJECT_ID = "proj_test"


@pytest.fixture
def store() -> ProjectStore:
    return ProjectStore(
        default_tzid="Asia/Tokyo",
        share_base_url="https://scheduly.test",
        token_length=32,
        ics_prodid="-//Scheduly//Test//EN",
    )


@pytest.fixture
def client(store: ProjectStore):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def candidate_payload() -> Callable[..., dict[str, Any]]:
    def build(**overrides: Any) -> dict[str, Any]:
        payload = {
            "summary": "Kickoff",
            "description": "First planning session",
            "location": "Room A",
            "status": "TENTATIVE",
            "tzid": "Asia/Tokyo",
            "dtstart": "2025-05-01T10:00:00+09:00",
            "dtend": "2025-05-01T11:00:00+09:00",
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def seeded(store: ProjectStore, candidate_payload) -> dict[str, Any]:
    """A project with two candidates and two participants and no responses."""
    first = store.create_candidate(PROJECT_ID, candidate_payload(id="c1", uid="uid-c1"))
    second = store.create_candidate(
        PROJECT_ID,
        candidate_payload(
            id="c2",
            uid="uid-c2",
            summary="Review",
            dtstart="2025-05-02T14:00:00+09:00",
            dtend="2025-05-02T15:30:00+09:00",
        ),
    )
    sato = store.create_participant(PROJECT_ID, {"id": "p1", "display_name": "Sato"})
    suzuki = store.create_participant(PROJECT_ID, {"id": "p2", "display_name": "Suzuki"})
    return {
        "candidates": [first.candidate, second.candidate],
        "participants": [sato.participant, suzuki.participant],
    }
