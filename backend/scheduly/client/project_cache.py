"""Local mirror of project snapshots for optimistic updates.

Every mutating method returns an :class:`UndoToken` that puts the previous
value back.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Hashable, Optional

from scheduly.client.optimistic import UndoToken
from scheduly.core.errors import NotFoundError
from scheduly.models import (
    Participant,
    ParticipantResponse,
    ProjectMeta,
    ScheduleCandidate,
    ShareTokens,
    VersionState,
)
from scheduly.schemas import ProjectSnapshot, ResponsesSummary
from scheduly.services.tally import compute_summary

ENTITY_KEYS: Dict[str, Callable[[Any], Hashable]] = {
    "candidates": lambda candidate: candidate.id,
    "participants": lambda participant: participant.id,
    "responses": lambda response: response.key,
}

RESPONSE_OWNERS = {"candidates": "candidate_id", "participants": "participant_id"}


class ProjectCache:
    def __init__(self) -> None:
        self._snapshots: Dict[str, ProjectSnapshot] = {}
        self._lock = threading.RLock()

    def _require(self, project_id: str) -> ProjectSnapshot:
        snapshot = self._snapshots.get(project_id)
        if snapshot is None:
            raise NotFoundError(f"project {project_id} is not loaded")
        return snapshot

    def load(self, snapshot: ProjectSnapshot | Dict[str, Any]) -> ProjectSnapshot:
        if not isinstance(snapshot, ProjectSnapshot):
            snapshot = ProjectSnapshot.model_validate(snapshot)
        with self._lock:
            self._snapshots[snapshot.project_id] = snapshot.model_copy(deep=True)
        return snapshot

    def get(self, project_id: str) -> Optional[ProjectSnapshot]:
        with self._lock:
            snapshot = self._snapshots.get(project_id)
            return snapshot.model_copy(deep=True) if snapshot is not None else None

    def is_loaded(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._snapshots

    def versions(self, project_id: str) -> VersionState:
        with self._lock:
            return self._require(project_id).versions.model_copy()

    def set_versions(self, project_id: str, versions: VersionState) -> None:
        with self._lock:
            self._require(project_id).versions = versions.model_copy()

    def update_versions(self, project_id: str, **counters: int) -> None:
        with self._lock:
            snapshot = self._require(project_id)
            snapshot.versions = snapshot.versions.model_copy(update=counters)

    def find(self, project_id: str, kind: str, key: Hashable) -> Any:
        with self._lock:
            for item in getattr(self._require(project_id), kind):
                if ENTITY_KEYS[kind](item) == key:
                    return item.model_copy()
        return None

    def find_candidate(self, project_id: str, candidate_id: str) -> Optional[ScheduleCandidate]:
        return self.find(project_id, "candidates", candidate_id)

    def find_participant(self, project_id: str, participant_id: str) -> Optional[Participant]:
        return self.find(project_id, "participants", participant_id)

    def find_response(self, project_id: str, participant_id: str, candidate_id: str) -> Optional[ParticipantResponse]:
        return self.find(project_id, "responses", (participant_id, candidate_id))

    def put(self, project_id: str, kind: str, entity: Any) -> UndoToken:
        """Insert or replace ``entity`` in collection ``kind``."""
        key = ENTITY_KEYS[kind](entity)
        with self._lock:
            items = getattr(self._require(project_id), kind)
            index = next((i for i, item in enumerate(items) if ENTITY_KEYS[kind](item) == key), None)
            previous = items[index] if index is not None else None
            if index is None:
                items.append(entity)
            else:
                items[index] = entity
        return UndoToken(
            value=previous,
            restore=lambda: self._restore(project_id, kind, key, previous, index),
        )

    def discard(self, project_id: str, kind: str, key: Hashable) -> UndoToken:
        with self._lock:
            items = getattr(self._require(project_id), kind)
            index = next((i for i, item in enumerate(items) if ENTITY_KEYS[kind](item) == key), None)
            previous = items.pop(index) if index is not None else None
        return UndoToken(
            value=previous,
            restore=lambda: self._restore(project_id, kind, key, previous, index),
        )

    def _restore(self, project_id: str, kind: str, key: Hashable, previous: Any, index: Optional[int]) -> None:
        with self._lock:
            snapshot = self._snapshots.get(project_id)
            if snapshot is None:
                return
            items = [item for item in getattr(snapshot, kind) if ENTITY_KEYS[kind](item) != key]
            if previous is not None:
                items.insert(min(index if index is not None else len(items), len(items)), previous)
            setattr(snapshot, kind, items)

    def set_meta(self, project_id: str, meta: ProjectMeta) -> UndoToken:
        with self._lock:
            snapshot = self._require(project_id)
            previous = snapshot.project

            def restore() -> None:
                with self._lock:
                    self._require(project_id).project = previous

            snapshot.project = meta
        return UndoToken(value=previous, restore=restore)

    def set_share_tokens(self, project_id: str, tokens: ShareTokens) -> UndoToken:
        with self._lock:
            snapshot = self._require(project_id)
            previous = snapshot.share_tokens

            def restore() -> None:
                with self._lock:
                    self._require(project_id).share_tokens = previous

            snapshot.share_tokens = tokens
        return UndoToken(value=previous, restore=restore)

    def remove_with_responses(self, project_id: str, kind: str, key: str) -> UndoToken:
        """Remove a candidate or participant together with its responses.

        The undo token re-inserts only what was removed here; entries added
        since are kept.
        """
        field = RESPONSE_OWNERS[kind]
        with self._lock:
            snapshot = self._require(project_id)
            items = getattr(snapshot, kind)
            index = next((i for i, item in enumerate(items) if ENTITY_KEYS[kind](item) == key), None)
            previous = items.pop(index) if index is not None else None
            dropped = [(i, response) for i, response in enumerate(snapshot.responses) if getattr(response, field) == key]
            snapshot.responses = [response for response in snapshot.responses if getattr(response, field) != key]

        def restore() -> None:
            with self._lock:
                snapshot = self._snapshots.get(project_id)
                if snapshot is None:
                    return
                if previous is not None:
                    self._reinsert(snapshot, kind, index, previous)
                candidates = {candidate.id for candidate in snapshot.candidates}
                participants = {participant.id for participant in snapshot.participants}
                for position, response in dropped:
                    # Skip responses whose other side was removed meanwhile
                    if response.candidate_id in candidates and response.participant_id in participants:
                        self._reinsert(snapshot, "responses", position, response)

        return UndoToken(value=(previous, [response for _, response in dropped]), restore=restore)

    @staticmethod
    def _reinsert(snapshot: ProjectSnapshot, kind: str, index: int, entity: Any) -> None:
        items = getattr(snapshot, kind)
        key = ENTITY_KEYS[kind](entity)
        if any(ENTITY_KEYS[kind](item) == key for item in items):
            return
        items.insert(min(index, len(items)), entity)

    def tallies(self, project_id: str) -> ResponsesSummary:
        with self._lock:
            snapshot = self._require(project_id)
            return compute_summary(snapshot.candidates, snapshot.participants, snapshot.responses)
