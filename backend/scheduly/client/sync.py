"""Optimistic project synchronization on top of :class:`ApiClient`.

Each mutation updates the local cache first, then asks the server with the
version the cache holds. A conflict rolls the cache back and refetches the
snapshot; any other failure only rolls back.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Hashable, Optional

from scheduly.client.api_client import ApiClient
from scheduly.client.events import MutationEvent, SyncEventBus
from scheduly.client.optimistic import MutationPhase, OptimisticExecutor, UndoToken
from scheduly.client.project_cache import ProjectCache
from scheduly.core.errors import NotFoundError
from scheduly.core.ids import new_id, new_uid
from scheduly.core.timeutils import utcnow
from scheduly.models import Participant, ParticipantResponse, ScheduleCandidate
from scheduly.schemas import (
    CandidateCreate,
    CandidateInput,
    CandidateResult,
    DeleteResult,
    MetaResult,
    ParticipantCreate,
    ParticipantPatch,
    ParticipantResult,
    ProjectMetaInput,
    ProjectSnapshot,
    ResponseResult,
    ResponsesSummary,
    ResponseUpsert,
    ShareTokensResult,
)
from scheduly.services.validation import validate_payload

logger = logging.getLogger(__name__)


class ProjectSyncClient:
    def __init__(
        self,
        project_id: str,
        *,
        api: Optional[ApiClient] = None,
        cache: Optional[ProjectCache] = None,
        executor: Optional[OptimisticExecutor] = None,
        events: Optional[SyncEventBus] = None,
    ) -> None:
        self.project_id = project_id
        self.api = api or ApiClient()
        self.cache = cache or ProjectCache()
        self.executor = executor or OptimisticExecutor()
        self.events = events or SyncEventBus()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_snapshot(self) -> ProjectSnapshot:
        """Replace the local copy with the server's current state."""
        snapshot = ProjectSnapshot.model_validate(self.api.get_snapshot(self.project_id))
        self.cache.load(snapshot)
        logger.debug(f"Fetched snapshot of {self.project_id}")
        return snapshot

    def snapshot(self) -> ProjectSnapshot:
        if not self.cache.is_loaded(self.project_id):
            return self.fetch_snapshot()
        return self.cache.get(self.project_id)

    def tallies(self) -> ResponsesSummary:
        return self.cache.tallies(self.project_id)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _ensure_loaded(self) -> None:
        if not self.cache.is_loaded(self.project_id):
            self.fetch_snapshot()

    def _mutate(
        self,
        entity: str,
        action: str,
        key: Hashable,
        *,
        request: Callable[[], Any],
        on_success: Callable[[Any], Any],
        apply_local: Optional[Callable[[], Optional[UndoToken]]] = None,
    ) -> Any:
        def emit(phase: MutationPhase, error: Optional[BaseException]) -> None:
            self.events.emit(
                MutationEvent(
                    project_id=self.project_id,
                    entity=entity,
                    action=action,
                    phase=phase.value,
                    error=error,
                )
            )

        return self.executor.run(
            (self.project_id, *key) if isinstance(key, tuple) else (self.project_id, key),
            request=request,
            apply_local=apply_local,
            on_success=on_success,
            refetch=lambda error: self.fetch_snapshot(),
            on_phase=emit,
        )

    def _require_candidate(self, candidate_id: str) -> ScheduleCandidate:
        candidate = self.cache.find_candidate(self.project_id, candidate_id)
        if candidate is None:
            raise NotFoundError(f"candidate {candidate_id} not found")
        return candidate

    def _require_participant(self, participant_id: str) -> Participant:
        participant = self.cache.find_participant(self.project_id, participant_id)
        if participant is None:
            raise NotFoundError(f"participant {participant_id} not found")
        return participant

    # ------------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------------

    def update_meta(self, changes: Dict[str, Any]) -> MetaResult:
        self._ensure_loaded()
        snapshot = self.cache.get(self.project_id)
        meta_input = validate_payload(
            ProjectMetaInput,
            {**snapshot.project.model_dump(include=set(ProjectMetaInput.model_fields)), **changes},
            label="meta",
        )
        local = snapshot.project.model_copy(update={**meta_input.model_dump(), "updated_at": utcnow()})

        def on_success(payload: Any) -> MetaResult:
            result = MetaResult.model_validate(payload)
            self.cache.set_meta(self.project_id, result.meta)
            self.cache.update_versions(self.project_id, meta_version=result.version)
            return result

        return self._mutate(
            "meta",
            "update",
            "meta",
            apply_local=lambda: self.cache.set_meta(self.project_id, local),
            request=lambda: self.api.update_meta(
                self.project_id, meta_input.model_dump(mode="json"), snapshot.versions.meta_version
            ),
            on_success=on_success,
        )

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def _apply_candidate_result(self, payload: Any) -> CandidateResult:
        result = CandidateResult.model_validate(payload)
        self.cache.put(self.project_id, "candidates", result.candidate)
        self.cache.set_versions(self.project_id, result.versions)
        return result

    def create_candidate(self, candidate: Dict[str, Any]) -> CandidateResult:
        self._ensure_loaded()
        data = validate_payload(CandidateCreate, candidate, label="candidate")
        data = data.model_copy(update={"id": data.id or new_id("cand"), "uid": data.uid or new_uid()})
        now = utcnow()
        local = ScheduleCandidate(
            **data.model_dump(),
            dtstamp=now,
            created_at=now,
            updated_at=now,
        )
        return self._mutate(
            "candidate",
            "add",
            ("candidate", data.id),
            apply_local=lambda: self.cache.put(self.project_id, "candidates", local),
            request=lambda: self.api.create_candidate(self.project_id, data.model_dump(mode="json")),
            on_success=self._apply_candidate_result,
        )

    def update_candidate(self, candidate_id: str, changes: Dict[str, Any]) -> CandidateResult:
        self._ensure_loaded()
        current = self._require_candidate(candidate_id)
        data = validate_payload(
            CandidateInput,
            {**current.model_dump(include=set(CandidateInput.model_fields)), **changes},
            label="candidate",
        )
        local = current.model_copy(update={**data.model_dump(), "updated_at": utcnow()})
        return self._mutate(
            "candidate",
            "update",
            ("candidate", candidate_id),
            apply_local=lambda: self.cache.put(self.project_id, "candidates", local),
            request=lambda: self.api.update_candidate(
                self.project_id, candidate_id, data.model_dump(mode="json"), current.version
            ),
            on_success=self._apply_candidate_result,
        )

    def remove_candidate(self, candidate_id: str) -> DeleteResult:
        self._ensure_loaded()
        current = self._require_candidate(candidate_id)

        def apply_local() -> UndoToken:
            return self.cache.remove_with_responses(self.project_id, "candidates", candidate_id)

        def on_success(payload: Any) -> DeleteResult:
            result = DeleteResult.model_validate(payload)
            self.cache.set_versions(self.project_id, result.versions)
            return result

        return self._mutate(
            "candidate",
            "remove",
            ("candidate", candidate_id),
            apply_local=apply_local,
            request=lambda: self.api.remove_candidate(self.project_id, candidate_id, current.version),
            on_success=on_success,
        )

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def _apply_participant_result(self, payload: Any) -> ParticipantResult:
        result = ParticipantResult.model_validate(payload)
        self.cache.put(self.project_id, "participants", result.participant)
        self.cache.set_versions(self.project_id, result.versions)
        return result

    def create_participant(self, participant: Dict[str, Any]) -> ParticipantResult:
        self._ensure_loaded()
        data = validate_payload(ParticipantCreate, participant, label="participant")
        data = data.model_copy(update={"id": data.id or new_id("part")})
        # The access token is issued by the server
        local = Participant(**data.model_dump(), token="")
        return self._mutate(
            "participant",
            "add",
            ("participant", data.id),
            apply_local=lambda: self.cache.put(self.project_id, "participants", local),
            request=lambda: self.api.create_participant(self.project_id, data.model_dump(mode="json")),
            on_success=self._apply_participant_result,
        )

    def update_participant(self, participant_id: str, changes: Dict[str, Any]) -> ParticipantResult:
        self._ensure_loaded()
        current = self._require_participant(participant_id)
        patch = validate_payload(ParticipantPatch, changes, label="participant")
        sent = patch.model_dump(mode="json", exclude_unset=True)
        local_changes = {
            key: value
            for key, value in patch.model_dump(exclude_unset=True).items()
            if value is not None or key == "email"
        }
        local = current.model_copy(update={**local_changes, "updated_at": utcnow()})
        return self._mutate(
            "participant",
            "update",
            ("participant", participant_id),
            apply_local=lambda: self.cache.put(self.project_id, "participants", local),
            request=lambda: self.api.update_participant(self.project_id, participant_id, sent, current.version),
            on_success=self._apply_participant_result,
        )

    def remove_participant(self, participant_id: str) -> DeleteResult:
        self._ensure_loaded()
        current = self._require_participant(participant_id)

        def apply_local() -> UndoToken:
            return self.cache.remove_with_responses(self.project_id, "participants", participant_id)

        def on_success(payload: Any) -> DeleteResult:
            result = DeleteResult.model_validate(payload)
            self.cache.set_versions(self.project_id, result.versions)
            return result

        return self._mutate(
            "participant",
            "remove",
            ("participant", participant_id),
            apply_local=apply_local,
            request=lambda: self.api.remove_participant(self.project_id, participant_id, current.version),
            on_success=on_success,
        )

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def upsert_response(self, participant_id: str, candidate_id: str, mark: str, comment: str = "") -> ResponseResult:
        self._ensure_loaded()
        existing = self.cache.find_response(self.project_id, participant_id, candidate_id)
        data = validate_payload(
            ResponseUpsert,
            {
                "participant_id": participant_id,
                "candidate_id": candidate_id,
                "mark": mark,
                "comment": comment,
                "version": existing.version if existing else None,
            },
            label="response",
        )
        now = utcnow()
        local = ParticipantResponse(
            participant_id=participant_id,
            candidate_id=candidate_id,
            mark=data.mark,
            comment=data.comment,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            version=existing.version if existing else 1,
        )

        def on_success(payload: Any) -> ResponseResult:
            result = ResponseResult.model_validate(payload)
            self.cache.put(self.project_id, "responses", result.response)
            self.cache.update_versions(self.project_id, responses_version=result.version)
            return result

        return self._mutate(
            "response",
            "upsert",
            ("response", participant_id, candidate_id),
            apply_local=lambda: self.cache.put(self.project_id, "responses", local),
            request=lambda: self.api.upsert_response(self.project_id, data.model_dump(mode="json")),
            on_success=on_success,
        )

    def remove_response(self, participant_id: str, candidate_id: str) -> DeleteResult:
        self._ensure_loaded()
        existing = self.cache.find_response(self.project_id, participant_id, candidate_id)
        if existing is None:
            raise NotFoundError("response not found")

        def on_success(payload: Any) -> DeleteResult:
            result = DeleteResult.model_validate(payload)
            self.cache.set_versions(self.project_id, result.versions)
            return result

        return self._mutate(
            "response",
            "remove",
            ("response", participant_id, candidate_id),
            apply_local=lambda: self.cache.discard(self.project_id, "responses", existing.key),
            request=lambda: self.api.remove_response(
                self.project_id, participant_id, candidate_id, existing.version
            ),
            on_success=on_success,
        )

    # ------------------------------------------------------------------
    # Share tokens
    # ------------------------------------------------------------------

    def _apply_share_result(self, payload: Any) -> ShareTokensResult:
        result = ShareTokensResult.model_validate(payload)
        self.cache.set_share_tokens(self.project_id, result.share_tokens)
        self.cache.update_versions(self.project_id, share_tokens_version=result.version)
        return result

    def rotate_share_tokens(self, base_url: Optional[str] = None) -> ShareTokensResult:
        self._ensure_loaded()
        version = self.cache.versions(self.project_id).share_tokens_version
        # New tokens only exist once the server has issued them
        return self._mutate(
            "share",
            "rotate",
            "share_tokens",
            request=lambda: self.api.rotate_share_tokens(self.project_id, version, base_url),
            on_success=self._apply_share_result,
        )

    def invalidate_share_token(self, token_type: str) -> ShareTokensResult:
        self._ensure_loaded()
        snapshot = self.cache.get(self.project_id)
        version = snapshot.versions.share_tokens_version
        local = snapshot.share_tokens.model_copy(deep=True)
        if token_type in ("admin", "participant"):
            setattr(local, token_type, None)
        return self._mutate(
            "share",
            "invalidate",
            "share_tokens",
            apply_local=lambda: self.cache.set_share_tokens(self.project_id, local),
            request=lambda: self.api.invalidate_share_token(self.project_id, token_type, version),
            on_success=self._apply_share_result,
        )
