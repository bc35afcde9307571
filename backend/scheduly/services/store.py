"""Authoritative in-memory project store with optimistic concurrency.

Every update or delete names the version the caller last saw. A mismatch
raises :class:`ConflictError` carrying the current copy and changes nothing.
Payloads are validated before any version is compared.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from scheduly.core.config import settings
from scheduly.core.errors import APIError, ConflictError, NotFoundError, ValidationError
from scheduly.core.ids import new_id, new_uid
from scheduly.core.timeutils import localize, utcnow
from scheduly.models import (
    SHARE_TOKEN_TYPES,
    Participant,
    ParticipantResponse,
    ProjectMeta,
    ScheduleCandidate,
    ShareTokens,
    VersionState,
)
from scheduly.schemas import (
    CandidateCreate,
    CandidateInput,
    CandidateListResult,
    CandidateResult,
    CandidateUpdate,
    DeleteResult,
    IcsImportCommit,
    IcsImportRequest,
    ImportPreview,
    ImportResult,
    ListOrderUpdate,
    MetaResult,
    ParticipantCreate,
    ParticipantListResult,
    ParticipantResponseItem,
    ParticipantResponsesResult,
    ParticipantResult,
    ParticipantUpdate,
    ProjectCreate,
    ProjectMetaInput,
    ProjectMetaUpdate,
    ProjectSnapshot,
    ProjectSummaryRead,
    ResponseDelete,
    ResponseResult,
    ResponsesSummary,
    ResponseUpsert,
    ShareGenerateRequest,
    ShareRotateRequest,
    ShareTokenLookup,
    ShareTokensResult,
    SnapshotImport,
    VersionedRequest,
)
from scheduly.services import ics, share_tokens
from scheduly.services.tally import compute_participant_tally, compute_summary
from scheduly.services.validation import ensure_unique_display_name, validate_payload

logger = logging.getLogger(__name__)

CANDIDATE_INPUT_FIELDS = set(CandidateInput.model_fields)
SUMMARY_COUNTERS = (
    "candidates_version",
    "candidates_list_version",
    "participants_version",
    "participants_list_version",
    "responses_version",
)


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


def synchronized(method: Callable) -> Callable:
    @functools.wraps(method)
    def wrapper(self: "ProjectStore", *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


@dataclass
class ProjectState:
    meta: ProjectMeta
    candidates: list[ScheduleCandidate] = field(default_factory=list)
    participants: list[Participant] = field(default_factory=list)
    responses: list[ParticipantResponse] = field(default_factory=list)
    share_tokens: ShareTokens = field(default_factory=ShareTokens)
    versions: VersionState = field(default_factory=VersionState)

    def find_candidate(self, candidate_id: str) -> Optional[ScheduleCandidate]:
        return next((c for c in self.candidates if c.id == candidate_id), None)

    def find_participant(self, participant_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.id == participant_id), None)

    def find_response(self, participant_id: str, candidate_id: str) -> Optional[ParticipantResponse]:
        key = (participant_id, candidate_id)
        return next((r for r in self.responses if r.key == key), None)

    def replace(self, collection: list, entity: BaseModel) -> None:
        for index, item in enumerate(collection):
            if getattr(item, "id", None) == getattr(entity, "id", None):
                collection[index] = entity
                return
        raise KeyError(getattr(entity, "id", None))

    def drop_responses(self, predicate: Callable[[ParticipantResponse], bool]) -> int:
        """Remove the responses matching ``predicate``; bump the counter if any."""
        kept = [r for r in self.responses if not predicate(r)]
        removed = len(self.responses) - len(kept)
        if removed:
            self.responses = kept
            self.versions.responses_version += 1
        return removed


class ProjectStore:
    """Owns ``{project_id: ProjectState}`` for the lifetime of the process."""

    def __init__(
        self,
        *,
        default_tzid: Optional[str] = None,
        share_base_url: Optional[str] = None,
        token_length: Optional[int] = None,
        ics_prodid: Optional[str] = None,
    ) -> None:
        self.default_tzid = default_tzid or settings.DEFAULT_TZID
        self.share_base_url = share_base_url or settings.SHARE_BASE_URL
        self.token_length = token_length or settings.SHARE_TOKEN_LENGTH
        self.ics_prodid = ics_prodid or settings.ICS_PRODID
        self._projects: dict[str, ProjectState] = {}
        self._summary_cache: dict[str, tuple[tuple[int, ...], ResponsesSummary]] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, project_id: str) -> ProjectState:
        if not project_id or not str(project_id).strip():
            raise ValidationError("project_id is required", ["project_id"])
        state = self._projects.get(project_id)
        if state is None:
            state = ProjectState(meta=ProjectMeta(id=project_id, default_tzid=self.default_tzid))
            self._projects[project_id] = state
            logger.debug(f"Initialized empty project {project_id}")
        return state

    def _check_version(self, entity: str, expected: int, current: int, latest: Any) -> None:
        if expected != current:
            logger.info(f"Version conflict on {entity}: expected {expected}, current {current}")
            raise ConflictError(
                f"{entity} was changed elsewhere (expected version {expected}, current {current})",
                entity=entity,
                latest=latest,
            )

    def _check_order(self, entity: str, order: list[str], current_ids: list[str], version: int) -> None:
        if len(order) != len(current_ids) or set(order) != set(current_ids):
            logger.info(f"Rejected {entity} reorder: order does not match the current ids")
            raise ConflictError(
                f"{entity} order does not match the current list",
                entity=entity,
                reason="list_mismatch",
                latest={"order": current_ids, "version": version},
            )

    def _snapshot(self, project_id: str, state: ProjectState) -> ProjectSnapshot:
        return ProjectSnapshot(
            project_id=project_id,
            project=state.meta.model_copy(deep=True),
            candidates=[c.model_copy(deep=True) for c in state.candidates],
            participants=[p.model_copy(deep=True) for p in state.participants],
            responses=[r.model_copy(deep=True) for r in state.responses],
            share_tokens=state.share_tokens.model_copy(deep=True),
            versions=state.versions.model_copy(),
        )

    def _summary(self, project_id: str, state: ProjectState) -> ResponsesSummary:
        key = tuple(getattr(state.versions, name) for name in SUMMARY_COUNTERS)
        cached = self._summary_cache.get(project_id)
        if cached is not None and cached[0] == key:
            return cached[1]
        summary = compute_summary(state.candidates, state.participants, state.responses)
        self._summary_cache[project_id] = (key, summary)
        return summary

    def _share_result(self, state: ProjectState) -> ShareTokensResult:
        return ShareTokensResult(
            share_tokens=state.share_tokens.model_copy(deep=True),
            version=state.versions.share_tokens_version,
        )

    # ------------------------------------------------------------------
    # Project
    # ------------------------------------------------------------------

    @synchronized
    def create_project(self, payload: Any, *, project_id: Optional[str] = None) -> ProjectSnapshot:
        data = validate_payload(ProjectCreate, payload, label="meta")
        project_id = project_id or new_id("proj")
        if project_id in self._projects:
            existing = self._projects[project_id]
            raise ConflictError(
                f"project {project_id} already exists",
                entity="project",
                latest=_dump(existing.meta),
            )
        meta = ProjectMeta(id=project_id, **data.meta.model_dump())
        state = ProjectState(meta=meta)
        self._projects[project_id] = state
        logger.debug(f"Created project {project_id}")
        return self._snapshot(project_id, state)

    @synchronized
    def get_snapshot(self, project_id: str) -> ProjectSnapshot:
        return self._snapshot(project_id, self._state(project_id))

    @synchronized
    def list_projects(self) -> list[ProjectSummaryRead]:
        return [
            ProjectSummaryRead(
                project_id=project_id,
                name=state.meta.name or None,
                candidate_count=len(state.candidates),
                participant_count=len(state.participants),
                response_count=len(state.responses),
            )
            for project_id, state in self._projects.items()
        ]

    @synchronized
    def update_meta(self, project_id: str, payload: Any) -> MetaResult:
        data = validate_payload(ProjectMetaUpdate, payload, label="meta")
        state = self._state(project_id)
        self._check_version(
            "meta",
            data.version,
            state.versions.meta_version,
            latest={"meta": _dump(state.meta), "version": state.versions.meta_version},
        )
        meta = state.meta.model_copy(update=data.meta.model_dump())
        meta.touch()
        state.meta = meta
        state.versions.meta_version += 1
        logger.debug(f"Updated meta of {project_id} to version {state.versions.meta_version}")
        return MetaResult(meta=meta.model_copy(), version=state.versions.meta_version)

    @synchronized
    def export_snapshot(self, project_id: str) -> dict[str, Any]:
        return self._snapshot(project_id, self._state(project_id)).model_dump(mode="json")

    @synchronized
    def import_snapshot(self, project_id: str, payload: Any) -> ProjectSnapshot:
        """Replace the whole project from an exported snapshot.

        Items that do not validate, duplicate identities and responses that
        point at missing candidates or participants are dropped and logged.
        """
        data = validate_payload(SnapshotImport, payload, label="snapshot")
        state = self._state(project_id)
        self._check_version(
            "meta",
            data.version,
            state.versions.meta_version,
            latest={"meta": _dump(state.meta), "version": state.versions.meta_version},
        )
        snapshot = data.snapshot

        meta = state.meta
        raw_meta = snapshot.get("project")
        if isinstance(raw_meta, Mapping):
            meta_input = validate_payload(ProjectMetaInput, _pick(raw_meta, ProjectMetaInput), label="project")
            meta = state.meta.model_copy(update=meta_input.model_dump())
            meta.touch()

        candidates = self._restore_candidates(snapshot.get("candidates"))
        participants = self._restore_participants(snapshot.get("participants"))
        responses = self._restore_responses(snapshot.get("responses"), candidates, participants)
        try:
            tokens = ShareTokens.model_validate(snapshot.get("share_tokens") or {})
        except PydanticValidationError as exc:
            logger.warning(f"Dropping invalid share tokens from snapshot of {project_id}: {exc.error_count()} errors")
            tokens = ShareTokens()

        versions = state.versions.model_copy()
        for name in VersionState.model_fields:
            setattr(versions, name, getattr(versions, name) + 1)

        self._projects[project_id] = ProjectState(
            meta=meta,
            candidates=candidates,
            participants=participants,
            responses=responses,
            share_tokens=tokens,
            versions=versions,
        )
        logger.info(
            f"Imported snapshot into {project_id}: {len(candidates)} candidates, "
            f"{len(participants)} participants, {len(responses)} responses"
        )
        return self._snapshot(project_id, self._projects[project_id])

    def _restore_candidates(self, items: Any) -> list[ScheduleCandidate]:
        restored: list[ScheduleCandidate] = []
        seen_ids: set[str] = set()
        seen_uids: set[str] = set()
        for item in _as_items(items):
            try:
                fields = validate_payload(CandidateCreate, _pick(item, CandidateCreate), label="candidate")
                candidate = ScheduleCandidate.model_validate(
                    {
                        **item,
                        **fields.model_dump(),
                        "id": fields.id or new_id("cand"),
                        "uid": fields.uid or new_uid(),
                    }
                )
            except (APIError, PydanticValidationError) as exc:
                logger.warning(f"Dropping invalid candidate from snapshot: {exc}")
                continue
            if candidate.id in seen_ids or candidate.uid in seen_uids:
                logger.warning(f"Dropping duplicate candidate {candidate.id} from snapshot")
                continue
            candidate.dtstamp = localize(candidate.dtstamp, None)
            seen_ids.add(candidate.id)
            seen_uids.add(candidate.uid)
            restored.append(candidate)
        return restored

    def _restore_participants(self, items: Any) -> list[Participant]:
        restored: list[Participant] = []
        for item in _as_items(items):
            try:
                fields = validate_payload(ParticipantCreate, _pick(item, ParticipantCreate), label="participant")
                ensure_unique_display_name(restored, fields.display_name)
                participant = Participant.model_validate(
                    {
                        **item,
                        **fields.model_dump(),
                        "id": fields.id or new_id("part"),
                        "token": item.get("token") or share_tokens.generate_token(self.token_length),
                    }
                )
            except (APIError, PydanticValidationError) as exc:
                logger.warning(f"Dropping invalid participant from snapshot: {exc}")
                continue
            if any(p.id == participant.id for p in restored):
                logger.warning(f"Dropping duplicate participant {participant.id} from snapshot")
                continue
            restored.append(participant)
        return restored

    def _restore_responses(
        self,
        items: Any,
        candidates: list[ScheduleCandidate],
        participants: list[Participant],
    ) -> list[ParticipantResponse]:
        candidate_ids = {c.id for c in candidates}
        participant_ids = {p.id for p in participants}
        restored: dict[tuple[str, str], ParticipantResponse] = {}
        for item in _as_items(items):
            try:
                fields = validate_payload(ResponseUpsert, _pick(item, ResponseUpsert), label="response")
                response = ParticipantResponse.model_validate(
                    {**item, **fields.model_dump(exclude={"version"})}
                )
            except (APIError, PydanticValidationError) as exc:
                logger.warning(f"Dropping invalid response from snapshot: {exc}")
                continue
            if response.candidate_id not in candidate_ids or response.participant_id not in participant_ids:
                logger.warning(f"Dropping dangling response {response.key} from snapshot")
                continue
            if response.key in restored:
                logger.warning(f"Dropping duplicate response {response.key} from snapshot")
                continue
            restored[response.key] = response
        return list(restored.values())

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    @synchronized
    def create_candidate(self, project_id: str, payload: Any) -> CandidateResult:
        data = validate_payload(CandidateCreate, payload, label="candidate")
        state = self._state(project_id)
        for existing in state.candidates:
            if (data.id and existing.id == data.id) or (data.uid and existing.uid == data.uid):
                raise ConflictError(
                    f"candidate {existing.id} already exists",
                    entity="candidate",
                    latest=_dump(existing),
                )
        now = utcnow()
        candidate = ScheduleCandidate(
            id=data.id or new_id("cand"),
            uid=data.uid or new_uid(),
            **data.model_dump(include=CANDIDATE_INPUT_FIELDS),
            sequence=0,
            dtstamp=now,
            created_at=now,
            updated_at=now,
            version=1,
        )
        state.candidates.append(candidate)
        state.versions.candidates_version += 1
        state.versions.candidates_list_version += 1
        logger.debug(f"Created candidate {candidate.id} in {project_id}")
        return CandidateResult(candidate=candidate.model_copy(), versions=state.versions.model_copy())

    @synchronized
    def update_candidate(self, project_id: str, candidate_id: str, payload: Any) -> CandidateResult:
        data = validate_payload(CandidateUpdate, payload, label="candidate")
        state = self._state(project_id)
        current = state.find_candidate(candidate_id)
        if current is None:
            raise NotFoundError(f"candidate {candidate_id} not found")
        self._check_version("candidate", data.version, current.version, latest=_dump(current))

        updated = current.model_copy(
            update={
                **data.candidate.model_dump(),
                "dtstamp": utcnow(),
                "version": current.version + 1,
            }
        )
        updated.touch()
        state.replace(state.candidates, updated)
        state.versions.candidates_version += 1
        logger.debug(f"Updated candidate {candidate_id} to version {updated.version}")
        return CandidateResult(candidate=updated.model_copy(), versions=state.versions.model_copy())

    @synchronized
    def remove_candidate(self, project_id: str, candidate_id: str, payload: Any) -> DeleteResult:
        data = validate_payload(VersionedRequest, payload, label="version")
        state = self._state(project_id)
        current = state.find_candidate(candidate_id)
        if current is None:
            raise NotFoundError(f"candidate {candidate_id} not found")
        self._check_version("candidate", data.version, current.version, latest=_dump(current))

        state.candidates = [c for c in state.candidates if c.id != candidate_id]
        removed = state.drop_responses(lambda r: r.candidate_id == candidate_id)
        state.versions.candidates_version += 1
        state.versions.candidates_list_version += 1
        logger.debug(f"Removed candidate {candidate_id} from {project_id} with {removed} responses")
        return DeleteResult(versions=state.versions.model_copy())

    @synchronized
    def reorder_candidates(self, project_id: str, payload: Any) -> CandidateListResult:
        data = validate_payload(ListOrderUpdate, payload, label="order")
        state = self._state(project_id)
        current_ids = [c.id for c in state.candidates]
        list_version = state.versions.candidates_list_version
        self._check_version(
            "candidates",
            data.version,
            list_version,
            latest={"order": current_ids, "version": list_version},
        )
        self._check_order("candidates", data.order, current_ids, list_version)

        by_id = {c.id: c for c in state.candidates}
        state.candidates = [by_id[candidate_id] for candidate_id in data.order]
        state.versions.candidates_list_version += 1
        return CandidateListResult(
            candidates=[c.model_copy() for c in state.candidates],
            version=state.versions.candidates_list_version,
        )

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    @synchronized
    def create_participant(self, project_id: str, payload: Any) -> ParticipantResult:
        data = validate_payload(ParticipantCreate, payload, label="participant")
        state = self._state(project_id)
        ensure_unique_display_name(state.participants, data.display_name)
        existing = state.find_participant(data.id) if data.id else None
        if existing is not None:
            raise ConflictError(
                f"participant {data.id} already exists",
                entity="participant",
                latest=_dump(existing),
            )
        now = utcnow()
        participant = Participant(
            id=data.id or new_id("part"),
            display_name=data.display_name,
            email=data.email,
            comment=data.comment,
            status=data.status,
            token=share_tokens.generate_token(self.token_length),
            created_at=now,
            updated_at=now,
            version=1,
        )
        state.participants.append(participant)
        state.versions.participants_version += 1
        state.versions.participants_list_version += 1
        logger.debug(f"Created participant {participant.id} in {project_id}")
        return ParticipantResult(participant=participant.model_copy(), versions=state.versions.model_copy())

    @synchronized
    def update_participant(self, project_id: str, participant_id: str, payload: Any) -> ParticipantResult:
        data = validate_payload(ParticipantUpdate, payload, label="participant")
        state = self._state(project_id)
        current = state.find_participant(participant_id)
        if current is None:
            raise NotFoundError(f"participant {participant_id} not found")

        changes = data.participant.model_dump(exclude_unset=True)
        if changes.get("display_name") is not None:
            ensure_unique_display_name(state.participants, changes["display_name"], exclude_id=participant_id)
        if "comment" in changes and changes["comment"] is None:
            changes["comment"] = ""
        if "status" in changes and changes["status"] is None:
            del changes["status"]
        self._check_version("participant", data.version, current.version, latest=_dump(current))

        updated = current.model_copy(update={**changes, "version": current.version + 1})
        updated.touch()
        state.replace(state.participants, updated)
        state.versions.participants_version += 1
        logger.debug(f"Updated participant {participant_id} to version {updated.version}")
        return ParticipantResult(participant=updated.model_copy(), versions=state.versions.model_copy())

    @synchronized
    def remove_participant(self, project_id: str, participant_id: str, payload: Any) -> DeleteResult:
        data = validate_payload(VersionedRequest, payload, label="version")
        state = self._state(project_id)
        current = state.find_participant(participant_id)
        if current is None:
            raise NotFoundError(f"participant {participant_id} not found")
        self._check_version("participant", data.version, current.version, latest=_dump(current))

        state.participants = [p for p in state.participants if p.id != participant_id]
        removed = state.drop_responses(lambda r: r.participant_id == participant_id)
        state.versions.participants_version += 1
        state.versions.participants_list_version += 1
        logger.debug(f"Removed participant {participant_id} from {project_id} with {removed} responses")
        return DeleteResult(versions=state.versions.model_copy())

    @synchronized
    def reorder_participants(self, project_id: str, payload: Any) -> ParticipantListResult:
        data = validate_payload(ListOrderUpdate, payload, label="order")
        state = self._state(project_id)
        current_ids = [p.id for p in state.participants]
        list_version = state.versions.participants_list_version
        self._check_version(
            "participants",
            data.version,
            list_version,
            latest={"order": current_ids, "version": list_version},
        )
        self._check_order("participants", data.order, current_ids, list_version)

        by_id = {p.id: p for p in state.participants}
        state.participants = [by_id[participant_id] for participant_id in data.order]
        state.versions.participants_list_version += 1
        return ParticipantListResult(
            participants=[p.model_copy() for p in state.participants],
            version=state.versions.participants_list_version,
        )

    @synchronized
    def get_participant_responses(self, project_id: str, participant_id: str) -> ParticipantResponsesResult:
        state = self._state(project_id)
        participant = state.find_participant(participant_id)
        if participant is None:
            raise NotFoundError(f"participant {participant_id} not found")
        by_candidate = {r.candidate_id: r for r in state.responses if r.participant_id == participant_id}
        items = [
            ParticipantResponseItem(response=by_candidate[c.id].model_copy(), candidate=c.model_copy())
            for c in state.candidates
            if c.id in by_candidate
        ]
        tallies = compute_participant_tally(
            [item.response for item in items], participant_id, len(state.candidates)
        )
        return ParticipantResponsesResult(
            participant=participant.model_copy(),
            responses=items,
            tallies=tallies,
        )

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    @synchronized
    def upsert_response(self, project_id: str, payload: Any) -> ResponseResult:
        data = validate_payload(ResponseUpsert, payload, label="response")
        state = self._state(project_id)
        if state.find_participant(data.participant_id) is None:
            raise NotFoundError(f"participant {data.participant_id} not found")
        if state.find_candidate(data.candidate_id) is None:
            raise NotFoundError(f"candidate {data.candidate_id} not found")

        existing = state.find_response(data.participant_id, data.candidate_id)
        if existing is not None:
            if data.version is None:
                raise ValidationError("version is required to update a response", ["version"])
            self._check_version("response", data.version, existing.version, latest=_dump(existing))
            response = existing.model_copy(
                update={"mark": data.mark, "comment": data.comment, "version": existing.version + 1}
            )
            response.touch()
            state.responses = [response if r.key == response.key else r for r in state.responses]
        else:
            now = utcnow()
            response = ParticipantResponse(
                participant_id=data.participant_id,
                candidate_id=data.candidate_id,
                mark=data.mark,
                comment=data.comment,
                created_at=now,
                updated_at=now,
                version=1,
            )
            state.responses.append(response)
        state.versions.responses_version += 1
        logger.debug(f"{'Created' if existing is None else 'Updated'} response {response.key} in {project_id}")

        summary = self._summary(project_id, state)
        return ResponseResult(
            response=response.model_copy(),
            created=existing is None,
            candidate_tally=summary.for_candidate(data.candidate_id).model_copy(),
            participant_tally=summary.for_participant(data.participant_id).model_copy(),
            version=state.versions.responses_version,
        )

    @synchronized
    def remove_response(self, project_id: str, payload: Any) -> DeleteResult:
        data = validate_payload(ResponseDelete, payload, label="response")
        state = self._state(project_id)
        existing = state.find_response(data.participant_id, data.candidate_id)
        if existing is None:
            raise NotFoundError("response not found")
        self._check_version("response", data.version, existing.version, latest=_dump(existing))

        state.responses = [r for r in state.responses if r.key != existing.key]
        state.versions.responses_version += 1
        logger.debug(f"Removed response {existing.key} from {project_id}")
        return DeleteResult(versions=state.versions.model_copy())

    @synchronized
    def get_responses_summary(self, project_id: str) -> ResponsesSummary:
        return self._summary(project_id, self._state(project_id)).model_copy(deep=True)

    # ------------------------------------------------------------------
    # Calendar import / export
    # ------------------------------------------------------------------

    @synchronized
    def export_ics(self, project_id: str, candidate_id: Optional[str] = None) -> str:
        """Serialize candidates, stamping each with the next sequence."""
        state = self._state(project_id)
        if candidate_id is not None:
            target = state.find_candidate(candidate_id)
            if target is None:
                raise NotFoundError(f"candidate {candidate_id} not found")
            targets = [target]
        else:
            targets = list(state.candidates)

        stamped = ics.stamp_for_export(targets, utcnow())
        for candidate in stamped:
            state.replace(state.candidates, candidate)
        if stamped:
            state.versions.candidates_version += 1
        logger.debug(f"Exported {len(stamped)} candidates of {project_id} to ICS")
        return ics.serialize_candidates(
            stamped,
            prodid=self.ics_prodid,
            default_tzid=state.meta.default_tzid or self.default_tzid,
            dtstamp=stamped[0].dtstamp if stamped else None,
        )

    @synchronized
    def preview_ics_import(self, project_id: str, ics_text: Any) -> ImportPreview:
        if isinstance(ics_text, str):
            ics_text = {"ics": ics_text}
        data = validate_payload(IcsImportRequest, ics_text, label="ics")
        state = self._state(project_id)
        preview = ics.reconcile_import(
            state.candidates,
            data.ics,
            state.meta.default_tzid or self.default_tzid,
        )
        logger.debug(
            f"ICS preview for {project_id}: {len(preview.decisions)} decisions, "
            f"{preview.skipped_total} skipped"
        )
        return preview

    @synchronized
    def commit_ics_import(self, project_id: str, payload: Any) -> ImportResult:
        if isinstance(payload, (list, tuple)):
            payload = {"entries": list(payload)}
        data = validate_payload(IcsImportCommit, payload, label="entries")
        state = self._state(project_id)
        candidates, added, updated, skipped = ics.apply_import(
            state.candidates,
            data.entries,
            new_id=lambda: new_id("cand"),
        )
        state.candidates = candidates
        if added or updated:
            state.versions.candidates_version += 1
        if added:
            state.versions.candidates_list_version += 1
        logger.info(f"Committed ICS import into {project_id}: {added} added, {updated} updated, {skipped} skipped")
        return ImportResult(
            added=added,
            updated=updated,
            skipped=skipped,
            candidates=[c.model_copy() for c in state.candidates],
            versions=state.versions.model_copy(),
        )

    # ------------------------------------------------------------------
    # Share tokens
    # ------------------------------------------------------------------

    @synchronized
    def get_share_tokens(self, project_id: str) -> ShareTokensResult:
        return self._share_result(self._state(project_id))

    @synchronized
    def generate_share_tokens(self, project_id: str, payload: Any = None) -> ShareTokensResult:
        """Fill in missing or unusable tokens; keep usable ones."""
        data = validate_payload(ShareGenerateRequest, payload or {}, label="share_tokens")
        state = self._state(project_id)
        base_url = share_tokens.sanitize_base_url(data.base_url, self.share_base_url)

        tokens = state.share_tokens.model_copy(deep=True)
        changed = False
        for token_type in SHARE_TOKEN_TYPES:
            entry = tokens.get(token_type)
            if share_tokens.is_usable(entry):
                refreshed = share_tokens.with_base_url(token_type, entry, base_url)
                changed = changed or refreshed.url != entry.url
            else:
                refreshed = share_tokens.create_entry(
                    token_type,
                    base_url,
                    generated_by=data.generated_by,
                    length=self.token_length,
                )
                changed = True
            setattr(tokens, token_type, refreshed)

        if changed:
            state.share_tokens = tokens
            state.versions.share_tokens_version += 1
            logger.debug(f"Generated share tokens for {project_id}")
        return self._share_result(state)

    @synchronized
    def rotate_share_tokens(self, project_id: str, payload: Any) -> ShareTokensResult:
        data = validate_payload(ShareRotateRequest, payload, label="share_tokens")
        state = self._state(project_id)
        self._check_version(
            "share_tokens",
            data.version,
            state.versions.share_tokens_version,
            latest=_dump(self._share_result(state)),
        )
        base_url = share_tokens.sanitize_base_url(data.base_url, self.share_base_url)
        state.share_tokens = ShareTokens(
            **{
                token_type: share_tokens.create_entry(
                    token_type,
                    base_url,
                    generated_by=data.rotated_by,
                    length=self.token_length,
                )
                for token_type in SHARE_TOKEN_TYPES
            }
        )
        state.versions.share_tokens_version += 1
        logger.info(f"Rotated share tokens for {project_id}")
        return self._share_result(state)

    @synchronized
    def invalidate_share_token(self, project_id: str, token_type: str, payload: Any) -> ShareTokensResult:
        if token_type not in SHARE_TOKEN_TYPES:
            raise ValidationError(f"unknown share token type {token_type!r}", ["token_type"])
        data = validate_payload(VersionedRequest, payload, label="version")
        state = self._state(project_id)
        self._check_version(
            "share_tokens",
            data.version,
            state.versions.share_tokens_version,
            latest=_dump(self._share_result(state)),
        )
        if state.share_tokens.get(token_type) is None:
            raise NotFoundError(f"{token_type} share token not found")

        tokens = state.share_tokens.model_copy(deep=True)
        setattr(tokens, token_type, None)
        state.share_tokens = tokens
        state.versions.share_tokens_version += 1
        logger.info(f"Invalidated {token_type} share token of {project_id}")
        return self._share_result(state)

    @synchronized
    def resolve_share_token(self, token: str) -> ShareTokenLookup:
        if token and not share_tokens.is_placeholder_token(token):
            for project_id, state in self._projects.items():
                for token_type in SHARE_TOKEN_TYPES:
                    entry = state.share_tokens.get(token_type)
                    if share_tokens.is_usable(entry) and entry.token == token:
                        return ShareTokenLookup(project_id=project_id, token_type=token_type)
        raise NotFoundError("share token not found")


def _as_items(items: Any) -> Iterable[Mapping[str, Any]]:
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, Mapping)]


def _pick(item: Mapping[str, Any], model_cls: type[BaseModel]) -> dict[str, Any]:
    return {key: value for key, value in item.items() if key in model_cls.model_fields}
