from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, status

from scheduly.api.deps import StoreDep
from scheduly.schemas import (
    DeleteResult,
    ListOrderUpdate,
    ParticipantCreate,
    ParticipantListResult,
    ParticipantResponsesResult,
    ParticipantResult,
    ParticipantUpdate,
)

router = APIRouter()


@router.post(
    "/{project_id}/participants",
    response_model=ParticipantResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create participant",
)
def create_participant(project_id: str, payload: ParticipantCreate, store: StoreDep) -> ParticipantResult:
    return store.create_participant(project_id, payload)


@router.put(
    "/{project_id}/participants/order",
    response_model=ParticipantListResult,
    summary="Reorder participants",
)
def reorder_participants(project_id: str, payload: ListOrderUpdate, store: StoreDep) -> ParticipantListResult:
    return store.reorder_participants(project_id, payload)


@router.put(
    "/{project_id}/participants/{participant_id}",
    response_model=ParticipantResult,
    summary="Update participant (only the fields sent)",
)
def update_participant(
    project_id: str,
    participant_id: str,
    payload: ParticipantUpdate,
    store: StoreDep,
) -> ParticipantResult:
    return store.update_participant(project_id, participant_id, payload)


@router.delete(
    "/{project_id}/participants/{participant_id}",
    response_model=DeleteResult,
    summary="Delete participant and their responses",
)
def remove_participant(
    project_id: str,
    participant_id: str,
    store: StoreDep,
    version: Optional[int] = Query(default=None, description="Current version of the participant"),
) -> DeleteResult:
    return store.remove_participant(project_id, participant_id, {"version": version})


@router.get(
    "/{project_id}/participants/{participant_id}/responses",
    response_model=ParticipantResponsesResult,
    summary="Responses of one participant with their tally",
)
def get_participant_responses(
    project_id: str,
    participant_id: str,
    store: StoreDep,
) -> ParticipantResponsesResult:
    return store.get_participant_responses(project_id, participant_id)
