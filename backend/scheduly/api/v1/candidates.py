from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, Response, status

from scheduly.api.deps import StoreDep
from scheduly.schemas import (
    CandidateCreate,
    CandidateListResult,
    CandidateResult,
    CandidateUpdate,
    DeleteResult,
    IcsImportCommit,
    IcsImportRequest,
    ImportPreview,
    ImportResult,
    ListOrderUpdate,
)

router = APIRouter()

ICS_MEDIA_TYPE = "text/calendar; charset=utf-8"


def _ics_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type=ICS_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/{project_id}/candidates",
    response_model=CandidateResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create candidate",
)
def create_candidate(project_id: str, payload: CandidateCreate, store: StoreDep) -> CandidateResult:
    return store.create_candidate(project_id, payload)


# Declared before "/{candidate_id}" so "order" is not taken for an id
@router.put(
    "/{project_id}/candidates/order",
    response_model=CandidateListResult,
    summary="Reorder candidates",
)
def reorder_candidates(project_id: str, payload: ListOrderUpdate, store: StoreDep) -> CandidateListResult:
    return store.reorder_candidates(project_id, payload)


@router.get("/{project_id}/candidates/ics", summary="Export all candidates as iCalendar")
def export_candidates_ics(project_id: str, store: StoreDep) -> Response:
    return _ics_response(store.export_ics(project_id), f"{project_id}-candidates.ics")


@router.post(
    "/{project_id}/candidates/ics/preview",
    response_model=ImportPreview,
    summary="Classify an iCalendar file against the current candidates",
)
def preview_ics_import(project_id: str, payload: IcsImportRequest, store: StoreDep) -> ImportPreview:
    """Nothing is stored; send the chosen decisions to the commit endpoint."""
    return store.preview_ics_import(project_id, payload)


@router.post(
    "/{project_id}/candidates/ics/commit",
    response_model=ImportResult,
    summary="Apply selected import decisions",
)
def commit_ics_import(project_id: str, payload: IcsImportCommit, store: StoreDep) -> ImportResult:
    return store.commit_ics_import(project_id, payload)


@router.put(
    "/{project_id}/candidates/{candidate_id}",
    response_model=CandidateResult,
    summary="Update candidate",
)
def update_candidate(
    project_id: str,
    candidate_id: str,
    payload: CandidateUpdate,
    store: StoreDep,
) -> CandidateResult:
    return store.update_candidate(project_id, candidate_id, payload)


@router.delete(
    "/{project_id}/candidates/{candidate_id}",
    response_model=DeleteResult,
    summary="Delete candidate and its responses",
)
def remove_candidate(
    project_id: str,
    candidate_id: str,
    store: StoreDep,
    version: Optional[int] = Query(default=None, description="Current version of the candidate"),
) -> DeleteResult:
    return store.remove_candidate(project_id, candidate_id, {"version": version})


@router.get("/{project_id}/candidates/{candidate_id}/ics", summary="Export one candidate as iCalendar")
def export_candidate_ics(project_id: str, candidate_id: str, store: StoreDep) -> Response:
    return _ics_response(store.export_ics(project_id, candidate_id), f"{candidate_id}.ics")
