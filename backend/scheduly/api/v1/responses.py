from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from scheduly.api.deps import StoreDep
from scheduly.schemas import DeleteResult, ResponseResult, ResponseUpsert

router = APIRouter()


@router.post(
    "/{project_id}/responses",
    response_model=ResponseResult,
    summary="Create or update a response",
)
def upsert_response(project_id: str, payload: ResponseUpsert, store: StoreDep) -> ResponseResult:
    return store.upsert_response(project_id, payload)


@router.delete(
    "/{project_id}/responses",
    response_model=DeleteResult,
    summary="Delete a response (back to pending)",
)
def remove_response(
    project_id: str,
    store: StoreDep,
    participant_id: str = Query(...),
    candidate_id: str = Query(...),
    version: Optional[int] = Query(default=None, description="Current version of the response"),
) -> DeleteResult:
    return store.remove_response(
        project_id,
        {"participant_id": participant_id, "candidate_id": candidate_id, "version": version},
    )
