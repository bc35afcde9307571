from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, status

from scheduly.api.deps import StoreDep
from scheduly.schemas import (
    MetaResult,
    ProjectCreate,
    ProjectMetaUpdate,
    ProjectSnapshot,
    ProjectSummaryRead,
    ResponsesSummary,
    SnapshotImport,
)

router = APIRouter()


@router.get("", response_model=List[ProjectSummaryRead], summary="List projects")
def list_projects(store: StoreDep) -> List[ProjectSummaryRead]:
    return store.list_projects()


@router.post(
    "",
    response_model=ProjectSnapshot,
    status_code=status.HTTP_201_CREATED,
    summary="Create project",
)
def create_project(payload: ProjectCreate, store: StoreDep) -> ProjectSnapshot:
    return store.create_project(payload)


@router.get(
    "/{project_id}/snapshot",
    response_model=ProjectSnapshot,
    summary="Get the full project state with every version counter",
)
def get_snapshot(project_id: str, store: StoreDep) -> ProjectSnapshot:
    """Unknown project ids start out as empty projects."""
    return store.get_snapshot(project_id)


@router.put("/{project_id}/meta", response_model=MetaResult, summary="Replace project meta")
def update_meta(project_id: str, payload: ProjectMetaUpdate, store: StoreDep) -> MetaResult:
    return store.update_meta(project_id, payload)


@router.get("/{project_id}/export", summary="Export project as a portable snapshot")
def export_project(project_id: str, store: StoreDep) -> Dict[str, Any]:
    return store.export_snapshot(project_id)


@router.post("/{project_id}/import", response_model=ProjectSnapshot, summary="Replace project from a snapshot")
def import_project(project_id: str, payload: SnapshotImport, store: StoreDep) -> ProjectSnapshot:
    return store.import_snapshot(project_id, payload)


@router.get("/{project_id}/summary", response_model=ResponsesSummary, summary="Response tallies")
def get_summary(project_id: str, store: StoreDep) -> ResponsesSummary:
    return store.get_responses_summary(project_id)
