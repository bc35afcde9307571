from __future__ import annotations

from typing import Optional

from fastapi import APIRouter

from scheduly.api.deps import StoreDep
from scheduly.schemas import (
    ShareGenerateRequest,
    ShareRotateRequest,
    ShareTokenLookup,
    ShareTokensResult,
    VersionedRequest,
)

router = APIRouter()
lookup_router = APIRouter()


@router.get("/{project_id}/share", response_model=ShareTokensResult, summary="Get share tokens")
def get_share_tokens(project_id: str, store: StoreDep) -> ShareTokensResult:
    return store.get_share_tokens(project_id)


@router.post(
    "/{project_id}/share/generate",
    response_model=ShareTokensResult,
    summary="Issue missing share tokens, keeping usable ones",
)
def generate_share_tokens(
    project_id: str,
    store: StoreDep,
    payload: Optional[ShareGenerateRequest] = None,
) -> ShareTokensResult:
    return store.generate_share_tokens(project_id, payload)


@router.post(
    "/{project_id}/share/rotate",
    response_model=ShareTokensResult,
    summary="Replace both share tokens",
)
def rotate_share_tokens(project_id: str, payload: ShareRotateRequest, store: StoreDep) -> ShareTokensResult:
    return store.rotate_share_tokens(project_id, payload)


@router.post(
    "/{project_id}/share/{token_type}/invalidate",
    response_model=ShareTokensResult,
    summary="Remove one share token",
)
def invalidate_share_token(
    project_id: str,
    token_type: str,
    payload: VersionedRequest,
    store: StoreDep,
) -> ShareTokensResult:
    return store.invalidate_share_token(project_id, token_type, payload)


@lookup_router.get("/{token}", response_model=ShareTokenLookup, summary="Resolve a share token")
def resolve_share_token(token: str, store: StoreDep) -> ShareTokenLookup:
    return store.resolve_share_token(token)
