from fastapi import APIRouter

from scheduly.api.deps import StoreDep
from scheduly.core.config import settings

router = APIRouter()


@router.get("/", summary="Health check", tags=["health"])
def read_health() -> dict[str, str]:
    """Return basic service health information."""
    return {"status": "ok"}


@router.get("/ready", summary="Readiness check", tags=["health"])
def read_ready(store: StoreDep) -> dict[str, object]:
    """Report that the in-memory store is initialized and how many projects it holds."""
    return {
        "status": "ready",
        "environment": settings.ENVIRONMENT,
        "projects": len(store.list_projects()),
    }
