from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from scheduly.core.config import settings
from scheduly.services.store import ProjectStore


@lru_cache
def get_store() -> ProjectStore:
    """Process-wide store, created on first use."""
    return ProjectStore(
        default_tzid=settings.DEFAULT_TZID,
        share_base_url=settings.SHARE_BASE_URL,
        token_length=settings.SHARE_TOKEN_LENGTH,
        ics_prodid=settings.ICS_PRODID,
    )


StoreDep = Annotated[ProjectStore, Depends(get_store)]
