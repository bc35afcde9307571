from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from scheduly.core.timeutils import utcnow

ShareTokenType = Literal["admin", "participant"]
SHARE_TOKEN_TYPES: tuple[ShareTokenType, ...] = ("admin", "participant")


class ShareTokenEntry(BaseModel):
    token: str
    url: str = ""
    issued_at: datetime = Field(default_factory=utcnow)
    revoked_at: Optional[datetime] = None
    last_generated_by: Optional[str] = None


class ShareTokens(BaseModel):
    """Both capability tokens of a project, sharing ``share_tokens_version``."""

    admin: Optional[ShareTokenEntry] = None
    participant: Optional[ShareTokenEntry] = None

    def get(self, token_type: ShareTokenType) -> Optional[ShareTokenEntry]:
        return getattr(self, token_type)
