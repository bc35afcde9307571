from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from scheduly.models import ShareTokens, ShareTokenType
from scheduly.schemas.common import ExpectedVersion


class ShareGenerateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    base_url: Optional[str] = None
    generated_by: Optional[str] = Field(default=None, max_length=120)


class ShareRotateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    version: ExpectedVersion
    base_url: Optional[str] = None
    rotated_by: Optional[str] = Field(default=None, max_length=120)


class ShareTokensResult(BaseModel):
    share_tokens: ShareTokens
    version: int


class ShareTokenLookup(BaseModel):
    project_id: str
    token_type: ShareTokenType
