from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from scheduly.models import Mark, ParticipantResponse
from scheduly.schemas.common import ExpectedVersion
from scheduly.schemas.tally import Tally


class ResponseUpsert(BaseModel):
    """Create a response on first mark, update it afterwards.

    ``version`` is only required once the response exists.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    participant_id: str = Field(..., min_length=1)
    candidate_id: str = Field(..., min_length=1)
    mark: Mark
    comment: str = Field(default="", max_length=500)
    version: Optional[StrictInt] = Field(default=None, ge=1)

    @field_validator("mark", mode="before")
    @classmethod
    def normalize_mark(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("comment", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ResponseDelete(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    participant_id: str = Field(..., min_length=1)
    candidate_id: str = Field(..., min_length=1)
    version: ExpectedVersion


class ResponseResult(BaseModel):
    response: ParticipantResponse
    created: bool
    candidate_tally: Tally
    participant_tally: Tally
    version: int
