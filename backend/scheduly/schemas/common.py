from __future__ import annotations

from typing import Annotated, List

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from scheduly.models import VersionState

# Expected version sent with every update/delete
ExpectedVersion = Annotated[StrictInt, Field(ge=1, description="Current version of the entity")]


class VersionedRequest(BaseModel):
    """Body of delete-style requests that only carry the expected version."""

    version: ExpectedVersion


class ListOrderUpdate(BaseModel):
    """Explicit reordering of a collection, gated on its list version."""

    model_config = ConfigDict(str_strip_whitespace=True)

    order: List[str] = Field(..., min_length=1)
    version: StrictInt = Field(..., ge=0)


class DeleteResult(BaseModel):
    versions: VersionState
