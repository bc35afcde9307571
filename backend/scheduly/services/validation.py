"""Payload normalization in front of the store.

Every write goes through :func:`validate_payload` before the store looks at
versions, so a malformed payload is always reported as a ValidationError.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from scheduly.core.errors import ValidationError
from scheduly.models import Participant

ModelT = TypeVar("ModelT", bound=BaseModel)


def collect_error_fields(errors: Iterable[Mapping[str, Any]], fallback: str = "unknown") -> list[str]:
    """Return the innermost field name of every error location, in order."""
    fields: list[str] = []
    for error in errors:
        names = [part for part in error.get("loc", ()) if isinstance(part, str) and part != "body"]
        name = names[-1] if names else fallback
        if name not in fields:
            fields.append(name)
    return fields


def validate_payload(model_cls: type[ModelT], payload: Any, *, label: str) -> ModelT:
    if isinstance(payload, model_cls):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{label} payload is required", [label])
    try:
        return model_cls.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(
            f"{label} validation failed",
            collect_error_fields(exc.errors(), fallback=label),
        ) from None


def ensure_unique_display_name(
    participants: Iterable[Participant],
    display_name: str,
    *,
    exclude_id: Optional[str] = None,
) -> None:
    normalized = display_name.casefold()
    for participant in participants:
        if participant.id == exclude_id:
            continue
        if participant.display_name.casefold() == normalized:
            raise ValidationError("display_name is already taken", ["display_name"])
