"""Error taxonomy shared by the store, the HTTP layer and the client."""

from __future__ import annotations

from typing import Any, Iterable, Optional


class APIError(Exception):
    """Base error carrying an HTTP-style status and a JSON-ready payload."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        fields: Optional[Iterable[str]] = None,
        conflict: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code if code is not None else self.status_code
        self.fields: list[str] = list(dict.fromkeys(f for f in (fields or []) if f))
        self.conflict = conflict

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.fields:
            payload["fields"] = self.fields
        if self.conflict is not None:
            payload["conflict"] = self.conflict
        return payload


class BadRequestError(APIError):
    status_code = 400

    def __init__(self, message: str = "Bad request") -> None:
        super().__init__(message)


class NotFoundError(APIError):
    status_code = 404

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class ValidationError(APIError):
    """Malformed or missing input. Always names the offending field(s)."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", fields: Iterable[str] | str = ()) -> None:
        if isinstance(fields, str):
            fields = [fields]
        super().__init__(message, fields=fields)


class ConflictError(APIError):
    """Stale expected version or duplicate identity.

    ``latest`` is the authoritative current copy of the entity (or collection)
    so that callers can resynchronize without another read.
    """

    status_code = 409

    def __init__(
        self,
        message: str = "Conflict detected",
        *,
        entity: str,
        reason: str = "version_mismatch",
        latest: Any = None,
    ) -> None:
        self.entity = entity
        self.reason = reason
        self.latest = latest
        super().__init__(
            message,
            conflict={"entity": entity, "reason": reason, "latest": latest},
        )
