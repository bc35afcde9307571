from __future__ import annotations

import logging
import secrets
import string
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from scheduly.core.timeutils import utcnow
from scheduly.models import ShareTokenEntry, ShareTokenType

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 32
BASE62_ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase
URL_PREFIX: dict[str, str] = {
    "admin": "a",
    "participant": "p",
}
PLACEHOLDER_PREFIX = "demo-"


def generate_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))


def sanitize_base_url(raw_base_url: Optional[str], fallback: str) -> str:
    """Keep scheme, host and path of an http(s) URL; otherwise use ``fallback``."""
    candidate = (raw_base_url or "").strip()
    if not candidate:
        return fallback.rstrip("/")
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        logger.debug(f"Falling back to default share base URL, got {raw_base_url!r}")
        return fallback.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")).rstrip("/")


def build_url(token_type: ShareTokenType, token: str, base_url: str) -> str:
    if not token:
        return ""
    prefix = URL_PREFIX.get(token_type)
    if prefix is None:
        raise ValueError(f"Unknown share token type: {token_type}")
    return f"{base_url.rstrip('/')}/{prefix}/{token}"


def create_entry(
    token_type: ShareTokenType,
    base_url: str,
    *,
    generated_by: Optional[str] = None,
    length: int = TOKEN_LENGTH,
) -> ShareTokenEntry:
    token = generate_token(length)
    return ShareTokenEntry(
        token=token,
        url=build_url(token_type, token, base_url),
        issued_at=utcnow(),
        last_generated_by=generated_by or None,
    )


def is_placeholder_token(token: Optional[str]) -> bool:
    return bool(token) and token.startswith(PLACEHOLDER_PREFIX)


def is_usable(entry: Optional[ShareTokenEntry]) -> bool:
    return (
        entry is not None
        and bool(entry.token)
        and entry.revoked_at is None
        and not is_placeholder_token(entry.token)
    )


def with_base_url(token_type: ShareTokenType, entry: ShareTokenEntry, base_url: str) -> ShareTokenEntry:
    return entry.model_copy(update={"url": build_url(token_type, entry.token, base_url)})
