from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TZID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+(?:/[A-Za-z0-9_\-+]+)+$")
CUSTOM_TZID_PATTERN = re.compile(r"^X-SCHEDULY-[A-Z0-9_\-]+$", re.IGNORECASE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_tzid(value: str | None) -> bool:
    if not value:
        return False
    return bool(TZID_PATTERN.match(value) or CUSTOM_TZID_PATTERN.match(value))


def resolve_zone(tzid: str | None) -> tzinfo:
    """Return the IANA zone for ``tzid``, or UTC for private/unknown zones."""
    if not tzid or CUSTOM_TZID_PATTERN.match(tzid):
        return timezone.utc
    try:
        return ZoneInfo(tzid)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def localize(value: datetime, tzid: str | None) -> datetime:
    """Attach ``tzid`` to a naive wall time and normalize the result to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=resolve_zone(tzid))
    return value.astimezone(timezone.utc)
