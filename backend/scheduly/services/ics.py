"""iCalendar (RFC 5545) export and import reconciliation for candidates.

Export writes one VCALENDAR with a VEVENT per candidate, times in UTC and the
organizer's zone kept in the ``X-SCHEDULY-TZID`` extension. Import parses an
external document into :class:`ImportDecision` entries (new / update / older)
without touching the store; :func:`apply_import` merges the accepted ones.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from scheduly.core.errors import ValidationError
from scheduly.core.timeutils import is_valid_tzid, resolve_zone, utcnow
from scheduly.models import ScheduleCandidate
from scheduly.schemas.ics import ImportDecision, ImportedCandidate, ImportPreview
from scheduly.services.validation import validate_payload

logger = logging.getLogger(__name__)

ICAL_LINE_BREAK = "\r\n"
MAX_LINE_OCTETS = 75
VENDOR_TZID_PROPERTY = "X-SCHEDULY-TZID"
FLOATING_TZID = "floating"
IMPORTED_FIELDS = {
    "uid",
    "summary",
    "description",
    "location",
    "status",
    "tzid",
    "dtstart",
    "dtend",
    "sequence",
    "dtstamp",
}

_DURATION_PATTERN = re.compile(
    r"^(?P<sign>[+-])?P(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


class ContentLine(NamedTuple):
    name: str
    params: dict[str, str]
    value: str


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def format_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def escape_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
        .replace(",", "\\,")
        .replace(";", "\\;")
    )


def fold_line(line: str) -> list[str]:
    """Split a content line into chunks of at most 75 octets."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return [line]
    chunks: list[str] = []
    current = ""
    current_size = 0
    limit = MAX_LINE_OCTETS
    for char in line:
        size = len(char.encode("utf-8"))
        if current_size + size > limit:
            chunks.append(current)
            current, current_size = "", 0
            # continuation lines spend one octet on the leading space
            limit = MAX_LINE_OCTETS - 1
        current += char
        current_size += size
    chunks.append(current)
    return [chunks[0]] + [" " + chunk for chunk in chunks[1:]]


def build_event_lines(candidate: ScheduleCandidate, dtstamp: datetime, default_tzid: str) -> list[str]:
    tzid = (candidate.tzid or "").strip() or default_tzid
    return [
        "BEGIN:VEVENT",
        f"UID:{candidate.uid}",
        f"SEQUENCE:{candidate.sequence}",
        f"DTSTAMP:{format_utc(dtstamp)}",
        f"DTSTART:{format_utc(candidate.dtstart)}",
        f"DTEND:{format_utc(candidate.dtend)}",
        f"STATUS:{(candidate.status or 'CONFIRMED').upper()}",
        f"SUMMARY:{escape_text(candidate.summary)}",
        f"LOCATION:{escape_text(candidate.location)}",
        f"DESCRIPTION:{escape_text(candidate.description)}",
        f"{VENDOR_TZID_PROPERTY}:{escape_text(tzid)}",
        "END:VEVENT",
    ]


def serialize_candidates(
    candidates: Sequence[ScheduleCandidate],
    *,
    prodid: str,
    default_tzid: str,
    dtstamp: Optional[datetime] = None,
) -> str:
    """Render ``candidates`` as one calendar document (CRLF, trailing CRLF)."""
    dtstamp = dtstamp or utcnow()
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{prodid}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for candidate in candidates:
        lines.extend(build_event_lines(candidate, dtstamp, default_tzid))
    lines.append("END:VCALENDAR")

    folded: list[str] = []
    for line in lines:
        folded.extend(fold_line(line))
    return ICAL_LINE_BREAK.join(folded) + ICAL_LINE_BREAK


def stamp_for_export(candidates: Sequence[ScheduleCandidate], dtstamp: datetime) -> list[ScheduleCandidate]:
    """Copies of ``candidates`` with the next sequence and the export DTSTAMP."""
    return [
        candidate.model_copy(update={"sequence": candidate.sequence + 1, "dtstamp": dtstamp})
        for candidate in candidates
    ]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def unescape_text(value: str) -> str:
    result: list[str] = []
    index = 0
    while index < len(value):
        char = value[index]
        if char == "\\" and index + 1 < len(value):
            following = value[index + 1]
            if following in ("n", "N"):
                result.append("\n")
            elif following in ("\\", ",", ";", ":"):
                result.append(following)
            else:
                result.append(char + following)
            index += 2
            continue
        result.append(char)
        index += 1
    return "".join(result)


def unfold_lines(text: str) -> list[str]:
    lines: list[str] = []
    for raw in re.split(r"\r\n|\n|\r", text):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        elif raw.strip():
            lines.append(raw)
    return lines


def _split_unquoted(text: str, separator: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in text:
        if char == '"':
            in_quotes = not in_quotes
        if char == separator and not in_quotes:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def parse_content_line(line: str) -> ContentLine:
    in_quotes = False
    for index, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ":" and not in_quotes:
            head, value = line[:index], line[index + 1:]
            break
    else:
        raise ValueError(f"content line has no value: {line[:40]!r}")

    segments = _split_unquoted(head, ";")
    name = segments[0].strip().upper()
    if not name:
        raise ValueError(f"content line has no name: {line[:40]!r}")
    params: dict[str, str] = {}
    for segment in segments[1:]:
        key, _, raw = segment.partition("=")
        params[key.strip().upper()] = raw.strip().strip('"')
    return ContentLine(name, params, value)


def parse_events(text: str) -> list[dict[str, ContentLine]]:
    """Return the properties of every VEVENT, first occurrence per name.

    Properties of nested components (VALARM and friends) are ignored.
    """
    events: list[dict[str, ContentLine]] = []
    stack: list[str] = []
    current: Optional[dict[str, ContentLine]] = None
    saw_calendar = False

    for line in unfold_lines(text):
        try:
            content = parse_content_line(line)
        except ValueError as exc:
            logger.debug(f"Skipping malformed ICS line: {exc}")
            continue

        if content.name == "BEGIN":
            component = content.value.strip().upper()
            stack.append(component)
            if component == "VCALENDAR":
                saw_calendar = True
            elif component == "VEVENT" and current is None:
                current = {}
            continue
        if content.name == "END":
            component = content.value.strip().upper()
            if stack and stack[-1] == component:
                stack.pop()
            if component == "VEVENT" and current is not None:
                events.append(current)
                current = None
            continue

        if current is not None and stack and stack[-1] == "VEVENT":
            current.setdefault(content.name, content)

    if not saw_calendar:
        raise ValidationError("ICS document has no VCALENDAR component", ["ics"])
    return events


def _text(props: dict[str, ContentLine], name: str) -> str:
    content = props.get(name)
    return unescape_text(content.value).strip() if content else ""


def parse_duration(value: str) -> timedelta:
    match = _DURATION_PATTERN.match(value.strip().upper())
    if not match or value.strip().upper() in ("P", "PT", "-P", "+P"):
        raise ValueError(f"invalid duration: {value!r}")
    parts = {key: int(amount) for key, amount in match.groupdict().items() if amount and key != "sign"}
    delta = timedelta(
        weeks=parts.get("weeks", 0),
        days=parts.get("days", 0),
        hours=parts.get("hours", 0),
        minutes=parts.get("minutes", 0),
        seconds=parts.get("seconds", 0),
    )
    return -delta if match.group("sign") == "-" else delta


def parse_datetime_value(content: ContentLine, fallback_tzid: str) -> tuple[datetime, bool]:
    """Resolve a DATE or DATE-TIME property to a UTC instant.

    Returns the instant and whether the value was a plain date. UTC values
    (``Z``) are absolute, ``TZID``-qualified values use that zone, and floating
    values are read as wall time in ``fallback_tzid``.
    """
    raw = content.value.strip()
    is_date = content.params.get("VALUE", "").upper() == "DATE" or len(raw) == 8
    if is_date:
        wall = datetime.strptime(raw[:8], "%Y%m%d")
    else:
        wall = datetime.strptime(raw.rstrip("Zz"), "%Y%m%dT%H%M%S")

    if not is_date and raw.upper().endswith("Z"):
        return wall.replace(tzinfo=timezone.utc), False
    zone_name = content.params.get("TZID") or fallback_tzid
    if zone_name.strip().lower() == FLOATING_TZID:
        zone_name = fallback_tzid
    return wall.replace(tzinfo=resolve_zone(zone_name)).astimezone(timezone.utc), is_date


def resolve_event_tzid(props: dict[str, ContentLine], default_tzid: str) -> str:
    """Native TZID of DTSTART, then the vendor extension, then the default."""
    dtstart = props.get("DTSTART")
    choices = [
        dtstart.params.get("TZID") if dtstart else None,
        _text(props, VENDOR_TZID_PROPERTY),
    ]
    for choice in choices:
        value = (choice or "").strip()
        if value and value.lower() != FLOATING_TZID and is_valid_tzid(value):
            return value
    return default_tzid


def event_to_candidate(props: dict[str, ContentLine], default_tzid: str) -> ImportedCandidate:
    """Map one VEVENT onto candidate fields; ValidationError when it can't."""
    tzid = resolve_event_tzid(props, default_tzid)
    payload: dict[str, object] = {
        "uid": _text(props, "UID"),
        "summary": _text(props, "SUMMARY"),
        "description": _text(props, "DESCRIPTION"),
        "location": _text(props, "LOCATION"),
        "status": _text(props, "STATUS") or "CONFIRMED",
        "tzid": tzid,
    }
    try:
        sequence = int(_text(props, "SEQUENCE") or 0)
        payload["sequence"] = sequence
        if "DTSTAMP" in props:
            payload["dtstamp"], _ = parse_datetime_value(props["DTSTAMP"], "UTC")
        if "DTSTART" in props:
            dtstart, is_date = parse_datetime_value(props["DTSTART"], tzid)
            payload["dtstart"] = dtstart
            if "DTEND" in props:
                payload["dtend"], _ = parse_datetime_value(props["DTEND"], tzid)
            elif "DURATION" in props:
                payload["dtend"] = dtstart + parse_duration(props["DURATION"].value)
            elif is_date:
                payload["dtend"] = dtstart + timedelta(days=1)
    except ValueError as exc:
        raise ValidationError(f"event has an unreadable value: {exc}", ["ics"]) from None
    return validate_payload(ImportedCandidate, payload, label="event")


# ---------------------------------------------------------------------------
# Import reconciliation
# ---------------------------------------------------------------------------


def reconcile_import(
    existing: Sequence[ScheduleCandidate],
    ics_text: str,
    default_tzid: str,
) -> ImportPreview:
    """Classify every importable event against ``existing`` by UID and DTSTAMP."""
    preview = ImportPreview()
    newest: dict[str, ImportedCandidate] = {}

    for props in parse_events(ics_text):
        uid = _text(props, "UID")
        if not uid:
            preview.skipped_no_uid += 1
            continue
        if not _text(props, "DTSTAMP"):
            preview.skipped_no_dtstamp += 1
            continue
        try:
            imported = event_to_candidate(props, default_tzid)
        except ValidationError as exc:
            logger.info(f"Skipping ICS event {uid}: {exc.message} {exc.fields}")
            preview.skipped_invalid += 1
            continue

        previous = newest.get(uid)
        if previous is not None:
            preview.skipped_duplicate += 1
            if imported.dtstamp <= previous.dtstamp:
                continue
        newest[uid] = imported

    by_uid = {candidate.uid: candidate for candidate in existing}
    for uid, imported in newest.items():
        match = by_uid.get(uid)
        if match is None:
            classification = "new"
        elif imported.dtstamp > match.dtstamp:
            classification = "update"
        else:
            classification = "older"
        preview.decisions.append(
            ImportDecision(
                uid=uid,
                classification=classification,
                selected=classification != "older",
                existing_candidate_id=match.id if match else None,
                existing_dtstamp=match.dtstamp if match else None,
                imported_dtstamp=imported.dtstamp,
                candidate=imported,
            )
        )
    return preview


def apply_import(
    existing: Sequence[ScheduleCandidate],
    entries: Sequence[ImportDecision],
    *,
    new_id: Callable[[], str],
    now: Optional[datetime] = None,
) -> tuple[list[ScheduleCandidate], int, int, int]:
    """Merge the selected entries into a copy of ``existing``.

    Returns ``(candidates, added, updated, skipped)``. Matches are made by UID
    at merge time; an update keeps the existing id and creation time.
    """
    now = now or utcnow()
    skipped = 0
    chosen: dict[str, ImportDecision] = {}
    for entry in entries:
        if not entry.selected:
            skipped += 1
            continue
        uid = entry.candidate.uid
        previous = chosen.get(uid)
        if previous is not None:
            skipped += 1
            if entry.candidate.dtstamp <= previous.candidate.dtstamp:
                continue
        chosen[uid] = entry

    result = list(existing)
    index_by_uid = {candidate.uid: index for index, candidate in enumerate(result)}
    added = updated = 0
    for uid, entry in chosen.items():
        fields = entry.candidate.model_dump(include=IMPORTED_FIELDS)
        index = index_by_uid.get(uid)
        if index is not None:
            current = result[index]
            # A published SEQUENCE never goes backwards
            fields["sequence"] = max(current.sequence, fields["sequence"])
            result[index] = current.model_copy(
                update={**fields, "updated_at": now, "version": current.version + 1}
            )
            updated += 1
        else:
            result.append(
                ScheduleCandidate(id=new_id(), created_at=now, updated_at=now, version=1, **fields)
            )
            index_by_uid[uid] = len(result) - 1
            added += 1
    return result, added, updated, skipped
