"""Calendar export and two-phase import."""

from datetime import datetime, timedelta, timezone

import pytest

from scheduly.core.errors import ValidationError
from scheduly.services import ics

PROJECT_ID = "proj_test"
STAMP = datetime(2025, 4, 1, 0, 0, tzinfo=timezone.utc)


def calendar(*events: list[str]) -> str:
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Other//Tool//EN"]
    for event in events:
        lines.extend(["BEGIN:VEVENT", *event, "END:VEVENT"])
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


def event(uid: str = "ext-1", dtstamp: str = "20250401T000000Z", **props: str) -> list[str]:
    lines = []
    if uid:
        lines.append(f"UID:{uid}")
    if dtstamp:
        lines.append(f"DTSTAMP:{dtstamp}")
    fields = {
        "DTSTART": "20250510T010000Z",
        "DTEND": "20250510T020000Z",
        "SUMMARY": "External meeting",
    }
    fields.update(props)
    lines.extend(f"{name}:{value}" for name, value in fields.items() if value is not None)
    return lines


class TestSerialization:
    def test_document_shape(self, store, seeded):
        text = ics.serialize_candidates(
            seeded["candidates"], prodid="-//Scheduly//Test//EN", default_tzid="Asia/Tokyo", dtstamp=STAMP
        )
        lines = text.split("\r\n")
        assert text.endswith("END:VCALENDAR\r\n")
        assert lines[:5] == [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            "PRODID:-//Scheduly//Test//EN",
            "CALSCALE:GREGORIAN",
            "METHOD:PUBLISH",
        ]
        assert lines.count("BEGIN:VEVENT") == 2
        assert lines.count("DTSTAMP:20250401T000000Z") == 2
        assert "UID:uid-c1" in lines
        assert "DTSTART:20250501T010000Z" in lines
        assert "DTEND:20250501T020000Z" in lines
        assert "X-SCHEDULY-TZID:Asia/Tokyo" in lines
        assert "STATUS:TENTATIVE" in lines

    def test_text_escaping(self):
        assert ics.escape_text("a\\b, c; d\r\ne\nf") == "a\\\\b\\, c\\; d\\ne\\nf"
        assert ics.unescape_text("a\\\\b\\, c\\; d\\ne\\Nf") == "a\\b, c; d\ne\nf"

    def test_long_lines_fold_at_75_octets(self):
        line = "DESCRIPTION:" + "会議の議題について" * 20
        folded = ics.fold_line(line)
        assert len(folded) > 1
        assert all(len(part.encode("utf-8")) <= 75 for part in folded)
        assert all(part.startswith(" ") for part in folded[1:])
        assert ics.unfold_lines("\r\n".join(folded)) == [line]

    def test_short_lines_are_untouched(self):
        assert ics.fold_line("SUMMARY:Kickoff") == ["SUMMARY:Kickoff"]

    def test_round_trip(self, store, candidate_payload):
        store.create_candidate(
            PROJECT_ID,
            candidate_payload(
                id="c9",
                summary="Lunch, then review; bring notes",
                description="Line one\nLine two with a backslash \\ and" + " a long tail" * 8,
                location="Osaka; 3F",
                status="CONFIRMED",
                tzid="Europe/Berlin",
                dtstart="2025-06-01T12:00:00+02:00",
                dtend="2025-06-01T13:30:00+02:00",
            ),
        )
        original = store.get_snapshot(PROJECT_ID).candidates[0]
        text = ics.serialize_candidates([original], prodid="-//T//EN", default_tzid="Asia/Tokyo")

        preview = ics.reconcile_import([], text, "Asia/Tokyo")

        assert len(preview.decisions) == 1
        parsed = preview.decisions[0].candidate
        assert parsed.uid == original.uid
        for name in ("summary", "description", "location", "status", "tzid", "dtstart", "dtend"):
            assert getattr(parsed, name) == getattr(original, name)


class TestStoreExport:
    def test_export_bumps_sequence_each_time(self, store, seeded):
        before = store.get_snapshot(PROJECT_ID).versions.candidates_version
        first = store.export_ics(PROJECT_ID)
        second = store.export_ics(PROJECT_ID)

        assert first.count("SEQUENCE:1") == 2
        assert second.count("SEQUENCE:2") == 2
        snapshot = store.get_snapshot(PROJECT_ID)
        assert [c.sequence for c in snapshot.candidates] == [2, 2]
        assert [c.version for c in snapshot.candidates] == [1, 1]
        assert snapshot.versions.candidates_version == before + 2

    def test_export_single_candidate(self, store, seeded):
        text = store.export_ics(PROJECT_ID, "c2")
        assert "UID:uid-c2" in text
        assert "UID:uid-c1" not in text
        sequences = {c.id: c.sequence for c in store.get_snapshot(PROJECT_ID).candidates}
        assert sequences == {"c1": 0, "c2": 1}


class TestReconcile:
    def test_missing_calendar(self):
        with pytest.raises(ValidationError) as excinfo:
            ics.reconcile_import([], "BEGIN:VEVENT\r\nUID:x\r\nEND:VEVENT\r\n", "Asia/Tokyo")
        assert excinfo.value.fields == ["ics"]

    def test_skip_counters(self):
        text = calendar(
            event(uid=""),
            event(uid="no-stamp", dtstamp=""),
            event(uid="bad-range", DTEND="20250510T000000Z"),
            event(uid="ok"),
        )
        preview = ics.reconcile_import([], text, "Asia/Tokyo")
        assert [d.uid for d in preview.decisions] == ["ok"]
        assert (preview.skipped_no_uid, preview.skipped_no_dtstamp, preview.skipped_invalid) == (1, 1, 1)
        assert preview.skipped_total == 3

    def test_classification(self, store, seeded):
        existing = store.get_snapshot(PROJECT_ID).candidates
        newer = (existing[0].dtstamp + timedelta(days=1)).strftime("%Y%m%dT%H%M%SZ")
        text = calendar(
            event(uid="uid-c1", dtstamp=newer, SUMMARY="Kickoff (updated elsewhere)"),
            event(uid="uid-c2", dtstamp="20000101T000000Z"),
            event(uid="brand-new"),
        )

        preview = ics.reconcile_import(existing, text, "Asia/Tokyo")

        decisions = {d.uid: d for d in preview.decisions}
        assert decisions["uid-c1"].classification == "update"
        assert decisions["uid-c1"].selected is True
        assert decisions["uid-c1"].existing_candidate_id == "c1"
        assert decisions["uid-c2"].classification == "older"
        assert decisions["uid-c2"].selected is False
        assert decisions["brand-new"].classification == "new"
        assert decisions["brand-new"].existing_candidate_id is None

    def test_equal_stamp_is_not_an_update(self, store, seeded):
        current = store.get_snapshot(PROJECT_ID).candidates[0].model_copy(update={"dtstamp": STAMP})
        preview = ics.reconcile_import([current], calendar(event(uid="uid-c1", dtstamp="20250401T000000Z")), "Asia/Tokyo")
        assert preview.decisions[0].classification == "older"
        assert preview.decisions[0].selected is False

    def test_duplicates_keep_newest_stamp(self, store, seeded):
        existing = store.get_snapshot(PROJECT_ID).candidates
        text = calendar(
            event(uid="uid-c1", dtstamp="20990101T000000Z", SUMMARY="Newer copy"),
            event(uid="uid-c1", dtstamp="20000101T000000Z", SUMMARY="Older copy"),
        )

        preview = ics.reconcile_import(existing, text, "Asia/Tokyo")

        assert len(preview.decisions) == 1
        decision = preview.decisions[0]
        assert decision.classification == "update"
        assert decision.candidate.summary == "Newer copy"
        assert preview.skipped_duplicate == 1

    def test_named_zone_parameter(self):
        text = calendar(
            event(
                DTSTART=None,
                DTEND=None,
                **{
                    "DTSTART;TZID=America/New_York": "20250501T090000",
                    "DTEND;TZID=America/New_York": "20250501T100000",
                },
            )
        )
        candidate = ics.reconcile_import([], text, "Asia/Tokyo").decisions[0].candidate
        assert candidate.tzid == "America/New_York"
        assert candidate.dtstart == datetime(2025, 5, 1, 13, 0, tzinfo=timezone.utc)

    def test_vendor_zone_and_floating_times(self):
        text = calendar(
            event(
                DTSTART="20250501T090000",
                DTEND="20250501T100000",
                **{"X-SCHEDULY-TZID": "Europe/Berlin"},
            )
        )
        candidate = ics.reconcile_import([], text, "Asia/Tokyo").decisions[0].candidate
        assert candidate.tzid == "Europe/Berlin"
        assert candidate.dtstart == datetime(2025, 5, 1, 7, 0, tzinfo=timezone.utc)

    def test_floating_zone_means_default(self):
        text = calendar(
            event(
                DTSTART="20250501T090000",
                DTEND="20250501T100000",
                **{"X-SCHEDULY-TZID": "floating"},
            )
        )
        candidate = ics.reconcile_import([], text, "Asia/Tokyo").decisions[0].candidate
        assert candidate.tzid == "Asia/Tokyo"
        assert candidate.dtstart == datetime(2025, 5, 1, 0, 0, tzinfo=timezone.utc)

    def test_all_day_event_without_end(self):
        text = calendar(event(DTSTART=None, DTEND=None, **{"DTSTART;VALUE=DATE": "20250501"}))
        candidate = ics.reconcile_import([], text, "Asia/Tokyo").decisions[0].candidate
        assert candidate.dtend - candidate.dtstart == timedelta(days=1)
        assert candidate.dtstart == datetime(2025, 4, 30, 15, 0, tzinfo=timezone.utc)

    def test_duration(self):
        text = calendar(event(DTEND=None, DURATION="PT1H30M"))
        candidate = ics.reconcile_import([], text, "Asia/Tokyo").decisions[0].candidate
        assert candidate.dtend - candidate.dtstart == timedelta(minutes=90)

    def test_nested_alarm_does_not_leak(self):
        text = calendar(event(SUMMARY="Standup") + ["BEGIN:VALARM", "DESCRIPTION:Reminder", "END:VALARM"])
        candidate = ics.reconcile_import([], text, "Asia/Tokyo").decisions[0].candidate
        assert candidate.summary == "Standup"
        assert candidate.description == ""

    def test_preview_does_not_mutate(self, store, seeded):
        before = store.get_snapshot(PROJECT_ID)
        store.preview_ics_import(PROJECT_ID, calendar(event(uid="uid-c1", dtstamp="20990101T000000Z")))
        after = store.get_snapshot(PROJECT_ID)
        assert after.versions == before.versions
        assert after.candidates == before.candidates


class TestCommit:
    def test_applies_selected_entries(self, store, seeded):
        text = calendar(
            event(uid="uid-c1", dtstamp="20990101T000000Z", SUMMARY="Kickoff (moved)"),
            event(uid="uid-c2", dtstamp="20000101T000000Z", SUMMARY="Stale review"),
            event(uid="brand-new", SUMMARY="Retro"),
        )
        preview = store.preview_ics_import(PROJECT_ID, text)
        before = store.get_snapshot(PROJECT_ID)

        result = store.commit_ics_import(PROJECT_ID, {"entries": [d.model_dump() for d in preview.decisions]})

        assert (result.added, result.updated, result.skipped) == (1, 1, 1)
        by_uid = {c.uid: c for c in result.candidates}
        updated = by_uid["uid-c1"]
        original = next(c for c in before.candidates if c.id == "c1")
        assert updated.id == "c1"
        assert updated.summary == "Kickoff (moved)"
        assert updated.version == original.version + 1
        assert updated.created_at == original.created_at
        assert by_uid["uid-c2"].summary == "Review"
        assert by_uid["brand-new"].id.startswith("cand_")
        assert result.versions.candidates_list_version == before.versions.candidates_list_version + 1

    def test_older_entry_applies_when_selected(self, store, seeded):
        preview = store.preview_ics_import(
            PROJECT_ID, calendar(event(uid="uid-c2", dtstamp="20000101T000000Z", SUMMARY="Restored"))
        )
        entries = [d.model_copy(update={"selected": True}) for d in preview.decisions]

        result = store.commit_ics_import(PROJECT_ID, entries)

        assert result.updated == 1
        assert next(c for c in result.candidates if c.id == "c2").summary == "Restored"

    def test_update_keeps_the_higher_sequence(self, store, seeded):
        store.export_ics(PROJECT_ID, "c1")
        store.export_ics(PROJECT_ID, "c1")
        text = calendar(
            event(uid="uid-c1", dtstamp="20990101T000000Z", SEQUENCE="0", SUMMARY="Edited elsewhere"),
            event(uid="uid-c2", dtstamp="20990101T000000Z", SEQUENCE="7"),
        )
        preview = store.preview_ics_import(PROJECT_ID, text)

        result = store.commit_ics_import(PROJECT_ID, preview.decisions)

        sequences = {c.id: c.sequence for c in result.candidates}
        assert sequences == {"c1": 2, "c2": 7}
        assert "SEQUENCE:3" in store.export_ics(PROJECT_ID, "c1")

    def test_invalid_entry_rejects_whole_commit(self, store, seeded):
        preview = store.preview_ics_import(PROJECT_ID, calendar(event(uid="brand-new")))
        good = preview.decisions[0].model_dump(mode="json")
        bad = dict(good, uid="other")
        bad["candidate"] = dict(good["candidate"], uid="other", dtend=good["candidate"]["dtstart"])

        with pytest.raises(ValidationError):
            store.commit_ics_import(PROJECT_ID, {"entries": [good, bad]})
        assert len(store.get_snapshot(PROJECT_ID).candidates) == 2
