"""Input schemas and the payload validation helpers in front of the store."""

from datetime import datetime, timezone

import pytest

from scheduly.core.errors import ValidationError
from scheduly.models import Participant
from scheduly.schemas import CandidateInput, CandidateUpdate, ParticipantCreate, ParticipantPatch
from scheduly.services.validation import (
    collect_error_fields,
    ensure_unique_display_name,
    validate_payload,
)


class TestCandidateInput:
    def test_naive_times_are_read_in_candidate_zone(self):
        data = CandidateInput(
            summary="Kickoff",
            tzid="Asia/Tokyo",
            dtstart=datetime(2025, 5, 1, 10, 0),
            dtend=datetime(2025, 5, 1, 11, 0),
        )
        assert data.dtstart == datetime(2025, 5, 1, 1, 0, tzinfo=timezone.utc)
        assert data.dtend == datetime(2025, 5, 1, 2, 0, tzinfo=timezone.utc)

    def test_private_zone_falls_back_to_utc(self):
        data = CandidateInput(
            summary="Kickoff",
            tzid="X-SCHEDULY-LOCAL",
            dtstart=datetime(2025, 5, 1, 10, 0),
            dtend=datetime(2025, 5, 1, 11, 0),
        )
        assert data.dtstart == datetime(2025, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_defaults(self):
        data = CandidateInput(
            summary="  Kickoff  ",
            dtstart="2025-05-01T10:00:00Z",
            dtend="2025-05-01T11:00:00Z",
            status="confirmed",
            description=None,
        )
        assert data.summary == "Kickoff"
        assert data.status == "CONFIRMED"
        assert data.description == ""
        assert data.tzid == "Asia/Tokyo"

    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(
                CandidateInput,
                {"summary": "x", "dtstart": "2025-05-01T10:00:00Z", "dtend": "2025-05-01T10:00:00Z"},
                label="candidate",
            )
        assert excinfo.value.fields == ["dtend"]
        assert excinfo.value.status_code == 422

    def test_rejects_malformed_zone(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(
                CandidateInput,
                {"summary": "x", "tzid": "Tokyo", "dtstart": "2025-05-01T10:00:00Z", "dtend": "2025-05-01T11:00:00Z"},
                label="candidate",
            )
        assert excinfo.value.fields == ["tzid"]

    def test_rejects_unknown_status(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(
                CandidateInput,
                {"summary": "x", "status": "maybe", "dtstart": "2025-05-01T10:00:00Z", "dtend": "2025-05-01T11:00:00Z"},
                label="candidate",
            )
        assert excinfo.value.fields == ["status"]


class TestValidatePayload:
    def test_missing_version_is_reported_as_version_field(self, candidate_payload):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(CandidateUpdate, {"candidate": candidate_payload()}, label="candidate")
        assert excinfo.value.fields == ["version"]

    @pytest.mark.parametrize("version", [0, -1, "3", True, 2.0])
    def test_version_must_be_a_positive_integer(self, candidate_payload, version):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(CandidateUpdate, {"candidate": candidate_payload(), "version": version}, label="candidate")
        assert excinfo.value.fields == ["version"]

    def test_non_mapping_payload(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(CandidateInput, None, label="candidate")
        assert excinfo.value.fields == ["candidate"]

    def test_instances_pass_through(self):
        data = ParticipantCreate(display_name="Sato")
        assert validate_payload(ParticipantCreate, data, label="participant") is data

    def test_collect_error_fields_skips_body_and_dedupes(self):
        errors = [
            {"loc": ("body", "candidate", "summary")},
            {"loc": ("body", "candidate", "summary")},
            {"loc": ("body", "version")},
            {"loc": ()},
        ]
        assert collect_error_fields(errors, fallback="payload") == ["summary", "version", "payload"]


class TestParticipantSchemas:
    def test_blank_email_becomes_none(self):
        assert ParticipantCreate(display_name="Sato", email="  ").email is None

    def test_invalid_email(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(ParticipantCreate, {"display_name": "Sato", "email": "not-an-email"}, label="participant")
        assert excinfo.value.fields == ["email"]

    def test_display_name_required(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(ParticipantCreate, {"display_name": "   "}, label="participant")
        assert excinfo.value.fields == ["display_name"]

    def test_patch_rejects_explicit_null_name(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_payload(ParticipantPatch, {"display_name": None}, label="participant")
        assert excinfo.value.fields == ["display_name"]

    def test_patch_tracks_sent_fields(self):
        patch = ParticipantPatch(comment="late")
        assert patch.model_dump(exclude_unset=True) == {"comment": "late"}


class TestDisplayNameUniqueness:
    def _participants(self):
        return [
            Participant(id="p1", display_name="Sato", token="t1"),
            Participant(id="p2", display_name="Suzuki", token="t2"),
        ]

    def test_case_insensitive_clash(self):
        with pytest.raises(ValidationError) as excinfo:
            ensure_unique_display_name(self._participants(), "SATO")
        assert excinfo.value.fields == ["display_name"]

    def test_excludes_entity_being_updated(self):
        ensure_unique_display_name(self._participants(), "sato", exclude_id="p1")
