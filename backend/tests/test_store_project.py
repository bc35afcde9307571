"""Project meta, snapshots and share tokens."""

import string

import pytest

from scheduly.core.errors import ConflictError, NotFoundError, ValidationError
from scheduly.services import share_tokens

PROJECT_ID = "proj_test"


class TestProjectMeta:
    def test_first_reference_creates_empty_project(self, store):
        snapshot = store.get_snapshot("fresh")
        assert snapshot.project_id == "fresh"
        assert snapshot.project.default_tzid == "Asia/Tokyo"
        assert snapshot.candidates == []
        versions = snapshot.versions
        assert (versions.meta_version, versions.candidates_version, versions.share_tokens_version) == (1, 0, 1)
        assert versions.responses_version == 0

    def test_create_project(self, store):
        snapshot = store.create_project({"meta": {"name": "Offsite", "default_tzid": "Europe/Berlin"}})
        assert snapshot.project_id.startswith("proj_")
        assert snapshot.project.name == "Offsite"
        assert snapshot.project.default_tzid == "Europe/Berlin"
        assert [p.project_id for p in store.list_projects()] == [snapshot.project_id]

    def test_create_project_requires_name(self, store):
        with pytest.raises(ValidationError) as excinfo:
            store.create_project({"meta": {"name": ""}})
        assert excinfo.value.fields == ["name"]

    def test_update_meta(self, store):
        result = store.update_meta(PROJECT_ID, {"meta": {"name": "Team sync", "description": "Q3"}, "version": 1})
        assert result.version == 2
        assert result.meta.name == "Team sync"
        assert store.get_snapshot(PROJECT_ID).versions.meta_version == 2

    def test_update_meta_conflict(self, store):
        store.update_meta(PROJECT_ID, {"meta": {"name": "Team sync"}, "version": 1})
        with pytest.raises(ConflictError) as excinfo:
            store.update_meta(PROJECT_ID, {"meta": {"name": "Other"}, "version": 1})
        assert excinfo.value.entity == "meta"
        assert excinfo.value.latest["version"] == 2
        assert excinfo.value.latest["meta"]["name"] == "Team sync"

    def test_update_meta_validation_first(self, store):
        with pytest.raises(ValidationError) as excinfo:
            store.update_meta(PROJECT_ID, {"meta": {"name": "x", "default_tzid": "nowhere"}, "version": 7})
        assert excinfo.value.fields == ["default_tzid"]


class TestSnapshotTransfer:
    def test_export_then_import_into_other_project(self, store, seeded):
        store.upsert_response(PROJECT_ID, {"participant_id": "p1", "candidate_id": "c1", "mark": "o"})
        store.update_meta(PROJECT_ID, {"meta": {"name": "Original"}, "version": 1})
        exported = store.export_snapshot(PROJECT_ID)

        restored = store.import_snapshot("proj_copy", {"snapshot": exported, "version": 1})

        assert restored.project.name == "Original"
        assert [c.id for c in restored.candidates] == ["c1", "c2"]
        assert [p.display_name for p in restored.participants] == ["Sato", "Suzuki"]
        assert len(restored.responses) == 1
        assert restored.participants[0].token == exported["participants"][0]["token"]
        assert restored.versions.meta_version == 2
        assert restored.versions.candidates_version == 1

    def test_invalid_and_dangling_items_are_dropped(self, store, seeded):
        exported = store.export_snapshot(PROJECT_ID)
        exported["candidates"][1]["dtend"] = exported["candidates"][1]["dtstart"]
        exported["participants"].append({"display_name": "sato"})
        exported["responses"] = [
            {"participant_id": "p1", "candidate_id": "c1", "mark": "o"},
            {"participant_id": "p1", "candidate_id": "c2", "mark": "o"},
            {"participant_id": "ghost", "candidate_id": "c1", "mark": "x"},
            {"participant_id": "p2", "candidate_id": "c1", "mark": "maybe"},
        ]

        restored = store.import_snapshot(PROJECT_ID, {"snapshot": exported, "version": 1})

        assert [c.id for c in restored.candidates] == ["c1"]
        assert [p.id for p in restored.participants] == ["p1", "p2"]
        assert [(r.participant_id, r.candidate_id) for r in restored.responses] == [("p1", "c1")]

    def test_import_replaces_state_and_bumps_every_counter(self, store, seeded):
        before = store.get_snapshot(PROJECT_ID).versions
        restored = store.import_snapshot(PROJECT_ID, {"snapshot": {"candidates": []}, "version": 1})
        assert restored.candidates == []
        assert restored.participants == []
        for name, value in before.model_dump().items():
            assert getattr(restored.versions, name) == value + 1

    def test_import_is_gated_on_meta_version(self, store, seeded):
        with pytest.raises(ConflictError):
            store.import_snapshot(PROJECT_ID, {"snapshot": {}, "version": 3})
        assert len(store.get_snapshot(PROJECT_ID).candidates) == 2


class TestShareTokens:
    def test_generate_creates_both_entries(self, store):
        result = store.generate_share_tokens(PROJECT_ID)
        admin = result.share_tokens.admin
        participant = result.share_tokens.participant
        assert result.version == 2
        assert len(admin.token) == 32
        assert set(admin.token) <= set(string.ascii_letters + string.digits)
        assert admin.url == f"https://scheduly.test/a/{admin.token}"
        assert participant.url == f"https://scheduly.test/p/{participant.token}"
        assert admin.token != participant.token

    def test_generate_is_idempotent(self, store):
        first = store.generate_share_tokens(PROJECT_ID)
        second = store.generate_share_tokens(PROJECT_ID)
        assert second.version == first.version
        assert second.share_tokens.admin.token == first.share_tokens.admin.token

    def test_generate_reapplies_base_url(self, store):
        first = store.generate_share_tokens(PROJECT_ID)
        second = store.generate_share_tokens(
            PROJECT_ID, {"base_url": "https://meet.example.org/app/?utm=1#top"}
        )
        token = first.share_tokens.participant.token
        assert second.version == first.version + 1
        assert second.share_tokens.participant.token == token
        assert second.share_tokens.participant.url == f"https://meet.example.org/app/p/{token}"

    def test_bad_base_url_falls_back_to_default(self, store):
        result = store.generate_share_tokens(PROJECT_ID, {"base_url": "javascript:alert(1)"})
        assert result.share_tokens.admin.url.startswith("https://scheduly.test/a/")

    def test_placeholder_tokens_are_replaced(self, store):
        store.import_snapshot(
            PROJECT_ID,
            {
                "snapshot": {"share_tokens": {"admin": {"token": "demo-admin", "url": "https://x/a/demo-admin"}}},
                "version": 1,
            },
        )
        result = store.generate_share_tokens(PROJECT_ID)
        assert not share_tokens.is_placeholder_token(result.share_tokens.admin.token)

    def test_rotate_replaces_both(self, store):
        first = store.generate_share_tokens(PROJECT_ID)
        rotated = store.rotate_share_tokens(PROJECT_ID, {"version": first.version, "rotated_by": "organizer"})
        assert rotated.version == first.version + 1
        assert rotated.share_tokens.admin.token != first.share_tokens.admin.token
        assert rotated.share_tokens.participant.last_generated_by == "organizer"

    def test_rotate_stale_version(self, store):
        store.generate_share_tokens(PROJECT_ID)
        with pytest.raises(ConflictError) as excinfo:
            store.rotate_share_tokens(PROJECT_ID, {"version": 1})
        assert excinfo.value.entity == "share_tokens"
        assert excinfo.value.latest["version"] == 2

    def test_invalidate_one_type(self, store):
        generated = store.generate_share_tokens(PROJECT_ID)
        result = store.invalidate_share_token(PROJECT_ID, "admin", {"version": generated.version})
        assert result.share_tokens.admin is None
        assert result.share_tokens.participant.token == generated.share_tokens.participant.token
        assert result.version == generated.version + 1

        with pytest.raises(NotFoundError):
            store.invalidate_share_token(PROJECT_ID, "admin", {"version": result.version})

    def test_invalidate_unknown_type(self, store):
        with pytest.raises(ValidationError) as excinfo:
            store.invalidate_share_token(PROJECT_ID, "owner", {"version": 1})
        assert excinfo.value.fields == ["token_type"]

    def test_resolve(self, store):
        generated = store.generate_share_tokens(PROJECT_ID)
        lookup = store.resolve_share_token(generated.share_tokens.participant.token)
        assert (lookup.project_id, lookup.token_type) == (PROJECT_ID, "participant")

        store.invalidate_share_token(PROJECT_ID, "participant", {"version": generated.version})
        with pytest.raises(NotFoundError):
            store.resolve_share_token(generated.share_tokens.participant.token)
