"""Tests for the Migrator: migrate, validate, repair and backups."""

import copy
from datetime import datetime, timezone

import pytest

from checkin_tracker.backends import MemoryStorage
from checkin_tracker.backups import BackupRing
from checkin_tracker.config import SCHEMA_VERSION
from checkin_tracker.migrator import Migrator


def _fixed():
    return datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def ring():
    return BackupRing(MemoryStorage(), max_size=3)


@pytest.fixture()
def migrator(ring):
    return Migrator(backups=ring, clock=_fixed)


LEGACY = {
    "sites": [{
        "id": "s1",
        "name": "Bank",
        "url": "https://bank.example",
        "credentials": [{"id": "c1", "email": "me@example.com"}],
    }],
    "categories": [{"id": "k1", "name": "Finance"}],
}


class TestMigrate:
    def test_unversioned_document_reaches_current(self, migrator):
        out = migrator.migrate(LEGACY)
        assert out["version"] == SCHEMA_VERSION
        assert out["lastReset"] == "2025-01-01"
        assert out["settings"]["theme"] == "auto"
        assert out["sites"][0]["metadata"]["importance"] == "normal"
        assert out["categories"][0]["order"] == 0
        assert out["analytics"]["lastCheckIn"] is None

    def test_idempotent(self, migrator):
        once = migrator.migrate(LEGACY)
        assert migrator.migrate(once) == once

    def test_pure(self, migrator):
        snapshot = copy.deepcopy(LEGACY)
        migrator.migrate(LEGACY)
        assert LEGACY == snapshot

    def test_non_dict_returns_none(self, migrator):
        assert migrator.migrate(None) is None
        assert migrator.migrate([1, 2]) is None

    def test_never_lowers_version(self, migrator):
        future = {"version": "9.0.0", "sites": []}
        assert migrator.migrate(future)["version"] == "9.0.0"

    def test_partial_chain_from_middle(self, migrator):
        doc = {"version": "2.0.0", "sites": [], "categories": [{"name": "A"}], "analytics": {}}
        out = migrator.migrate(doc)
        assert out["version"] == SCHEMA_VERSION
        # 1.0.0 and 2.0.0 skipped: settings untouched
        assert "settings" not in out

    def test_steps_above_library_version_skipped(self, ring):
        old_library = Migrator(current_version="2.0.0", backups=ring, clock=_fixed)
        assert old_library.migrate({})["version"] == "2.0.0"

    def test_needs_migration(self, migrator):
        assert migrator.needs_migration({})
        assert migrator.needs_migration({"version": ""})
        assert migrator.needs_migration({"version": "2.0.0"})
        assert not migrator.needs_migration({"version": SCHEMA_VERSION})
        assert not migrator.needs_migration({"version": "3.0.0"})

    def test_document_version(self, migrator):
        assert migrator.document_version({}) == "0.0.0"
        assert migrator.document_version({"version": "1.2.3"}) == "1.2.3"


class TestValidate:
    def test_valid(self, migrator):
        result = migrator.validate(migrator.migrate(LEGACY))
        assert result.valid
        assert result.errors == []

    def test_not_a_dict(self, migrator):
        result = migrator.validate(None)
        assert not result.valid
        assert result.to_dict() == {"valid": False, "errors": ["Data is null or not an object"]}

    def test_collects_every_error(self, migrator):
        doc = {"sites": [{"id": "s1"}, {"name": "x", "url": "u", "credentials": "nope"}], "categories": "x"}
        errors = migrator.validate(doc).errors
        assert "Categories must be an array" in errors
        assert "Site 0 missing name" in errors
        assert "Site 0 missing URL" in errors
        assert "Site 0 credentials must be an array" in errors
        assert "Site 1 missing ID" in errors
        assert "Site 1 credentials must be an array" in errors

    def test_sites_not_a_list(self, migrator):
        assert "Sites must be an array" in migrator.validate({"sites": {}, "categories": []}).errors

    @pytest.mark.parametrize("doc,broken", [
        (None, True),
        ([], True),
        ({"sites": {}, "categories": []}, True),
        ({"sites": [], "categories": None}, True),
        ({"sites": [], "categories": []}, False),
        ({"sites": [{"id": "s2"}], "categories": []}, False),
    ])
    def test_structurally_broken(self, migrator, doc, broken):
        assert migrator.is_structurally_broken(doc) is broken


class TestRepair:
    def test_never_raises_on_garbage(self, migrator):
        for garbage in (None, 3, "x", [], {"sites": "nope", "settings": 1}):
            out = migrator.repair(garbage)
            assert out["version"] == "1.0.0" or isinstance(garbage, dict)
            assert isinstance(out["sites"], list)
            assert isinstance(out["analytics"], dict)

    def test_drops_untrusted_records(self, migrator):
        doc = {
            "version": "2.1.0",
            "sites": [
                {"name": "no id"},
                {"id": "s2", "name": "ok", "credentials": [{"id": "c1"}, {"id": "c2", "email": "e"}, "junk"]},
                {"id": "s3", "name": "no creds list", "credentials": {}},
            ],
        }
        out = migrator.repair(doc)
        assert [s["id"] for s in out["sites"]] == ["s2", "s3"]
        assert [c["id"] for c in out["sites"][0]["credentials"]] == ["c2"]
        assert out["sites"][1]["credentials"] == []
        assert out["version"] == "2.1.0"
        assert out["lastReset"] == "2025-01-01"

    def test_repaired_document_validates_structure(self, migrator):
        out = migrator.repair({"sites": [{"id": "s", "name": "n", "url": "u"}]})
        assert migrator.validate(out).valid


class TestBackups:
    def test_migrate_with_backup_snapshots_original(self, migrator, ring):
        migrator.migrate_with_backup(LEGACY)
        backups = migrator.get_backups()
        assert len(backups) == 1
        assert backups[0].data == LEGACY
        assert backups[0].version == "unknown"
        assert backups[0].timestamp.startswith("2025-01-01T09:00:00")

    def test_no_backup_when_current(self, migrator):
        migrator.migrate_with_backup({"version": SCHEMA_VERSION, "sites": []})
        assert migrator.get_backups() == []

    def test_ring_is_bounded_newest_first(self, migrator):
        for i in range(5):
            migrator.create_backup({"version": f"1.0.{i}"})
        versions = [b.version for b in migrator.get_backups()]
        assert versions == ["1.0.4", "1.0.3", "1.0.2"]

    def test_restore_backup(self, migrator):
        migrator.create_backup({"version": "1.0.0", "sites": [{"id": "a"}]})
        restored = migrator.restore_backup(0)
        assert restored == {"version": "1.0.0", "sites": [{"id": "a"}]}
        assert migrator.restore_backup(5) is None

    def test_without_ring(self):
        m = Migrator(clock=_fixed)
        assert m.create_backup({}) is False
        assert m.restore_backup() is None
        assert m.get_backups() == []
