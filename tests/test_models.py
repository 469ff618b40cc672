"""Tests for checkin_tracker.models."""

import json

from checkin_tracker.models import (
    Analytics,
    CheckInEntry,
    Credential,
    Document,
    Settings,
    Site,
)


class TestCredential:
    def test_from_dict_defaults(self):
        c = Credential.from_dict({"id": "c1", "email": "a@b.c"})
        assert c.label == ""
        assert c.checked_in_on is None
        assert c.check_in_history == []
        assert c.strength == "unknown"
        assert c.breached is False

    def test_wrong_types_fall_back(self):
        c = Credential.from_dict({"id": "c1", "email": 42, "checkInHistory": "nope", "breached": "yes"})
        assert c.email == ""
        assert c.check_in_history == []
        assert c.breached is False

    def test_encrypted_fields_preserved(self):
        sealed = {"salt": "x", "iv": "y", "data": "z", "algorithm": "AES-GCM"}
        c = Credential.from_dict({"id": "c1", "email": "a@b.c", "password": sealed})
        assert c.password == sealed
        assert c.to_dict()["password"] == sealed

    def test_legacy_string_history(self):
        c = Credential.from_dict({"id": "c1", "checkInHistory": ["2025-01-01T09:00:00"]})
        assert c.check_in_history == [CheckInEntry(timestamp="2025-01-01T09:00:00")]

    def test_is_checked_in_on_compares_date_only(self):
        c = Credential(id="c1", checked_in_on="2025-01-01T23:59:59.000+01:00")
        assert c.is_checked_in_on("2025-01-01")
        assert not c.is_checked_in_on("2025-01-02")
        assert not Credential(id="c2").is_checked_in_on("2025-01-01")

    def test_record_check_in_prepends_and_caps(self):
        c = Credential(id="c1")
        for i in range(5):
            c.record_check_in(f"2025-01-0{i + 1}T09:00:00", "test", cap=3)
        assert c.checked_in_on == "2025-01-05T09:00:00"
        assert [e.timestamp[:10] for e in c.check_in_history] == ["2025-01-05", "2025-01-04", "2025-01-03"]

    def test_custom_fields(self):
        c = Credential.from_dict({"id": "c1", "customFields": [
            {"id": "f1", "name": "PIN", "value": "1234"},
            {"id": "f2", "name": "Q", "type": "secret"},
            "junk",
        ]})
        assert [f.to_dict() for f in c.custom_fields] == [
            {"id": "f1", "name": "PIN", "value": "1234", "type": "text"},
            {"id": "f2", "name": "Q", "value": "", "type": "secret"},
        ]

    def test_to_dict_without_history(self):
        c = Credential(id="c1", check_in_history=[CheckInEntry("2025-01-01T09:00:00", "x")])
        assert c.to_dict(include_history=False)["checkInHistory"] == []


class TestSite:
    def test_tags_filtered_to_strings(self):
        s = Site.from_dict({"id": "s1", "name": "A", "url": "u", "tags": ["a", 1, None, "b"]})
        assert s.tags == ["a", "b"]

    def test_empty_category_is_none(self):
        assert Site.from_dict({"id": "s1", "category": ""}).category is None

    def test_find_credential(self):
        s = Site.from_dict({"id": "s1", "credentials": [{"id": "c1"}, {"id": "c2"}]})
        assert s.find_credential("c2").id == "c2"
        assert s.find_credential("missing") is None

    def test_canonical_key_order(self):
        d = Site(id="s1", name="A", url="https://a.example").to_dict()
        assert list(d) == [
            "id", "name", "url", "favicon", "category", "tags", "priority", "color",
            "notes", "credentials", "metadata", "createdAt", "updatedAt",
        ]


class TestAnalytics:
    def test_longest_clamped_to_current(self):
        a = Analytics.from_dict({"currentStreak": 4, "longestStreak": 2})
        assert a.longest_streak == 4

    def test_bools_are_not_counts(self):
        assert Analytics.from_dict({"totalCheckIns": True}).total_check_ins == 0


class TestSettings:
    def test_nested_defaults(self):
        s = Settings.from_dict({"notifications": {"staleDays": 3}})
        assert s.notifications.stale_days == 3
        assert s.notifications.reminder_time == "09:00"
        assert s.security.auto_lock_minutes == 15
        assert s.display.cards_per_row == "auto"

    def test_round_trip_keys(self):
        d = Settings().to_dict()
        assert d["viewMode"] == "grid"
        assert set(d["security"]) == {
            "masterPasswordEnabled", "autoLockMinutes", "clipboardClearSeconds", "requireAuthOnStart",
        }


class TestDocument:
    def test_missing_version_defaults(self):
        assert Document.from_dict({}).version == "0.0.0"

    def test_unknown_keys_dropped(self):
        doc = Document.from_dict({"version": "2.1.0", "lastReset": "2025-01-01", "junk": 1})
        assert "junk" not in doc.to_dict()

    def test_serialization_stable(self):
        raw = {
            "version": "2.1.0",
            "lastReset": "2025-01-01",
            "sites": [{"id": "s1", "name": "A", "url": "u", "credentials": [{"id": "c1", "email": "e"}]}],
        }
        first = json.dumps(Document.from_dict(raw).to_dict())
        second = json.dumps(Document.from_dict(json.loads(first)).to_dict())
        assert first == second

    def test_iter_credentials(self):
        doc = Document.from_dict({"sites": [
            {"id": "s1", "credentials": [{"id": "a"}, {"id": "b"}]},
            {"id": "s2", "credentials": []},
            {"id": "s3", "credentials": [{"id": "c"}]},
        ]})
        assert [(s.id, c.id) for s, c in doc.iter_credentials()] == [("s1", "a"), ("s1", "b"), ("s3", "c")]
