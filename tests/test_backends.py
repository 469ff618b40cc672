"""Tests for storage backends, the backup ring and filesystem safety helpers."""

import json
import os
import stat
import sys

import pytest

from checkin_tracker.backends import FileStorage, MemoryStorage
from checkin_tracker.backups import BackupRing
from checkin_tracker.errors import StorageError
from checkin_tracker.security import (
    RedactionLevel,
    check_output_permissions,
    is_symlink_or_hardlink_attack,
    redact_secret,
)


class TestMemoryStorage:
    def test_basic(self):
        s = MemoryStorage()
        assert s.get_item("k") is None
        s.set_item("k", "v")
        assert s.get_item("k") == "v"
        assert s.keys() == ["k"]
        s.remove_item("k")
        s.remove_item("k")
        assert s.get_item("k") is None

    def test_quota(self):
        s = MemoryStorage(quota_bytes=10)
        s.set_item("k", "12345")
        with pytest.raises(StorageError, match="quota"):
            s.set_item("k2", "123456")
        assert s.get_item("k2") is None

    def test_overwrite_counts_replaced_value(self):
        s = MemoryStorage(quota_bytes=10)
        s.set_item("k", "123456789")
        s.set_item("k", "987654321")
        assert s.get_item("k") == "987654321"

    def test_values_must_be_strings(self):
        with pytest.raises(StorageError):
            MemoryStorage().set_item("k", {"a": 1})  # type: ignore[arg-type]

    def test_clear_and_size(self):
        s = MemoryStorage()
        s.set_item("ab", "cd")
        assert s.size_bytes() == 4
        s.clear()
        assert s.keys() == []


class TestFileStorage:
    def test_round_trip(self, tmp_path):
        s = FileStorage(tmp_path / "data")
        s.set_item("accc-dashboard-state", '{"a": 1}')
        assert s.get_item("accc-dashboard-state") == '{"a": 1}'
        assert s.keys() == ["accc-dashboard-state"]
        assert (tmp_path / "data" / "accc-dashboard-state.json").exists()

    def test_missing_key(self, tmp_path):
        assert FileStorage(tmp_path).get_item("nothing") is None

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_mode_0600(self, tmp_path):
        s = FileStorage(tmp_path)
        s.set_item("k", "v")
        mode = stat.S_IMODE(os.stat(tmp_path / "k.json").st_mode)
        assert mode == 0o600

    def test_unsafe_key_rejected(self, tmp_path):
        with pytest.raises(StorageError):
            FileStorage(tmp_path).set_item("../escape", "v")

    def test_refuses_symlink(self, tmp_path):
        target = tmp_path / "elsewhere.txt"
        target.write_text("original")
        (tmp_path / "k.json").symlink_to(target)
        with pytest.raises(StorageError, match="link"):
            FileStorage(tmp_path).set_item("k", "v")
        assert target.read_text() == "original"

    def test_remove(self, tmp_path):
        s = FileStorage(tmp_path)
        s.set_item("k", "v")
        s.remove_item("k")
        s.remove_item("k")
        assert s.get_item("k") is None

    def test_no_temp_files_left(self, tmp_path):
        s = FileStorage(tmp_path)
        for i in range(3):
            s.set_item("k", str(i))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["k.json"]


class TestBackupRing:
    def test_newest_first_and_bounded(self):
        ring = BackupRing(MemoryStorage(), max_size=2)
        for i in range(4):
            assert ring.push({"n": i}, version=f"1.{i}", timestamp=f"t{i}")
        assert len(ring) == 2
        assert [b.data["n"] for b in ring.entries()] == [3, 2]
        assert ring.get(0).version == "1.3"
        assert ring.get(2) is None
        assert ring.get(-1) is None

    def test_corrupt_ring_reads_empty(self):
        storage = MemoryStorage()
        storage.set_item("accc-backups", "{not json")
        ring = BackupRing(storage)
        assert ring.entries() == []
        assert ring.push({"a": 1}, "1.0.0", "t")
        assert len(ring) == 1

    def test_push_failure_returns_false(self):
        ring = BackupRing(MemoryStorage(quota_bytes=20))
        assert ring.push({"big": "x" * 100}, "1.0.0", "t") is False

    def test_clear(self):
        storage = MemoryStorage()
        ring = BackupRing(storage)
        ring.push({}, "1", "t")
        ring.clear()
        assert storage.get_item("accc-backups") is None

    def test_persisted_shape(self):
        storage = MemoryStorage()
        BackupRing(storage).push({"a": 1}, "2.0.0", "2025-01-01T00:00:00")
        assert json.loads(storage.get_item("accc-backups")) == [
            {"data": {"a": 1}, "timestamp": "2025-01-01T00:00:00", "version": "2.0.0"},
        ]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            BackupRing(MemoryStorage(), max_size=0)


class TestSecurity:
    def test_symlink_detected(self, tmp_path):
        target = tmp_path / "t"
        target.write_text("x")
        link = tmp_path / "l"
        link.symlink_to(target)
        assert is_symlink_or_hardlink_attack(link)
        assert not is_symlink_or_hardlink_attack(target)

    def test_hardlink_detected(self, tmp_path):
        target = tmp_path / "t"
        target.write_text("x")
        os.link(target, tmp_path / "h")
        assert is_symlink_or_hardlink_attack(target)

    def test_missing_path_is_safe(self, tmp_path):
        assert not is_symlink_or_hardlink_attack(tmp_path / "nope")

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_world_readable_refused_unless_forced(self, tmp_path):
        out = tmp_path / "export.json"
        out.write_text("{}")
        os.chmod(out, 0o644)
        assert not check_output_permissions(out)
        assert check_output_permissions(out, force=True)
        os.chmod(out, 0o600)
        assert check_output_permissions(out)

    @pytest.mark.parametrize("secret,level,expected", [
        ("", RedactionLevel.PARTIAL, ""),
        ("short", RedactionLevel.PARTIAL, "*****"),
        ("hunter2hunter2", RedactionLevel.PARTIAL, "hu...r2"),
        ("hunter2hunter2", RedactionLevel.FULL, "[REDACTED]"),
        ({"algorithm": "AES-GCM"}, RedactionLevel.FULL, "[encrypted]"),
    ])
    def test_redact(self, secret, level, expected):
        assert redact_secret(secret, level) == expected

    def test_redact_hash(self):
        out = redact_secret("hunter2hunter2", RedactionLevel.HASH)
        assert out.startswith("[sha256:") and "hunter2" not in out
