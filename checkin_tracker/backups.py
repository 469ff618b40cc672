"""Bounded ring of pre-migration document snapshots, newest first.

The ring lives under a single storage key so it survives restarts and can be
used for manual rollback.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from checkin_tracker.backends import StorageBackend
from checkin_tracker.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backup:
    data: Any
    timestamp: str
    version: str

    def to_dict(self) -> dict:
        return {"data": self.data, "timestamp": self.timestamp, "version": self.version}


class BackupRing:
    """Persisted ring buffer of Backup entries with a size limit."""

    def __init__(self, storage: StorageBackend, key: str = "accc-backups", max_size: int = 5):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.storage = storage
        self.key = key
        self.max_size = max_size

    def _load(self) -> list[dict]:
        try:
            raw = self.storage.get_item(self.key)
        except StorageError as exc:
            logger.error("Cannot read backups: %s", exc)
            return []
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except ValueError:
            logger.warning("Backup ring is corrupt; treating it as empty")
            return []
        return [e for e in entries if isinstance(e, dict)] if isinstance(entries, list) else []

    def push(self, data: Any, version: str, timestamp: str) -> bool:
        """Prepend a snapshot, evicting the oldest beyond max_size."""
        entries = self._load()
        entries.insert(0, Backup(data=data, timestamp=timestamp, version=version or "unknown").to_dict())
        del entries[self.max_size:]
        try:
            self.storage.set_item(self.key, json.dumps(entries, ensure_ascii=False))
        except StorageError as exc:
            logger.error("Failed to create backup: %s", exc)
            return False
        return True

    def entries(self) -> list[Backup]:
        return [
            Backup(data=e.get("data"), timestamp=str(e.get("timestamp", "")), version=str(e.get("version", "unknown")))
            for e in self._load()
        ]

    def get(self, index: int = 0) -> Optional[Backup]:
        entries = self.entries()
        if 0 <= index < len(entries):
            return entries[index]
        return None

    def clear(self) -> None:
        try:
            self.storage.remove_item(self.key)
        except StorageError as exc:
            logger.error("Failed to clear backups: %s", exc)

    def __len__(self) -> int:
        return len(self._load())
