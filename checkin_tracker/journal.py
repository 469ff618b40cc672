"""Append-only activity journal.

One JSON line per store event (check-ins, site changes, imports, resets).
Entries are buffered and appended on ``flush()``; the file is rotated once it
passes MAX_SIZE.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ActivityJournal:
    """Structured journal with size rotation. Never records secrets."""

    MAX_SIZE = 5 * 1024 * 1024  # 5 MB

    def __init__(self, path: Optional[Path] = None):
        # path=None keeps entries in memory only
        self.path = path
        self._entries: list[dict] = []

    def log(
        self,
        event: str,
        site_id: str = "",
        credential_id: str = "",
        detail: str = "",
        count: int = 0,
    ) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "event": event,
        }
        if site_id:
            entry["site_id"] = site_id
        if credential_id:
            entry["credential_id"] = credential_id
        if count:
            entry["count"] = count
        if detail:
            entry["detail"] = detail
        self._entries.append(entry)

    def flush(self) -> None:
        """Append buffered entries to the journal file, rotating if oversized."""
        if not self._entries or self.path is None:
            return
        if self.path.is_symlink():
            self._entries.clear()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists() and self.path.stat().st_size > self.MAX_SIZE:
            rotated = self.path.with_suffix(".log.1")
            if rotated.exists():
                rotated.unlink()
            self.path.rename(rotated)
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            for entry in self._entries:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        self._entries.clear()

    def read(self, limit: Optional[int] = None) -> list[dict]:
        """Most recent persisted entries, newest last."""
        if self.path is None or not self.path.exists():
            return list(self._entries)
        lines = self.path.read_text(encoding="utf-8").splitlines()
        out = []
        for line in lines:
            try:
                out.append(json.loads(line))
            except ValueError:
                continue
        return out[-limit:] if limit else out

    @property
    def pending_count(self) -> int:
        return len(self._entries)
