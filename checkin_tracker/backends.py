"""Key/value storage backends with browser localStorage semantics.

A backend stores opaque strings under string keys. Failures (quota, disk,
permissions) surface as StorageError; the store decides how to degrade.
"""

from __future__ import annotations

import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from checkin_tracker.errors import StorageError
from checkin_tracker.security import is_symlink_or_hardlink_attack

_SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class StorageBackend(ABC):
    """Minimal localStorage-like interface."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...

    def clear(self) -> None:
        for key in self.keys():
            self.remove_item(key)

    def size_bytes(self) -> int:
        total = 0
        for key in self.keys():
            total += len(key) + len(self.get_item(key) or "")
        return total


class MemoryStorage(StorageBackend):
    """In-process storage. ``quota_bytes`` mimics a browser's storage quota."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value for {key!r} must be a string")
        if self.quota_bytes is not None:
            used = self.size_bytes()
            if key in self._items:
                used -= len(key) + len(self._items[key])
            if used + len(key) + len(value) > self.quota_bytes:
                raise StorageError(f"Storage quota exceeded writing {key!r}")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()


class FileStorage(StorageBackend):
    """One file per key inside ``directory``, written atomically with mode 0600."""

    SUFFIX = ".json"

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Unsupported storage key: {key!r}")
        return self.directory / f"{key}{self.SUFFIX}"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Cannot read {path}: {exc}") from exc

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        if is_symlink_or_hardlink_attack(path):
            raise StorageError(f"Refusing to write through link: {path}")
        try:
            self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd, tmp = tempfile.mkstemp(prefix=f".{key}.", dir=str(self.directory))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.chmod(tmp, 0o600)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as exc:
            raise StorageError(f"Cannot write {path}: {exc}") from exc

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageError(f"Cannot remove {path}: {exc}") from exc

    def keys(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.name[: -len(self.SUFFIX)] for p in self.directory.glob(f"*{self.SUFFIX}") if p.is_file())
