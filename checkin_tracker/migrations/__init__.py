"""Migration step base class with __init_subclass__ auto-registration.

Each module in this package defines one ``MigrationStep`` subclass tagged with
the schema version it produces. Adding a schema version means adding one
module; the migrator picks it up through ``discover_steps()``.
"""

from __future__ import annotations

import copy
import importlib
import pkgutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar, Optional
from urllib.parse import urlparse


def version_key(version: Optional[str]) -> tuple[int, ...]:
    """Numeric tuple for a dotted version; non-numeric parts count as 0."""
    parts = []
    for part in str(version or "0.0.0").split("."):
        try:
            parts.append(int(part))
        except ValueError:
            parts.append(0)
    return tuple(parts)


def compare_versions(a: Optional[str], b: Optional[str]) -> int:
    """-1, 0 or 1. Components compare numerically, so 2.10.0 > 2.9.0."""
    ka, kb = version_key(a), version_key(b)
    width = max(len(ka), len(kb))
    ka += (0,) * (width - len(ka))
    kb += (0,) * (width - len(kb))
    return (ka > kb) - (ka < kb)


def favicon_from_url(url: object) -> Optional[str]:
    if not isinstance(url, str) or not url:
        return None
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}/favicon.ico"


def dict_or_empty(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def list_or_empty(value: object) -> list:
    return value if isinstance(value, list) else []


def missing(value: object) -> bool:
    return value is None or value == ""


class MigrationStep(ABC):
    """A pure transformation producing ``target_version`` from any older shape.

    Steps must not trust earlier steps to have produced complete objects: a
    document can skip versions or be hand-edited.
    """

    _registry: ClassVar[dict[str, type["MigrationStep"]]] = {}

    target_version: ClassVar[str]
    description: ClassVar[str] = ""

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if getattr(cls, "target_version", None):
            MigrationStep._registry[cls.target_version] = cls

    @classmethod
    def get_registry(cls) -> dict[str, type["MigrationStep"]]:
        return dict(cls._registry)

    @classmethod
    def ordered(cls) -> list["MigrationStep"]:
        """Instances of every registered step, ascending by target version."""
        return [cls._registry[v]() for v in sorted(cls._registry, key=version_key)]

    def __call__(self, doc: dict, today: str) -> dict:
        migrated = self.apply(copy.deepcopy(doc), today)
        migrated["version"] = self.target_version
        return migrated

    @abstractmethod
    def apply(self, doc: dict, today: str) -> dict:
        """Transform a private copy of ``doc``. ``today`` is the local YYYY-MM-DD."""
        ...


def discover_steps() -> None:
    """Import every step module in this package to trigger registration."""
    package_dir = Path(__file__).parent
    for info in pkgutil.iter_modules([str(package_dir)]):
        if info.name.startswith("_"):
            continue
        importlib.import_module(f"checkin_tracker.migrations.{info.name}")
