"""Schema migrator: version detection, ordered upgrade chain, validate/repair.

Operates on raw JSON dicts, before the typed decoder in ``models`` sees them.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from checkin_tracker.backups import Backup, BackupRing
from checkin_tracker.clock import Clock, local_now, timestamp, today_key
from checkin_tracker.config import SCHEMA_VERSION
from checkin_tracker.migrations import MigrationStep, compare_versions, discover_steps, version_key

logger = logging.getLogger(__name__)

BASE_VERSION = "0.0.0"


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors)}


def _present(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


class Migrator:
    """Upgrades documents through every registered step up to ``current_version``."""

    def __init__(
        self,
        steps: Optional[list[MigrationStep]] = None,
        current_version: str = SCHEMA_VERSION,
        backups: Optional[BackupRing] = None,
        clock: Optional[Clock] = None,
    ):
        if steps is None:
            discover_steps()
            steps = MigrationStep.ordered()
        self.steps = sorted(steps, key=lambda s: version_key(s.target_version))
        self.current_version = current_version
        self.backups = backups
        self.clock = clock or local_now

    @staticmethod
    def document_version(doc: Any) -> str:
        version = doc.get("version") if isinstance(doc, dict) else None
        return version if _present(version) else BASE_VERSION

    def needs_migration(self, doc: Any) -> bool:
        if not isinstance(doc, dict) or not _present(doc.get("version")):
            return True
        return compare_versions(doc["version"], self.current_version) < 0

    def migrate(self, doc: Any) -> Optional[dict]:
        """Apply every pending step in ascending order. Idempotent; never lowers version."""
        if not isinstance(doc, dict):
            return None
        version = self.document_version(doc)
        migrated = copy.deepcopy(doc)
        today = today_key(self.clock())
        for step in self.steps:
            if compare_versions(step.target_version, self.current_version) > 0:
                continue
            if compare_versions(version, step.target_version) < 0:
                logger.info("Migrating document %s -> %s", version, step.target_version)
                migrated = step(migrated, today)
                version = step.target_version
        return migrated

    def migrate_with_backup(self, doc: Any) -> Optional[dict]:
        """Snapshot ``doc`` into the backup ring first if it will change."""
        if isinstance(doc, dict) and self.needs_migration(doc):
            self.create_backup(doc)
        return self.migrate(doc)

    # ── validation ──

    def validate(self, doc: Any) -> ValidationResult:
        """Structural checks. Collects every violation, not just the first."""
        errors: list[str] = []
        if not isinstance(doc, dict):
            return ValidationResult(False, ["Data is null or not an object"])

        sites = doc.get("sites")
        if not isinstance(sites, list):
            errors.append("Sites must be an array")
        if not isinstance(doc.get("categories"), list):
            errors.append("Categories must be an array")

        if isinstance(sites, list):
            for index, site in enumerate(sites):
                if not isinstance(site, dict):
                    errors.append(f"Site {index} must be an object")
                    continue
                if not _present(site.get("id")):
                    errors.append(f"Site {index} missing ID")
                if not _present(site.get("name")):
                    errors.append(f"Site {index} missing name")
                if not _present(site.get("url")):
                    errors.append(f"Site {index} missing URL")
                if not isinstance(site.get("credentials"), list):
                    errors.append(f"Site {index} credentials must be an array")

        return ValidationResult(valid=not errors, errors=errors)

    @staticmethod
    def is_structurally_broken(doc: Any) -> bool:
        """True when the top-level containers are unusable, not for site-level gaps."""
        if not isinstance(doc, dict):
            return True
        return not isinstance(doc.get("sites"), list) or not isinstance(doc.get("categories"), list)

    def repair(self, doc: Any) -> dict:
        """Best-effort reconstruction. Drops what it cannot trust; never raises."""
        repaired = dict(doc) if isinstance(doc, dict) else {}
        if not _present(repaired.get("version")):
            repaired["version"] = "1.0.0"
        if not _present(repaired.get("lastReset")):
            repaired["lastReset"] = today_key(self.clock())
        if not isinstance(repaired.get("settings"), dict):
            repaired["settings"] = {}
        if not isinstance(repaired.get("categories"), list):
            repaired["categories"] = []
        if not isinstance(repaired.get("analytics"), dict):
            repaired["analytics"] = {
                "totalCheckIns": 0,
                "currentStreak": 0,
                "longestStreak": 0,
                "averageDaily": 0,
                "sitesAdded": 0,
                "sitesArchived": 0,
                "lastCheckIn": None,
            }

        sites = repaired.get("sites") if isinstance(repaired.get("sites"), list) else []
        kept = []
        for site in sites:
            if not isinstance(site, dict) or not site.get("id") or not site.get("name"):
                logger.warning("Repair dropped site without id/name: %r", site.get("id") if isinstance(site, dict) else site)
                continue
            creds = site.get("credentials") if isinstance(site.get("credentials"), list) else []
            kept.append({
                **site,
                "credentials": [c for c in creds if isinstance(c, dict) and c.get("id") and c.get("email")],
            })
        repaired["sites"] = kept
        return repaired

    # ── backups ──

    def create_backup(self, doc: Any) -> bool:
        if self.backups is None:
            return False
        version = doc.get("version") if isinstance(doc, dict) else None
        return self.backups.push(
            copy.deepcopy(doc),
            version=version if _present(version) else "unknown",
            timestamp=timestamp(self.clock()),
        )

    def restore_backup(self, index: int = 0) -> Optional[dict]:
        if self.backups is None:
            return None
        backup = self.backups.get(index)
        return copy.deepcopy(backup.data) if backup else None

    def get_backups(self) -> list[Backup]:
        return self.backups.entries() if self.backups is not None else []
