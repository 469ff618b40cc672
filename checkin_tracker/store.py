"""Persistence store: the only writer of the canonical document.

Every mutating call reads the whole document from storage, changes it, and
writes the whole document back. Failures never escape as exceptions (except
DecryptionError from ``import_data``): they come back as False/None, are
logged, and the exception is kept on ``last_error`` for the caller.
"""

from __future__ import annotations

import asyncio
import csv
import io
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from checkin_tracker.backends import StorageBackend
from checkin_tracker.backups import BackupRing
from checkin_tracker.clock import (
    Clock,
    date_key,
    device_label,
    is_same_day,
    local_now,
    timestamp,
    today_key,
    yesterday_key,
)
from checkin_tracker.config import THEMES, TrackerConfig
from checkin_tracker.crypto import CryptoEnvelope, is_envelope, password_strength
from checkin_tracker.errors import NotFoundError, StorageError, TrackerError, ValidationError
from checkin_tracker.journal import ActivityJournal
from checkin_tracker.migrations import compare_versions, favicon_from_url
from checkin_tracker.migrator import Migrator
from checkin_tracker.models import (
    Analytics,
    Category,
    Credential,
    CustomField,
    Document,
    Settings,
    Site,
)

logger = logging.getLogger(__name__)

CSV_HEADER = ["Site Name", "URL", "Category", "Email", "Label", "Tags"]

_IMMUTABLE_SITE_KEYS = ("id", "createdAt")
_NESTED_SETTINGS = ("notifications", "security", "display")

_NONE = type(None)

# accepted JSON types per updatable field; lists map to their element types
_SITE_FIELDS = {
    "name": (str,),
    "url": (str,),
    "favicon": (str, _NONE),
    "category": (str, _NONE),
    "tags": [(str,)],
    "priority": (int, str),
    "color": (str,),
    "notes": (str,),
    "credentials": [(dict,)],
    "metadata": (dict,),
    "updatedAt": (str, _NONE),
}
_CREDENTIAL_FIELDS = {
    "label": (str,),
    "email": (str, dict),
    "password": (str, dict),
    "notes": (str, dict),
    "customFields": [(dict,)],
    "checkedInOn": (str, _NONE),
    "checkInHistory": [(dict, str)],
    "lastPasswordChange": (str, _NONE),
    "passwordExpiry": (str, _NONE),
    "strength": (str,),
    "breached": (bool,),
}
_SETTINGS_FIELDS = {
    "theme": (str,),
    "viewMode": (str,),
    "autoReset": (bool,),
    "resetTime": (str,),
    "notifications": {"enabled": (bool,), "reminderTime": (str,), "staleDays": (int,)},
    "security": {
        "masterPasswordEnabled": (bool,),
        "autoLockMinutes": (int,),
        "clipboardClearSeconds": (int,),
        "requireAuthOnStart": (bool,),
    },
    "display": {
        "density": (str,),
        "cardsPerRow": (str, int),
        "showFavicons": (bool,),
        "showLastCheckin": (bool,),
    },
}


def _is_type(value: Any, accepted: tuple) -> bool:
    if isinstance(value, bool) and bool not in accepted:
        return False
    return isinstance(value, accepted)


def type_errors(updates: Any, fields: dict, prefix: str = "") -> list[str]:
    """Fields in ``updates`` whose type ``from_dict`` would silently replace."""
    if not isinstance(updates, dict):
        return [f"{prefix.rstrip('.') or 'updates'} must be an object"]
    errors = []
    for key, value in updates.items():
        rule = fields.get(key)
        name = f"{prefix}{key}"
        if rule is None:
            continue
        if isinstance(rule, dict):
            errors.extend(type_errors(value, rule, prefix=f"{name}."))
        elif isinstance(rule, list):
            if not isinstance(value, list):
                errors.append(f"{name} must be a list")
            elif not all(_is_type(item, rule[0]) for item in value):
                errors.append(f"{name} has items of the wrong type")
        elif not _is_type(value, rule):
            errors.append(f"{name} has the wrong type ({type(value).__name__})")
    return errors


def new_id() -> str:
    return str(uuid.uuid4())


def advance_streak(analytics: Analytics, now: datetime) -> None:
    """Update current/longest streak for a check-in at ``now``.

    Must run before ``analytics.last_check_in`` is overwritten: the decision
    depends on the calendar date of the previous check-in.
    """
    prior = date_key(analytics.last_check_in)
    if prior is None:
        analytics.current_streak = 1
    elif prior == yesterday_key(now):
        analytics.current_streak += 1
    elif not is_same_day(analytics.last_check_in, now):
        analytics.current_streak = 1
    # same day leaves the streak alone, but a check-in is never a 0-day streak
    analytics.current_streak = max(analytics.current_streak, 1)
    analytics.longest_streak = max(analytics.longest_streak, analytics.current_streak)


def to_csv(document: Document) -> str:
    """One row per (site, credential) pair, every field quoted."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for site, cred in document.iter_credentials():
        email = cred.email if isinstance(cred.email, str) else "[encrypted]"
        writer.writerow([site.name, site.url, site.category or "", email, cred.label, ";".join(site.tags)])
    return buf.getvalue().rstrip("\n")


def _present(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


class PersistenceStore:
    """CRUD, check-in, daily reset and import/export over one stored document."""

    def __init__(
        self,
        storage: StorageBackend,
        migrator: Optional[Migrator] = None,
        crypto: Optional[CryptoEnvelope] = None,
        config: Optional[TrackerConfig] = None,
        clock: Optional[Clock] = None,
        journal: Optional[ActivityJournal] = None,
    ):
        self.config = config or TrackerConfig()
        self.storage = storage
        self.clock = clock or local_now
        self.migrator = migrator or Migrator(
            current_version=self.config.version,
            backups=BackupRing(storage, self.config.backups_key, self.config.max_backups),
            clock=self.clock,
        )
        self.crypto = crypto or CryptoEnvelope(self.config.kdf_iterations)
        self.journal = journal
        self.last_error: Optional[TrackerError] = None
        self._highest_version = "0.0.0"

    # ── internals ──

    def _fail(self, exc: TrackerError) -> None:
        self.last_error = exc
        if isinstance(exc, NotFoundError):
            logger.debug("%s", exc)
        else:
            logger.error("%s: %s", type(exc).__name__, exc)

    def _record(self, event: str, **fields: Any) -> None:
        if self.journal is None:
            return
        self.journal.log(event, **fields)
        try:
            self.journal.flush()
        except OSError as exc:
            logger.warning("Activity journal not written: %s", exc)

    def _now(self) -> tuple[datetime, str]:
        now = self.clock()
        return now, timestamp(now)

    def read_raw(self) -> Optional[dict]:
        """Stored document as a dict; unreadable or corrupt JSON reads as None."""
        try:
            text = self.storage.get_item(self.config.storage_key)
        except StorageError as exc:
            self._fail(exc)
            return None
        if not text:
            return None
        try:
            raw = json.loads(text)
        except ValueError:
            logger.error("Stored document is not valid JSON; ignoring it")
            return None
        return raw if isinstance(raw, dict) else None

    def _write_raw(self, raw: dict) -> bool:
        version = raw.get("version")
        if compare_versions(version, self._highest_version) < 0:
            # never lower the schema version already on disk
            raw = {**raw, "version": self._highest_version}
        try:
            text = json.dumps(raw, ensure_ascii=False)
            self.storage.set_item(self.config.storage_key, text)
        except (TypeError, ValueError) as exc:
            self._fail(StorageError(f"Cannot serialize document: {exc}"))
            return False
        except StorageError as exc:
            self._fail(exc)
            return False
        if compare_versions(raw.get("version"), self._highest_version) > 0:
            self._highest_version = raw["version"]
        return True

    def get_document(self) -> Optional[Document]:
        raw = self.read_raw()
        return Document.from_dict(raw) if raw is not None else None

    def save(self, document: Document) -> bool:
        return self._write_raw(document.to_dict())

    def _load_for_write(self) -> Optional[Document]:
        self.last_error = None
        doc = self.get_document()
        if doc is None and self.last_error is None:
            self._fail(StorageError("No document in storage; call init() first"))
        return doc

    # ── lifecycle ──

    def init(self) -> bool:
        """Load (migrating if stale, repairing only a structurally broken document)
        or bootstrap, then run the daily reset check."""
        self.last_error = None
        raw = self.read_raw()
        if raw is None:
            if self.initialize_default_state() is None:
                return False
        else:
            stored_version = raw.get("version")
            if isinstance(stored_version, str) and compare_versions(stored_version, self._highest_version) > 0:
                self._highest_version = stored_version
            changed = False
            if self.migrator.needs_migration(raw):
                from_version = self.migrator.document_version(raw)
                raw = self.migrator.migrate_with_backup(raw)
                self._record("migrate", detail=f"{from_version} -> {raw.get('version')}")
                changed = True
            result = self.migrator.validate(raw)
            if self.migrator.is_structurally_broken(raw):
                logger.warning("Stored document is structurally broken, repairing: %s", "; ".join(result.errors))
                raw = self.migrator.repair(raw)
                self._record("repair", detail="; ".join(result.errors)[:500])
                changed = True
            elif not result.valid:
                # sites the store accepted (imports included) are kept as they are
                logger.debug("Stored document has site-level gaps: %s", "; ".join(result.errors))
            if changed and not self.save(Document.from_dict(raw)):
                return False
        self.check_daily_reset()
        return True

    def initialize_default_state(self) -> Optional[Document]:
        document = Document(
            version=self.config.version,
            last_reset=today_key(self.clock()),
            settings=Settings.from_dict(self.config.default_settings()),
            categories=[
                Category.from_dict({**cat, "id": new_id(), "order": index})
                for index, cat in enumerate(self.config.default_categories)
            ],
            sites=[],
            analytics=Analytics(),
        )
        if not self.save(document):
            return None
        self._record("bootstrap", detail=document.version)
        return document

    def check_daily_reset(self) -> bool:
        """Clear every check-in if the last reset was on an earlier local date."""
        doc = self.get_document()
        if doc is None or not doc.settings.auto_reset:
            return False
        today = today_key(self.clock())
        if doc.last_reset == today:
            return False
        return self.reset_all_credentials(event="daily_reset")

    def clear_all_data(self) -> bool:
        try:
            self.storage.remove_item(self.config.storage_key)
            self.storage.remove_item(self.config.credentials_key)
        except StorageError as exc:
            self._fail(exc)
            return False
        self._highest_version = "0.0.0"
        self._record("clear")
        return True

    def restore_backup(self, index: int = 0) -> bool:
        """Replace the document with backup ``index``, upgraded to the current schema."""
        self.last_error = None
        data = self.migrator.restore_backup(index)
        if data is None:
            self._fail(NotFoundError(f"No backup at index {index}"))
            return False
        current = self.read_raw()
        if current is not None:
            self.migrator.create_backup(current)
        restored = self.migrator.repair(self.migrator.migrate(data))
        if not self.save(Document.from_dict(restored)):
            return False
        self._record("restore", detail=f"backup {index}")
        return True

    # ── sites ──

    def get_sites(self) -> list[Site]:
        doc = self.get_document()
        return doc.sites if doc else []

    def get_site(self, site_id: str) -> Optional[Site]:
        doc = self.get_document()
        return doc.find_site(site_id) if doc else None

    def _build_credential(self, data: dict, now: str) -> Credential:
        password = data.get("password") if isinstance(data.get("password"), str) else ""
        raw = {
            "checkedInOn": None,
            "checkInHistory": [],
            "lastPasswordChange": now,
            "strength": password_strength(password)[1] if password else "unknown",
            **data,
        }
        if not _present(raw.get("id")):
            raw["id"] = new_id()
        return Credential.from_dict(raw)

    def add_site(self, data: dict) -> Optional[Site]:
        if not isinstance(data, dict) or not _present(data.get("name")) or not _present(data.get("url")):
            self._fail(ValidationError("Site requires a non-empty name and url"))
            return None
        credentials = data.get("credentials") or []
        if not isinstance(credentials, list) or not all(isinstance(c, dict) for c in credentials):
            self._fail(ValidationError("Site credentials must be a list of objects"))
            return None
        doc = self._load_for_write()
        if doc is None:
            return None
        _, now = self._now()
        site = Site.from_dict({
            "favicon": favicon_from_url(data.get("url")),
            **data,
            "id": new_id(),
            "credentials": [],
            "createdAt": now,
            "updatedAt": now,
        })
        site.credentials = [self._build_credential(c, now) for c in credentials]
        doc.sites.append(site)
        doc.analytics.sites_added += 1
        if not self.save(doc):
            return None
        self._record("site_added", site_id=site.id)
        return site

    def update_site(self, site_id: str, updates: dict) -> bool:
        updates = updates or {}
        errors = type_errors(updates, _SITE_FIELDS)
        if not errors:
            for i, cred in enumerate(updates.get("credentials") or []):
                errors.extend(type_errors(cred, _CREDENTIAL_FIELDS, prefix=f"credentials[{i}]."))
        if errors:
            self._fail(ValidationError("; ".join(errors)))
            return False
        doc = self._load_for_write()
        if doc is None:
            return False
        index = next((i for i, s in enumerate(doc.sites) if s.id == site_id), None)
        if index is None:
            self._fail(NotFoundError(f"Site not found: {site_id}"))
            return False
        _, now = self._now()
        updates = {k: v for k, v in updates.items() if k not in _IMMUTABLE_SITE_KEYS}
        merged = {**doc.sites[index].to_dict(), **updates, "updatedAt": now}
        if not _present(merged.get("name")) or not _present(merged.get("url")):
            self._fail(ValidationError("Site requires a non-empty name and url"))
            return False
        doc.sites[index] = Site.from_dict(merged)
        if not self.save(doc):
            return False
        self._record("site_updated", site_id=site_id)
        return True

    def delete_site(self, site_id: str) -> bool:
        """Hard delete; counts toward analytics.sitesArchived."""
        doc = self._load_for_write()
        if doc is None:
            return False
        site = doc.find_site(site_id)
        if site is None:
            self._fail(NotFoundError(f"Site not found: {site_id}"))
            return False
        doc.sites.remove(site)
        doc.analytics.sites_archived += 1
        if not self.save(doc):
            return False
        self._record("site_deleted", site_id=site_id)
        return True

    # ── credentials ──

    def _locate(self, doc: Document, site_id: str, credential_id: str) -> tuple[Optional[Site], Optional[Credential]]:
        site = doc.find_site(site_id)
        if site is None:
            self._fail(NotFoundError(f"Site not found: {site_id}"))
            return None, None
        cred = site.find_credential(credential_id)
        if cred is None:
            self._fail(NotFoundError(f"Credential not found: {site_id}/{credential_id}"))
            return site, None
        return site, cred

    def get_credential(self, site_id: str, credential_id: str) -> Optional[Credential]:
        site = self.get_site(site_id)
        return site.find_credential(credential_id) if site else None

    def add_credential(self, site_id: str, data: dict) -> Optional[Credential]:
        if not isinstance(data, dict) or not _present(data.get("email")):
            self._fail(ValidationError("Credential requires a non-empty email"))
            return None
        doc = self._load_for_write()
        if doc is None:
            return None
        site = doc.find_site(site_id)
        if site is None:
            self._fail(NotFoundError(f"Site not found: {site_id}"))
            return None
        _, now = self._now()
        cred = self._build_credential({k: v for k, v in data.items() if k != "id"}, now)
        site.credentials.append(cred)
        site.updated_at = now
        if not self.save(doc):
            return None
        self._record("credential_added", site_id=site_id, credential_id=cred.id)
        return cred

    def update_credential(self, site_id: str, credential_id: str, updates: dict) -> bool:
        updates = updates or {}
        errors = type_errors(updates, _CREDENTIAL_FIELDS)
        if errors:
            self._fail(ValidationError("; ".join(errors)))
            return False
        doc = self._load_for_write()
        if doc is None:
            return False
        site, cred = self._locate(doc, site_id, credential_id)
        if cred is None:
            return False
        _, now = self._now()
        updates = {k: v for k, v in updates.items() if k != "id"}
        if isinstance(updates.get("password"), str) and updates["password"]:
            updates["strength"] = password_strength(updates["password"])[1]
            updates["lastPasswordChange"] = now
        merged = {**cred.to_dict(), **updates}
        if not _present(merged.get("email")) and not isinstance(merged.get("email"), dict):
            self._fail(ValidationError("Credential requires a non-empty email"))
            return False
        site.credentials[site.credentials.index(cred)] = Credential.from_dict(merged)
        site.updated_at = now
        if not self.save(doc):
            return False
        self._record("credential_updated", site_id=site_id, credential_id=credential_id)
        return True

    def delete_credential(self, site_id: str, credential_id: str) -> bool:
        doc = self._load_for_write()
        if doc is None:
            return False
        site, cred = self._locate(doc, site_id, credential_id)
        if cred is None:
            return False
        site.credentials.remove(cred)
        site.updated_at = self._now()[1]
        if not self.save(doc):
            return False
        self._record("credential_deleted", site_id=site_id, credential_id=credential_id)
        return True

    def add_custom_field(self, site_id: str, credential_id: str, data: dict) -> Optional[CustomField]:
        """Append a named field (``name``, ``value``, optional ``type``) to a credential."""
        if not isinstance(data, dict) or not _present(data.get("name")):
            self._fail(ValidationError("Custom field requires a non-empty name"))
            return None
        if not isinstance(data.get("type", "text"), str):
            self._fail(ValidationError("Custom field type must be a string"))
            return None
        doc = self._load_for_write()
        if doc is None:
            return None
        site, cred = self._locate(doc, site_id, credential_id)
        if cred is None:
            return None
        custom = CustomField.from_dict({**data, "id": new_id()})
        cred.custom_fields.append(custom)
        site.updated_at = self._now()[1]
        if not self.save(doc):
            return None
        self._record("credential_updated", site_id=site_id, credential_id=credential_id)
        return custom

    def remove_custom_field(self, site_id: str, credential_id: str, field_id: str) -> bool:
        doc = self._load_for_write()
        if doc is None:
            return False
        site, cred = self._locate(doc, site_id, credential_id)
        if cred is None:
            return False
        kept = [f for f in cred.custom_fields if f.id != field_id]
        if len(kept) == len(cred.custom_fields):
            self._fail(NotFoundError(f"Custom field not found: {field_id}"))
            return False
        cred.custom_fields = kept
        site.updated_at = self._now()[1]
        if not self.save(doc):
            return False
        self._record("credential_updated", site_id=site_id, credential_id=credential_id)
        return True

    # ── check-ins ──

    def check_in_credential(self, site_id: str, credential_id: str) -> bool:
        doc = self._load_for_write()
        if doc is None:
            return False
        _, cred = self._locate(doc, site_id, credential_id)
        if cred is None:
            return False
        now, stamp = self._now()
        if self.config.check_in_history:
            cred.record_check_in(stamp, device_label(), self.config.max_history_entries)
        else:
            cred.checked_in_on = stamp
        advance_streak(doc.analytics, now)
        doc.analytics.total_check_ins += 1
        doc.analytics.last_check_in = stamp
        if not self.save(doc):
            return False
        self._record("check_in", site_id=site_id, credential_id=credential_id)
        return True

    def reset_credential(self, site_id: str, credential_id: str) -> bool:
        """Clear today's check-in; history and analytics are untouched."""
        doc = self._load_for_write()
        if doc is None:
            return False
        _, cred = self._locate(doc, site_id, credential_id)
        if cred is None:
            return False
        cred.checked_in_on = None
        if not self.save(doc):
            return False
        self._record("reset", site_id=site_id, credential_id=credential_id)
        return True

    def reset_all_credentials(self, event: str = "reset_all") -> bool:
        doc = self._load_for_write()
        if doc is None:
            return False
        cleared = 0
        for _, cred in doc.iter_credentials():
            if cred.checked_in_on is not None:
                cleared += 1
            cred.checked_in_on = None
        doc.last_reset = today_key(self.clock())
        if not self.save(doc):
            return False
        self._record(event, count=cleared)
        return True

    # ── categories & settings ──

    def get_categories(self) -> list[Category]:
        doc = self.get_document()
        return sorted(doc.categories, key=lambda c: c.order) if doc else []

    def add_category(self, data: dict) -> Optional[Category]:
        if not isinstance(data, dict) or not _present(data.get("name")):
            self._fail(ValidationError("Category requires a non-empty name"))
            return None
        doc = self._load_for_write()
        if doc is None:
            return None
        category = Category.from_dict({"order": len(doc.categories), **data, "id": new_id()})
        doc.categories.append(category)
        if not self.save(doc):
            return None
        return category

    def update_settings(self, updates: dict) -> bool:
        updates = updates or {}
        errors = type_errors(updates, _SETTINGS_FIELDS)
        if errors:
            self._fail(ValidationError("; ".join(errors)))
            return False
        doc = self._load_for_write()
        if doc is None:
            return False
        merged = doc.settings.to_dict()
        for key, value in updates.items():
            if key in _NESTED_SETTINGS:
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        doc.settings = Settings.from_dict(merged)
        return self.save(doc)

    def get_theme(self) -> str:
        try:
            theme = self.storage.get_item(self.config.theme_key)
        except StorageError as exc:
            self._fail(exc)
            theme = None
        if theme in THEMES:
            return theme
        doc = self.get_document()
        return doc.settings.theme if doc else "auto"

    def set_theme(self, theme: str) -> bool:
        if theme not in THEMES:
            self._fail(ValidationError(f"Unknown theme: {theme!r}. Choose from {sorted(THEMES)}"))
            return False
        try:
            self.storage.set_item(self.config.theme_key, theme)
        except StorageError as exc:
            self._fail(exc)
            return False
        return True

    # ── import / export ──

    async def _offload(self, func: Callable, *args: Any) -> Any:
        return await asyncio.to_thread(func, *args)

    async def export_data(
        self,
        format: str = "json",
        include_history: bool = True,
        encrypt: bool = False,
        password: Optional[str] = None,
    ) -> Optional[str]:
        """Serialize the document as pretty JSON (optionally encrypted) or CSV."""
        doc = self._load_for_write()
        if doc is None:
            return None
        if format == "csv":
            output = to_csv(doc)
        elif format == "json":
            data = doc.to_dict(include_history=include_history)
            data["exportedAt"] = self._now()[1]
            data["version"] = self.config.version
            if encrypt:
                if not password:
                    self._fail(ValidationError("Encrypted export requires a password"))
                    return None
                try:
                    envelope = await self._offload(self.crypto.encrypt, data, password)
                except (TypeError, ValueError) as exc:
                    self._fail(StorageError(f"Encryption failed: {exc}"))
                    return None
                output = json.dumps(envelope.to_dict(), indent=2)
            else:
                output = json.dumps(data, indent=2, ensure_ascii=False)
        else:
            self._fail(ValidationError(f"Unsupported export format: {format!r}"))
            return None
        self._record("export", detail=f"{format}{' encrypted' if encrypt and format == 'json' else ''}")
        return output

    async def import_data(self, data_string: str, password: Optional[str] = None) -> bool:
        """Merge sites from an export into the stored document.

        Sites are appended, not deduplicated. Categories are replaced only when
        the import carries them. Raises DecryptionError for a bad password.
        """
        try:
            data = json.loads(data_string)
        except (TypeError, ValueError):
            self._fail(ValidationError("Import is not valid JSON"))
            return False
        if is_envelope(data):
            if not password:
                self._fail(ValidationError("This export is encrypted; a password is required"))
                return False
            data = await self._offload(self.crypto.decrypt, data, password)
        if not isinstance(data, dict) or not isinstance(data.get("sites"), list):
            self._fail(ValidationError("Invalid data format: expected a \"sites\" list"))
            return False

        normalised = self.migrator.migrate(data)
        doc = self._load_for_write()
        if doc is None:
            return False
        imported = [Site.from_dict(s) for s in normalised["sites"] if isinstance(s, dict)]
        doc.sites.extend(imported)
        if isinstance(data.get("categories"), list):
            doc.categories = Document.from_dict({"categories": normalised["categories"]}).categories
        if not self.save(doc):
            return False
        self._record("import", count=len(imported))
        return True
