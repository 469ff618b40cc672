"""Typed records for the persisted document.

Every record decodes from the stored camelCase JSON with ``from_dict`` (missing
or wrongly-typed fields fall back to schema defaults, unknown keys are dropped)
and encodes back with ``to_dict`` in a canonical key order, so two exports of
the same document are byte-identical.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from checkin_tracker.clock import date_key


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return default


def _number(value: Any, default: float = 0) -> float:
    if isinstance(value, bool):
        return default
    return value if isinstance(value, (int, float)) else default


def _bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


# ── Settings ──────────────────────────────────────────────────────────────


@dataclass
class NotificationSettings:
    enabled: bool = True
    reminder_time: str = "09:00"
    stale_days: int = 7

    @classmethod
    def from_dict(cls, raw: Any) -> "NotificationSettings":
        raw = _dict(raw)
        return cls(
            enabled=_bool(raw.get("enabled"), True),
            reminder_time=_str(raw.get("reminderTime"), "09:00"),
            stale_days=_int(raw.get("staleDays"), 7),
        )

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "reminderTime": self.reminder_time, "staleDays": self.stale_days}


@dataclass
class SecuritySettings:
    master_password_enabled: bool = False
    auto_lock_minutes: int = 15
    clipboard_clear_seconds: int = 30
    require_auth_on_start: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> "SecuritySettings":
        raw = _dict(raw)
        return cls(
            master_password_enabled=_bool(raw.get("masterPasswordEnabled"), False),
            auto_lock_minutes=_int(raw.get("autoLockMinutes"), 15),
            clipboard_clear_seconds=_int(raw.get("clipboardClearSeconds"), 30),
            require_auth_on_start=_bool(raw.get("requireAuthOnStart"), False),
        )

    def to_dict(self) -> dict:
        return {
            "masterPasswordEnabled": self.master_password_enabled,
            "autoLockMinutes": self.auto_lock_minutes,
            "clipboardClearSeconds": self.clipboard_clear_seconds,
            "requireAuthOnStart": self.require_auth_on_start,
        }


@dataclass
class DisplaySettings:
    density: str = "comfortable"
    cards_per_row: Any = "auto"
    show_favicons: bool = True
    show_last_checkin: bool = True

    @classmethod
    def from_dict(cls, raw: Any) -> "DisplaySettings":
        raw = _dict(raw)
        cards = raw.get("cardsPerRow", "auto")
        if not isinstance(cards, (str, int)) or isinstance(cards, bool):
            cards = "auto"
        return cls(
            density=_str(raw.get("density"), "comfortable"),
            cards_per_row=cards,
            show_favicons=_bool(raw.get("showFavicons"), True),
            show_last_checkin=_bool(raw.get("showLastCheckin"), True),
        )

    def to_dict(self) -> dict:
        return {
            "density": self.density,
            "cardsPerRow": self.cards_per_row,
            "showFavicons": self.show_favicons,
            "showLastCheckin": self.show_last_checkin,
        }


@dataclass
class Settings:
    theme: str = "auto"
    view_mode: str = "grid"
    auto_reset: bool = True
    reset_time: str = "00:00"
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    display: DisplaySettings = field(default_factory=DisplaySettings)

    @classmethod
    def from_dict(cls, raw: Any) -> "Settings":
        raw = _dict(raw)
        return cls(
            theme=_str(raw.get("theme"), "auto"),
            view_mode=_str(raw.get("viewMode"), "grid"),
            auto_reset=_bool(raw.get("autoReset"), True),
            reset_time=_str(raw.get("resetTime"), "00:00"),
            notifications=NotificationSettings.from_dict(raw.get("notifications")),
            security=SecuritySettings.from_dict(raw.get("security")),
            display=DisplaySettings.from_dict(raw.get("display")),
        )

    def to_dict(self) -> dict:
        return {
            "theme": self.theme,
            "viewMode": self.view_mode,
            "autoReset": self.auto_reset,
            "resetTime": self.reset_time,
            "notifications": self.notifications.to_dict(),
            "security": self.security.to_dict(),
            "display": self.display.to_dict(),
        }


# ── Categories ────────────────────────────────────────────────────────────


@dataclass
class Category:
    id: str
    name: str
    color: str = "#3b82f6"
    icon: str = ""
    order: int = 0

    @classmethod
    def from_dict(cls, raw: Any, order: int = 0) -> "Category":
        raw = _dict(raw)
        return cls(
            id=_str(raw.get("id")),
            name=_str(raw.get("name")),
            color=_str(raw.get("color"), "#3b82f6"),
            icon=_str(raw.get("icon")),
            order=_int(raw.get("order"), order),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color": self.color, "icon": self.icon, "order": self.order}


# ── Credentials ───────────────────────────────────────────────────────────


@dataclass
class CustomField:
    id: str
    name: str
    value: Any = ""
    type: str = "text"

    @classmethod
    def from_dict(cls, raw: Any) -> "CustomField":
        raw = _dict(raw)
        return cls(
            id=_str(raw.get("id")),
            name=_str(raw.get("name")),
            value=raw.get("value", ""),
            type=_str(raw.get("type"), "text"),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "value": self.value, "type": self.type}


@dataclass
class CheckInEntry:
    timestamp: str
    device: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "CheckInEntry":
        if isinstance(raw, str):
            return cls(timestamp=raw)
        raw = _dict(raw)
        return cls(timestamp=_str(raw.get("timestamp")), device=_str(raw.get("device")))

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "device": self.device}


@dataclass
class Credential:
    id: str
    label: str = ""
    email: Any = ""
    password: Any = ""
    notes: Any = ""
    custom_fields: list[CustomField] = field(default_factory=list)
    checked_in_on: Optional[str] = None
    check_in_history: list[CheckInEntry] = field(default_factory=list)
    last_password_change: Optional[str] = None
    password_expiry: Optional[str] = None
    strength: str = "unknown"
    breached: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> "Credential":
        raw = _dict(raw)
        return cls(
            id=_str(raw.get("id")),
            label=_str(raw.get("label")),
            # email/password/notes may hold an encrypted envelope dict
            email=raw.get("email") if isinstance(raw.get("email"), (str, dict)) else "",
            password=raw.get("password") if isinstance(raw.get("password"), (str, dict)) else "",
            notes=raw.get("notes") if isinstance(raw.get("notes"), (str, dict)) else "",
            custom_fields=[CustomField.from_dict(f) for f in _list(raw.get("customFields")) if isinstance(f, dict)],
            checked_in_on=_opt_str(raw.get("checkedInOn")),
            check_in_history=[
                CheckInEntry.from_dict(e) for e in _list(raw.get("checkInHistory")) if isinstance(e, (dict, str))
            ],
            last_password_change=_opt_str(raw.get("lastPasswordChange")),
            password_expiry=_opt_str(raw.get("passwordExpiry")),
            strength=_str(raw.get("strength"), "unknown"),
            breached=_bool(raw.get("breached"), False),
        )

    def to_dict(self, include_history: bool = True) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "email": self.email,
            "password": self.password,
            "notes": self.notes,
            "customFields": [f.to_dict() for f in self.custom_fields],
            "checkedInOn": self.checked_in_on,
            "checkInHistory": [e.to_dict() for e in self.check_in_history] if include_history else [],
            "lastPasswordChange": self.last_password_change,
            "passwordExpiry": self.password_expiry,
            "strength": self.strength,
            "breached": self.breached,
        }

    def is_checked_in_on(self, day: str) -> bool:
        """True if checked_in_on falls on the calendar date ``day`` (YYYY-MM-DD)."""
        return date_key(self.checked_in_on) == day

    def record_check_in(self, when: str, device: str, cap: int) -> None:
        """Mark checked in and prepend a history entry, keeping the newest ``cap``."""
        self.checked_in_on = when
        self.check_in_history.insert(0, CheckInEntry(timestamp=when, device=device))
        if len(self.check_in_history) > cap:
            del self.check_in_history[cap:]


# ── Sites ─────────────────────────────────────────────────────────────────


@dataclass
class SiteMetadata:
    login_frequency: str = "daily"
    importance: str = "normal"
    last_issue: Optional[str] = None
    average_check_in_time: str = "09:00"

    @classmethod
    def from_dict(cls, raw: Any) -> "SiteMetadata":
        raw = _dict(raw)
        return cls(
            login_frequency=_str(raw.get("loginFrequency"), "daily"),
            importance=_str(raw.get("importance"), "normal"),
            last_issue=_opt_str(raw.get("lastIssue")),
            average_check_in_time=_str(raw.get("averageCheckInTime"), "09:00"),
        )

    def to_dict(self) -> dict:
        return {
            "loginFrequency": self.login_frequency,
            "importance": self.importance,
            "lastIssue": self.last_issue,
            "averageCheckInTime": self.average_check_in_time,
        }


@dataclass
class Site:
    id: str
    name: str = ""
    url: str = ""
    favicon: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    priority: Any = 0
    color: str = "#3b82f6"
    notes: str = ""
    credentials: list[Credential] = field(default_factory=list)
    metadata: SiteMetadata = field(default_factory=SiteMetadata)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Any) -> "Site":
        raw = _dict(raw)
        priority = raw.get("priority", 0)
        if not isinstance(priority, (int, str)) or isinstance(priority, bool):
            priority = 0
        return cls(
            id=_str(raw.get("id")),
            name=_str(raw.get("name")),
            url=_str(raw.get("url")),
            favicon=_opt_str(raw.get("favicon")),
            category=_opt_str(raw.get("category")),
            tags=[t for t in _list(raw.get("tags")) if isinstance(t, str)],
            priority=priority,
            color=_str(raw.get("color"), "#3b82f6"),
            notes=_str(raw.get("notes")),
            credentials=[Credential.from_dict(c) for c in _list(raw.get("credentials")) if isinstance(c, dict)],
            metadata=SiteMetadata.from_dict(raw.get("metadata")),
            created_at=_opt_str(raw.get("createdAt")),
            updated_at=_opt_str(raw.get("updatedAt")),
        )

    def to_dict(self, include_history: bool = True) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "favicon": self.favicon,
            "category": self.category,
            "tags": list(self.tags),
            "priority": self.priority,
            "color": self.color,
            "notes": self.notes,
            "credentials": [c.to_dict(include_history) for c in self.credentials],
            "metadata": self.metadata.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def find_credential(self, credential_id: str) -> Optional[Credential]:
        return next((c for c in self.credentials if c.id == credential_id), None)


# ── Analytics + document root ─────────────────────────────────────────────


@dataclass
class Analytics:
    total_check_ins: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    average_daily: float = 0
    sites_added: int = 0
    sites_archived: int = 0
    last_check_in: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Any) -> "Analytics":
        raw = _dict(raw)
        current = _int(raw.get("currentStreak"))
        return cls(
            total_check_ins=_int(raw.get("totalCheckIns")),
            current_streak=current,
            longest_streak=max(_int(raw.get("longestStreak")), current),
            average_daily=_number(raw.get("averageDaily")),
            sites_added=_int(raw.get("sitesAdded")),
            sites_archived=_int(raw.get("sitesArchived")),
            last_check_in=_opt_str(raw.get("lastCheckIn")),
        )

    def to_dict(self) -> dict:
        return {
            "totalCheckIns": self.total_check_ins,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "averageDaily": self.average_daily,
            "sitesAdded": self.sites_added,
            "sitesArchived": self.sites_archived,
            "lastCheckIn": self.last_check_in,
        }


@dataclass
class Document:
    version: str
    last_reset: str
    settings: Settings = field(default_factory=Settings)
    categories: list[Category] = field(default_factory=list)
    sites: list[Site] = field(default_factory=list)
    analytics: Analytics = field(default_factory=Analytics)

    @classmethod
    def from_dict(cls, raw: Any) -> "Document":
        raw = _dict(raw)
        return cls(
            version=_str(raw.get("version"), "0.0.0"),
            last_reset=_str(raw.get("lastReset")),
            settings=Settings.from_dict(raw.get("settings")),
            categories=[
                Category.from_dict(c, order=i) for i, c in enumerate(_list(raw.get("categories"))) if isinstance(c, dict)
            ],
            sites=[Site.from_dict(s) for s in _list(raw.get("sites")) if isinstance(s, dict)],
            analytics=Analytics.from_dict(raw.get("analytics")),
        )

    def to_dict(self, include_history: bool = True) -> dict:
        return {
            "version": self.version,
            "lastReset": self.last_reset,
            "settings": self.settings.to_dict(),
            "categories": [c.to_dict() for c in self.categories],
            "sites": [s.to_dict(include_history) for s in self.sites],
            "analytics": self.analytics.to_dict(),
        }

    def find_site(self, site_id: str) -> Optional[Site]:
        return next((s for s in self.sites if s.id == site_id), None)

    def iter_credentials(self):
        for site in self.sites:
            for cred in site.credentials:
                yield site, cred
