"""2.0.0: settings tree, site metadata and credential audit fields."""

from __future__ import annotations

from typing import ClassVar

from checkin_tracker.migrations import (
    MigrationStep,
    dict_or_empty,
    favicon_from_url,
    list_or_empty,
    missing,
)

_NOTIFICATIONS = {"enabled": True, "reminderTime": "09:00", "staleDays": 7}
_SECURITY = {
    "masterPasswordEnabled": False,
    "autoLockMinutes": 15,
    "clipboardClearSeconds": 30,
    "requireAuthOnStart": False,
}
_DISPLAY = {"density": "comfortable", "cardsPerRow": "auto", "showFavicons": True, "showLastCheckin": True}
_METADATA = {"loginFrequency": "daily", "importance": "normal", "lastIssue": None, "averageCheckInTime": "09:00"}


def _settings(raw: object) -> dict:
    settings = dict_or_empty(raw)
    return {
        **settings,
        "theme": settings.get("theme") or "auto",
        "viewMode": settings.get("viewMode") or "grid",
        "autoReset": settings.get("autoReset") is not False,
        "resetTime": settings.get("resetTime") or "00:00",
        "notifications": {**_NOTIFICATIONS, **dict_or_empty(settings.get("notifications"))},
        "security": {**_SECURITY, **dict_or_empty(settings.get("security"))},
        "display": {**_DISPLAY, **dict_or_empty(settings.get("display"))},
    }


def _credential(cred: dict, site_created: object) -> dict:
    return {
        **cred,
        "customFields": list_or_empty(cred.get("customFields")),
        "checkInHistory": list_or_empty(cred.get("checkInHistory")),
        "lastPasswordChange": cred.get("lastPasswordChange") or site_created,
        "passwordExpiry": cred.get("passwordExpiry") or None,
        "strength": cred.get("strength") or "unknown",
        "breached": bool(cred.get("breached", False)),
    }


def _site(site: dict) -> dict:
    return {
        **site,
        "favicon": site.get("favicon") or favicon_from_url(site.get("url")),
        "priority": 0 if missing(site.get("priority")) else site["priority"],
        "color": site.get("color") or "#3b82f6",
        "metadata": {**_METADATA, **dict_or_empty(site.get("metadata"))},
        "credentials": [
            _credential(c, site.get("createdAt"))
            for c in list_or_empty(site.get("credentials"))
            if isinstance(c, dict)
        ],
    }


class EnhancedFeatures(MigrationStep):
    target_version: ClassVar[str] = "2.0.0"
    description: ClassVar[str] = "Settings tree, site metadata, credential audit fields"

    def apply(self, doc: dict, today: str) -> dict:
        doc["settings"] = _settings(doc.get("settings"))
        doc["sites"] = [_site(s) for s in list_or_empty(doc.get("sites")) if isinstance(s, dict)]
        if not isinstance(doc.get("analytics"), dict):
            doc["analytics"] = {
                "totalCheckIns": 0,
                "currentStreak": 0,
                "longestStreak": 0,
                "averageDaily": 0,
                "sitesAdded": len(doc["sites"]),
                "sitesArchived": 0,
                "lastCheckIn": None,
            }
        return doc
