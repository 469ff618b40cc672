"""2.1.0: streak bookkeeping and normalised categories/check-in fields."""

from __future__ import annotations

from typing import ClassVar

from checkin_tracker.migrations import MigrationStep, dict_or_empty, list_or_empty


def _count(value: object) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) and value >= 0 else 0


def _analytics(raw: object, site_count: int) -> dict:
    analytics = dict_or_empty(raw)
    current = _count(analytics.get("currentStreak"))
    return {
        **analytics,
        "totalCheckIns": _count(analytics.get("totalCheckIns")),
        "currentStreak": current,
        "longestStreak": max(_count(analytics.get("longestStreak")), current),
        "averageDaily": analytics.get("averageDaily") if isinstance(analytics.get("averageDaily"), (int, float)) else 0,
        "sitesAdded": _count(analytics.get("sitesAdded", site_count)),
        "sitesArchived": _count(analytics.get("sitesArchived")),
        "lastCheckIn": analytics.get("lastCheckIn") or None,
    }


def _categories(raw: object) -> list[dict]:
    out = []
    for index, cat in enumerate(c for c in list_or_empty(raw) if isinstance(c, dict)):
        order = cat.get("order")
        out.append({
            **cat,
            "color": cat.get("color") or "#3b82f6",
            "icon": cat.get("icon") or "",
            "order": order if isinstance(order, int) and not isinstance(order, bool) else index,
        })
    return out


def _credential(cred: dict) -> dict:
    return {
        **cred,
        "checkedInOn": cred.get("checkedInOn") or None,
        "checkInHistory": [e for e in list_or_empty(cred.get("checkInHistory")) if isinstance(e, (dict, str))],
        "customFields": list_or_empty(cred.get("customFields")),
    }


def _site(site: dict) -> dict:
    return {
        **site,
        "category": site.get("category") or None,
        "tags": [t for t in list_or_empty(site.get("tags")) if isinstance(t, str)],
        "credentials": [_credential(c) for c in list_or_empty(site.get("credentials")) if isinstance(c, dict)],
    }


class StreakTracking(MigrationStep):
    target_version: ClassVar[str] = "2.1.0"
    description: ClassVar[str] = "analytics.lastCheckIn, category order/icon, check-in field normalisation"

    def apply(self, doc: dict, today: str) -> dict:
        doc["sites"] = [_site(s) for s in list_or_empty(doc.get("sites")) if isinstance(s, dict)]
        doc["categories"] = _categories(doc.get("categories"))
        doc["analytics"] = _analytics(doc.get("analytics"), len(doc["sites"]))
        return doc
