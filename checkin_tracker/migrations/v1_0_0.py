"""1.0.0: initial document structure."""

from __future__ import annotations

from typing import ClassVar

from checkin_tracker.migrations import MigrationStep, dict_or_empty, list_or_empty

_ANALYTICS_DEFAULTS = {
    "totalCheckIns": 0,
    "currentStreak": 0,
    "longestStreak": 0,
    "averageDaily": 0,
    "sitesArchived": 0,
}


class InitialStructure(MigrationStep):
    target_version: ClassVar[str] = "1.0.0"
    description: ClassVar[str] = "Top-level settings/categories/sites/analytics"

    def apply(self, doc: dict, today: str) -> dict:
        sites = list_or_empty(doc.get("sites"))
        analytics = {**_ANALYTICS_DEFAULTS, "sitesAdded": len(sites)}
        analytics.update(dict_or_empty(doc.get("analytics")))
        last_reset = doc.get("lastReset")
        return {
            **doc,
            "lastReset": last_reset if isinstance(last_reset, str) and last_reset else today,
            "settings": dict_or_empty(doc.get("settings")),
            "categories": list_or_empty(doc.get("categories")),
            "sites": sites,
            "analytics": analytics,
        }
