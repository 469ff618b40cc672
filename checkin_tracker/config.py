"""Application constants and environment overrides.

Values can be overridden with ``CHECKIN_*`` variables, read first from an
optional ``.env`` file and then from the process environment:

    CHECKIN_DATA_DIR=~/.local/share/checkin-tracker
    CHECKIN_KDF_ITERATIONS=200000
    CHECKIN_MAX_HISTORY=100
    CHECKIN_MAX_BACKUPS=5
    CHECKIN_AUTO_RESET=true
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

APP_NAME = "Account Check-in Command Center"
SCHEMA_VERSION = "2.1.0"

STORAGE_KEY = "accc-dashboard-state"
CREDENTIALS_KEY = "accc-credentials"
THEME_KEY = "accc-theme-preference"
BACKUPS_KEY = "accc-backups"

DEFAULT_CATEGORIES: list[dict] = [
    {"name": "Finance", "color": "#10b981", "icon": "💰"},
    {"name": "Work", "color": "#3b82f6", "icon": "💼"},
    {"name": "Personal", "color": "#8b5cf6", "icon": "👤"},
    {"name": "Social Media", "color": "#ec4899", "icon": "📱"},
    {"name": "Entertainment", "color": "#f59e0b", "icon": "🎬"},
    {"name": "Utilities", "color": "#6366f1", "icon": "⚡"},
]

DEFAULT_SETTINGS: dict = {
    "theme": "auto",
    "viewMode": "grid",
    "autoReset": True,
    "resetTime": "00:00",
    "notifications": {
        "enabled": True,
        "reminderTime": "09:00",
        "staleDays": 7,
    },
    "security": {
        "masterPasswordEnabled": False,
        "autoLockMinutes": 15,
        "clipboardClearSeconds": 30,
        "requireAuthOnStart": False,
    },
    "display": {
        "density": "comfortable",
        "cardsPerRow": "auto",
        "showFavicons": True,
        "showLastCheckin": True,
    },
}

THEMES: frozenset[str] = frozenset({"light", "dark", "auto"})
VIEW_MODES: frozenset[str] = frozenset({"grid", "list", "kanban", "timeline", "focus"})

_TRUE = {"1", "true", "yes", "on"}


@dataclass
class TrackerConfig:
    version: str = SCHEMA_VERSION
    storage_key: str = STORAGE_KEY
    theme_key: str = THEME_KEY
    backups_key: str = BACKUPS_KEY
    credentials_key: str = CREDENTIALS_KEY
    kdf_iterations: int = 100_000
    max_history_entries: int = 100
    max_backups: int = 5
    check_in_history: bool = True
    auto_reset: bool = True
    data_dir: Path = field(default_factory=lambda: Path.home() / ".checkin-tracker")
    default_categories: list[dict] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CATEGORIES))

    def default_settings(self) -> dict:
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        settings["autoReset"] = self.auto_reset
        return settings


def _int(value: Optional[str], default: int) -> int:
    if value is None or not str(value).strip():
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(env_path: Optional[Path] = None) -> TrackerConfig:
    """Build a TrackerConfig from defaults, an optional .env file, then os.environ."""
    values: dict[str, Optional[str]] = {}
    if env_path is not None and env_path.is_file():
        values.update(dotenv_values(env_path))
    values.update({k: v for k, v in os.environ.items() if k.startswith("CHECKIN_")})

    cfg = TrackerConfig()
    if values.get("CHECKIN_DATA_DIR"):
        cfg.data_dir = Path(str(values["CHECKIN_DATA_DIR"])).expanduser()
    cfg.kdf_iterations = _int(values.get("CHECKIN_KDF_ITERATIONS"), cfg.kdf_iterations)
    cfg.max_history_entries = _int(values.get("CHECKIN_MAX_HISTORY"), cfg.max_history_entries)
    cfg.max_backups = _int(values.get("CHECKIN_MAX_BACKUPS"), cfg.max_backups)
    if values.get("CHECKIN_AUTO_RESET") is not None:
        cfg.auto_reset = str(values["CHECKIN_AUTO_RESET"]).strip().lower() in _TRUE
    return cfg
