"""Local-time helpers shared by the store and the facade.

All "is it today" decisions compare the ``YYYY-MM-DD`` prefix of an ISO-8601
timestamp against the local calendar date of ``clock()``.
"""

from __future__ import annotations

import platform
from datetime import datetime, timedelta
from typing import Callable, Optional

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Timezone-aware current time in the machine's local zone."""
    return datetime.now().astimezone()


def timestamp(now: datetime) -> str:
    return now.isoformat(timespec="milliseconds")


def date_key(value: Optional[str]) -> Optional[str]:
    """Calendar-date prefix of an ISO timestamp, or None if it has none."""
    if not isinstance(value, str) or len(value) < 10:
        return None
    return value[:10]


def today_key(now: datetime) -> str:
    return now.date().isoformat()


def yesterday_key(now: datetime) -> str:
    return (now.date() - timedelta(days=1)).isoformat()


def is_same_day(value: Optional[str], now: datetime) -> bool:
    return date_key(value) == today_key(now)


def device_label() -> str:
    """Short description of the machine recording a check-in."""
    system = platform.system() or "unknown"
    return f"{platform.python_implementation()} on {system}"
