"""checkin_tracker: persisted-state engine for a local credential check-in tracker."""

from __future__ import annotations

__version__ = "2.1.0"

from checkin_tracker.errors import (
    DecryptionError,
    NotFoundError,
    StorageError,
    TrackerError,
    ValidationError,
)

__all__ = [
    "__version__",
    "DecryptionError",
    "NotFoundError",
    "StorageError",
    "TrackerError",
    "ValidationError",
]
