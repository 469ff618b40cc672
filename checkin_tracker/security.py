"""Filesystem safety checks and secret redaction for display.

Used by the file storage backend, the activity journal and the CLI export
command, which all write files that may contain credentials.
"""

from __future__ import annotations

import hashlib
import os
import stat
from enum import Enum
from pathlib import Path


class RedactionLevel(Enum):
    """How much of a secret is visible when listed."""
    PARTIAL = "partial"   # show prefix...suffix
    FULL = "full"         # [REDACTED]
    HASH = "hash"         # [sha256:abcd1234]


def is_symlink_or_hardlink_attack(path: Path) -> bool:
    """Detect symlink/hardlink tricks on a path we are about to write."""
    if path.is_symlink():
        return True
    if path.exists():
        # Hardlink check: another name points at the same inode
        try:
            if path.is_file() and os.stat(path).st_nlink > 1:
                return True
        except OSError:
            return True
    return False


def check_output_permissions(path: Path, force: bool = False) -> bool:
    """Return True if safe to write. Refuses symlinks. Refuses world-readable unless forced."""
    if is_symlink_or_hardlink_attack(path):
        return False
    if not path.exists():
        parent = path.parent
        if parent.exists():
            mode = os.stat(parent).st_mode
            if mode & stat.S_IROTH and not force:
                return False
        return True
    mode = os.stat(path).st_mode
    if mode & stat.S_IROTH:
        return force
    return True


def redact_secret(secret: object, level: RedactionLevel = RedactionLevel.PARTIAL) -> str:
    """Redact a password or other secret at the given level."""
    if isinstance(secret, dict):
        return "[encrypted]"
    value = str(secret or "")
    if not value:
        return ""
    if level == RedactionLevel.FULL:
        return "[REDACTED]"
    if level == RedactionLevel.HASH:
        h = hashlib.sha256(value.encode()).hexdigest()[:12]
        return f"[sha256:{h}]"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:2]}...{value[-2:]}"
