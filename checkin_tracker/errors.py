"""Error taxonomy plus plain-language messages for the command line.

Store and crypto code convert most failures into False/None results and keep
the exception on ``store.last_error``; only DecryptionError is raised through.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for every error raised by checkin_tracker."""


class ValidationError(TrackerError):
    """Malformed input to a CRUD or import operation."""


class DecryptionError(TrackerError):
    """Wrong password or tampered/corrupted envelope (deliberately one message)."""

    def __init__(self, message: str = "Failed to decrypt data - incorrect password or corrupted data"):
        super().__init__(message)


class StorageError(TrackerError):
    """Storage unavailable, quota exceeded, or serialization failure."""


class NotFoundError(TrackerError):
    """Referenced site, credential or backup does not exist."""


# Map error class names to (friendly_message, recovery_steps)
_FRIENDLY: dict[str, tuple[str, list[str]]] = {
    "ValidationError": (
        "Some of the data you entered isn't valid.",
        [
            "Check that sites have a name and a URL",
            "Check that credentials have an email or username",
            "Imported files must contain a \"sites\" list",
        ],
    ),
    "DecryptionError": (
        "We couldn't unlock that file.",
        [
            "Double-check the password (it is case-sensitive)",
            "Make sure the file wasn't edited or truncated after export",
        ],
    ),
    "StorageError": (
        "We couldn't save your data.",
        [
            "Check that the data directory exists and is writable",
            "Free up disk space if the disk is full",
            "Try: python -m checkin_tracker --data-dir /another/path init",
        ],
    ),
    "NotFoundError": (
        "We couldn't find that item.",
        [
            "Run: python -m checkin_tracker list  to see current IDs",
            "The item may have been deleted already",
        ],
    ),
    "JSONDecodeError": (
        "That file isn't valid JSON.",
        ["Make sure you picked a file produced by the export command"],
    ),
    "FileNotFoundError": (
        "We couldn't find that file.",
        ["Check for typos in the path", "Use an absolute path if unsure"],
    ),
    "PermissionError": (
        "We don't have permission to access that file.",
        ["Run: chmod 600 <file>  (makes it readable by you only)"],
    ),
    "KeyboardInterrupt": (
        "You stopped the process, nothing was changed.",
        ["Just run the command again whenever you're ready."],
    ),
}


def friendly_error(exc: BaseException, context: str = "") -> str:
    """Return a user-friendly error message with recovery steps."""
    etype = type(exc).__name__
    match = None
    for base in type(exc).__mro__:
        match = _FRIENDLY.get(base.__name__)
        if match:
            break

    if match:
        msg, steps = match
    else:
        msg = "Something unexpected went wrong."
        steps = ["Try running the command again", "Run: python -m checkin_tracker --self-test"]

    lines = [f"\n  {msg}"]
    if context:
        lines.append(f"     (while {context})")
    lines.append("")
    lines.append("  Let's fix it:")
    for i, step in enumerate(steps, 1):
        lines.append(f"    {i}. {step}")
    lines.append("")
    lines.append(f"     Technical detail: {etype}: {exc}")
    lines.append("")
    return "\n".join(lines)


def wrap_main(func, context: str = "running the tool") -> int:
    """Run func(), catching exceptions and printing friendly messages. Returns exit code."""
    try:
        return func()
    except KeyboardInterrupt:
        print(friendly_error(KeyboardInterrupt(), context))
        return 130
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    except Exception as e:
        print(friendly_error(e, context))
        return 1
