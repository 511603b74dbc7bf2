"""Helpers for constructing export file names."""

import re
from datetime import datetime, timezone
from pathlib import Path

# Allow only alphanumerics, underscore, dot, and dash.
_USER_ID_RE = re.compile(r"[^A-Za-z0-9_.-]+")

EXPORT_PREFIX = "motion-data"


def _sanitize_user_id(user_id: str | None) -> str:
    """
    Sanitize a user identifier for use inside a file name.

    - Replace disallowed characters with '_'.
    - Strip leading/trailing underscores and dots.
    - Fall back to 'unknown' if nothing remains.
    """
    cleaned = _USER_ID_RE.sub("_", user_id or "").strip("_.")
    return cleaned or "unknown"


def export_filename(user_id: str | None, when: datetime | None = None) -> str:
    """
    Build the file name for a CSV export.

    Example: "motion-data-abc123-2025-12-04T15-30-45.csv"
    """
    moment = when or datetime.now(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H-%M-%S")
    return f"{EXPORT_PREFIX}-{_sanitize_user_id(user_id)}-{stamp}.csv"


def export_path(directory: Path, user_id: str | None, when: datetime | None = None) -> Path:
    return Path(directory).expanduser() / export_filename(user_id, when)
