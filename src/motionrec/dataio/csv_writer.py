"""Writing finished CSV exports to disk."""

from datetime import datetime
from pathlib import Path

from .file_paths import export_path


def write_text(path: Path, text: str) -> Path:
    """
    Write ``text`` to ``path`` as UTF-8.

    Directories are created as needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as csvfile:
        csvfile.write(text)
    return path


def save_export(
    text: str,
    user_id: str | None,
    directory: Path,
    when: datetime | None = None,
) -> Path:
    """Save a CSV export under its standard file name inside ``directory``."""
    return write_text(export_path(directory, user_id, when), text)
