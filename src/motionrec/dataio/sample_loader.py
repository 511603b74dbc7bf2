"""
Loading recorded samples from JSON-lines files.

Each line holds one sample object in the producer's wire format, e.g.::

    {"timestamp": 1700000000123, "userId": "abc", "accelX": 0.12, ...}

Blank lines are skipped; malformed lines are logged and dropped so one bad
record never aborts a whole file.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import List

from ..core.models import Sample

logger = logging.getLogger(__name__)


def iter_samples(lines: Iterable[str]) -> Iterator[Sample]:
    """Yield a :class:`Sample` for every valid line in ``lines``."""
    for lineno, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line:
            continue

        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Dropping malformed JSON on line %d: %s", lineno, exc)
            continue

        if not isinstance(record, Mapping):
            logger.debug("Skipping non-object JSON payload on line %d: %r", lineno, record)
            continue

        try:
            yield Sample.from_mapping(record)
        except ValueError as exc:
            logger.warning("Dropping invalid sample on line %d: %s", lineno, exc)


def load_samples(path: Path) -> List[Sample]:
    """Load every valid sample from the JSONL file at ``path``."""
    with Path(path).open("r", encoding="utf-8") as fh:
        return list(iter_samples(fh))


def dump_samples(path: Path, samples: Iterable[Sample]) -> None:
    """Write ``samples`` as JSON lines (wire format)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        for sample in samples:
            fh.write(json.dumps(sample.to_mapping()))
            fh.write("\n")
