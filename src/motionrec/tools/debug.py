"""Timing instrumentation for the export path.

Timings are always measured; they are only logged per block when
``MOTIONREC_DEBUG`` is set, so long exports can be profiled chunk by chunk.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

DEBUG_MOTIONREC = os.getenv("MOTIONREC_DEBUG", "").lower() in {"1", "true", "yes", "on"}

logger = logging.getLogger(__name__)


def debug_enabled() -> bool:
    return DEBUG_MOTIONREC


@dataclass
class Timing:
    label: str
    elapsed_ms: float = 0.0


@contextmanager
def time_block(label: str, *, log: Optional[logging.Logger] = None) -> Iterator[Timing]:
    """Measure the enclosed block; the result is filled in on exit."""
    timing = Timing(label)
    start = time.perf_counter()
    try:
        yield timing
    finally:
        timing.elapsed_ms = (time.perf_counter() - start) * 1000.0
        if debug_enabled():
            (log or logger).debug("%s took %.3f ms", label, timing.elapsed_ms)
