"""Append-only staging buffer for incoming samples."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from .models import Sample

DEFAULT_NORMAL_THRESHOLD = 2000
DEFAULT_EMERGENCY_THRESHOLD = 5000
DEFAULT_BULK_APPEND_CUTOFF = 100


class FlushReason(str, Enum):
    """Why a flush happened; only ever surfaces in logs."""

    THRESHOLD = "threshold"
    EMERGENCY = "emergency"
    TIMER = "timer"
    STOP = "stop"


@dataclass
class BufferConfig:
    """Thresholds for :class:`IngestionBuffer`."""

    normal_threshold: int = DEFAULT_NORMAL_THRESHOLD
    emergency_threshold: int = DEFAULT_EMERGENCY_THRESHOLD
    bulk_append_cutoff: int = DEFAULT_BULK_APPEND_CUTOFF

    def __post_init__(self) -> None:
        self.normal_threshold = max(1, int(self.normal_threshold))
        # The emergency ceiling must sit strictly above the normal threshold.
        self.emergency_threshold = max(self.normal_threshold + 1, int(self.emergency_threshold))
        self.bulk_append_cutoff = max(0, int(self.bulk_append_cutoff))


class IngestionBuffer:
    """
    Buffer of samples waiting to be flushed into the session's collection.

    The buffer only stages samples; it never flushes by itself. ``add_one`` and
    ``add_batch`` report which flush (if any) the new occupancy calls for and
    the owning pipeline performs it in the same step.
    """

    def __init__(self, config: BufferConfig | None = None) -> None:
        self._config = config or BufferConfig()
        self._items: List[Sample] = []

    @property
    def config(self) -> BufferConfig:
        return self._config

    # ------------------------------------------------------------------ ingest
    def add_one(self, sample: Sample) -> Optional[FlushReason]:
        self._items.append(sample)
        return self.pending_flush()

    def add_batch(self, samples: Sequence[Sample]) -> Optional[FlushReason]:
        """Append ``samples`` in order.

        Batches above ``bulk_append_cutoff`` are appended in one bulk
        ``extend``; smaller ones item by item. Either way the cost is linear in
        the batch size and independent of how full the buffer already is.
        """
        if not samples:
            return None
        if len(samples) > self._config.bulk_append_cutoff:
            self._items.extend(samples)
        else:
            append = self._items.append
            for sample in samples:
                append(sample)
        return self.pending_flush()

    def pending_flush(self) -> Optional[FlushReason]:
        size = len(self._items)
        if size >= self._config.emergency_threshold:
            return FlushReason.EMERGENCY
        if size >= self._config.normal_threshold:
            return FlushReason.THRESHOLD
        return None

    # ------------------------------------------------------------------- drain
    def drain(self) -> List[Sample]:
        """Hand over every buffered sample (arrival order) and empty the buffer."""
        items = self._items
        self._items = []
        return items

    def clear(self) -> None:
        self._items = []

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
