from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class RateEstimate:
    """Container for the derived throughput figures."""

    average_hz: float
    current_hz: float
    peak_hz: float
    min_hz: float


class RateStatistics:
    """
    Throughput statistics derived from buffer flush cadence.

    Notes
    -----
    - The instantaneous rate of a flush is ``flushed_count / flush_interval_s``;
      it is measured per flush, never per sample.
    - The average rate uses elapsed wall-clock seconds since the session
      started. The two clocks are kept apart: a producer with a low duty cycle
      shows an average well below its instantaneous rate.
    - Recent per-flush rates live in a pre-allocated ring of ``window_size``
      entries; the oldest entry is overwritten once the ring is full.
    """

    def __init__(
        self,
        flush_interval_s: float,
        window_size: int = 20,
        recent_count: int = 5,
    ) -> None:
        if flush_interval_s <= 0:
            raise ValueError("flush_interval_s must be positive")
        if window_size <= 0:
            raise ValueError("window_size must be positive")
        self.flush_interval_s = float(flush_interval_s)
        self.recent_count = max(1, int(recent_count))
        self._rates = np.zeros(int(window_size), dtype=np.float64)
        self._index = 0
        self._count = 0
        self.total_points = 0
        self.started_at: Optional[float] = None
        self.average_hz = 0.0

    # ------------------------------------------------------------------ update
    def start(self, now: float) -> None:
        """Reset all figures and mark ``now`` as the session start."""
        self.reset()
        self.started_at = float(now)

    def reset(self) -> None:
        self._rates.fill(0.0)
        self._index = 0
        self._count = 0
        self.total_points = 0
        self.started_at = None
        self.average_hz = 0.0

    def record_flush(self, flushed_count: int, now: float) -> float:
        """
        Account for one flush of ``flushed_count`` samples.

        Returns the instantaneous rate pushed into the window.
        """
        self.total_points += int(flushed_count)
        rate = flushed_count / self.flush_interval_s
        self._rates[self._index] = rate
        self._index = (self._index + 1) % self._rates.size
        self._count = min(self._count + 1, self._rates.size)
        self.average_hz = self.average_rate(now)
        return rate

    # ------------------------------------------------------------------- query
    def elapsed_s(self, now: float) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, float(now) - self.started_at)

    def average_rate(self, now: float) -> float:
        elapsed = self.elapsed_s(now)
        if elapsed <= 0.0:
            return 0.0
        return self.total_points / elapsed

    def window(self) -> np.ndarray:
        """Return the window contents, oldest first."""
        if self._count < self._rates.size:
            return self._rates[: self._count].copy()
        return np.roll(self._rates, -self._index)

    @property
    def has_rates(self) -> bool:
        return bool(np.any(self.window() > 0.0))

    @property
    def current_hz(self) -> float:
        """Mean of the most recent ``recent_count`` window entries."""
        window = self.window()
        if window.size == 0:
            return 0.0
        return float(np.mean(window[-self.recent_count :]))

    @property
    def peak_hz(self) -> float:
        positive = self._positive_rates()
        return float(positive.max()) if positive.size else 0.0

    @property
    def min_hz(self) -> float:
        positive = self._positive_rates()
        return float(positive.min()) if positive.size else 0.0

    def estimate(self) -> RateEstimate:
        return RateEstimate(
            average_hz=self.average_hz,
            current_hz=self.current_hz,
            peak_hz=self.peak_hz,
            min_hz=self.min_hz,
        )

    @property
    def window_size(self) -> int:
        return int(self._rates.size)

    def _positive_rates(self) -> np.ndarray:
        window = self.window()
        return window[window > 0.0]
