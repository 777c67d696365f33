"""Latency percentile estimators.

Two interchangeable estimators back the metrics accumulator:

* :class:`HdrEstimator` wraps ``hdrh.histogram.HdrHistogram``.  Memory is
  constant regardless of run length and values keep three significant
  digits (a 10.0ms sample reads back within 0.01ms).
* :class:`ExactEstimator` retains raw samples and asks numpy for exact
  percentiles.  Retention is capped; past the cap a uniform reservoir of
  ``max_samples`` values is kept, so percentiles become estimates.

Min, max and count are tracked exactly by both.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np
from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from loadscope._internal.config import PercentileMode

# Range: 1 microsecond to 60 seconds (in microseconds)
_LOWEST_TRACKABLE_US = 1
_HIGHEST_TRACKABLE_US = 60_000_000
_SIGNIFICANT_DIGITS = 3


class PercentileEstimator(ABC):
    """Accumulates latencies (milliseconds) and answers percentile queries."""

    def __init__(self) -> None:
        self._count = 0
        self._min = 0.0
        self._max = 0.0

    @property
    def count(self) -> int:
        """Number of values recorded."""
        return self._count

    @property
    def min(self) -> float:
        """Smallest recorded value, 0.0 when empty."""
        return self._min

    @property
    def max(self) -> float:
        """Largest recorded value, 0.0 when empty."""
        return self._max

    def record(self, latency_ms: float) -> None:
        """Record one latency in milliseconds."""
        if self._count == 0:
            self._min = self._max = latency_ms
        else:
            self._min = min(self._min, latency_ms)
            self._max = max(self._max, latency_ms)
        self._count += 1
        self._record(latency_ms)

    def percentiles(self, percentiles: Iterable[float]) -> dict[float, float]:
        """Return ``{p: value_ms}`` for each requested percentile.

        Returns 0.0 for every percentile when nothing was recorded.
        """
        wanted = sorted({float(p) for p in percentiles})
        if self._count == 0:
            return dict.fromkeys(wanted, 0.0)
        return self._percentiles(wanted)

    @abstractmethod
    def _record(self, latency_ms: float) -> None: ...

    @abstractmethod
    def _percentiles(self, percentiles: list[float]) -> dict[float, float]: ...


class HdrEstimator(PercentileEstimator):
    """HDR-histogram estimator, stored internally as integer microseconds.

    Values are clamped to the trackable range [1us, 60s].
    """

    def __init__(
        self,
        lowest_us: int = _LOWEST_TRACKABLE_US,
        highest_us: int = _HIGHEST_TRACKABLE_US,
        significant_digits: int = _SIGNIFICANT_DIGITS,
    ) -> None:
        super().__init__()
        self.lowest_us = lowest_us
        self.highest_us = highest_us
        self._histogram: HdrHistogram = HdrHistogram(  # type: ignore[no-any-unimported]
            lowest_us, highest_us, significant_digits
        )

    def _record(self, latency_ms: float) -> None:
        value_us = int(latency_ms * 1000)
        value_us = max(self.lowest_us, min(value_us, self.highest_us))
        self._histogram.record_value(value_us)

    def _percentiles(self, percentiles: list[float]) -> dict[float, float]:
        return {
            p: float(self._histogram.get_value_at_percentile(p)) / 1000.0 for p in percentiles
        }


class ExactEstimator(PercentileEstimator):
    """Raw-sample estimator with a reservoir cap.

    Args:
        max_samples: Raw values retained before reservoir sampling starts.
        rng: Random source for reservoir replacement.
    """

    def __init__(self, max_samples: int = 100_000, rng: random.Random | None = None) -> None:
        super().__init__()
        self._max_samples = max_samples
        self._samples: list[float] = []
        self._rng = rng or random.Random()  # noqa: S311

    @property
    def retained(self) -> int:
        """Number of raw values currently held."""
        return len(self._samples)

    def _record(self, latency_ms: float) -> None:
        if len(self._samples) < self._max_samples:
            self._samples.append(latency_ms)
            return
        # Algorithm R: keep each of the first n values with probability k/n.
        slot = self._rng.randrange(self._count)
        if slot < self._max_samples:
            self._samples[slot] = latency_ms

    def _percentiles(self, percentiles: list[float]) -> dict[float, float]:
        values = np.percentile(np.asarray(self._samples, dtype=np.float64), percentiles)
        return {p: float(v) for p, v in zip(percentiles, values, strict=True)}


def estimator_factory(
    mode: PercentileMode = "hdr",
    max_samples: int = 100_000,
) -> Callable[[], PercentileEstimator]:
    """Return a zero-argument constructor for the configured estimator."""
    if mode == "exact":
        return lambda: ExactEstimator(max_samples=max_samples)
    return HdrEstimator
