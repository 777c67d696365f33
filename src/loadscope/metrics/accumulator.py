"""Thread-safe accumulation of latency samples into coverage and percentiles.

One ``MetricsAccumulator`` is built per run and handed to every virtual
user. Each ``record`` call holds the internal lock only for a few counter
updates and two estimator inserts; nothing awaits or performs I/O while the
lock is held.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import TYPE_CHECKING

from loadscope._internal.errors import ConfigError
from loadscope._internal.logging import get_logger
from loadscope.metrics.estimators import HdrEstimator
from loadscope.metrics.models import (
    DEFAULT_PERCENTILES,
    CoverageEntry,
    EndpointStats,
    MetricsSnapshot,
    OverallStats,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from loadscope.dsl.endpoint import EndpointCatalog, EndpointKey
    from loadscope.metrics.estimators import PercentileEstimator
    from loadscope.metrics.models import LatencySample

logger = get_logger("metrics.accumulator")


class MetricsAccumulator:
    """Aggregates samples per declared endpoint and globally.

    All declared endpoints exist from construction with zeroed entries, so a
    snapshot always lists the full catalog. Samples for endpoints outside
    the catalog are rejected.

    Attributes:
        catalog: The closed set of declared endpoints.
    """

    def __init__(
        self,
        catalog: EndpointCatalog,
        estimator_factory: Callable[[], PercentileEstimator] = HdrEstimator,
    ) -> None:
        """Initialize zeroed state for every declared endpoint.

        Args:
            catalog: Declared endpoints.
            estimator_factory: Builds one percentile estimator per endpoint
                plus one global estimator.
        """
        self.catalog = catalog
        self._estimator_factory = estimator_factory
        self._lock = threading.Lock()
        self._init_state()

    def _init_state(self) -> None:
        self._entries: dict[EndpointKey, CoverageEntry] = {k: CoverageEntry() for k in self.catalog}
        self._estimators: dict[EndpointKey, PercentileEstimator] = {
            k: self._estimator_factory() for k in self.catalog
        }
        self._overall_entry = CoverageEntry()
        self._overall_estimator = self._estimator_factory()
        self._errors_by_reason: dict[str, int] = defaultdict(int)
        self._iterations = 0
        self._discarded_iterations = 0

    def record(self, sample: LatencySample) -> None:
        """Fold one sample into its endpoint entry and the global stats.

        Args:
            sample: The attempted step's outcome.

        Raises:
            ConfigError: If the sample's endpoint was not declared.
        """
        entry = self._entries.get(sample.endpoint)
        if entry is None:
            msg = f"Sample for undeclared endpoint {sample.endpoint}"
            raise ConfigError(msg)

        with self._lock:
            for target in (entry, self._overall_entry):
                target.hits += 1
                target.total_latency_ms += sample.latency_ms
                if sample.success:
                    target.successes += 1
                else:
                    target.errors += 1
            self._estimators[sample.endpoint].record(sample.latency_ms)
            self._overall_estimator.record(sample.latency_ms)
            if not sample.success:
                self._errors_by_reason[sample.error or "unknown"] += 1

    def record_iteration(self) -> None:
        """Count one completed scenario iteration."""
        with self._lock:
            self._iterations += 1

    def record_discarded_iteration(self) -> None:
        """Count one iteration abandoned by forced cancellation."""
        with self._lock:
            self._discarded_iterations += 1

    def coverage_percentage(self) -> float:
        """Percentage of declared endpoints hit at least once so far."""
        with self._lock:
            tested = sum(1 for e in self._entries.values() if e.hits > 0)
        return tested / len(self._entries) * 100 if self._entries else 0.0

    def snapshot(self, percentiles: Iterable[float] = ()) -> MetricsSnapshot:
        """Return a frozen, internally consistent copy of all statistics.

        Args:
            percentiles: Extra percentiles to compute on top of
                ``DEFAULT_PERCENTILES`` (e.g. those thresholds reference).

        Returns:
            MetricsSnapshot with every declared endpoint, in catalog order.
        """
        wanted = sorted({*DEFAULT_PERCENTILES, *(float(p) for p in percentiles)})
        with self._lock:
            endpoints = {
                str(key): EndpointStats(
                    endpoint=str(key),
                    hits=entry.hits,
                    successes=entry.successes,
                    errors=entry.errors,
                    total_latency_ms=entry.total_latency_ms,
                    latency_min=self._estimators[key].min,
                    latency_max=self._estimators[key].max,
                    percentiles=self._estimators[key].percentiles(wanted),
                )
                for key, entry in self._entries.items()
            }
            overall = OverallStats(
                hits=self._overall_entry.hits,
                successes=self._overall_entry.successes,
                errors=self._overall_entry.errors,
                total_latency_ms=self._overall_entry.total_latency_ms,
                latency_min=self._overall_estimator.min,
                latency_max=self._overall_estimator.max,
                percentiles=self._overall_estimator.percentiles(wanted),
            )
            return MetricsSnapshot(
                endpoints=endpoints,
                overall=overall,
                iterations=self._iterations,
                discarded_iterations=self._discarded_iterations,
                errors_by_reason=dict(self._errors_by_reason),
            )

    def reset(self) -> None:
        """Clear all state for a new run."""
        with self._lock:
            self._init_state()
        logger.debug("Accumulator reset for %d endpoints", len(self.catalog))
