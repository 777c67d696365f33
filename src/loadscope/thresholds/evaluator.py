"""Evaluate threshold specs against a metrics snapshot."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loadscope._internal.errors import ConfigError
from loadscope.dsl.endpoint import EndpointKey
from loadscope.thresholds.models import COMPARATORS, ThresholdResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loadscope.metrics.models import EndpointStats, MetricsSnapshot, OverallStats
    from loadscope.thresholds.models import ThresholdSpec


def required_percentiles(specs: Iterable[ThresholdSpec]) -> list[float]:
    """Percentiles the snapshot must contain for *specs* to be evaluable."""
    wanted = {s.percentile for s in specs if s.aggregation == "p" and s.percentile is not None}
    if any(s.aggregation == "med" for s in specs):
        wanted.add(50.0)
    return sorted(wanted)


def _endpoint_stats(snapshot: MetricsSnapshot, endpoint: str) -> EndpointStats | None:
    try:
        key = str(EndpointKey.parse(endpoint))
    except ConfigError:
        return None
    return snapshot.endpoints.get(key)


def _latency(stats: EndpointStats | OverallStats, spec: ThresholdSpec) -> float | None:
    if spec.aggregation == "avg":
        return stats.latency_avg
    if spec.aggregation == "min":
        return stats.latency_min
    if spec.aggregation == "max":
        return stats.latency_max
    percentile = 50.0 if spec.aggregation == "med" else spec.percentile
    return stats.percentiles.get(percentile)  # type: ignore[arg-type]


def observe(snapshot: MetricsSnapshot, spec: ThresholdSpec) -> float | None:
    """Return the aggregated value *spec* refers to, or None when absent.

    A value is absent when the scoped endpoint is unknown, when the scope saw
    no requests (or the run completed no iterations), or when the requested
    percentile was not computed into the snapshot. Counts over an empty scope
    are absent too, so an upper-bounded count cannot pass on a run with no data.
    """
    if spec.metric == "iterations":
        return float(snapshot.iterations) if snapshot.iterations else None
    if spec.metric == "coverage":
        if snapshot.total_endpoints == 0:
            return None
        if spec.aggregation == "count":
            return float(snapshot.tested_endpoints)
        return snapshot.tested_endpoints / snapshot.total_endpoints

    stats: EndpointStats | OverallStats | None
    if spec.endpoint is not None:
        stats = _endpoint_stats(snapshot, spec.endpoint)
    else:
        stats = snapshot.overall
    if stats is None or stats.hits == 0:
        return None

    if spec.metric == "http_req_duration":
        return _latency(stats, spec)
    if spec.metric in ("http_req_failed", "errors"):
        if spec.aggregation == "count":
            return float(stats.errors)
        return stats.error_rate
    if spec.metric in ("http_reqs", "endpoint_hits"):
        return float(stats.hits)
    if spec.metric == "successful_requests":
        return float(stats.successes)
    if spec.metric == "failed_requests":
        return float(stats.errors)
    return None


def evaluate(snapshot: MetricsSnapshot, specs: Iterable[ThresholdSpec]) -> list[ThresholdResult]:
    """Evaluate every spec against *snapshot*.

    Pure: the same snapshot and specs always give the same results, in the
    order the specs were given. Absent values fail with ``observed=None``.

    Args:
        snapshot: Final metrics of a run.
        specs: Threshold declarations.

    Returns:
        One ThresholdResult per spec.
    """
    results = []
    for spec in specs:
        observed = observe(snapshot, spec)
        passed = observed is not None and COMPARATORS[spec.comparator](observed, spec.limit)
        results.append(ThresholdResult(spec=spec, passed=passed, observed=observed))
    return results
