"""Metric data model: samples, coverage entries, snapshots and run results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from loadscope.dsl.endpoint import EndpointKey
from loadscope.thresholds.models import ThresholdResult

__all__ = [
    "DEFAULT_PERCENTILES",
    "CoverageEntry",
    "EndpointStats",
    "LatencySample",
    "MetricsSnapshot",
    "OverallStats",
    "TestRunResult",
    "percentile_label",
]

DEFAULT_PERCENTILES: tuple[float, ...] = (50.0, 75.0, 90.0, 95.0, 99.0, 99.9)


def percentile_label(percentile: float) -> str:
    """Render ``95.0`` as ``"p95"`` and ``99.9`` as ``"p99.9"``.

    Non-integral percentiles keep every digit so the label parses back to the
    same float.
    """
    if float(percentile).is_integer():
        return f"p{int(percentile)}"
    return f"p{float(percentile)!r}"


def _percentiles_to_dict(percentiles: Mapping[float, float]) -> dict[str, float]:
    return {percentile_label(p): v for p, v in sorted(percentiles.items())}


def _percentiles_from_dict(data: Mapping[str, float]) -> dict[float, float]:
    return {float(label[1:]): float(value) for label, value in data.items()}


@dataclass(frozen=True)
class LatencySample:
    """One attempted step, tagged with its endpoint and outcome.

    Attributes:
        endpoint: Logical endpoint the step is counted under.
        latency_ms: Request start to response completion (or timeout).
        success: True iff the step met every success criterion.
        status_code: HTTP status, 0 when no response arrived.
        error: Failure reason, None on success.
    """

    endpoint: EndpointKey
    latency_ms: float
    success: bool
    status_code: int = 0
    error: str | None = None


@dataclass
class CoverageEntry:
    """Mutable per-endpoint counters owned by the accumulator.

    Invariant: ``hits == successes + errors``; counters only increase.
    """

    hits: int = 0
    successes: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0


@dataclass(frozen=True)
class EndpointStats:
    """Frozen per-endpoint view taken at snapshot time."""

    endpoint: str
    hits: int = 0
    successes: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    percentiles: dict[float, float] = field(default_factory=dict)

    @property
    def tested(self) -> bool:
        """True once the endpoint received at least one request."""
        return self.hits > 0

    @property
    def latency_avg(self) -> float:
        """Mean latency in milliseconds, 0.0 when untested."""
        return self.total_latency_ms / self.hits if self.hits else 0.0

    @property
    def error_rate(self) -> float:
        """Fraction of hits that were errors, 0.0 when untested."""
        return self.errors / self.hits if self.hits else 0.0

    @property
    def success_rate(self) -> float:
        """Fraction of hits that succeeded, 0.0 when untested."""
        return self.successes / self.hits if self.hits else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize, including derived fields."""
        return {
            "endpoint": self.endpoint,
            "tested": self.tested,
            "hits": self.hits,
            "successes": self.successes,
            "errors": self.errors,
            "error_rate": self.error_rate,
            "total_latency_ms": self.total_latency_ms,
            "latency_avg": self.latency_avg,
            "latency_min": self.latency_min,
            "latency_max": self.latency_max,
            "percentiles": _percentiles_to_dict(self.percentiles),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EndpointStats:
        """Inverse of :meth:`to_dict`; derived fields are recomputed."""
        return cls(
            endpoint=data["endpoint"],
            hits=int(data["hits"]),
            successes=int(data["successes"]),
            errors=int(data["errors"]),
            total_latency_ms=float(data["total_latency_ms"]),
            latency_min=float(data["latency_min"]),
            latency_max=float(data["latency_max"]),
            percentiles=_percentiles_from_dict(data.get("percentiles", {})),
        )


@dataclass(frozen=True)
class OverallStats:
    """Frozen run-wide latency and outcome view."""

    hits: int = 0
    successes: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    percentiles: dict[float, float] = field(default_factory=dict)

    @property
    def latency_avg(self) -> float:
        """Mean latency in milliseconds, 0.0 without requests."""
        return self.total_latency_ms / self.hits if self.hits else 0.0

    @property
    def error_rate(self) -> float:
        """Fraction of all requests that were errors."""
        return self.errors / self.hits if self.hits else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize, including derived fields."""
        return {
            "hits": self.hits,
            "successes": self.successes,
            "errors": self.errors,
            "error_rate": self.error_rate,
            "total_latency_ms": self.total_latency_ms,
            "latency_avg": self.latency_avg,
            "latency_min": self.latency_min,
            "latency_max": self.latency_max,
            "percentiles": _percentiles_to_dict(self.percentiles),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OverallStats:
        """Inverse of :meth:`to_dict`."""
        return cls(
            hits=int(data["hits"]),
            successes=int(data["successes"]),
            errors=int(data["errors"]),
            total_latency_ms=float(data["total_latency_ms"]),
            latency_min=float(data["latency_min"]),
            latency_max=float(data["latency_max"]),
            percentiles=_percentiles_from_dict(data.get("percentiles", {})),
        )


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of everything the accumulator holds.

    Attributes:
        endpoints: Per-endpoint stats in declaration order, keyed by the
            endpoint's textual form. Untested endpoints are present with
            zero fields.
        overall: Run-wide stats.
        iterations: Completed scenario iterations.
        discarded_iterations: Iterations abandoned by forced cancellation.
        errors_by_reason: Failure reason -> count.
    """

    endpoints: dict[str, EndpointStats]
    overall: OverallStats
    iterations: int = 0
    discarded_iterations: int = 0
    errors_by_reason: dict[str, int] = field(default_factory=dict)

    @property
    def total_endpoints(self) -> int:
        """Number of declared endpoints."""
        return len(self.endpoints)

    @property
    def tested_endpoints(self) -> int:
        """Number of endpoints with at least one hit."""
        return sum(1 for e in self.endpoints.values() if e.tested)

    @property
    def coverage_percentage(self) -> float:
        """``tested / declared * 100``; 0.0 with no declared endpoints."""
        if not self.endpoints:
            return 0.0
        return self.tested_endpoints / self.total_endpoints * 100

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the structured report."""
        return {
            "iterations": self.iterations,
            "discarded_iterations": self.discarded_iterations,
            "overall": self.overall.to_dict(),
            "coverage": {
                "total_endpoints": self.total_endpoints,
                "tested_endpoints": self.tested_endpoints,
                "coverage_percentage": self.coverage_percentage,
            },
            "endpoints": [e.to_dict() for e in self.endpoints.values()],
            "errors_by_reason": dict(sorted(self.errors_by_reason.items())),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MetricsSnapshot:
        """Inverse of :meth:`to_dict`."""
        endpoints = [EndpointStats.from_dict(e) for e in data.get("endpoints", [])]
        return cls(
            endpoints={e.endpoint: e for e in endpoints},
            overall=OverallStats.from_dict(data["overall"]),
            iterations=int(data.get("iterations", 0)),
            discarded_iterations=int(data.get("discarded_iterations", 0)),
            errors_by_reason={k: int(v) for k, v in data.get("errors_by_reason", {}).items()},
        )


@dataclass(frozen=True)
class TestRunResult:
    """Terminal, immutable aggregate of one load test run.

    Attributes:
        name: Run name shown in report headers.
        started_at: UTC ISO-8601 start timestamp.
        duration_seconds: Wall-clock duration of the run.
        plan_description: Human-readable ramp plan.
        stages: Serialized ramp stages.
        max_users: Peak number of active virtual users.
        timeline: ``(elapsed_seconds, active_users)`` at each scheduler tick.
        snapshot: Final metrics snapshot.
        thresholds: One result per declared threshold.
    """

    __test__ = False  # not a pytest test class

    name: str
    started_at: str
    duration_seconds: float
    plan_description: str
    snapshot: MetricsSnapshot
    stages: tuple[dict[str, Any], ...] = ()
    max_users: int = 0
    timeline: tuple[tuple[float, int], ...] = ()
    thresholds: tuple[ThresholdResult, ...] = ()

    @property
    def passed(self) -> bool:
        """True iff every threshold passed (vacuously true with none)."""
        return all(t.passed for t in self.thresholds)

    @property
    def iterations(self) -> int:
        """Completed scenario iterations."""
        return self.snapshot.iterations

    @property
    def coverage_percentage(self) -> float:
        """Endpoint coverage in percent."""
        return self.snapshot.coverage_percentage

    @property
    def error_rate(self) -> float:
        """Run-wide error rate."""
        return self.snapshot.overall.error_rate

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible data."""
        return {
            "name": self.name,
            "started_at": self.started_at,
            "duration_seconds": self.duration_seconds,
            "plan": {"description": self.plan_description, "stages": list(self.stages)},
            "max_users": self.max_users,
            "timeline": [list(point) for point in self.timeline],
            "passed": self.passed,
            "metrics": self.snapshot.to_dict(),
            "thresholds": [t.to_dict() for t in self.thresholds],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TestRunResult:
        """Rebuild a result from :meth:`to_dict` output."""
        plan = data.get("plan", {})
        return cls(
            name=data["name"],
            started_at=data["started_at"],
            duration_seconds=float(data["duration_seconds"]),
            plan_description=plan.get("description", ""),
            stages=tuple(plan.get("stages", ())),
            max_users=int(data.get("max_users", 0)),
            timeline=tuple((float(t), int(u)) for t, u in data.get("timeline", ())),
            snapshot=MetricsSnapshot.from_dict(data["metrics"]),
            thresholds=tuple(ThresholdResult.from_dict(t) for t in data.get("thresholds", ())),
        )
