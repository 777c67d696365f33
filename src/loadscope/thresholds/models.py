"""Threshold specifications and results."""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from loadscope._internal.errors import ConfigError

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

# Metric name -> aggregations it supports.
METRICS: dict[str, frozenset[str]] = {
    "http_req_duration": frozenset({"avg", "min", "max", "med", "p"}),
    "http_req_failed": frozenset({"rate", "count"}),
    "errors": frozenset({"rate", "count"}),
    "http_reqs": frozenset({"count"}),
    "endpoint_hits": frozenset({"count"}),
    "successful_requests": frozenset({"count"}),
    "failed_requests": frozenset({"count"}),
    "iterations": frozenset({"count"}),
    "coverage": frozenset({"rate", "count"}),
}

# Metrics that can be scoped to a single endpoint with ``metric{GET /path}``.
ENDPOINT_SCOPED = frozenset(
    {
        "http_req_duration",
        "http_req_failed",
        "errors",
        "http_reqs",
        "endpoint_hits",
        "successful_requests",
        "failed_requests",
    }
)

_METRIC_RE = re.compile(r"^\s*(?P<metric>[a-z_]+)\s*(?:\{\s*(?P<endpoint>[^}]+?)\s*\})?\s*$")
_EXPR_RE = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|rate|count|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op><=|>=|<|>)\s*(?P<limit>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$"
)


@dataclass(frozen=True)
class ThresholdSpec:
    """A declared pass/fail condition over one aggregated metric.

    Attributes:
        metric: Metric name, e.g. ``http_req_duration``.
        aggregation: ``avg``, ``min``, ``max``, ``med``, ``p``, ``rate`` or ``count``.
        comparator: ``<``, ``<=``, ``>`` or ``>=``.
        limit: Value the aggregate is compared against.
        percentile: Percentile for ``p`` aggregations, e.g. 95.0.
        endpoint: Optional endpoint scope in ``"GET /path"`` form.
    """

    metric: str
    aggregation: str
    comparator: str
    limit: float
    percentile: float | None = None
    endpoint: str | None = None

    def __post_init__(self) -> None:
        if self.metric not in METRICS:
            msg = f"Unknown threshold metric {self.metric!r}; choose from {sorted(METRICS)}"
            raise ConfigError(msg)
        if self.aggregation not in METRICS[self.metric]:
            msg = (
                f"Metric {self.metric!r} does not support aggregation {self.aggregation!r}; "
                f"supported: {sorted(METRICS[self.metric])}"
            )
            raise ConfigError(msg)
        if self.comparator not in COMPARATORS:
            msg = f"Unknown comparator {self.comparator!r}"
            raise ConfigError(msg)
        if self.aggregation == "p":
            if self.percentile is None or not 0 < self.percentile <= 100:
                msg = f"Percentile must be in (0, 100], got {self.percentile}"
                raise ConfigError(msg)
        elif self.percentile is not None:
            msg = "Percentile is only valid with the p(N) aggregation"
            raise ConfigError(msg)
        if self.endpoint is not None and self.metric not in ENDPOINT_SCOPED:
            msg = f"Metric {self.metric!r} cannot be scoped to an endpoint"
            raise ConfigError(msg)

    @classmethod
    def parse(cls, metric: str, expression: str) -> ThresholdSpec:
        """Parse a k6-style threshold such as ``("http_req_duration", "p(95)<500")``.

        *metric* may carry an endpoint scope: ``"http_req_duration{GET /user/users}"``.

        Raises:
            ConfigError: If either part is malformed.
        """
        metric_match = _METRIC_RE.match(metric)
        if metric_match is None:
            msg = f"Invalid threshold metric: {metric!r}"
            raise ConfigError(msg)
        expr_match = _EXPR_RE.match(expression)
        if expr_match is None:
            msg = f"Invalid threshold expression for {metric}: {expression!r}"
            raise ConfigError(msg)

        agg = expr_match.group("agg")
        pct = expr_match.group("pct")
        endpoint = metric_match.group("endpoint")
        if endpoint is not None:
            endpoint = " ".join(endpoint.split())
        return cls(
            metric=metric_match.group("metric"),
            aggregation="p" if agg.startswith("p(") else agg,
            comparator=expr_match.group("op"),
            limit=float(expr_match.group("limit")),
            percentile=float(pct) if pct is not None else None,
            endpoint=endpoint,
        )

    @classmethod
    def parse_flag(cls, text: str) -> ThresholdSpec:
        """Parse the CLI form ``"<metric>:<expression>"``.

        The metric part may contain a ``{METHOD /path}`` scope with colons of
        its own, so the split happens at the last colon.
        """
        metric, sep, expression = text.rpartition(":")
        if not sep or not metric:
            msg = f"Threshold must look like 'metric:expression', got {text!r}"
            raise ConfigError(msg)
        return cls.parse(metric, expression)

    @property
    def aggregation_label(self) -> str:
        """Aggregation as written, e.g. ``p(95)``."""
        if self.aggregation == "p":
            return f"p({self.percentile:g})"
        return self.aggregation

    @property
    def metric_label(self) -> str:
        """Metric with its endpoint scope, e.g. ``http_req_duration{GET /}``."""
        if self.endpoint is None:
            return self.metric
        return f"{self.metric}{{{self.endpoint}}}"

    def __str__(self) -> str:
        return f"{self.metric_label}: {self.aggregation_label}{self.comparator}{self.limit:g}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the structured report."""
        return {
            "metric": self.metric,
            "aggregation": self.aggregation,
            "comparator": self.comparator,
            "limit": self.limit,
            "percentile": self.percentile,
            "endpoint": self.endpoint,
            "expression": str(self),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ThresholdSpec:
        """Inverse of :meth:`to_dict`."""
        return cls(
            metric=data["metric"],
            aggregation=data["aggregation"],
            comparator=data["comparator"],
            limit=float(data["limit"]),
            percentile=data.get("percentile"),
            endpoint=data.get("endpoint"),
        )


@dataclass(frozen=True)
class ThresholdResult:
    """Outcome of one threshold.

    Attributes:
        spec: The evaluated threshold.
        passed: True iff the observed value satisfied the comparator.
        observed: The aggregated value, or None when the metric was absent
            (which always fails).
    """

    spec: ThresholdSpec
    passed: bool
    observed: float | None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the structured report."""
        return {"spec": self.spec.to_dict(), "passed": self.passed, "observed": self.observed}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ThresholdResult:
        """Inverse of :meth:`to_dict`."""
        return cls(
            spec=ThresholdSpec.from_dict(data["spec"]),
            passed=bool(data["passed"]),
            observed=data.get("observed"),
        )


def parse_thresholds(
    thresholds: Mapping[str, Iterable[str] | str] | Iterable[str | ThresholdSpec] | None,
) -> list[ThresholdSpec]:
    """Normalize threshold declarations into specs.

    Accepts the k6 ``options.thresholds`` mapping shape
    (``{"http_req_duration": ["p(95)<500", "p(99)<1000"]}``), a list of
    ``"metric:expression"`` strings, or ready-made specs.

    Raises:
        ConfigError: If any declaration is malformed.
    """
    if thresholds is None:
        return []
    specs: list[ThresholdSpec] = []
    if isinstance(thresholds, Mapping):
        for metric, expressions in thresholds.items():
            if isinstance(expressions, str):
                expressions = [expressions]
            specs.extend(ThresholdSpec.parse(metric, expr) for expr in expressions)
        return specs
    for item in thresholds:
        if isinstance(item, ThresholdSpec):
            specs.append(item)
        else:
            specs.append(ThresholdSpec.parse_flag(item))
    return specs
