"""Metric accumulation and snapshot models."""

from __future__ import annotations

from loadscope.metrics.accumulator import MetricsAccumulator
from loadscope.metrics.estimators import ExactEstimator, HdrEstimator, estimator_factory
from loadscope.metrics.models import (
    CoverageEntry,
    EndpointStats,
    LatencySample,
    MetricsSnapshot,
    OverallStats,
    TestRunResult,
)

__all__ = [
    "CoverageEntry",
    "EndpointStats",
    "ExactEstimator",
    "HdrEstimator",
    "LatencySample",
    "MetricsAccumulator",
    "MetricsSnapshot",
    "OverallStats",
    "TestRunResult",
    "estimator_factory",
]
