"""Machine-readable report artifacts."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loadscope.metrics.models import TestRunResult


def render_performance_data(result: TestRunResult) -> str:
    """Serialize the full run result; ``TestRunResult.from_dict`` reads it back."""
    return json.dumps(result.to_dict(), indent=2, sort_keys=False) + "\n"


def coverage_report(result: TestRunResult) -> dict[str, Any]:
    """Build the endpoint coverage document.

    Layout::

        {
          "testInfo": {"name", "timestamp", "duration", "iterations", "vus"},
          "endpointCoverage": {
            "GET /user/users": {"hits", "successRate", "avgResponseTime",
                                "errors", "tested"},
            ...
          },
          "summary": {"totalEndpoints", "testedEndpoints", "coveragePercentage"}
        }

    ``successRate`` and ``coveragePercentage`` are percentages and
    ``avgResponseTime`` is in milliseconds, all rounded to two decimals.
    Untested endpoints are listed with zeros and ``"tested": false``.
    """
    snapshot = result.snapshot
    return {
        "testInfo": {
            "name": result.name,
            "timestamp": result.started_at,
            "duration": round(result.duration_seconds, 2),
            "iterations": snapshot.iterations,
            "vus": result.max_users,
        },
        "endpointCoverage": {
            key: {
                "hits": stats.hits,
                "successRate": round(stats.success_rate * 100, 2),
                "avgResponseTime": round(stats.latency_avg, 2),
                "errors": stats.errors,
                "tested": stats.tested,
            }
            for key, stats in snapshot.endpoints.items()
        },
        "summary": {
            "totalEndpoints": snapshot.total_endpoints,
            "testedEndpoints": snapshot.tested_endpoints,
            "coveragePercentage": round(snapshot.coverage_percentage, 2),
        },
    }


def render_endpoint_coverage(result: TestRunResult) -> str:
    """Serialize :func:`coverage_report` as indented JSON."""
    return json.dumps(coverage_report(result), indent=2) + "\n"
