"""LoadScope: ramped HTTP load tests with endpoint coverage and thresholds."""

from __future__ import annotations

from loadscope.dsl.assertions import body_contains, check, json_has, max_latency, status_in
from loadscope.dsl.endpoint import EndpointCatalog, EndpointKey
from loadscope.dsl.http_client import HttpClient, HttpRequest, HttpResponse
from loadscope.dsl.scenario import Scenario, ScenarioLibrary, Step
from loadscope.engine.runner import LoadTestRunner, RunOutcome
from loadscope.metrics.models import TestRunResult
from loadscope.patterns.base import LoadPattern
from loadscope.patterns.stages import RampPlan, Stage
from loadscope.thresholds.models import ThresholdSpec

__version__ = "0.1.0"

__all__ = [
    "EndpointCatalog",
    "EndpointKey",
    "HttpClient",
    "HttpRequest",
    "HttpResponse",
    "LoadPattern",
    "LoadTestRunner",
    "RampPlan",
    "RunOutcome",
    "Scenario",
    "ScenarioLibrary",
    "Stage",
    "Step",
    "TestRunResult",
    "ThresholdSpec",
    "body_contains",
    "check",
    "json_has",
    "max_latency",
    "status_in",
]
