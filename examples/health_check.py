"""Smallest useful scenario: a single endpoint under a short ramp.

    loadscope run examples/health_check.py --base-url http://localhost:8080
"""

from __future__ import annotations

from loadscope import Scenario, ScenarioLibrary, Step, body_contains

name = "Health Check"

library = ScenarioLibrary(
    [Scenario("health", weight=1, steps=[Step("GET /health", assertions=[body_contains("ok")])])]
)

stages = [
    {"duration": "5s", "target": 10},
    {"duration": "10s", "target": 10},
    {"duration": "5s", "target": 0},
]

thresholds = {"http_req_duration": "p(95)<200", "http_req_failed": "rate<0.01"}

think_time = "0.2,0.5"
