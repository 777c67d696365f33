"""Load test for a REST + MQTT service with seven endpoints.

Ramps to 100 virtual users over 30s, holds for 10s, then drains. Run with:

    loadscope run examples/rust_api.py

Or point it somewhere else and shorten the ramp:

    loadscope run examples/rust_api.py --base-url http://staging:3000 \\
        --stage 10s:20 --stage 5s:0
"""

from __future__ import annotations

import random

from loadscope import RampPlan, Scenario, ScenarioLibrary, Step, json_has

name = "Rust API"
base_url = "http://127.0.0.1:3000"


def _user_path(rng: random.Random) -> str:
    return f"/user/users/{rng.randint(1, 100)}"


def _new_user(rng: random.Random) -> dict[str, str]:
    suffix = rng.randint(1, 1_000_000)
    return {"name": f"user-{suffix}", "email": f"user-{suffix}@example.com"}


def _message(rng: random.Random) -> dict[str, object]:
    return {"topic": "loadscope/test", "payload": {"value": rng.random()}}


library = ScenarioLibrary(
    [
        Scenario("health", weight=1, steps=[Step("GET /")]),
        Scenario(
            "user lifecycle",
            weight=1,
            abort_on_failure=True,
            steps=[
                Step("GET /user/users"),
                Step("POST /user/users", body=_new_user, expected_status={200, 201}),
                Step("GET /user/users/:id", path=_user_path, expected_status={200, 404}),
            ],
        ),
        Scenario(
            "mqtt",
            weight=1,
            steps=[
                Step("POST /mqtt/pub", body=_message),
                Step("GET /mqtt/consume", latency_budget_ms=1000),
            ],
        ),
        Scenario(
            "channel",
            weight=1,
            steps=[Step("POST /channel/pub", body=_message, assertions=[json_has("status")])],
        ),
    ],
    endpoints=[
        "GET /",
        "GET /user/users",
        "POST /user/users",
        "GET /user/users/:id",
        "POST /mqtt/pub",
        "GET /mqtt/consume",
        "POST /channel/pub",
    ],
)

plan = RampPlan.parse(["30s:100", "10s:100", "10s:0"])

thresholds = {
    "http_req_duration": ["p(95)<500", "p(99)<1000"],
    "http_req_failed": ["rate<0.05"],
    "errors": ["rate<0.05"],
    "successful_requests": ["count>100"],
    "endpoint_hits": ["count>200"],
}

think_time = (0.5, 2.5)
