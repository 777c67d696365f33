"""Tests for steps, scenarios, the scenario library and assertions."""

from __future__ import annotations

import random

import pytest

from loadscope._internal.errors import ConfigError
from loadscope.dsl.assertions import body_contains, check, json_has, max_latency, status_in
from loadscope.dsl.endpoint import EndpointKey
from loadscope.dsl.http_client import HttpResponse
from loadscope.dsl.scenario import SUCCESS_STATUSES, Scenario, ScenarioLibrary, Step

# =========================================================================
# Step
# =========================================================================


class TestStep:
    """Tests for the Step dataclass."""

    def test_defaults(self):
        step = Step("GET /user/users")
        assert step.endpoint == EndpointKey.parse("GET /user/users")
        assert step.expected_status == SUCCESS_STATUSES
        assert step.assertions == ()
        assert step.abort_on_failure is None

    def test_build_request_uses_template(self):
        request = Step("GET /user/users").build_request(random.Random(1))
        assert request.method == "GET"
        assert request.path == "/user/users"
        assert request.json_body is None

    def test_build_request_with_callables(self):
        """Path and body callables receive the user's random source."""
        step = Step(
            "POST /user/users/:id",
            path=lambda rng: f"/user/users/{rng.randint(1, 9)}",
            body=lambda rng: {"n": rng.randint(1, 9)},
            headers={"X-Step": "1"},
        )
        first = step.build_request(random.Random(3))
        second = step.build_request(random.Random(3))
        assert first == second
        assert first.path.startswith("/user/users/")
        assert first.headers == {"X-Step": "1"}

    def test_parameterised_template_requires_path(self):
        with pytest.raises(ConfigError, match="concrete path"):
            Step("GET /user/users/:id")

    @pytest.mark.parametrize(
        ("endpoint", "path"),
        [
            ("GET /user/users/:id", "/orders/5"),
            ("GET /user/users/:id", "/user/users/5/extra"),
            ("GET /user/users", "/user/accounts"),
        ],
    )
    def test_rejects_path_outside_endpoint(self, endpoint: str, path: str):
        """Traffic to one path must not be counted under another endpoint."""
        with pytest.raises(ConfigError, match="does not belong"):
            Step(endpoint, path=path)

    def test_accepts_path_with_query(self):
        step = Step("GET /delay", path="/delay?delay=0.2")
        assert step.build_request(random.Random(1)).path == "/delay?delay=0.2"

    def test_path_builder_outside_endpoint_raises(self):
        step = Step("GET /user/users/:id", path=lambda rng: f"/orders/{rng.randint(1, 9)}")
        with pytest.raises(ConfigError, match="outside endpoint"):
            step.build_request(random.Random(1))

    @pytest.mark.parametrize("kwargs", [{"latency_budget_ms": 0}, {"timeout": -1.0}])
    def test_rejects_non_positive_limits(self, kwargs: dict):
        with pytest.raises(ConfigError):
            Step("GET /", **kwargs)

    def test_expected_status_none_disables_check(self):
        assert Step("GET /", expected_status=None).expected_status is None


# =========================================================================
# Scenario
# =========================================================================


class TestScenario:
    """Tests for the Scenario dataclass."""

    def test_valid(self):
        scenario = Scenario("browse", weight=2.5, steps=[Step("GET /")])
        assert scenario.steps == (Step("GET /"),)

    @pytest.mark.parametrize("weight", [0, -1, float("nan"), float("inf")])
    def test_rejects_bad_weight(self, weight: float):
        with pytest.raises(ConfigError, match="weight"):
            Scenario("bad", weight=weight, steps=[Step("GET /")])

    def test_rejects_empty_steps(self):
        with pytest.raises(ConfigError, match="no steps"):
            Scenario("empty", weight=1, steps=[])

    def test_rejects_empty_name(self):
        with pytest.raises(ConfigError):
            Scenario("", weight=1, steps=[Step("GET /")])

    def test_aborts_after_inherits_default(self):
        lenient = Step("GET /a")
        strict = Step("GET /b", abort_on_failure=True)
        scenario = Scenario("flow", weight=1, steps=[lenient, strict])
        assert not scenario.aborts_after(lenient)
        assert scenario.aborts_after(strict)

        dependent = Scenario("flow", weight=1, steps=[lenient], abort_on_failure=True)
        assert dependent.aborts_after(lenient)
        assert not dependent.aborts_after(Step("GET /c", abort_on_failure=False))


# =========================================================================
# ScenarioLibrary
# =========================================================================


class TestScenarioLibrary:
    """Tests for the ScenarioLibrary class."""

    def test_catalog_inferred_from_steps(self):
        library = ScenarioLibrary(
            [
                Scenario("a", weight=1, steps=[Step("GET /x"), Step("GET /y")]),
                Scenario("b", weight=1, steps=[Step("GET /y"), Step("POST /z")]),
            ]
        )
        assert [str(k) for k in library.catalog] == ["GET /x", "GET /y", "POST /z"]

    def test_explicit_endpoints_may_be_untested(self, user_library: ScenarioLibrary):
        assert EndpointKey.parse("POST /mqtt/pub") in user_library.catalog
        assert len(user_library.catalog) == 5

    def test_undeclared_step_endpoint_raises(self):
        with pytest.raises(ConfigError, match="undeclared endpoint"):
            ScenarioLibrary(
                [Scenario("a", weight=1, steps=[Step("GET /x")])],
                endpoints=["GET /y"],
            )

    def test_fixed_path_resolving_to_literal_endpoint_raises(self):
        """/users/me belongs to the literal endpoint, not the parameterised one."""
        with pytest.raises(ConfigError, match="resolves to GET /users/me"):
            ScenarioLibrary(
                [Scenario("me", weight=1, steps=[Step("GET /users/:id", path="/users/me")])],
                endpoints=["GET /users/:id", "GET /users/me"],
            )

    def test_empty_library_raises(self):
        with pytest.raises(ConfigError, match="at least one scenario"):
            ScenarioLibrary([])

    def test_duplicate_names_raise(self):
        scenario = Scenario("a", weight=1, steps=[Step("GET /x")])
        with pytest.raises(ConfigError, match="Duplicate scenario name"):
            ScenarioLibrary([scenario, scenario])

    def test_get(self, user_library: ScenarioLibrary):
        assert user_library.get("users") is not None
        assert user_library.get("missing") is None

    def test_selection_probabilities(self):
        library = ScenarioLibrary(
            [
                Scenario("heavy", weight=3, steps=[Step("GET /a")]),
                Scenario("light", weight=1, steps=[Step("GET /b")]),
            ]
        )
        assert library.selection_probabilities() == {"heavy": 0.75, "light": 0.25}


# =========================================================================
# Assertions
# =========================================================================


def _response(status: int = 200, text: str = "", elapsed_ms: float = 10.0) -> HttpResponse:
    return HttpResponse(status=status, text=text, elapsed_ms=elapsed_ms)


class TestAssertions:
    """Tests for the built-in response assertions."""

    def test_status_in(self):
        assertion = status_in(200, 201)
        assert assertion.check(_response(201))
        assert not assertion.check(_response(404))

    def test_body_contains(self):
        assertion = body_contains("Hello")
        assert assertion.check(_response(text="Hello, World!"))
        assert not assertion.check(_response(text="Goodbye"))

    def test_json_has(self):
        assertion = json_has("items")
        assert assertion.check(_response(text='{"items": []}'))
        assert not assertion.check(_response(text="[1, 2]"))

    def test_invalid_json_counts_as_failed(self):
        """A predicate that raises fails the assertion instead of propagating."""
        assert not json_has("items").check(_response(text="not json"))

    def test_max_latency(self):
        assertion = max_latency(50)
        assert assertion.check(_response(elapsed_ms=49.0))
        assert not assertion.check(_response(elapsed_ms=51.0))
        assert assertion.name == "latency < 50ms"

    def test_custom_check(self):
        assertion = check("short body", lambda r: len(r.text) < 5)
        assert assertion.name == "short body"
        assert assertion.check(_response(text="ok"))
