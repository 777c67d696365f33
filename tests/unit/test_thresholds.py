"""Tests for threshold parsing and evaluation."""

from __future__ import annotations

import pytest

from loadscope._internal.errors import ConfigError
from loadscope.dsl.endpoint import EndpointCatalog, EndpointKey
from loadscope.metrics.accumulator import MetricsAccumulator
from loadscope.metrics.models import LatencySample, MetricsSnapshot
from loadscope.thresholds.evaluator import evaluate, observe, required_percentiles
from loadscope.thresholds.models import ThresholdResult, ThresholdSpec, parse_thresholds

_ROOT = EndpointKey.parse("GET /")
_USERS = EndpointKey.parse("GET /user/users")
_PUBLISH = EndpointKey.parse("POST /mqtt/pub")


@pytest.fixture
def snapshot() -> MetricsSnapshot:
    """Snapshot with 100 requests to GET /, 4 of them failed, and
    10 successful requests to GET /user/users. POST /mqtt/pub is untested."""
    accumulator = MetricsAccumulator(EndpointCatalog([_ROOT, _USERS, _PUBLISH]))
    for i in range(100):
        accumulator.record(
            LatencySample(
                endpoint=_ROOT,
                latency_ms=float(i + 1),
                success=i >= 4,
                status_code=200 if i >= 4 else 500,
                error=None if i >= 4 else "status 500",
            )
        )
    for _ in range(10):
        accumulator.record(
            LatencySample(endpoint=_USERS, latency_ms=50.0, success=True, status_code=200)
        )
    for _ in range(7):
        accumulator.record_iteration()
    return accumulator.snapshot([99.5])


# =========================================================================
# Parsing
# =========================================================================


class TestThresholdSpecParse:
    """Tests for ThresholdSpec.parse and friends."""

    def test_percentile(self):
        spec = ThresholdSpec.parse("http_req_duration", "p(95)<500")
        assert spec.metric == "http_req_duration"
        assert spec.aggregation == "p"
        assert spec.percentile == 95.0
        assert spec.comparator == "<"
        assert spec.limit == 500.0
        assert spec.endpoint is None

    def test_fractional_percentile_and_spaces(self):
        spec = ThresholdSpec.parse("http_req_duration", " p( 99.9 ) <= 1e3 ")
        assert spec.percentile == 99.9
        assert spec.comparator == "<="
        assert spec.limit == 1000.0

    def test_rate(self):
        spec = ThresholdSpec.parse("http_req_failed", "rate<0.05")
        assert spec.aggregation == "rate"
        assert spec.limit == 0.05

    def test_endpoint_scope(self):
        spec = ThresholdSpec.parse("http_req_duration{GET  /user/users}", "avg<200")
        assert spec.endpoint == "GET /user/users"
        assert spec.metric_label == "http_req_duration{GET /user/users}"

    def test_parse_flag_splits_at_last_colon(self):
        spec = ThresholdSpec.parse_flag("http_req_duration{GET /a:b}:max<100")
        assert spec.endpoint == "GET /a:b"
        assert spec.aggregation == "max"

    def test_str(self):
        assert str(ThresholdSpec.parse("http_req_duration", "p(95)<500")) == (
            "http_req_duration: p(95)<500"
        )

    @pytest.mark.parametrize(
        ("metric", "expression"),
        [
            ("http_req_duration", "p95<500"),
            ("http_req_duration", "p(95)=500"),
            ("http_req_duration", "rate<0.1"),
            ("http_req_failed", "avg<1"),
            ("unknown_metric", "count>1"),
            ("iterations{GET /}", "count>1"),
            ("http_req_duration", "p(0)<1"),
            ("http_req_duration", "p(101)<1"),
            ("Http Req", "count>1"),
        ],
    )
    def test_invalid(self, metric: str, expression: str):
        with pytest.raises(ConfigError):
            ThresholdSpec.parse(metric, expression)

    def test_parse_flag_without_colon(self):
        with pytest.raises(ConfigError, match="metric:expression"):
            ThresholdSpec.parse_flag("p(95)<500")

    def test_dict_round_trip(self):
        spec = ThresholdSpec.parse("errors{POST /mqtt/pub}", "count<=3")
        assert ThresholdSpec.from_dict(spec.to_dict()) == spec


class TestParseThresholds:
    """Tests for parse_thresholds."""

    def test_k6_mapping(self):
        specs = parse_thresholds(
            {
                "http_req_duration": ["p(95)<500", "p(99)<1000"],
                "http_req_failed": "rate<0.05",
            }
        )
        assert [str(s) for s in specs] == [
            "http_req_duration: p(95)<500",
            "http_req_duration: p(99)<1000",
            "http_req_failed: rate<0.05",
        ]

    def test_flag_list_and_specs(self):
        ready = ThresholdSpec.parse("iterations", "count>0")
        specs = parse_thresholds(["errors:rate<0.1", ready])
        assert specs[0].metric == "errors"
        assert specs[1] is ready

    def test_none(self):
        assert parse_thresholds(None) == []


# =========================================================================
# Evaluation
# =========================================================================


def _spec(metric: str, expression: str) -> ThresholdSpec:
    return ThresholdSpec.parse(metric, expression)


class TestObserve:
    """Tests for extracting observed values from a snapshot."""

    def test_latency_aggregations(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("http_req_duration", "max<1")) == 100.0
        assert observe(snapshot, _spec("http_req_duration", "min<1")) == 1.0
        avg = observe(snapshot, _spec("http_req_duration", "avg<1"))
        assert avg == pytest.approx((5050 + 500) / 110)

    def test_percentile_present_only_when_computed(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("http_req_duration", "p(99.5)<1")) is not None
        assert observe(snapshot, _spec("http_req_duration", "p(42)<1")) is None

    def test_median_uses_p50(self, snapshot: MetricsSnapshot):
        med = observe(snapshot, _spec("http_req_duration", "med<1"))
        assert med == snapshot.overall.percentiles[50.0]

    def test_failure_rate_and_count(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("http_req_failed", "rate<1")) == pytest.approx(4 / 110)
        assert observe(snapshot, _spec("errors", "count<1")) == 4.0

    def test_request_counts(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("http_reqs", "count>1")) == 110.0
        assert observe(snapshot, _spec("endpoint_hits", "count>1")) == 110.0
        assert observe(snapshot, _spec("successful_requests", "count>1")) == 106.0
        assert observe(snapshot, _spec("failed_requests", "count<1")) == 4.0
        assert observe(snapshot, _spec("iterations", "count>1")) == 7.0

    def test_coverage(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("coverage", "rate>0")) == pytest.approx(2 / 3)
        assert observe(snapshot, _spec("coverage", "count>0")) == 2.0

    def test_endpoint_scoped(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("http_req_duration{GET /user/users}", "avg<1")) == 50.0
        assert observe(snapshot, _spec("http_req_failed{GET /}", "rate<1")) == pytest.approx(0.04)

    def test_untested_endpoint_rate_is_absent(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("http_req_failed{POST /mqtt/pub}", "rate<1")) is None
        assert observe(snapshot, _spec("http_req_duration{POST /mqtt/pub}", "p(95)<1")) is None
        assert observe(snapshot, _spec("endpoint_hits{POST /mqtt/pub}", "count>0")) is None

    def test_counts_on_untested_endpoint_are_absent(self, snapshot: MetricsSnapshot):
        for metric in ("failed_requests", "successful_requests", "http_reqs", "errors"):
            assert observe(snapshot, _spec(f"{metric}{{POST /mqtt/pub}}", "count<1")) is None

    def test_unknown_endpoint_is_absent(self, snapshot: MetricsSnapshot):
        assert observe(snapshot, _spec("http_reqs{GET /nope}", "count>0")) is None


class TestEvaluate:
    """Tests for evaluate."""

    def test_pass_and_fail(self, snapshot: MetricsSnapshot):
        results = evaluate(
            snapshot,
            [
                _spec("http_req_duration", "max<=100"),
                _spec("http_req_failed", "rate<0.01"),
                _spec("successful_requests", "count>100"),
            ],
        )
        assert [r.passed for r in results] == [True, False, True]
        assert results[1].observed == pytest.approx(4 / 110)

    def test_absent_value_fails_closed(self, snapshot: MetricsSnapshot):
        """A threshold on a metric with no data fails instead of passing."""
        (result,) = evaluate(snapshot, [_spec("http_req_failed{POST /mqtt/pub}", "rate<1")])
        assert not result.passed
        assert result.observed is None

    def test_counts_without_data_fail_closed(self):
        """Upper-bounded counts do not pass on a run that produced nothing."""
        empty = MetricsAccumulator(EndpointCatalog([_ROOT])).snapshot()
        results = evaluate(
            empty,
            parse_thresholds(
                {
                    "http_req_failed": "count<1",
                    "failed_requests{GET /}": "count<1",
                    "iterations": "count<5",
                    "http_reqs": "count<10",
                }
            ),
        )
        assert [r.passed for r in results] == [False, False, False, False]
        assert all(r.observed is None for r in results)


    def test_strict_vs_inclusive(self, snapshot: MetricsSnapshot):
        strict, inclusive = evaluate(
            snapshot,
            [_spec("http_reqs", "count>110"), _spec("http_reqs", "count>=110")],
        )
        assert not strict.passed
        assert inclusive.passed

    def test_deterministic(self, snapshot: MetricsSnapshot):
        specs = parse_thresholds(
            {"http_req_duration": ["p(95)<90", "avg<60"], "errors": "rate<0.5"}
        )
        assert evaluate(snapshot, specs) == evaluate(snapshot, specs)

    def test_preserves_order(self, snapshot: MetricsSnapshot):
        specs = [_spec("iterations", "count>0"), _spec("coverage", "rate>0.5")]
        assert [r.spec for r in evaluate(snapshot, specs)] == specs

    def test_empty(self, snapshot: MetricsSnapshot):
        assert evaluate(snapshot, []) == []

    def test_result_round_trip(self, snapshot: MetricsSnapshot):
        (result,) = evaluate(snapshot, [_spec("http_req_duration", "p(95)<500")])
        assert ThresholdResult.from_dict(result.to_dict()) == result


class TestRequiredPercentiles:
    """Tests for required_percentiles."""

    def test_collects_percentiles_and_median(self):
        specs = parse_thresholds({"http_req_duration": ["p(99.9)<1000", "med<100", "avg<50"]})
        assert required_percentiles(specs) == [50.0, 99.9]

    def test_none_needed(self):
        assert required_percentiles(parse_thresholds({"errors": "rate<0.1"})) == []
