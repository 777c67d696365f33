"""Tests for the metrics accumulator and snapshot models."""

from __future__ import annotations

import threading

import pytest

from loadscope._internal.errors import ConfigError
from loadscope.dsl.endpoint import EndpointCatalog, EndpointKey
from loadscope.metrics.accumulator import MetricsAccumulator
from loadscope.metrics.estimators import estimator_factory
from loadscope.metrics.models import (
    DEFAULT_PERCENTILES,
    LatencySample,
    MetricsSnapshot,
    TestRunResult,
    percentile_label,
)

_USERS = EndpointKey.parse("GET /user/users")
_USER = EndpointKey.parse("GET /user/users/:id")
_PUBLISH = EndpointKey.parse("POST /mqtt/pub")


@pytest.fixture
def accumulator() -> MetricsAccumulator:
    return MetricsAccumulator(EndpointCatalog([_USERS, _USER, _PUBLISH]))


def _ok(endpoint: EndpointKey, latency_ms: float = 10.0) -> LatencySample:
    return LatencySample(endpoint=endpoint, latency_ms=latency_ms, success=True, status_code=200)


def _error(endpoint: EndpointKey, reason: str = "status 500") -> LatencySample:
    return LatencySample(
        endpoint=endpoint, latency_ms=5.0, success=False, status_code=500, error=reason
    )


class TestMetricsAccumulator:
    """Tests for MetricsAccumulator."""

    def test_every_declared_endpoint_in_snapshot(self, accumulator: MetricsAccumulator):
        """Untested endpoints are present with zeros, in declaration order."""
        snapshot = accumulator.snapshot()
        assert list(snapshot.endpoints) == [
            "GET /user/users",
            "GET /user/users/:id",
            "POST /mqtt/pub",
        ]
        for stats in snapshot.endpoints.values():
            assert stats.hits == 0
            assert not stats.tested
            assert stats.latency_avg == 0.0
        assert snapshot.coverage_percentage == 0.0

    def test_record_success_and_error(self, accumulator: MetricsAccumulator):
        accumulator.record(_ok(_USERS, 10.0))
        accumulator.record(_ok(_USERS, 30.0))
        accumulator.record(_error(_USERS))

        stats = accumulator.snapshot().endpoints["GET /user/users"]
        assert stats.hits == 3
        assert stats.successes == 2
        assert stats.errors == 1
        assert stats.latency_avg == pytest.approx(15.0)
        assert stats.latency_min == 5.0
        assert stats.latency_max == 30.0
        assert stats.error_rate == pytest.approx(1 / 3)

    def test_hits_equal_successes_plus_errors(self, accumulator: MetricsAccumulator):
        for i in range(50):
            accumulator.record(_ok(_USER) if i % 3 else _error(_USER))
        snapshot = accumulator.snapshot()
        for stats in snapshot.endpoints.values():
            assert stats.hits == stats.successes + stats.errors
        overall = snapshot.overall
        assert overall.hits == overall.successes + overall.errors == 50

    def test_overall_spans_endpoints(self, accumulator: MetricsAccumulator):
        accumulator.record(_ok(_USERS, 10.0))
        accumulator.record(_ok(_USER, 20.0))
        overall = accumulator.snapshot().overall
        assert overall.hits == 2
        assert overall.latency_avg == pytest.approx(15.0)

    def test_coverage_is_monotone(self, accumulator: MetricsAccumulator):
        seen = [accumulator.coverage_percentage()]
        for sample in (_ok(_USERS), _error(_USER), _ok(_USERS), _ok(_USER)):
            accumulator.record(sample)
            seen.append(accumulator.coverage_percentage())
        assert seen == sorted(seen)
        assert seen[-1] == pytest.approx(200 / 3)

    def test_failed_request_counts_as_tested(self, accumulator: MetricsAccumulator):
        accumulator.record(_error(_PUBLISH))
        assert accumulator.snapshot().endpoints["POST /mqtt/pub"].tested

    def test_undeclared_endpoint_raises(self, accumulator: MetricsAccumulator):
        with pytest.raises(ConfigError, match="undeclared"):
            accumulator.record(_ok(EndpointKey.parse("DELETE /everything")))
        assert accumulator.snapshot().overall.hits == 0

    def test_errors_by_reason(self, accumulator: MetricsAccumulator):
        accumulator.record(_error(_USERS, "status 500"))
        accumulator.record(_error(_USER, "status 500"))
        accumulator.record(_error(_USER, "timeout"))
        assert accumulator.snapshot().errors_by_reason == {"status 500": 2, "timeout": 1}

    def test_iterations(self, accumulator: MetricsAccumulator):
        accumulator.record_iteration()
        accumulator.record_iteration()
        accumulator.record_discarded_iteration()
        snapshot = accumulator.snapshot()
        assert snapshot.iterations == 2
        assert snapshot.discarded_iterations == 1

    def test_snapshot_percentiles(self, accumulator: MetricsAccumulator):
        """Default percentiles are always present; extras are added on request."""
        accumulator.record(_ok(_USERS, 10.0))
        snapshot = accumulator.snapshot([97.5])
        assert set(snapshot.overall.percentiles) == {*DEFAULT_PERCENTILES, 97.5}

    def test_snapshot_is_a_copy(self, accumulator: MetricsAccumulator):
        before = accumulator.snapshot()
        accumulator.record(_ok(_USERS))
        assert before.overall.hits == 0
        assert accumulator.snapshot().overall.hits == 1

    def test_exact_mode(self):
        accumulator = MetricsAccumulator(
            EndpointCatalog([_USERS]), estimator_factory("exact", max_samples=10)
        )
        for latency in (10.0, 20.0, 30.0):
            accumulator.record(_ok(_USERS, latency))
        assert accumulator.snapshot().endpoints["GET /user/users"].percentiles[50.0] == 20.0

    def test_reset(self, accumulator: MetricsAccumulator):
        accumulator.record(_ok(_USERS))
        accumulator.record_iteration()
        accumulator.reset()
        snapshot = accumulator.snapshot()
        assert snapshot.overall.hits == 0
        assert snapshot.iterations == 0
        assert snapshot.total_endpoints == 3

    @pytest.mark.timeout(30)
    def test_concurrent_records_are_not_lost(self, accumulator: MetricsAccumulator):
        """Samples recorded from many threads all land in the totals."""
        threads_count = 8
        per_thread = 2_000

        def _worker(index: int) -> None:
            for i in range(per_thread):
                endpoint = _USERS if (i + index) % 2 else _USER
                accumulator.record(_ok(endpoint) if i % 5 else _error(endpoint))

        threads = [threading.Thread(target=_worker, args=(n,)) for n in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = accumulator.snapshot()
        assert snapshot.overall.hits == threads_count * per_thread
        assert sum(s.hits for s in snapshot.endpoints.values()) == snapshot.overall.hits
        for stats in snapshot.endpoints.values():
            assert stats.hits == stats.successes + stats.errors


class TestSnapshotSerialization:
    """Tests for snapshot and result (de)serialization."""

    def test_percentile_label(self):
        assert percentile_label(95.0) == "p95"
        assert percentile_label(99.9) == "p99.9"

    def test_fine_grained_percentile_survives_round_trip(self, accumulator: MetricsAccumulator):
        """A p(99.12345678) threshold finds its value again after a reload."""
        accumulator.record(_ok(_USERS, 12.5))
        snapshot = accumulator.snapshot([99.12345678])
        assert percentile_label(99.12345678) == "p99.12345678"
        restored = MetricsSnapshot.from_dict(snapshot.to_dict())
        assert 99.12345678 in restored.overall.percentiles
        assert restored == snapshot

    def test_snapshot_round_trip(self, accumulator: MetricsAccumulator):
        accumulator.record(_ok(_USERS, 12.5))
        accumulator.record(_error(_USER))
        accumulator.record_iteration()
        snapshot = accumulator.snapshot()
        assert MetricsSnapshot.from_dict(snapshot.to_dict()) == snapshot

    def test_result_round_trip(self, accumulator: MetricsAccumulator):
        accumulator.record(_ok(_USERS))
        result = TestRunResult(
            name="round trip",
            started_at="2026-01-01T00:00:00+00:00",
            duration_seconds=1.5,
            plan_description="Ramp: 0 -> 1 (1s)",
            snapshot=accumulator.snapshot(),
            stages=({"duration": "1s", "target": 1},),
            max_users=1,
            timeline=((0.0, 0), (0.5, 1)),
        )
        assert TestRunResult.from_dict(result.to_dict()) == result
        assert result.passed
