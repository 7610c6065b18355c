from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import main
from runtime_metrics import RuntimeMetrics, record_counter_metric, record_timing_metric, timed


def test_counters_and_timers_are_normalized() -> None:
    metrics = RuntimeMetrics()
    metrics.record_counter(name="Coverage.Fallback")
    metrics.record_counter(name="coverage.fallback", value=2)
    metrics.record_counter(name="   ")
    metrics.record_timing(name="github.latency_ms", duration_ms=10)
    metrics.record_timing(name="github.latency_ms", duration_ms=30)
    metrics.record_timing(name="github.latency_ms", duration_ms=-5)

    snapshot = metrics.snapshot()
    assert snapshot["custom_counters"] == {"coverage.fallback": 3}
    timer = snapshot["custom_timers"]["github.latency_ms"]
    assert timer["count"] == 3
    assert timer["max_ms"] == 30.0
    assert timer["avg_ms"] == pytest.approx(13.33, abs=0.01)


def test_request_metrics_count_server_errors() -> None:
    metrics = RuntimeMetrics()
    metrics.record_request(path="/search", status_code=200, duration_ms=12)
    metrics.record_request(path="/search", status_code=502, duration_ms=40)
    metrics.record_request(path="", status_code=500, duration_ms=1)

    snapshot = metrics.snapshot()
    assert snapshot["requests_total"] == 3
    assert snapshot["errors_5xx_total"] == 2
    assert snapshot["status_counts"] == {"200": 1, "500": 1, "502": 1}
    assert snapshot["top_paths"][0] == ("/search", 2)
    assert snapshot["custom_timers"]["http.request.latency_ms"]["count"] == 3


def test_timed_records_even_when_the_block_raises() -> None:
    with pytest.raises(RuntimeError):
        with timed("test.timed_failure_ms"):
            raise RuntimeError("boom")
    snapshot = main.get_runtime_metrics_snapshot()
    assert snapshot["custom_timers"]["test.timed_failure_ms"]["count"] >= 1


def test_runtime_metrics_endpoint_returns_snapshot() -> None:
    record_counter_metric(name="search.query_failed", value=2)
    record_timing_metric(name="coverage.batch_latency_ms", duration_ms=45)

    with TestClient(main.app) as client:
        client.get("/health")
        response = client.get("/metrics/runtime")

    assert response.status_code == 200, response.text
    snapshot = response.json()
    assert snapshot["requests_total"] >= 1
    assert snapshot["custom_counters"]["search.query_failed"] >= 2
    assert snapshot["custom_timers"]["coverage.batch_latency_ms"]["max_ms"] >= 45
    assert any(path == "/health" for path, _count in snapshot["top_paths"])
