from __future__ import annotations

import time
from collections import defaultdict
from contextlib import contextmanager
from threading import Lock
from typing import Any, Iterator


class RuntimeMetrics:
    def __init__(self) -> None:
        self._lock = Lock()
        self._started_at = int(time.time())
        self._requests = 0
        self._errors = 0
        self._status_counts: dict[str, int] = defaultdict(int)
        self._path_counts: dict[str, int] = defaultdict(int)
        self._counters: dict[str, int] = defaultdict(int)
        self._timings: dict[str, dict[str, float]] = defaultdict(
            lambda: {"count": 0.0, "sum_ms": 0.0, "max_ms": 0.0}
        )

    def record_request(self, *, path: str, status_code: int, duration_ms: int) -> None:
        normalized_path = str(path or "/").strip() or "/"
        with self._lock:
            self._requests += 1
            self._status_counts[str(int(status_code))] += 1
            self._path_counts[normalized_path] += 1
            if int(status_code) >= 500:
                self._errors += 1
        self.record_timing(name="http.request.latency_ms", duration_ms=duration_ms)

    def record_counter(self, *, name: str, value: int = 1) -> None:
        metric = str(name or "").strip().lower()
        if not metric:
            return
        with self._lock:
            self._counters[metric] += int(value)

    def record_timing(self, *, name: str, duration_ms: int | float) -> None:
        metric = str(name or "").strip().lower()
        if not metric:
            return
        duration = max(0.0, float(duration_ms))
        with self._lock:
            row = self._timings[metric]
            row["count"] += 1.0
            row["sum_ms"] += duration
            row["max_ms"] = max(row["max_ms"], duration)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            timers: dict[str, Any] = {}
            for key, row in self._timings.items():
                count = int(row["count"])
                timers[key] = {
                    "count": count,
                    "avg_ms": round(row["sum_ms"] / count, 2) if count else 0.0,
                    "max_ms": round(row["max_ms"], 2),
                }
            return {
                "started_at": self._started_at,
                "uptime_seconds": max(0, int(time.time()) - self._started_at),
                "requests_total": self._requests,
                "errors_5xx_total": self._errors,
                "status_counts": dict(sorted(self._status_counts.items())),
                "top_paths": sorted(self._path_counts.items(), key=lambda item: item[1], reverse=True)[:20],
                "custom_counters": dict(sorted(self._counters.items())),
                "custom_timers": dict(sorted(timers.items())),
            }


_RUNTIME_METRICS = RuntimeMetrics()


def record_request_metric(*, path: str, status_code: int, duration_ms: int) -> None:
    _RUNTIME_METRICS.record_request(path=path, status_code=status_code, duration_ms=duration_ms)


def record_counter_metric(*, name: str, value: int = 1) -> None:
    _RUNTIME_METRICS.record_counter(name=name, value=value)


def record_timing_metric(*, name: str, duration_ms: int | float) -> None:
    _RUNTIME_METRICS.record_timing(name=name, duration_ms=duration_ms)


@contextmanager
def timed(name: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        record_timing_metric(name=name, duration_ms=(time.perf_counter() - started) * 1000)


def get_runtime_metrics_snapshot() -> dict[str, Any]:
    return _RUNTIME_METRICS.snapshot()
