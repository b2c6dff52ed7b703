"""In-process latency metrics for memory operations and MCP tools."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import field
from threading import Lock

logger = logging.getLogger(__name__)

_WINDOW = 256


@dataclass
class OperationLatency:
    """Running totals plus a bounded window of recent samples."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    recent: deque[float] = field(default_factory=lambda: deque(maxlen=_WINDOW))

    def percentile(self, pct: float) -> float:
        if not self.recent:
            return 0.0
        ordered = sorted(self.recent)
        index = min(len(ordered) - 1, int(round(pct / 100 * (len(ordered) - 1))))
        return ordered[index]


class _LatencyRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._ops: dict[str, OperationLatency] = {}

    def record(self, *, operation: str, duration_ms: float, ok: bool) -> None:
        sample = max(float(duration_ms), 0.0)
        with self._lock:
            stats = self._ops.setdefault(operation, OperationLatency())
            stats.count += 1
            stats.error_count += 0 if ok else 1
            stats.total_ms += sample
            stats.max_ms = max(stats.max_ms, sample)
            stats.recent.append(sample)
        logger.debug("latency operation=%s duration_ms=%.3f ok=%s", operation, sample, ok)

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                name: {
                    "count": stats.count,
                    "error_count": stats.error_count,
                    "avg_ms": round(stats.total_ms / stats.count, 3) if stats.count else 0.0,
                    "p50_ms": round(stats.percentile(50), 3),
                    "p95_ms": round(stats.percentile(95), 3),
                    "max_ms": round(stats.max_ms, 3),
                }
                for name, stats in sorted(self._ops.items())
            }

    def reset(self) -> None:
        with self._lock:
            self._ops.clear()


_RECORDER = _LatencyRecorder()


def record_latency(*, operation: str, duration_ms: float, ok: bool = True) -> None:
    _RECORDER.record(operation=operation, duration_ms=duration_ms, ok=ok)


@contextmanager
def track_latency(operation: str) -> Iterator[None]:
    """Time the enclosed block; an escaping exception counts as an error."""
    started = time.perf_counter()
    ok = False
    try:
        yield
        ok = True
    finally:
        record_latency(
            operation=operation,
            duration_ms=(time.perf_counter() - started) * 1000,
            ok=ok,
        )


def latency_metrics_snapshot() -> dict[str, dict[str, float | int]]:
    return _RECORDER.snapshot()


def reset_latency_metrics() -> None:
    """Clear all aggregates (test helper)."""
    _RECORDER.reset()
