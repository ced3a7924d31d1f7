"""
Trading Village — Observability

Timing spans and per-detector performance counters for the insights engine.

Usage:
    with trace_span("insights.analyze_all"):
        engine.analyze_all_symbols()

    detector_metrics.record_call("momentum", latency_ms=0.4, fired=True)
"""

from __future__ import annotations

import functools
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

import structlog

logger = structlog.get_logger(__name__)

SLOW_SPAN_SECONDS = 1.0


# ──────────────────────────────────────────────
# Spans
# ──────────────────────────────────────────────

@contextmanager
def trace_span(name: str, **context: Any) -> Iterator[None]:
    """Time a block of code and log it.

    Spans slower than SLOW_SPAN_SECONDS are logged as warnings.
    """
    start = time.perf_counter()
    logger.debug("trace_span_start", span_name=name, **context)
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("trace_span_end", span_name=name, elapsed_ms=round(elapsed * 1000, 2), **context)
        if elapsed > SLOW_SPAN_SECONDS:
            logger.warning("trace_span_slow", span_name=name, elapsed_s=round(elapsed, 2), **context)


def traced(name: Optional[str] = None) -> Callable:
    """Decorator form of trace_span.

    Usage:
        @traced("insights.sweep")
        def sweep(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        span_name = name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name):
                return func(*args, **kwargs)

        return wrapper

    return decorator


# ──────────────────────────────────────────────
# Detector Performance Metrics
# ──────────────────────────────────────────────

class DetectorMetrics:
    """Track call counts, hit counts and latency per detector."""

    def __init__(self):
        self._call_counts: dict[str, int] = {}
        self._hit_counts: dict[str, int] = {}
        self._total_latency: dict[str, float] = {}

    def record_call(self, detector: str, latency_ms: float, fired: bool = False):
        """Record a single detector invocation."""
        self._call_counts[detector] = self._call_counts.get(detector, 0) + 1
        self._total_latency[detector] = self._total_latency.get(detector, 0.0) + latency_ms
        if fired:
            self._hit_counts[detector] = self._hit_counts.get(detector, 0) + 1

    def get_stats(self) -> dict[str, dict]:
        """Get performance stats per detector."""
        stats = {}
        for detector, calls in self._call_counts.items():
            hits = self._hit_counts.get(detector, 0)
            stats[detector] = {
                "total_calls": calls,
                "hits": hits,
                "hit_rate": round(hits / max(calls, 1), 4),
                "avg_latency_ms": round(self._total_latency.get(detector, 0.0) / max(calls, 1), 3),
            }
        return stats

    def reset(self):
        """Reset all metrics."""
        self._call_counts.clear()
        self._hit_counts.clear()
        self._total_latency.clear()
