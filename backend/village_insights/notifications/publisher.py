"""
Trading Village — Insight Publisher

Outbound event channel for newly detected insights. The engine publishes one
event per insight; subscribers (dashboard fan-out, alerting) receive the full
Insight record.

Delivery is synchronous and fire-and-forget: a failing subscriber is logged
and skipped, it never aborts the analysis that produced the insight.

Sinks:
- RedisInsightSink — Redis pub/sub (``<prefix>:<symbol>``) + capped history list
- InsightQueueSink — caller-provided queue.Queue
"""

from __future__ import annotations

import json
import queue
from typing import Callable, Optional

import structlog

from village_insights.models import Insight

log = structlog.get_logger(__name__)

InsightHandler = Callable[[Insight], None]

HISTORY_LIMIT = 1000


class InsightPublisher:
    """Fan-out of insights to registered handlers.

    Usage::

        publisher = InsightPublisher()
        publisher.subscribe(lambda insight: print(insight.reason))
        engine = InsightsEngine(publisher=publisher)
    """

    def __init__(self):
        self._handlers: list[InsightHandler] = []

    def subscribe(self, handler: InsightHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: InsightHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def publish(self, insight: Insight) -> int:
        """Deliver to every handler. Returns the number that succeeded."""
        delivered = 0
        for handler in list(self._handlers):
            try:
                handler(insight)
                delivered += 1
            except Exception as exc:
                log.error(
                    "publisher.handler_failed",
                    handler=getattr(handler, "__name__", type(handler).__name__),
                    insight_id=insight.id,
                    error=str(exc),
                    exc_info=True,
                )
        return delivered


# ──────────────────────────────────────────────
# Sinks
# ──────────────────────────────────────────────

class RedisInsightSink:
    """Publish insights to Redis pub/sub for WebSocket broadcast.

    Also keeps the last HISTORY_LIMIT insights in ``<prefix>:history``.
    Degrades to a no-op when Redis is unavailable.
    """

    def __init__(self, client=None, prefix: str = "insights"):
        self._redis = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "insights") -> "RedisInsightSink":
        client = None
        try:
            import redis as redis_lib
            client = redis_lib.from_url(url, decode_responses=True, socket_timeout=2)
            client.ping()
            log.info("publisher.redis_connected", url=url)
        except Exception as exc:
            log.warning("publisher.redis_unavailable", url=url, error=str(exc))
            client = None
        return cls(client, prefix=prefix)

    @property
    def available(self) -> bool:
        return self._redis is not None

    def channel_for(self, symbol: str) -> str:
        return f"{self.prefix}:{symbol.lower() if symbol else 'general'}"

    def __call__(self, insight: Insight) -> None:
        if self._redis is None:
            return

        message = json.dumps(insight.model_dump(mode="json"))
        try:
            subscribers = self._redis.publish(self.channel_for(insight.symbol), message)
            self._redis.lpush(f"{self.prefix}:history", message)
            self._redis.ltrim(f"{self.prefix}:history", 0, HISTORY_LIMIT - 1)
            log.debug("publisher.redis_sent", insight_id=insight.id, subscribers=subscribers)
        except Exception as exc:
            log.warning("publisher.redis_failed", insight_id=insight.id, error=str(exc))

    def history(self, limit: int = 50) -> list[dict]:
        """Most recent published insights, newest first."""
        if self._redis is None:
            return []
        try:
            raw = self._redis.lrange(f"{self.prefix}:history", 0, limit - 1)
            return [json.loads(r) for r in raw]
        except Exception as exc:
            log.warning("publisher.redis_history_failed", error=str(exc))
            return []


class InsightQueueSink:
    """Push insights onto a caller-owned queue without blocking."""

    def __init__(self, target: Optional[queue.Queue] = None):
        self.queue: queue.Queue = target if target is not None else queue.Queue()

    def __call__(self, insight: Insight) -> None:
        try:
            self.queue.put_nowait(insight)
        except queue.Full:
            log.warning("publisher.queue_full", insight_id=insight.id)
