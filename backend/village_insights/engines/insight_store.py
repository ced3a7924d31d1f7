"""
Trading Village — Insight Store

Owned, bounded storage for detected insights.

Retention policy:
  1. Age  — insights whose timestamp is older than ``ttl_seconds`` are swept
            from the oldest end on every ``add`` (and fully, on demand, via
            ``sweep_expired``).
            ``ttl_seconds=0`` disables age-based eviction.
  2. Size — after the sweep, the oldest-inserted insights are evicted until at
            most ``capacity`` remain.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Optional

import structlog

from village_insights.engines.detectors import now_ms
from village_insights.models import Insight

log = structlog.get_logger(__name__)


class InsightStore:
    """Insertion-ordered insight map with capacity and TTL eviction."""

    def __init__(
        self,
        capacity: int = 5000,
        ttl_seconds: int = 86400,
        clock: Callable[[], int] = now_ms,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_ms = max(0, ttl_seconds) * 1000
        self._clock = clock
        self._items: OrderedDict[str, Insight] = OrderedDict()

    def add(self, insight: Insight) -> None:
        self._items[insight.id] = insight
        self._sweep_oldest()

        evicted = 0
        while len(self._items) > self.capacity:
            self._items.popitem(last=False)
            evicted += 1
        if evicted:
            log.debug("insight_store.capacity_evicted", count=evicted, capacity=self.capacity)

    def get(self, insight_id: str) -> Optional[Insight]:
        return self._items.get(insight_id)

    def values(self) -> list[Insight]:
        """Stored insights in insertion order."""
        return list(self._items.values())

    def _sweep_oldest(self) -> int:
        """Pop expired insights from the front, stopping at the first live one.

        Insights are stamped by the detectors' clock as they are added, so
        insertion order is timestamp order and the scan ends early.
        """
        if not self.ttl_ms:
            return 0
        cutoff = self._clock() - self.ttl_ms
        removed = 0
        while self._items:
            oldest = next(iter(self._items.values()))
            if oldest.timestamp >= cutoff:
                break
            self._items.popitem(last=False)
            removed += 1
        if removed:
            log.debug("insight_store.ttl_evicted", count=removed)
        return removed

    def sweep_expired(self) -> int:
        """Drop every insight older than the TTL, wherever it sits.

        Returns how many were removed.
        """
        if not self.ttl_ms:
            return 0
        cutoff = self._clock() - self.ttl_ms
        expired = [key for key, item in self._items.items() if item.timestamp < cutoff]
        for key in expired:
            del self._items[key]
        if expired:
            log.debug("insight_store.ttl_evicted", count=len(expired))
        return len(expired)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, insight_id: object) -> bool:
        return insight_id in self._items

    def __len__(self) -> int:
        return len(self._items)
