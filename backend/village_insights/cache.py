"""
Trading Village — Market Data Cache

Per-symbol rolling windows of OHLCV bars. Each window is a bounded deque:
appending past capacity evicts the oldest bar (FIFO). Windows are created
lazily on first write and are never removed.

Callers own timestamp discipline: bars are kept in append order, not re-sorted.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator

import structlog

from village_insights.models import MarketDataPoint

log = structlog.get_logger(__name__)

DEFAULT_WINDOW_CAPACITY = 200


class MarketDataCache:
    """Bounded bar windows keyed by symbol.

    Not safe for concurrent mutation of the same symbol; different symbols
    are independent.
    """

    def __init__(self, capacity: int = DEFAULT_WINDOW_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._windows: dict[str, deque[MarketDataPoint]] = {}

    def append(self, symbol: str, point: MarketDataPoint) -> None:
        """Append a bar, evicting the oldest one once the window is full."""
        window = self._windows.get(symbol)
        if window is None:
            window = deque(maxlen=self.capacity)
            self._windows[symbol] = window
            log.debug("cache.window_created", symbol=symbol, capacity=self.capacity)

        window.append(point)

    def replace(self, symbol: str, points: Iterable[MarketDataPoint]) -> None:
        """Swap a symbol's window for ``points`` (only the newest ``capacity`` are kept)."""
        is_new = symbol not in self._windows
        self._windows[symbol] = deque(points, maxlen=self.capacity)
        if is_new:
            log.debug("cache.window_created", symbol=symbol, capacity=self.capacity)

    def get_window(self, symbol: str) -> tuple[MarketDataPoint, ...]:
        """Immutable snapshot of a symbol's window, oldest first. Empty if unknown."""
        window = self._windows.get(symbol)
        return tuple(window) if window is not None else ()

    def snapshot(self, exclude: str | None = None) -> dict[str, tuple[MarketDataPoint, ...]]:
        """Snapshots of every window, optionally leaving one symbol out."""
        return {
            symbol: tuple(window)
            for symbol, window in self._windows.items()
            if symbol != exclude
        }

    def symbols(self) -> list[str]:
        """Cached symbols in first-seen order."""
        return list(self._windows)

    def size(self, symbol: str) -> int:
        window = self._windows.get(symbol)
        return len(window) if window is not None else 0

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._windows

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._windows))

    def __len__(self) -> int:
        return len(self._windows)

    def __repr__(self) -> str:
        return f"MarketDataCache(symbols={len(self)}, capacity={self.capacity})"
