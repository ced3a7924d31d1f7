"""
Trading Village — Synthetic Market Data

Seeded random-walk bars for demos and reproducible tests. Nothing in the
production analysis path draws random numbers; callers inject a generator.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from village_insights.models import MarketDataPoint

HOUR_MS = 3_600_000

DEMO_BASE_PRICES: dict[str, float] = {
    "ETH-USD": 2400.0,
    "BTC-USD": 42000.0,
    "LINK-USD": 15.0,
    "UNI-USD": 7.0,
    "AAVE-USD": 95.0,
}


class SyntheticMarketGenerator:
    """Reproducible OHLCV random walks.

    Usage:
        gen = SyntheticMarketGenerator(seed=42)
        bars = gen.generate_series(2400.0, count=100, end_timestamp=now)
    """

    def __init__(self, seed: Optional[int] = 42):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def _bar(self, price: float, open_: float, range_: float, timestamp: int, volume: float,
             wick: float) -> MarketDataPoint:
        rng = self._rng
        return MarketDataPoint(
            timestamp=timestamp,
            open=float(open_),
            high=float(max(open_, price) + rng.random() * range_ * wick),
            low=float(min(open_, price) - rng.random() * range_ * wick),
            close=float(price),
            volume=float(volume),
        )

    def generate_series(
        self,
        base_price: float,
        count: int = 100,
        end_timestamp: int = 0,
        interval_ms: int = HOUR_MS,
        volatility: float = 0.02,
    ) -> list[MarketDataPoint]:
        """Random walk with a slight upward drift, one bar per interval.

        The last bar is stamped ``end_timestamp - interval_ms``.
        """
        rng = self._rng
        bars: list[MarketDataPoint] = []
        price = base_price

        for i in range(count):
            price *= 1 + (rng.random() - 0.48) * volatility
            range_ = price * (0.005 + rng.random() * 0.015)
            open_ = price - range_ / 2 + rng.random() * range_
            volume = 1_000_000 + rng.random() * 5_000_000
            timestamp = end_timestamp - (count - i) * interval_ms
            bars.append(self._bar(price, open_, range_, timestamp, volume, wick=0.5))

        return bars

    def next_point(self, last_close: float, timestamp: int) -> MarketDataPoint:
        """A fresh, more volatile bar following ``last_close``."""
        rng = self._rng
        volatility = 0.03 + rng.random() * 0.02
        price = last_close * (1 + (rng.random() - 0.45) * volatility)
        range_ = price * (0.01 + rng.random() * 0.02)
        open_ = price - range_ / 2 + rng.random() * range_
        volume = (1_000_000 + rng.random() * 5_000_000) * (1 + rng.random() * 2)
        return self._bar(price, open_, range_, timestamp, volume, wick=1.0)
