"""Bar builders shared by the insights test modules."""

from __future__ import annotations

import math
from typing import Optional, Sequence

BASE_TS = 1_700_000_000_000
MINUTE_MS = 60_000


def make_bars(
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    spread: float = 0.0,
    ranges: Optional[Sequence[float]] = None,
):
    """Bars with open == close and symmetric wicks.

    ``spread`` is a fractional half-range applied to every bar; ``ranges``
    gives an absolute high-low range per bar instead.
    """
    from village_insights.models import MarketDataPoint

    bars = []
    for i, close in enumerate(closes):
        if ranges is not None:
            half = ranges[i] / 2
        else:
            half = close * spread
        bars.append(MarketDataPoint(
            timestamp=BASE_TS + i * MINUTE_MS,
            open=close,
            high=close + half,
            low=close - half,
            close=close,
            volume=volumes[i] if volumes is not None else 1000.0,
        ))
    return bars


def wave_closes(count: int = 30, start: float = 100.0, scale: float = 1.0) -> list[float]:
    """Deterministic wavy price path (returns follow 1% * sin(i))."""
    closes = [start]
    for i in range(1, count):
        closes.append(closes[-1] * (1 + 0.01 * math.sin(i)))
    return [c * scale for c in closes]


def make_insight(
    confidence: float = 0.5,
    symbol: str = "ETH-USD",
    timestamp: int = BASE_TS,
    pattern=None,
    impact=None,
    insight_id: Optional[str] = None,
):
    from village_insights.models import ImpactLevel, Insight, PatternType, SuggestedAction

    return Insight(
        id=insight_id or f"test-{symbol}-{timestamp}-{confidence}",
        pattern=pattern or PatternType.MOMENTUM_SHIFT,
        confidence=confidence,
        reason="test insight",
        impact=impact or ImpactLevel.MEDIUM,
        suggested_action=SuggestedAction.HOLD,
        symbol=symbol,
        timestamp=timestamp,
    )
