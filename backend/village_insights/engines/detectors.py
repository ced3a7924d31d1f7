"""
Trading Village — Pattern Detectors

Eight independent, stateless analyzers over a window of OHLCV bars. Each
returns at most one Insight per call:

  Momentum            — momentum shift between consecutive 10-bar blocks on rising volume
  Whale Accumulation  — outsized volume spikes absorbed without price movement
  Volatility Cluster  — short-horizon variance / range expansion
  Trend Reversal      — SMA5/SMA20 crossover, or MACD flip at RSI extremes
  Liquidity Squeeze   — volume dry-up with range contraction
  Correlated Movement — cross-symbol return correlation (needs other windows)
  Breakout            — close beyond the prior consolidation range on volume
  Divergence          — new price extreme not confirmed by RSI

Detectors never raise for short windows; they return None below their own
minimum length. Confidence is clamped to a per-detector cap and rounded to two
decimals. Insights come back with an empty symbol; the engine assigns it.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Mapping, NamedTuple, Optional, Protocol, Sequence

import numpy as np

from village_insights.engines.indicators import (
    bar_ranges,
    bollinger_bands,
    macd,
    pct_change,
    pearson_correlation,
    relative_ranges,
    rsi,
    rsi_series,
    safe_ratio,
    simple_returns,
    sma,
    std_dev,
)
from village_insights.models import (
    DetectorConfig,
    ImpactLevel,
    Insight,
    InsightMetadata,
    MarketDataPoint,
    OrderFlowData,
    PatternType,
    SuggestedAction,
)
from village_insights.utils.formatters import format_pct, format_price, format_ratio

Window = Sequence[MarketDataPoint]


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Detector(Protocol):
    """Capability shared by every detector."""

    name: str
    min_points: int

    def detect(self, window: Window, aux: Any = None) -> Optional[Insight]:
        ...


# ──────────────────────────────────────────────
# Shared helpers
# ──────────────────────────────────────────────

class _Frame(NamedTuple):
    opens: np.ndarray
    highs: np.ndarray
    lows: np.ndarray
    closes: np.ndarray
    volumes: np.ndarray


def _frame(window: Window) -> _Frame:
    """Column arrays for a window of bars."""
    return _Frame(
        opens=np.array([p.open for p in window], dtype=np.float64),
        highs=np.array([p.high for p in window], dtype=np.float64),
        lows=np.array([p.low for p in window], dtype=np.float64),
        closes=np.array([p.close for p in window], dtype=np.float64),
        volumes=np.array([p.volume for p in window], dtype=np.float64),
    )


def clamp_confidence(value: float, cap: float) -> float:
    """Clamp into [0, cap] and round to two decimals."""
    return round(min(cap, max(0.0, float(value))), 2)


def new_insight_id(prefix: str, timestamp: int) -> str:
    return f"{prefix}-{timestamp}-{uuid.uuid4().hex[:9]}"


def _build(
    prefix: str,
    clock: Callable[[], int],
    *,
    pattern: PatternType,
    confidence: float,
    cap: float,
    reason: str,
    impact: ImpactLevel,
    action: SuggestedAction,
    **metadata: Any,
) -> Insight:
    timestamp = clock()
    return Insight(
        id=new_insight_id(prefix, timestamp),
        pattern=pattern,
        confidence=clamp_confidence(confidence, cap),
        reason=reason,
        impact=impact,
        suggested_action=action,
        symbol="",
        timestamp=timestamp,
        metadata=InsightMetadata(**metadata),
    )


# ──────────────────────────────────────────────
# Single-symbol detectors
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class MomentumDetector:
    """Shift in 10-bar momentum confirmed by a volume surge."""

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "momentum"
    min_points: ClassVar[int] = 20
    max_confidence: ClassVar[float] = 0.95

    def detect(self, window: Window, aux: Any = None) -> Optional[Insight]:
        if len(window) < self.min_points:
            return None

        f = _frame(window)
        lookback = self.config.lookback_period

        recent = f.closes[-10:]
        previous = f.closes[-20:-10]
        recent_momentum = pct_change(recent[-1], recent[0])
        previous_momentum = pct_change(previous[-1], previous[0])

        volume_ratio = safe_ratio(sma(f.volumes[-5:], 5), sma(f.volumes[-lookback:], lookback))
        momentum_shift = abs(recent_momentum - previous_momentum)

        if momentum_shift <= 0.02 or volume_ratio <= 1.2:
            return None

        bullish = recent_momentum > 0
        rsi_value = rsi(f.closes)
        histogram = macd(f.closes).histogram

        impact = ImpactLevel.MEDIUM
        if momentum_shift > 0.05:
            impact = ImpactLevel.HIGH
        if momentum_shift > 0.08 and volume_ratio > 1.5:
            impact = ImpactLevel.CRITICAL

        return _build(
            "mom",
            self.clock,
            pattern=PatternType.MOMENTUM_SHIFT,
            confidence=0.5 + momentum_shift * 5 + (volume_ratio - 1) * 0.2,
            cap=self.max_confidence,
            reason=(
                f"{'Bullish' if bullish else 'Bearish'} momentum shift detected: "
                f"{format_pct(momentum_shift)} change with "
                f"{format_pct(volume_ratio - 1, decimals=0)} volume surge. "
                f"RSI at {rsi_value:.0f}, MACD histogram "
                f"{'positive' if histogram > 0 else 'negative'}"
            ),
            impact=impact,
            action=SuggestedAction.INCREASE_POSITION if bullish else SuggestedAction.REDUCE_RISK,
            price_change=recent_momentum * 100,
            volume_change=(volume_ratio - 1) * 100,
            timeframe="10 candles",
        )


@dataclass(frozen=True)
class WhaleDetector:
    """Large volume spikes, either absorbed (accumulation) or directional.

    Optional ``aux`` is a sequence of OrderFlowData; when present, the
    buy/sell balance decides the direction instead of the 3-bar price move.
    """

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "whale"
    min_points: ClassVar[int] = 10
    max_confidence: ClassVar[float] = 0.92

    def detect(
        self,
        window: Window,
        aux: Optional[Sequence[OrderFlowData]] = None,
    ) -> Optional[Insight]:
        if len(window) < self.min_points:
            return None

        f = _frame(window)
        lookback = self.config.lookback_period

        avg_volume = sma(f.volumes[-lookback:], lookback)
        recent_volumes = f.volumes[-3:]
        spikes = recent_volumes[recent_volumes > avg_volume * 2.5]
        if spikes.size == 0:
            return None

        price_change = pct_change(f.closes[-1], f.closes[-4])
        low_volatility = safe_ratio(std_dev(f.closes[-10:]), f.closes[-1], default=0.0) < 0.02
        accumulation = abs(price_change) < 0.03 and low_volatility
        extreme_spike = bool((recent_volumes > avg_volume * 3).any())

        if not (accumulation or extreme_spike):
            return None

        max_spike = safe_ratio(float(spikes.max()), avg_volume)
        bullish = price_change >= 0
        metadata: dict[str, Any] = {}
        if aux:
            buys = sum(o.buy_volume for o in aux)
            sells = sum(o.sell_volume for o in aux)
            bullish = buys >= sells
            metadata["large_orders"] = sum(o.large_orders for o in aux)

        if max_spike > 4:
            impact = ImpactLevel.CRITICAL
        elif max_spike > 3:
            impact = ImpactLevel.HIGH
        else:
            impact = ImpactLevel.MEDIUM

        return _build(
            "whale",
            self.clock,
            pattern=PatternType.WHALE_ACCUMULATION,
            confidence=0.6 + (max_spike - 2) * 0.1,
            cap=self.max_confidence,
            reason=(
                f"Large volume spike detected: {format_ratio(max_spike)} average with "
                f"{'price absorption' if accumulation else 'directional pressure'}. "
                f"{'Buying' if bullish else 'Selling'} pressure indicated"
            ),
            impact=impact,
            action=SuggestedAction.SCALE_IN if bullish else SuggestedAction.MONITOR_CLOSELY,
            volume_change=(max_spike - 1) * 100,
            price_change=price_change * 100,
            **metadata,
        )


@dataclass(frozen=True)
class VolatilityDetector:
    """Short-window variance or bar-range expansion versus the baseline."""

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "volatility"
    min_points: ClassVar[int] = 20
    max_confidence: ClassVar[float] = 0.9

    def detect(self, window: Window, aux: Any = None) -> Optional[Insight]:
        if len(window) < self.min_points:
            return None

        f = _frame(window)
        lookback = self.config.lookback_period
        ranges = relative_ranges(f.highs, f.lows, f.opens)

        volatility_ratio = safe_ratio(std_dev(f.closes[-5:]), std_dev(f.closes[-lookback:]))
        range_expansion = safe_ratio(sma(ranges[-5:], 5), sma(ranges, lookback))

        if volatility_ratio <= 1.5 and range_expansion <= 1.8:
            return None

        if volatility_ratio > 2.5 or range_expansion > 2.5:
            impact = ImpactLevel.CRITICAL
        elif volatility_ratio > 2 or range_expansion > 2:
            impact = ImpactLevel.HIGH
        else:
            impact = ImpactLevel.MEDIUM

        bands = bollinger_bands(f.closes)

        return _build(
            "vol",
            self.clock,
            pattern=PatternType.VOLATILITY_CLUSTER,
            confidence=0.55 + (volatility_ratio - 1) * 0.15 + (range_expansion - 1) * 0.1,
            cap=self.max_confidence,
            reason=(
                f"Sudden increase in candle variance: {format_ratio(volatility_ratio)} normal "
                f"volatility + {format_pct(range_expansion - 1, decimals=0)} range expansion. "
                f"Bollinger Band width: {format_pct(bands.width)}"
            ),
            impact=impact,
            action=SuggestedAction.REDUCE_RISK,
            volatility=volatility_ratio,
            price_change=pct_change(f.closes[-1], f.closes[0]) * 100,
        )


@dataclass(frozen=True)
class TrendReversalDetector:
    """SMA crossover flip, or a MACD flip while RSI is overbought/oversold."""

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "trend_reversal"
    min_points: ClassVar[int] = 30
    max_confidence: ClassVar[float] = 0.88

    def detect(self, window: Window, aux: Any = None) -> Optional[Insight]:
        if len(window) < self.min_points:
            return None

        f = _frame(window)
        lookback = self.config.lookback_period
        closes = f.closes

        current_cross = sma(closes, 5) > sma(closes, lookback)
        previous_cross = sma(closes[:-1], 5) > sma(closes[:-1], lookback)
        crossover = current_cross != previous_cross

        rsi_value = rsi(closes)
        overbought = rsi_value > 70
        oversold = rsi_value < 30
        extreme = overbought or oversold

        histogram = macd(closes).histogram
        macd_crossover = bool(np.sign(histogram) != np.sign(macd(closes[:-1]).histogram))

        if not (crossover or (macd_crossover and extreme)):
            return None

        bullish = current_cross or (oversold and histogram > 0)
        signals = [
            label
            for label, active in (
                ("MA crossover", crossover),
                ("+ MACD cross", macd_crossover),
                ("+ overbought RSI", overbought),
                ("+ oversold RSI", oversold),
            )
            if active
        ]

        return _build(
            "rev",
            self.clock,
            pattern=PatternType.TREND_REVERSAL,
            confidence=0.5 + (0.2 if crossover else 0) + (0.15 if macd_crossover else 0) + (0.1 if extreme else 0),
            cap=self.max_confidence,
            reason=f"{'Bullish' if bullish else 'Bearish'} reversal signals: {' '.join(signals)}",
            impact=ImpactLevel.HIGH if crossover and macd_crossover else ImpactLevel.MEDIUM,
            action=SuggestedAction.SCALE_IN if bullish else SuggestedAction.EXIT_POSITION,
            price_change=pct_change(closes[-1], closes[0]) * 100,
            support_level=float(f.lows[-10:].min()),
            resistance_level=float(f.highs[-10:].max()),
        )


@dataclass(frozen=True)
class LiquidityDetector:
    """Volume dry-up together with contracting bar ranges."""

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "liquidity"
    min_points: ClassVar[int] = 15
    max_confidence: ClassVar[float] = 0.85

    def detect(self, window: Window, aux: Any = None) -> Optional[Insight]:
        if len(window) < self.min_points:
            return None

        f = _frame(window)
        lookback = self.config.lookback_period
        ranges = bar_ranges(f.highs, f.lows)

        volume_drop = 1 - safe_ratio(sma(f.volumes[-3:], 3), sma(f.volumes, lookback))
        range_contraction = 1 - safe_ratio(sma(ranges[-3:], 3), sma(ranges, lookback))

        if volume_drop <= 0.4 or range_contraction <= 0.3:
            return None

        spread_estimate = safe_ratio(f.highs[-1] - f.lows[-1], f.closes[-1], default=0.0) * 100

        return _build(
            "liq",
            self.clock,
            pattern=PatternType.LIQUIDITY_SQUEEZE,
            confidence=0.5 + volume_drop * 0.3 + range_contraction * 0.2,
            cap=self.max_confidence,
            reason=(
                f"Liquidity thinning: {format_pct(volume_drop, decimals=0)} volume drop + "
                f"{format_pct(range_contraction, decimals=0)} range contraction. "
                f"Spread estimate: {spread_estimate:.2f}%"
            ),
            impact=ImpactLevel.HIGH if volume_drop > 0.6 else ImpactLevel.MEDIUM,
            action=SuggestedAction.WAIT_FOR_CONFIRMATION,
            volume_change=-volume_drop * 100,
            volatility=spread_estimate,
        )


@dataclass(frozen=True)
class BreakoutDetector:
    """Close beyond the consolidation range that ended five bars ago."""

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "breakout"
    min_points: ClassVar[int] = 30
    max_confidence: ClassVar[float] = 0.9
    offset: ClassVar[int] = 5

    def detect(self, window: Window, aux: Any = None) -> Optional[Insight]:
        if len(window) < self.min_points:
            return None

        f = _frame(window)
        lookback = self.config.lookback_period

        resistance = float(f.highs[-lookback - self.offset:-self.offset].max())
        support = float(f.lows[-lookback - self.offset:-self.offset].min())
        consolidation_range = resistance - support

        price = float(f.closes[-1])
        volume_ratio = safe_ratio(sma(f.volumes[-3:], 3), sma(f.volumes[-lookback:], lookback))
        volume_confirmation = volume_ratio > 1.5

        breakout_up = price > resistance and volume_confirmation
        breakout_down = price < support and volume_confirmation
        if not (breakout_up or breakout_down):
            return None

        if breakout_up:
            strength = safe_ratio(price - resistance, consolidation_range, default=0.0)
            level = resistance
            price_change = pct_change(price, resistance) * 100
        else:
            strength = safe_ratio(support - price, consolidation_range, default=0.0)
            level = support
            price_change = -pct_change(price, support) * 100

        return _build(
            "brk",
            self.clock,
            pattern=PatternType.BREAKOUT_SIGNAL,
            confidence=0.55 + strength * 0.2 + (volume_ratio - 1) * 0.1,
            cap=self.max_confidence,
            reason=(
                f"{'Bullish' if breakout_up else 'Bearish'} breakout: Price "
                f"{'above resistance' if breakout_up else 'below support'} at {format_price(level)} "
                f"with {format_pct(volume_ratio, decimals=0)} volume confirmation"
            ),
            impact=ImpactLevel.HIGH if strength > 0.5 else ImpactLevel.MEDIUM,
            action=SuggestedAction.INCREASE_POSITION if breakout_up else SuggestedAction.EXIT_POSITION,
            support_level=support,
            resistance_level=resistance,
            price_change=price_change,
            volume_change=(volume_ratio - 1) * 100,
        )


@dataclass(frozen=True)
class DivergenceDetector:
    """New 10-bar price extreme that the RSI series fails to confirm."""

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "divergence"
    min_points: ClassVar[int] = 30
    max_confidence: ClassVar[float] = 0.85
    rsi_period: ClassVar[int] = 14
    span: ClassVar[int] = 10

    def detect(self, window: Window, aux: Any = None) -> Optional[Insight]:
        if len(window) < self.min_points:
            return None

        closes = _frame(window).closes
        # RSI at a bar only looks back rsi_period deltas, so the trailing
        # span + rsi_period closes reproduce the last `span` RSI values.
        recent_rsi = np.array(rsi_series(closes[-(self.span + self.rsi_period):], self.rsi_period))
        recent_prices = closes[-self.span:]

        price_higher_high = recent_prices[-1] > recent_prices[:-3].max()
        price_lower_low = recent_prices[-1] < recent_prices[:-3].min()
        rsi_higher_high = recent_rsi[-1] > recent_rsi[:-3].max()
        rsi_lower_low = recent_rsi[-1] < recent_rsi[:-3].min()

        bearish = price_higher_high and not rsi_higher_high
        bullish = price_lower_low and not rsi_lower_low
        if not (bearish or bullish):
            return None

        current_rsi = float(recent_rsi[-1])
        if bullish:
            confidence = 0.5 + (50 - current_rsi) / 100
        else:
            confidence = 0.5 + (current_rsi - 50) / 100

        return _build(
            "div",
            self.clock,
            pattern=PatternType.DIVERGENCE,
            confidence=confidence,
            cap=self.max_confidence,
            reason=(
                f"{'Bullish' if bullish else 'Bearish'} RSI divergence: Price making "
                f"{'lower lows' if bullish else 'higher highs'} while RSI "
                f"{'shows strength' if bullish else 'shows weakness'}. "
                f"Current RSI: {current_rsi:.0f}"
            ),
            impact=ImpactLevel.MEDIUM,
            action=SuggestedAction.SCALE_IN if bullish else SuggestedAction.REDUCE_RISK,
            price_change=pct_change(closes[-1], closes[-self.span]) * 100,
        )


# ──────────────────────────────────────────────
# Cross-symbol detector
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class CorrelationDetector:
    """Strong return correlation between a primary symbol and any other.

    ``aux`` maps symbol -> window for every comparison symbol. The |r|
    threshold is the config's sensitivity_threshold (0.7 by default).
    """

    config: DetectorConfig = field(default_factory=DetectorConfig)
    clock: Callable[[], int] = now_ms

    name: ClassVar[str] = "correlation"
    min_points: ClassVar[int] = 20
    max_confidence: ClassVar[float] = 0.99

    def returns(self, window: Window) -> np.ndarray:
        lookback = self.config.lookback_period
        return simple_returns([p.close for p in window[-lookback:]])

    def correlations(self, window: Window, others: Mapping[str, Window]) -> dict[str, float]:
        """Return correlation against every sufficiently long comparison window."""
        primary = self.returns(window)
        return {
            symbol: pearson_correlation(primary, self.returns(data))
            for symbol, data in others.items()
            if len(data) >= self.min_points
        }

    def detect(
        self,
        window: Window,
        aux: Optional[Mapping[str, Window]] = None,
    ) -> Optional[Insight]:
        if len(window) < self.min_points or not aux:
            return None

        threshold = self.config.sensitivity_threshold
        strong = sorted(
            ((s, c) for s, c in self.correlations(window, aux).items() if abs(c) > threshold),
            key=lambda item: abs(item[1]),
            reverse=True,
        )
        if not strong:
            return None

        symbol, correlation = strong[0]
        primary_move = pct_change(window[-1].close, window[-5].close)

        return _build(
            "corr",
            self.clock,
            pattern=PatternType.CORRELATED_MOVEMENT,
            confidence=abs(correlation),
            cap=self.max_confidence,
            reason=(
                f"Strong {'positive' if correlation > 0 else 'negative'} correlation "
                f"({format_pct(correlation, decimals=0)}) detected with {symbol}. "
                f"Primary asset moved {format_pct(primary_move)}"
            ),
            impact=ImpactLevel.HIGH if len(strong) > 2 else ImpactLevel.MEDIUM,
            action=SuggestedAction.MONITOR_CLOSELY,
            correlated_assets=[s for s, _ in strong],
            price_change=primary_move * 100,
        )


def default_detectors(
    config: Optional[DetectorConfig] = None,
    clock: Callable[[], int] = now_ms,
) -> list[Detector]:
    """Single-symbol detectors in their fixed evaluation order."""
    config = config or DetectorConfig()
    return [
        MomentumDetector(config, clock),
        WhaleDetector(config, clock),
        VolatilityDetector(config, clock),
        TrendReversalDetector(config, clock),
        LiquidityDetector(config, clock),
        BreakoutDetector(config, clock),
        DivergenceDetector(config, clock),
    ]
