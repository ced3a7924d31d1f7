"""
Trading Village — Pydantic Models

All I/O schemas for the insights engine. Detectors return these, the engine
stores and publishes these, collaborators (dashboard, alerting) consume these.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class PatternType(str, Enum):
    """Market-structure pattern classes an insight can carry."""
    MOMENTUM_SHIFT = "momentum_shift"
    WHALE_ACCUMULATION = "whale_accumulation"
    VOLATILITY_CLUSTER = "volatility_cluster"
    TREND_REVERSAL = "trend_reversal"
    LIQUIDITY_SQUEEZE = "liquidity_squeeze"
    CORRELATED_MOVEMENT = "correlated_movement"
    BREAKOUT_SIGNAL = "breakout_signal"
    SUPPORT_RESISTANCE = "support_resistance"
    DIVERGENCE = "divergence"


class ImpactLevel(str, Enum):
    """Coarse severity label, independent of confidence."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class SuggestedAction(str, Enum):
    """Position guidance attached to an insight."""
    INCREASE_POSITION = "Increase position"
    REDUCE_RISK = "Reduce risk"
    HOLD = "Hold"
    EXIT_POSITION = "Exit position"
    SCALE_IN = "Scale in"
    SCALE_OUT = "Scale out"
    HEDGE = "Hedge"
    WAIT_FOR_CONFIRMATION = "Wait for confirmation"
    MONITOR_CLOSELY = "Monitor closely"


# ──────────────────────────────────────────────
# Market Data Models
# ──────────────────────────────────────────────

class MarketDataPoint(BaseModel):
    """Single OHLCV bar. Timestamp is epoch milliseconds."""
    model_config = ConfigDict(frozen=True)

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


class OrderFlowData(BaseModel):
    """Aggregated order-flow sample (optional whale detector input)."""
    model_config = ConfigDict(frozen=True)

    buy_volume: float
    sell_volume: float
    large_orders: int
    timestamp: int


# ──────────────────────────────────────────────
# Insight Models
# ──────────────────────────────────────────────

class InsightMetadata(BaseModel):
    """Open map of optional detector context. Unknown keys are kept."""
    model_config = ConfigDict(frozen=True, extra="allow")

    price_change: Optional[float] = None
    volume_change: Optional[float] = None
    volatility: Optional[float] = None
    correlated_assets: Optional[list[str]] = None
    timeframe: Optional[str] = None
    support_level: Optional[float] = None
    resistance_level: Optional[float] = None


class Insight(BaseModel):
    """A classified, confidence-scored pattern detection."""
    model_config = ConfigDict(frozen=True)

    id: str
    pattern: PatternType
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    impact: ImpactLevel
    suggested_action: SuggestedAction
    symbol: str = ""
    timestamp: int
    metadata: InsightMetadata = Field(default_factory=InsightMetadata)


class DetectorConfig(BaseModel):
    """Per-detector tuning, fixed at construction."""
    model_config = ConfigDict(frozen=True)

    lookback_period: int = Field(default=20, ge=2)
    sensitivity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)


# ──────────────────────────────────────────────
# Query Models
# ──────────────────────────────────────────────

class InsightFilter(BaseModel):
    """Conjunctive query over stored insights.

    A zero/None ``min_confidence`` or a non-positive/None ``limit`` disables
    that filter; a ``min_confidence`` above 1 simply matches nothing.
    """
    symbol: Optional[str] = None
    pattern: Optional[PatternType] = None
    min_confidence: Optional[float] = None
    limit: Optional[int] = None


class InsightStats(BaseModel):
    """Aggregate view of the insight store."""
    total_insights: int = 0
    by_pattern: dict[str, int] = {}
    by_impact: dict[str, int] = {}
    avg_confidence: float = 0.0
