"""
Trading Village Insights — technical pattern detection engine.

Ingests rolling OHLCV windows per symbol and emits confidence-scored insights
(momentum shifts, whale accumulation, volatility clusters, breakouts, ...).
"""

from village_insights.engines.insights_engine import InsightsEngine, get_engine
from village_insights.models import (
    ImpactLevel,
    Insight,
    InsightFilter,
    InsightStats,
    MarketDataPoint,
    PatternType,
    SuggestedAction,
)
from village_insights.notifications.publisher import InsightPublisher

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ImpactLevel",
    "Insight",
    "InsightFilter",
    "InsightPublisher",
    "InsightStats",
    "InsightsEngine",
    "MarketDataPoint",
    "PatternType",
    "SuggestedAction",
    "get_engine",
]
