"""
Trading Village — Insights Engine

Orchestrates the detector set over cached market data:

  update_market_data  → append a bar to the symbol's bounded window
  detect_symbol       → run the single-symbol detectors (pure, no side effects)
  analyze_symbol      → detect, then store + publish each new insight
  analyze_all_symbols → analyze every symbol, then run the correlation
                        detector with each primary against all other symbols
  get_insights / get_insight / get_stats / clear_insights → query the store

All work is synchronous CPU-bound arithmetic over bounded windows. Queries on
unknown symbols or an empty store return empty/zero results, never errors.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Optional, Sequence

import structlog

from village_insights.cache import DEFAULT_WINDOW_CAPACITY, MarketDataCache
from village_insights.engines.demo_data import DEMO_BASE_PRICES, HOUR_MS, SyntheticMarketGenerator
from village_insights.engines.detectors import (
    CorrelationDetector,
    Detector,
    default_detectors,
    now_ms,
)
from village_insights.engines.insight_store import InsightStore
from village_insights.models import (
    Insight,
    InsightFilter,
    InsightStats,
    MarketDataPoint,
)
from village_insights.notifications.publisher import InsightPublisher
from village_insights.observability import DetectorMetrics, trace_span, traced

log = structlog.get_logger(__name__)

MIN_ANALYSIS_POINTS = 30


class InsightsEngine:
    """Pattern detection orchestrator with an owned data cache and insight store.

    Usage:
        engine = InsightsEngine(publisher=publisher)
        engine.update_market_data("ETH-USD", bar)
        new = engine.analyze_all_symbols()
        top = engine.get_insights(min_confidence=0.8, limit=10)
    """

    def __init__(
        self,
        cache: Optional[MarketDataCache] = None,
        store: Optional[InsightStore] = None,
        publisher: Optional[InsightPublisher] = None,
        detectors: Optional[Sequence[Detector]] = None,
        correlation_detector: Optional[CorrelationDetector] = None,
        min_analysis_points: int = MIN_ANALYSIS_POINTS,
        correlation_primaries: Optional[Iterable[str]] = None,
        metrics: Optional[DetectorMetrics] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.cache = cache if cache is not None else MarketDataCache(DEFAULT_WINDOW_CAPACITY)
        self.store = store if store is not None else InsightStore(clock=clock)
        self.publisher = publisher if publisher is not None else InsightPublisher()
        self.detectors = list(detectors) if detectors is not None else default_detectors(clock=clock)
        self.correlation_detector = correlation_detector or CorrelationDetector(clock=clock)
        self.min_analysis_points = min_analysis_points
        self.correlation_primaries = list(correlation_primaries or [])
        self.metrics = metrics if metrics is not None else DetectorMetrics()
        self._clock = clock

    # ──────────────────────────────────────────
    # Ingestion
    # ──────────────────────────────────────────

    def update_market_data(self, symbol: str, point: MarketDataPoint) -> None:
        self.cache.append(symbol, point)

    # ──────────────────────────────────────────
    # Detection (pure)
    # ──────────────────────────────────────────

    def _run(self, detector: Detector, window: Sequence[MarketDataPoint], aux: Any = None) -> Optional[Insight]:
        start = time.perf_counter()
        insight = detector.detect(window, aux)
        self.metrics.record_call(
            detector.name,
            latency_ms=(time.perf_counter() - start) * 1000,
            fired=insight is not None,
        )
        return insight

    def detect_symbol(self, symbol: str) -> list[Insight]:
        """Run the single-symbol detectors against the symbol's window.

        Returns [] when fewer than ``min_analysis_points`` bars are cached.
        Nothing is stored or published.
        """
        window = self.cache.get_window(symbol)
        if len(window) < self.min_analysis_points:
            return []

        detected = []
        for detector in self.detectors:
            insight = self._run(detector, window)
            if insight is not None:
                detected.append(insight.model_copy(update={"symbol": symbol}))
        return detected

    def detect_correlations(self) -> list[Insight]:
        """Correlation detector for each primary symbol against all others."""
        primaries = self.correlation_primaries or self.cache.symbols()
        detected = []
        for primary in primaries:
            window = self.cache.get_window(primary)
            others = self.cache.snapshot(exclude=primary)
            if not window or not others:
                continue
            insight = self._run(self.correlation_detector, window, others)
            if insight is not None:
                detected.append(insight.model_copy(update={"symbol": primary}))
        return detected

    # ──────────────────────────────────────────
    # Analysis (store + publish)
    # ──────────────────────────────────────────

    def _accept(self, insights: list[Insight]) -> list[Insight]:
        for insight in insights:
            self.store.add(insight)
            self.publisher.publish(insight)
        return insights

    def analyze_symbol(self, symbol: str) -> list[Insight]:
        insights = self._accept(self.detect_symbol(symbol))
        if insights:
            log.info(
                "insights.symbol_analyzed",
                symbol=symbol,
                count=len(insights),
                patterns=[i.pattern.value for i in insights],
            )
        return insights

    def analyze_all_symbols(self) -> list[Insight]:
        with trace_span("insights.analyze_all", symbols=len(self.cache)):
            all_insights: list[Insight] = []
            for symbol in self.cache.symbols():
                all_insights.extend(self.analyze_symbol(symbol))
            all_insights.extend(self._accept(self.detect_correlations()))

        log.info("insights.analyzed", symbols=len(self.cache), insights=len(all_insights))
        return all_insights

    # ──────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────

    def get_insights(self, query: Optional[InsightFilter] = None, **kwargs: Any) -> list[Insight]:
        """Stored insights matching every given filter, newest first.

        Accepts an InsightFilter, its fields as keyword arguments, or both
        (keywords override the filter's fields). A zero or missing
        ``min_confidence`` / ``limit`` means no filter.
        """
        criteria = query or InsightFilter()
        if kwargs:
            criteria = InsightFilter.model_validate(
                {**criteria.model_dump(exclude_unset=True), **kwargs}
            )
        insights = self.store.values()

        if criteria.symbol is not None:
            insights = [i for i in insights if i.symbol == criteria.symbol]
        if criteria.pattern is not None:
            insights = [i for i in insights if i.pattern == criteria.pattern]
        if criteria.min_confidence:
            insights = [i for i in insights if i.confidence >= criteria.min_confidence]

        insights.sort(key=lambda i: i.timestamp, reverse=True)

        if criteria.limit and criteria.limit > 0:
            insights = insights[: criteria.limit]
        return insights

    def get_insight(self, insight_id: str) -> Optional[Insight]:
        return self.store.get(insight_id)

    def get_stats(self) -> InsightStats:
        insights = self.store.values()
        by_pattern: dict[str, int] = {}
        by_impact: dict[str, int] = {}
        for insight in insights:
            by_pattern[insight.pattern.value] = by_pattern.get(insight.pattern.value, 0) + 1
            by_impact[insight.impact.value] = by_impact.get(insight.impact.value, 0) + 1

        return InsightStats(
            total_insights=len(insights),
            by_pattern=by_pattern,
            by_impact=by_impact,
            avg_confidence=(sum(i.confidence for i in insights) / len(insights)) if insights else 0.0,
        )

    def clear_insights(self) -> None:
        """Empty the insight store. Cached market data is untouched."""
        self.store.clear()
        log.info("insights.cleared")

    @traced("insights.sweep_expired")
    def sweep_expired(self) -> int:
        return self.store.sweep_expired()

    def get_available_symbols(self) -> list[str]:
        return self.cache.symbols()

    def get_detector_stats(self) -> dict[str, dict]:
        return self.metrics.get_stats()

    # ──────────────────────────────────────────
    # Demo data
    # ──────────────────────────────────────────

    def seed_demo_data(
        self,
        generator: SyntheticMarketGenerator,
        base_prices: Optional[dict[str, float]] = None,
        count: int = 100,
    ) -> None:
        """Replace each demo symbol's window with synthetic history ending now."""
        prices = base_prices or DEMO_BASE_PRICES
        end = self._clock()
        for symbol, price in prices.items():
            self.cache.replace(symbol, generator.generate_series(price, count=count, end_timestamp=end))
        log.info("insights.demo_seeded", symbols=list(prices), bars=count)

    def generate_demo_insights(
        self,
        generator: SyntheticMarketGenerator,
        fresh_bars: int = 3,
    ) -> list[Insight]:
        """Append a few volatile bars to every demo symbol, then analyze everything.

        Only demo symbols without enough history are (re)seeded. Fresh bars are
        stamped at least one hour after the symbol's newest bar, so windows stay
        in ascending timestamp order.
        """
        short = {
            symbol: price
            for symbol, price in DEMO_BASE_PRICES.items()
            if self.cache.size(symbol) < self.min_analysis_points
        }
        if short:
            self.seed_demo_data(generator, short)

        now = self._clock()
        for symbol in DEMO_BASE_PRICES:
            for i in range(fresh_bars):
                last = self.cache.get_window(symbol)[-1]
                timestamp = max(now + i * HOUR_MS, last.timestamp + HOUR_MS)
                self.cache.append(symbol, generator.next_point(last.close, timestamp))

        return self.analyze_all_symbols()


# ──────────────────────────────────────────────
# Process-wide instance
# ──────────────────────────────────────────────

_engine: Optional[InsightsEngine] = None


def build_engine(settings=None) -> InsightsEngine:
    """Wire an engine from settings (Redis sink and demo data are opt-in)."""
    from village_insights.config import get_settings
    from village_insights.notifications.publisher import RedisInsightSink

    settings = settings or get_settings()

    publisher = InsightPublisher()
    if settings.redis_publish_enabled:
        publisher.subscribe(
            RedisInsightSink.from_url(settings.redis_url, prefix=settings.insight_channel_prefix)
        )

    engine = InsightsEngine(
        cache=MarketDataCache(settings.window_capacity),
        store=InsightStore(
            capacity=settings.insight_store_capacity,
            ttl_seconds=settings.insight_ttl_seconds,
        ),
        publisher=publisher,
        min_analysis_points=settings.min_analysis_points,
        correlation_primaries=settings.correlation_primary_list,
    )

    if settings.demo_mode:
        engine.seed_demo_data(SyntheticMarketGenerator(settings.demo_seed))

    log.info(
        "insights.engine_built",
        env=settings.app_env,
        sinks=publisher.handler_count,
        demo_mode=settings.demo_mode,
    )
    return engine


def get_engine() -> InsightsEngine:
    """Get or create the process-wide engine used by scheduled tasks."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine
