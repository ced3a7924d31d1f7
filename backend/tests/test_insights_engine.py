"""
Trading Village — Insights Engine Test Suite

Tests for the engine orchestration layer:
- Market data cache windows
- Insight store retention (capacity + TTL)
- Analysis, publication and query filters
- Correlation across symbols
- Demo data reproducibility and settings wiring
"""

import sys
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, "backend")

from helpers import BASE_TS, MINUTE_MS, make_bars, make_insight, wave_closes  # noqa: E402


MOMENTUM_CLOSES = [100.0] * 20 + [101.0 + i for i in range(10)]
MOMENTUM_VOLUMES = [1000.0] * 20 + [2000.0] * 10


def fixed_clock() -> int:
    return BASE_TS


def make_engine(**kwargs):
    from village_insights.engines.insights_engine import InsightsEngine
    from village_insights.engines.insight_store import InsightStore

    kwargs.setdefault("clock", fixed_clock)
    kwargs.setdefault("store", InsightStore(clock=kwargs["clock"]))
    return InsightsEngine(**kwargs)


def load(engine, symbol, bars):
    for bar in bars:
        engine.update_market_data(symbol, bar)


# ═══════════════════════════════════════════════
#  MARKET DATA CACHE
# ═══════════════════════════════════════════════

class TestMarketDataCache:

    def test_window_is_fifo_bounded(self):
        from village_insights.cache import MarketDataCache

        cache = MarketDataCache(200)
        for bar in make_bars([100.0] * 250):
            cache.append("ETH-USD", bar)

        window = cache.get_window("ETH-USD")
        assert len(window) == 200
        assert window[0].timestamp == BASE_TS + 50 * MINUTE_MS
        assert window[-1].timestamp == BASE_TS + 249 * MINUTE_MS

    def test_unknown_symbol_is_empty(self):
        from village_insights.cache import MarketDataCache

        cache = MarketDataCache()
        assert cache.get_window("NOPE") == ()
        assert cache.size("NOPE") == 0
        assert "NOPE" not in cache

    def test_snapshot_excludes_symbol(self):
        from village_insights.cache import MarketDataCache

        cache = MarketDataCache()
        bar = make_bars([1.0])[0]
        for symbol in ("A", "B", "C"):
            cache.append(symbol, bar)

        assert set(cache.snapshot(exclude="B")) == {"A", "C"}
        assert cache.symbols() == ["A", "B", "C"]
        assert len(cache) == 3

    def test_invalid_capacity(self):
        from village_insights.cache import MarketDataCache

        with pytest.raises(ValueError):
            MarketDataCache(0)

    def test_replace_swaps_window_and_keeps_bound(self):
        from village_insights.cache import MarketDataCache

        cache = MarketDataCache(5)
        for bar in make_bars([1.0] * 3):
            cache.append("ETH-USD", bar)

        cache.replace("ETH-USD", make_bars([2.0] * 8))

        window = cache.get_window("ETH-USD")
        assert len(window) == 5
        assert all(bar.close == 2.0 for bar in window)
        assert window[0].timestamp == BASE_TS + 3 * MINUTE_MS

        for bar in make_bars([3.0]):
            cache.append("ETH-USD", bar)
        assert cache.size("ETH-USD") == 5


# ═══════════════════════════════════════════════
#  INSIGHT STORE
# ═══════════════════════════════════════════════

class TestInsightStore:

    def test_capacity_evicts_oldest_inserted(self):
        from village_insights.engines.insight_store import InsightStore

        store = InsightStore(capacity=3, ttl_seconds=0)
        for i in range(5):
            store.add(make_insight(insight_id=f"i{i}"))

        assert len(store) == 3
        assert "i0" not in store and "i1" not in store
        assert [i.id for i in store.values()] == ["i2", "i3", "i4"]

    def test_ttl_sweeps_on_add(self):
        from village_insights.engines.insight_store import InsightStore

        now = [BASE_TS]
        store = InsightStore(capacity=10, ttl_seconds=60, clock=lambda: now[0])
        store.add(make_insight(insight_id="old", timestamp=BASE_TS))

        now[0] = BASE_TS + 61_000
        store.add(make_insight(insight_id="new", timestamp=now[0]))

        assert "old" not in store
        assert store.get("new") is not None

    def test_sweep_expired_returns_count(self):
        from village_insights.engines.insight_store import InsightStore

        now = [BASE_TS]
        store = InsightStore(ttl_seconds=10, clock=lambda: now[0])
        for i in range(3):
            store.add(make_insight(insight_id=f"i{i}", timestamp=BASE_TS))

        now[0] += 20_000
        assert store.sweep_expired() == 3
        assert len(store) == 0

    def test_zero_ttl_never_expires(self):
        from village_insights.engines.insight_store import InsightStore

        store = InsightStore(ttl_seconds=0, clock=lambda: BASE_TS * 10)
        store.add(make_insight(insight_id="ancient", timestamp=0))
        assert store.sweep_expired() == 0
        assert "ancient" in store

    def test_add_sweeps_only_the_expired_prefix(self):
        from village_insights.engines.insight_store import InsightStore

        now = [BASE_TS]
        store = InsightStore(ttl_seconds=10, clock=lambda: now[0])
        store.add(make_insight(insight_id="old-1", timestamp=BASE_TS))
        store.add(make_insight(insight_id="old-2", timestamp=BASE_TS))

        now[0] += 20_000
        store.add(make_insight(insight_id="live", timestamp=now[0]))
        assert [i.id for i in store.values()] == ["live"]

        # Out-of-order stale entry behind a live one survives add()...
        store.add(make_insight(insight_id="late", timestamp=BASE_TS))
        assert "late" in store

        # ...but the full sweep finds it
        assert store.sweep_expired() == 1
        assert [i.id for i in store.values()] == ["live"]


# ═══════════════════════════════════════════════
#  ANALYSIS
# ═══════════════════════════════════════════════

class TestAnalysis:

    def test_below_minimum_points_yields_nothing(self):
        engine = make_engine()
        load(engine, "ETH-USD", make_bars(MOMENTUM_CLOSES[:29], MOMENTUM_VOLUMES[:29]))
        assert engine.analyze_symbol("ETH-USD") == []
        assert engine.get_stats().total_insights == 0

    def test_unknown_symbol(self):
        engine = make_engine()
        assert engine.analyze_symbol("NOPE") == []
        assert engine.get_insights(symbol="NOPE") == []

    def test_momentum_window_is_stored_and_published(self):
        engine = make_engine()
        received = []
        engine.publisher.subscribe(received.append)
        load(engine, "ETH-USD", make_bars(MOMENTUM_CLOSES, MOMENTUM_VOLUMES))

        insights = engine.analyze_symbol("ETH-USD")

        patterns = {i.pattern.value for i in insights}
        assert "momentum_shift" in patterns
        assert received == insights
        for insight in insights:
            assert insight.symbol == "ETH-USD"
            assert engine.get_insight(insight.id) == insight

    def test_detect_symbol_does_not_store(self):
        engine = make_engine()
        load(engine, "ETH-USD", make_bars(MOMENTUM_CLOSES, MOMENTUM_VOLUMES))

        detected = engine.detect_symbol("ETH-USD")

        assert detected
        assert len(engine.store) == 0

    def test_failing_handler_does_not_abort_analysis(self):
        engine = make_engine()
        received = []

        def broken(insight):
            raise RuntimeError("dashboard down")

        engine.publisher.subscribe(broken)
        engine.publisher.subscribe(received.append)
        load(engine, "ETH-USD", make_bars(MOMENTUM_CLOSES, MOMENTUM_VOLUMES))

        insights = engine.analyze_symbol("ETH-USD")

        assert insights
        assert received == insights
        assert len(engine.store) == len(insights)

    def test_detector_stats_recorded(self):
        engine = make_engine()
        load(engine, "ETH-USD", make_bars(MOMENTUM_CLOSES, MOMENTUM_VOLUMES))
        engine.analyze_symbol("ETH-USD")

        stats = engine.get_detector_stats()
        assert set(stats) == {
            "momentum", "whale", "volatility", "trend_reversal",
            "liquidity", "breakout", "divergence",
        }
        assert stats["momentum"]["total_calls"] == 1
        assert stats["momentum"]["hits"] == 1

    def test_analyze_all_covers_every_symbol(self):
        engine = make_engine()
        load(engine, "ETH-USD", make_bars(MOMENTUM_CLOSES, MOMENTUM_VOLUMES))
        load(engine, "BTC-USD", make_bars(MOMENTUM_CLOSES, MOMENTUM_VOLUMES))

        insights = engine.analyze_all_symbols()

        symbols = {i.symbol for i in insights}
        assert symbols == {"ETH-USD", "BTC-USD"}
        assert engine.get_available_symbols() == ["ETH-USD", "BTC-USD"]


# ═══════════════════════════════════════════════
#  CORRELATION
# ═══════════════════════════════════════════════

class TestCorrelationAnalysis:

    def _correlated(self, insights):
        return [i for i in insights if i.pattern.value == "correlated_movement"]

    def test_every_symbol_is_a_primary_by_default(self):
        engine = make_engine()
        load(engine, "A", make_bars(wave_closes()))
        load(engine, "B", make_bars(wave_closes(scale=3.0)))

        correlated = self._correlated(engine.analyze_all_symbols())

        assert {i.symbol for i in correlated} == {"A", "B"}
        by_symbol = {i.symbol: i for i in correlated}
        assert by_symbol["A"].metadata.correlated_assets == ["B"]
        assert by_symbol["B"].metadata.correlated_assets == ["A"]

    def test_configured_primaries(self):
        engine = make_engine(correlation_primaries=["A"])
        load(engine, "A", make_bars(wave_closes()))
        load(engine, "B", make_bars(wave_closes(scale=3.0)))

        correlated = self._correlated(engine.analyze_all_symbols())

        assert [i.symbol for i in correlated] == ["A"]

    def test_single_symbol_has_no_correlation(self):
        engine = make_engine()
        load(engine, "A", make_bars(wave_closes()))
        assert engine.detect_correlations() == []


# ═══════════════════════════════════════════════
#  QUERIES
# ═══════════════════════════════════════════════

class TestQueries:

    @pytest.fixture
    def engine(self):
        from village_insights.models import ImpactLevel, PatternType

        engine = make_engine()
        engine.store.add(make_insight(0.95, "ETH-USD", BASE_TS - 3000, insight_id="a"))
        engine.store.add(make_insight(
            0.60, "BTC-USD", BASE_TS - 1000, PatternType.DIVERGENCE, ImpactLevel.HIGH, insight_id="b",
        ))
        engine.store.add(make_insight(0.90, "ETH-USD", BASE_TS - 2000, insight_id="c"))
        return engine

    def test_newest_first(self, engine):
        assert [i.id for i in engine.get_insights()] == ["b", "c", "a"]

    def test_min_confidence(self, engine):
        assert [i.id for i in engine.get_insights(min_confidence=0.9)] == ["c", "a"]

    def test_symbol_filter(self, engine):
        assert {i.id for i in engine.get_insights(symbol="ETH-USD")} == {"a", "c"}

    def test_pattern_filter(self, engine):
        from village_insights.models import PatternType

        assert [i.id for i in engine.get_insights(pattern=PatternType.DIVERGENCE)] == ["b"]

    def test_limit_applies_after_sort(self, engine):
        assert [i.id for i in engine.get_insights(limit=1)] == ["b"]

    def test_filter_object(self, engine):
        from village_insights.models import InsightFilter

        query = InsightFilter(symbol="ETH-USD", min_confidence=0.92)
        assert [i.id for i in engine.get_insights(query)] == ["a"]

    def test_keywords_refine_filter_object(self, engine):
        from village_insights.models import InsightFilter

        query = InsightFilter(min_confidence=0.1)
        assert {i.id for i in engine.get_insights(query, symbol="ETH-USD")} == {"a", "c"}
        assert [i.id for i in engine.get_insights(query, min_confidence=0.92)] == ["a"]

    def test_zero_limit_and_confidence_mean_unfiltered(self, engine):
        assert [i.id for i in engine.get_insights(limit=0)] == ["b", "c", "a"]
        assert [i.id for i in engine.get_insights(min_confidence=0)] == ["b", "c", "a"]
        assert [i.id for i in engine.get_insights(limit=-2)] == ["b", "c", "a"]

    def test_out_of_range_confidence_matches_nothing(self, engine):
        assert engine.get_insights(min_confidence=1.5) == []

    def test_stats(self, engine):
        stats = engine.get_stats()
        assert stats.total_insights == 3
        assert stats.by_pattern == {"momentum_shift": 2, "divergence": 1}
        assert stats.by_impact == {"Medium": 2, "High": 1}
        assert stats.avg_confidence == pytest.approx((0.95 + 0.60 + 0.90) / 3)

    def test_clear_keeps_market_data(self, engine):
        load(engine, "ETH-USD", make_bars([100.0] * 5))
        engine.clear_insights()

        assert engine.get_insights() == []
        assert engine.get_stats().total_insights == 0
        assert engine.get_stats().avg_confidence == 0.0
        assert engine.cache.size("ETH-USD") == 5


# ═══════════════════════════════════════════════
#  DEMO DATA + WIRING
# ═══════════════════════════════════════════════

class TestDemoData:

    def test_series_is_reproducible(self):
        from village_insights.engines.demo_data import SyntheticMarketGenerator

        a = SyntheticMarketGenerator(7).generate_series(2400.0, count=50, end_timestamp=BASE_TS)
        b = SyntheticMarketGenerator(7).generate_series(2400.0, count=50, end_timestamp=BASE_TS)
        assert a == b
        assert a[-1].timestamp == BASE_TS - 3_600_000
        assert all(bar.low <= min(bar.open, bar.close) for bar in a)
        assert all(bar.high >= max(bar.open, bar.close) for bar in a)

    def test_demo_insights_reproducible(self):
        from village_insights.engines.demo_data import SyntheticMarketGenerator

        def run(seed):
            engine = make_engine()
            insights = engine.generate_demo_insights(SyntheticMarketGenerator(seed))
            return [(i.symbol, i.pattern, i.confidence) for i in insights], engine

        first, engine = run(11)
        second, _ = run(11)

        assert first == second
        assert len(engine.get_available_symbols()) == 5
        assert engine.cache.size("ETH-USD") == 103

    def test_reseed_keeps_windows_ordered(self):
        from village_insights.engines.demo_data import DEMO_BASE_PRICES, SyntheticMarketGenerator

        engine = make_engine()
        real = make_bars([100.0] * 40)
        load(engine, "ETH-USD", real)
        load(engine, "BTC-USD", make_bars([100.0] * 5))

        generator = SyntheticMarketGenerator(1)
        engine.generate_demo_insights(generator)
        engine.generate_demo_insights(generator)

        for symbol in DEMO_BASE_PRICES:
            stamps = [bar.timestamp for bar in engine.cache.get_window(symbol)]
            assert all(a < b for a, b in zip(stamps, stamps[1:])), symbol

        # Long enough real history is kept; short history is replaced
        eth = engine.cache.get_window("ETH-USD")
        assert len(eth) == 46
        assert list(eth[:40]) == real
        btc = engine.cache.get_window("BTC-USD")
        assert len(btc) == 106
        assert all(bar.close > 1000 for bar in btc)

    def test_seed_replaces_existing_window(self):
        from village_insights.engines.demo_data import SyntheticMarketGenerator

        engine = make_engine()
        load(engine, "LINK-USD", make_bars([1.0] * 10))

        engine.seed_demo_data(SyntheticMarketGenerator(2), {"LINK-USD": 15.0}, count=50)

        window = engine.cache.get_window("LINK-USD")
        assert len(window) == 50
        assert window[-1].timestamp == BASE_TS - 3_600_000


class TestBuildEngine:

    def test_defaults_have_no_sinks(self):
        from village_insights.config import Settings
        from village_insights.engines.insights_engine import build_engine

        engine = build_engine(Settings(window_capacity=50, insight_store_capacity=10))

        assert engine.publisher.handler_count == 0
        assert engine.cache.capacity == 50
        assert engine.store.capacity == 10
        assert engine.get_available_symbols() == []

    def test_demo_mode_seeds_cache(self):
        from village_insights.config import Settings
        from village_insights.engines.insights_engine import build_engine

        engine = build_engine(Settings(demo_mode=True, demo_seed=3))

        assert len(engine.get_available_symbols()) == 5
        assert engine.cache.size("BTC-USD") == 100

    def test_redis_sink_subscribed_when_enabled(self):
        from village_insights.config import Settings
        from village_insights.engines.insights_engine import build_engine

        sink = MagicMock()
        with patch(
            "village_insights.notifications.publisher.RedisInsightSink.from_url",
            return_value=sink,
        ) as from_url:
            engine = build_engine(Settings(redis_publish_enabled=True, insight_channel_prefix="tv"))

        from_url.assert_called_once()
        assert from_url.call_args.kwargs["prefix"] == "tv"
        assert engine.publisher.handler_count == 1
