"""
Trading Village — Insight Tasks

Celery tasks driving the process-wide insights engine:
- Ingest a JSON bar payload into the market data cache
- Periodic analysis of every cached symbol
- Periodic TTL sweep of the insight store

Each worker process owns its engine (see ``get_engine``); market data must be
ingested into the same worker that analyzes it.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from pydantic import ValidationError

from village_insights.engines.insights_engine import get_engine
from village_insights.models import MarketDataPoint
from village_insights.tasks.celery_app import celery_app

log = structlog.get_logger(__name__)


@celery_app.task
def ingest_market_data(symbol: str, point: dict) -> dict:
    """Append one OHLCV bar (dict with timestamp/open/high/low/close/volume)."""
    try:
        bar = MarketDataPoint.model_validate(point)
    except ValidationError as exc:
        log.warning("ingest.invalid_point", symbol=symbol, errors=exc.error_count())
        return {"symbol": symbol, "accepted": False, "error": "invalid_point"}

    engine = get_engine()
    engine.update_market_data(symbol, bar)
    return {"symbol": symbol, "accepted": True, "window": engine.cache.size(symbol)}


@celery_app.task
def analyze_all_symbols() -> dict:
    """Run the full detector set over every cached symbol.

    Runs every ``analysis_interval_seconds`` via the beat schedule.
    """
    engine = get_engine()
    insights = engine.analyze_all_symbols()

    result = {
        "symbols": len(engine.get_available_symbols()),
        "insights": len(insights),
        "ids": [i.id for i in insights],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    log.info("insight_scan.complete", symbols=result["symbols"], insights=result["insights"])
    return result


@celery_app.task
def sweep_expired_insights() -> dict:
    """Drop insights older than the configured TTL."""
    removed = get_engine().sweep_expired()
    if removed:
        log.info("insight_sweep.complete", removed=removed)
    return {"removed": removed}
