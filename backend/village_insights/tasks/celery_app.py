"""
Trading Village — Celery Application Factory

Creates a Celery app with Redis broker and result backend.
Includes a beat schedule for periodic insight analysis and store sweeps.
"""

from __future__ import annotations

from celery import Celery

from village_insights.config import get_settings


def make_celery() -> Celery:
    """Create and configure the Celery application.

    Uses Redis from settings as both broker and result backend.
    Registers the beat schedule for the periodic insight tasks.
    """
    settings = get_settings()

    app = Celery(
        "Trading Village",
        broker=settings.redis_url,
        backend=settings.redis_url,
    )

    app.conf.update(
        # Serialization
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Reliability
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_reject_on_worker_lost=True,

        # Result expiry
        result_expires=3600,  # 1 hour

        # Beat schedule — periodic tasks
        beat_schedule={
            "analyze-all-symbols": {
                "task": "village_insights.tasks.insight_tasks.analyze_all_symbols",
                "schedule": settings.analysis_interval_seconds,  # default: 60s
            },
            "sweep-expired-insights": {
                "task": "village_insights.tasks.insight_tasks.sweep_expired_insights",
                "schedule": settings.insight_sweep_interval_seconds,  # default: 900s
            },
        },
    )

    app.autodiscover_tasks(["village_insights.tasks"], related_name="insight_tasks")

    return app


# Module-level instance for imports
celery_app = make_celery()
