"""Celery configuration for scheduled jobs."""

from __future__ import annotations

import asyncio
from dataclasses import asdict

from celery import Celery
from celery.schedules import crontab

from catalog_pipeline.config import settings

celery_app = Celery("catalog_pipeline", broker=settings.REDIS_URL, backend=settings.REDIS_URL)
celery_app.conf.timezone = "UTC"
celery_app.conf.beat_schedule = {
    "check-saved-searches": {
        "task": "catalog_pipeline.jobs.saved_searches.check_saved_searches",
        "schedule": crontab(minute=f"*/{settings.MATCHER_INTERVAL_MINUTES}"),
    },
    "update-popularity-scores": {
        "task": "catalog_pipeline.jobs.maintenance.refresh_popularity_scores",
        "schedule": crontab(minute=0, hour="*/6"),
    },
    "cleanup-search-index": {
        "task": "catalog_pipeline.jobs.maintenance.cleanup_search_index",
        "schedule": crontab(minute=0, hour=3),
    },
}


@celery_app.task(
    name="catalog_pipeline.jobs.saved_searches.check_saved_searches",
    soft_time_limit=settings.MATCHER_RUN_TIMEOUT_SECONDS + 30,
    time_limit=settings.MATCHER_RUN_TIMEOUT_SECONDS + 60,
)
def check_saved_searches_task():  # pragma: no cover - executed by worker
    from catalog_pipeline.jobs.saved_searches import run_saved_search_check

    return asdict(asyncio.run(run_saved_search_check()))


@celery_app.task(name="catalog_pipeline.jobs.maintenance.refresh_popularity_scores", time_limit=540)
def refresh_popularity_scores_task():  # pragma: no cover - executed by worker
    from catalog_pipeline.jobs.maintenance import run_popularity_refresh

    return asyncio.run(run_popularity_refresh())


@celery_app.task(name="catalog_pipeline.jobs.maintenance.cleanup_search_index", time_limit=540)
def cleanup_search_index_task():  # pragma: no cover - executed by worker
    from catalog_pipeline.jobs.maintenance import run_index_cleanup

    return asyncio.run(run_index_cleanup())
