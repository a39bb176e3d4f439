"""Saved search notification job."""

from __future__ import annotations

import logging

from catalog_pipeline.config import settings
from catalog_pipeline.services.notifications.saved_searches import (
    MatchRunSummary,
    create_saved_search_matcher,
)
from catalog_pipeline.services.queue.event_queue import create_redis_client

logger = logging.getLogger(__name__)


async def run_saved_search_check() -> MatchRunSummary:
    """Run the matcher once against fresh connections."""
    client = create_redis_client()
    matcher = create_saved_search_matcher(client)
    try:
        return await matcher.run(timeout=settings.MATCHER_RUN_TIMEOUT_SECONDS)
    finally:
        await matcher.dispatcher.provider.aclose()
        await client.aclose()
