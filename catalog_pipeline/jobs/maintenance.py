"""Periodic upkeep of the search index."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from catalog_pipeline.services.queue.event_queue import create_redis_client
from catalog_pipeline.services.storage.search_index_store import SearchIndexStore
from catalog_pipeline.utils.search import popularity_score

logger = logging.getLogger(__name__)

POPULARITY_EPSILON = 0.1


async def refresh_popularity_scores(
    index_store: SearchIndexStore, now: datetime | None = None
) -> int:
    """Re-decay popularity for live documents. Returns how many were rewritten."""
    now = now or datetime.now(UTC)
    updated = 0
    async for document in index_store.iter_documents():
        if not document.is_active or document.is_sold:
            continue
        score = popularity_score(document.views, document.likes, document.created_at, now)
        if abs(score - document.popularity_score) <= POPULARITY_EPSILON:
            continue
        if await index_store.update_fields(document.product_id, popularity_score=score):
            updated += 1

    logger.info("Updated popularity scores for %d products", updated)
    return updated


async def cleanup_search_index(index_store: SearchIndexStore) -> int:
    """Drop documents for inactive or sold products. Returns how many were removed."""
    stale = [
        document.product_id
        async for document in index_store.iter_documents()
        if not document.is_active or document.is_sold
    ]
    removed = 0
    for product_id in stale:
        if await index_store.delete(product_id):
            removed += 1

    logger.info("Cleaned up %d inactive products from search index", removed)
    return removed


async def run_popularity_refresh() -> int:
    client = create_redis_client()
    try:
        return await refresh_popularity_scores(SearchIndexStore(client))
    finally:
        await client.aclose()


async def run_index_cleanup() -> int:
    client = create_redis_client()
    try:
        return await cleanup_search_index(SearchIndexStore(client))
    finally:
        await client.aclose()
