"""Tests for the periodic search index jobs."""

from datetime import UTC, datetime, timedelta

import pytest

from catalog_pipeline.jobs.maintenance import cleanup_search_index, refresh_popularity_scores
from catalog_pipeline.services.projection.search_index import build_search_document
from catalog_pipeline.services.storage.search_index_store import SearchIndexStore

CREATED = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_refresh_rewrites_only_moved_scores(redis_client, make_product):
    store = SearchIndexStore(redis_client)
    popular = make_product("popular", views=1000, likes=50)
    quiet = make_product("quiet", views=1, likes=0)
    sold = make_product("sold", views=1000, likes=50, is_sold=True)
    for product in (popular, quiet, sold):
        await store.upsert(build_search_document(product, CREATED))

    updated = await refresh_popularity_scores(store, CREATED + timedelta(days=10))

    assert updated == 1
    refreshed = await store.get("popular")
    assert refreshed.popularity_score < 200.0
    assert (await store.get("quiet")).popularity_score == pytest.approx(0.1)
    assert (await store.get("sold")).popularity_score == pytest.approx(200.0)


@pytest.mark.asyncio
async def test_cleanup_removes_inactive_and_sold(redis_client, make_product):
    store = SearchIndexStore(redis_client)
    live = make_product("live")
    sold = make_product("sold", is_sold=True)
    inactive = make_product("inactive", is_active=False)
    for product in (live, sold, inactive):
        await store.upsert(build_search_document(product, CREATED))

    removed = await cleanup_search_index(store)

    assert removed == 2
    assert await store.get("live") is not None
    assert await store.get("sold") is None
    assert await store.get("inactive") is None
