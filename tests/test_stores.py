"""Tests for the Redis-backed stores."""

from datetime import UTC, datetime, timedelta

import pytest

from catalog_pipeline.models.saved_search import SavedSearch
from catalog_pipeline.services.storage.product_store import ProductStore
from catalog_pipeline.services.storage.search_index_store import SearchIndexStore
from catalog_pipeline.services.storage.user_store import SavedSearchStore

T0 = datetime(2024, 6, 1, 10, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_window_query_is_exclusive_start_inclusive_end(redis_client, make_product):
    store = ProductStore(redis_client)
    for minutes in (0, 5, 10, 15):
        await store.save(make_product(f"p{minutes}", created_at=T0 + timedelta(minutes=minutes)))

    products = await store.list_created_between(T0, T0 + timedelta(minutes=10))

    assert [product.id for product in products] == ["p5", "p10"]


@pytest.mark.asyncio
async def test_window_query_narrows_by_category_or_brands(redis_client, make_product):
    store = ProductStore(redis_client)
    await store.save(make_product("nike", created_at=T0 + timedelta(minutes=1)))
    await store.save(
        make_product(
            "levis",
            brands=["Levis"],
            category_ids=["men", "men_jeans"],
            created_at=T0 + timedelta(minutes=2),
        )
    )
    end = T0 + timedelta(hours=1)

    by_category = await store.list_created_between(T0, end, category_id="men_jeans")
    by_brand = await store.list_created_between(T0, end, brands=["Nike", "Puma"])

    assert [product.id for product in by_category] == ["levis"]
    assert [product.id for product in by_brand] == ["nike"]


@pytest.mark.asyncio
async def test_window_query_respects_limit(redis_client, make_product):
    store = ProductStore(redis_client)
    for index in range(5):
        await store.save(make_product(f"p{index}", created_at=T0 + timedelta(minutes=index + 1)))

    products = await store.list_created_between(T0, T0 + timedelta(hours=1), limit=3)

    assert [product.id for product in products] == ["p0", "p1", "p2"]


@pytest.mark.asyncio
async def test_window_query_pages_with_offset(redis_client, make_product):
    store = ProductStore(redis_client)
    for index in range(5):
        await store.save(make_product(f"p{index}", created_at=T0 + timedelta(minutes=index + 1)))
    end = T0 + timedelta(hours=1)

    second = await store.list_created_between(T0, end, limit=2, offset=2)
    last = await store.list_created_between(T0, end, limit=2, offset=4)
    past_end = await store.list_created_between(T0, end, limit=2, offset=6)

    assert [product.id for product in second] == ["p2", "p3"]
    assert [product.id for product in last] == ["p4"]
    assert past_end == []


@pytest.mark.asyncio
async def test_brand_index_ignores_case(redis_client, make_product):
    store = ProductStore(redis_client)
    product = make_product("p1", brands=["Nike"], created_at=T0 + timedelta(minutes=1))
    await store.save(product)
    await store.save(
        make_product("p2", brands=["ADIDAS"], created_at=T0 + timedelta(minutes=2))
    )
    end = T0 + timedelta(hours=1)

    lower = await store.list_created_between(T0, end, brands=["nike"])
    mixed = await store.list_created_between(T0, end, brands=["NIKE", "Adidas"])

    assert [p.id for p in lower] == ["p1"]
    assert [p.id for p in mixed] == ["p1", "p2"]

    await store.delete("p1")
    assert await store.list_created_between(T0, end, brands=["nike"]) == []


@pytest.mark.asyncio
async def test_sold_product_leaves_live_index(redis_client, make_product):
    store = ProductStore(redis_client)
    product = make_product("p1", created_at=T0 + timedelta(minutes=1))
    await store.save(product)
    await store.save(product.model_copy(update={"is_sold": True}))

    assert await store.list_created_between(T0, T0 + timedelta(hours=1)) == []


@pytest.mark.asyncio
async def test_save_keeps_written_back_geohash(redis_client, make_product):
    store = ProductStore(redis_client)
    product = make_product("p1")
    await store.save(product)
    assert await store.set_geohash("p1", "u09tvw0") is True

    await store.save(product.model_copy(update={"title": "Renamed"}))

    stored = await store.get("p1")
    assert stored.title == "Renamed"
    assert stored.location.geohash == "u09tvw0"


@pytest.mark.asyncio
async def test_set_geohash_on_missing_product(redis_client):
    assert await ProductStore(redis_client).set_geohash("missing", "u09tvw0") is False


@pytest.mark.asyncio
async def test_mark_notified_never_moves_backwards(redis_client):
    store = SavedSearchStore(redis_client)
    await store.save(SavedSearch(id="s1", user_id="u1", last_notified_at=T0))

    assert await store.mark_notified("u1", "s1", T0 + timedelta(minutes=15), 2) is True
    assert await store.mark_notified("u1", "s1", T0 + timedelta(minutes=5), 9) is False

    stored = await store.get("u1", "s1")
    assert stored.last_notified_at == T0 + timedelta(minutes=15)
    assert stored.new_items_count == 2


@pytest.mark.asyncio
async def test_index_update_fields_is_noop_when_absent(redis_client):
    store = SearchIndexStore(redis_client)
    assert await store.update_fields("missing", popularity_score=1.0) is False
    assert await redis_client.exists("search_index:missing") == 0
