"""Tests for the stream workers."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import ProductEvent
from catalog_pipeline.services.embeddings.generator import EmbeddingGenerator
from catalog_pipeline.services.projection.search_index import SearchIndexProjector
from catalog_pipeline.services.projection.seller_stats import SellerStatsProjector
from catalog_pipeline.services.queue.dlq_manager import DLQManager
from catalog_pipeline.services.queue.event_queue import EventQueue
from catalog_pipeline.services.queue.redis_stream import RedisStreamService
from catalog_pipeline.services.storage.product_store import ProductStore
from catalog_pipeline.services.storage.search_index_store import SearchIndexStore
from catalog_pipeline.services.storage.stats_store import SellerStatsStore
from catalog_pipeline.services.workers.catalog_worker import (
    CatalogEventWorker,
    catalog_consumer_count,
)
from catalog_pipeline.services.workers.embedding_worker import EmbeddingWorker
from catalog_pipeline.utils.debounce import DebounceScheduler


@pytest_asyncio.fixture()
async def catalog_worker(redis_client):
    redis_service = RedisStreamService(
        redis_client,
        settings.CATALOG_EVENTS_STREAM_KEY,
        settings.CATALOG_EVENTS_CONSUMER_GROUP,
    )
    await redis_service.ensure_consumer_group()
    debouncer = DebounceScheduler()
    product_store = ProductStore(redis_client)
    worker = CatalogEventWorker(
        redis_service=redis_service,
        dlq_manager=DLQManager(redis_service),
        product_store=product_store,
        debouncer=debouncer,
        index_projector=SearchIndexProjector(
            index_store=SearchIndexStore(redis_client),
            product_store=product_store,
            debouncer=debouncer,
            index_delay_ms=60_000,
            geohash_delay_ms=60_000,
        ),
        stats_projector=SellerStatsProjector(
            product_store=product_store,
            stats_store=SellerStatsStore(redis_client),
            debouncer=debouncer,
            delay_ms=60_000,
        ),
        embedding_queue=EventQueue(redis_client, settings.EMBEDDINGS_STREAM_KEY),
        consumer_name="test-consumer",
    )
    yield worker
    debouncer.shutdown()


async def _consume(worker):
    entries = await worker.redis_service.read_batch("test-consumer", count=10, block_ms=10)
    await worker.process_entries(entries)


@pytest.mark.asyncio
async def test_catalog_worker_projects_and_forwards(catalog_worker, redis_client, make_product):
    product = make_product()
    event = ProductEvent(product_id=product.id, after=product)
    await redis_client.xadd(settings.CATALOG_EVENTS_STREAM_KEY, {"payload": event.model_dump_json()})

    await _consume(catalog_worker)
    await catalog_worker.on_shutdown()

    assert await ProductStore(redis_client).get(product.id) is not None
    assert await SearchIndexStore(redis_client).get(product.id) is not None
    stats = await SellerStatsStore(redis_client).get("seller-1")
    assert stats.products_listed == 1
    assert stats.products_active == 1

    jobs = await redis_client.xrange(settings.EMBEDDINGS_STREAM_KEY)
    assert len(jobs) == 1
    assert json.loads(jobs[0][1]["payload"])["product_id"] == product.id
    assert await redis_client.xlen(settings.CATALOG_EVENTS_STREAM_KEY) == 0


@pytest.mark.asyncio
async def test_catalog_worker_skips_embedding_without_image(
    catalog_worker, redis_client, make_product
):
    product = make_product(images=[])
    event = ProductEvent(product_id=product.id, after=product)
    await redis_client.xadd(settings.CATALOG_EVENTS_STREAM_KEY, {"payload": event.model_dump_json()})

    await _consume(catalog_worker)

    assert await redis_client.xlen(settings.EMBEDDINGS_STREAM_KEY) == 0


@pytest.mark.asyncio
async def test_catalog_worker_delete_removes_replica(catalog_worker, redis_client, make_product):
    product = make_product()
    await ProductStore(redis_client).save(product)
    event = ProductEvent(product_id=product.id, before=product)
    await redis_client.xadd(settings.CATALOG_EVENTS_STREAM_KEY, {"payload": event.model_dump_json()})

    await _consume(catalog_worker)

    assert await ProductStore(redis_client).get(product.id) is None


@pytest.mark.asyncio
async def test_malformed_payload_goes_to_dlq(catalog_worker, redis_client):
    await redis_client.xadd(settings.CATALOG_EVENTS_STREAM_KEY, {"payload": "{not json"})

    await _consume(catalog_worker)

    dlq = await redis_client.xrange(settings.DLQ_STREAM_KEY)
    assert len(dlq) == 1
    assert dlq[0][1]["payload"] == "{not json"
    assert dlq[0][1]["original_stream"] == settings.CATALOG_EVENTS_STREAM_KEY
    assert await redis_client.xlen(settings.CATALOG_EVENTS_STREAM_KEY) == 0


@pytest.mark.asyncio
async def test_worker_loop_stops_on_shutdown(make_product):
    product = make_product()
    entries = [
        (
            "embeddings:jobs",
            [("1-0", {"payload": ProductEvent(product_id="p1", after=product).model_dump_json()})],
        )
    ]
    redis_service = MagicMock(spec=RedisStreamService)
    redis_service.stream_key = "embeddings:jobs"
    redis_service.group_name = "embeddings-workers"
    redis_service.ensure_consumer_group = AsyncMock()
    redis_service.acknowledge_and_delete = AsyncMock()
    generator = MagicMock(spec=EmbeddingGenerator)
    generator.handle = AsyncMock()

    worker = EmbeddingWorker(
        redis_service=redis_service,
        dlq_manager=MagicMock(spec=DLQManager),
        generator=generator,
        consumer_name="test-consumer",
    )

    async def _read_batch(**kwargs):
        await asyncio.sleep(0)
        if generator.handle.await_count:
            worker.shutdown()
            return []
        return entries

    redis_service.read_batch = AsyncMock(side_effect=_read_batch)

    await asyncio.wait_for(worker.run_forever(), timeout=1)

    generator.handle.assert_awaited_once()
    assert generator.handle.await_args.args[0].product_id == "p1"
    redis_service.acknowledge_and_delete.assert_awaited_once_with(["1-0"])


def test_catalog_stream_runs_single_consumer(caplog):
    assert catalog_consumer_count(1) == 1

    with caplog.at_level(logging.WARNING):
        assert catalog_consumer_count(4) == 1

    assert "one consumer" in caplog.text
