"""Worker projecting product events into the search index and seller stats."""

from __future__ import annotations

import asyncio
import logging

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import ProductEvent
from catalog_pipeline.services.embeddings.generator import wants_embedding
from catalog_pipeline.services.projection.search_index import SearchIndexProjector
from catalog_pipeline.services.projection.seller_stats import SellerStatsProjector
from catalog_pipeline.services.queue.dlq_manager import DLQManager
from catalog_pipeline.services.queue.event_queue import EventQueue
from catalog_pipeline.services.queue.redis_stream import (
    RedisStreamService,
    create_redis_stream_service,
)
from catalog_pipeline.services.storage.product_store import ProductStore
from catalog_pipeline.services.storage.search_index_store import SearchIndexStore
from catalog_pipeline.services.storage.stats_store import SellerStatsStore
from catalog_pipeline.services.workers.base import BaseWorker
from catalog_pipeline.utils.debounce import DebounceScheduler

logger = logging.getLogger(__name__)


class CatalogEventWorker(BaseWorker):
    """Runs the projectors for each event and hands image work to its own queue.

    Embedding generation is slow and fallible, so it never runs here: the
    event is re-queued on the embeddings stream for a separate worker.
    """

    name = "catalog-worker"

    def __init__(
        self,
        *,
        redis_service: RedisStreamService,
        dlq_manager: DLQManager,
        product_store: ProductStore,
        debouncer: DebounceScheduler,
        index_projector: SearchIndexProjector,
        stats_projector: SellerStatsProjector,
        embedding_queue: EventQueue,
        consumer_name: str | None = None,
    ) -> None:
        super().__init__(
            redis_service=redis_service,
            dlq_manager=dlq_manager,
            consumer_name=consumer_name,
        )
        self.product_store = product_store
        self.debouncer = debouncer
        self.index_projector = index_projector
        self.stats_projector = stats_projector
        self.embedding_queue = embedding_queue

    async def handle_event(self, event: ProductEvent) -> None:
        logger.debug(
            "Handling %s event for product %s",
            event.op,
            event.product_id,
            extra={"trace_id": event.trace_id},
        )
        await self.mirror(event)
        await self.index_projector.handle(event)
        await self.stats_projector.handle(event)

        if wants_embedding(event):
            try:
                await self.embedding_queue.enqueue([event])
            except Exception as exc:
                logger.warning(
                    "Failed to enqueue embedding job for product %s, "
                    "but projection continues: %s",
                    event.product_id,
                    exc,
                )

    async def mirror(self, event: ProductEvent) -> None:
        """Keep the local product replica in step with the catalog."""
        if event.after is None:
            await self.product_store.delete(event.product_id)
        else:
            await self.product_store.save(event.after)

    async def on_shutdown(self) -> None:
        """Write out debounced updates rather than dropping them."""
        pending = len(self.debouncer)
        if pending:
            logger.info("Flushing %d debounced updates before exit", pending)
            await self.debouncer.flush()


def create_catalog_worker(debouncer: DebounceScheduler | None = None) -> CatalogEventWorker:
    """Factory function to create a catalog worker with all dependencies."""
    redis_service = create_redis_stream_service(
        settings.CATALOG_EVENTS_STREAM_KEY,
        settings.CATALOG_EVENTS_CONSUMER_GROUP,
    )
    client = redis_service.client
    debouncer = debouncer or DebounceScheduler()
    product_store = ProductStore(client)

    return CatalogEventWorker(
        redis_service=redis_service,
        dlq_manager=DLQManager(redis_service),
        product_store=product_store,
        debouncer=debouncer,
        index_projector=SearchIndexProjector(
            index_store=SearchIndexStore(client),
            product_store=product_store,
            debouncer=debouncer,
            index_delay_ms=settings.INDEX_DEBOUNCE_MS,
            geohash_delay_ms=settings.GEOHASH_DEBOUNCE_MS,
            geohash_precision=settings.GEOHASH_PRECISION,
        ),
        stats_projector=SellerStatsProjector(
            product_store=product_store,
            stats_store=SellerStatsStore(client),
            debouncer=debouncer,
            delay_ms=settings.SELLER_STATS_DEBOUNCE_MS,
        ),
        embedding_queue=EventQueue(client, settings.EMBEDDINGS_STREAM_KEY),
    )


def catalog_consumer_count(requested: int) -> int:
    """Consumers to start for the catalog stream in one process.

    Events for one product must be applied in stream order, and consumers in
    the same group read disjoint entries, so the catalog stream gets exactly
    one consumer. Scale out with more streams, not more consumers.
    """
    if requested > 1:
        logger.warning(
            "Ignoring WORKER_CONCURRENCY for the catalog stream; running one consumer",
            extra={"requested": requested},
        )
    return 1


async def run_worker(concurrency: int | None = None) -> None:
    """Run the catalog worker until shutdown."""
    worker_count = catalog_consumer_count(concurrency or settings.WORKER_CONCURRENCY)
    debouncer = DebounceScheduler()
    workers = [create_catalog_worker(debouncer) for _ in range(worker_count)]

    tasks = [asyncio.create_task(worker.run_forever()) for worker in workers]
    await asyncio.gather(*tasks, return_exceptions=True)


def main() -> None:
    """CLI entry point."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Catalog worker interrupted, shutting down")


if __name__ == "__main__":
    main()
