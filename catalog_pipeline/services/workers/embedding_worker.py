"""Worker consuming embedding jobs and keeping image embeddings current."""

from __future__ import annotations

import asyncio
import logging

import httpx

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import ProductEvent
from catalog_pipeline.services.clients.encoder_client import create_encoder_client
from catalog_pipeline.services.clients.object_storage import create_object_storage
from catalog_pipeline.services.embeddings.generator import EmbeddingGenerator
from catalog_pipeline.services.queue.dlq_manager import DLQManager
from catalog_pipeline.services.queue.redis_stream import (
    RedisStreamService,
    create_redis_stream_service,
)
from catalog_pipeline.services.storage.qdrant_service import create_qdrant_service
from catalog_pipeline.services.workers.base import BaseWorker

logger = logging.getLogger(__name__)


class EmbeddingWorker(BaseWorker):
    """Feeds embedding jobs to the generator.

    The generator swallows its own failures, so a job that could not be
    embedded is acknowledged like any other and retried only when the product
    changes again.
    """

    name = "embedding-worker"

    def __init__(
        self,
        *,
        redis_service: RedisStreamService,
        dlq_manager: DLQManager,
        generator: EmbeddingGenerator,
        consumer_name: str | None = None,
    ) -> None:
        super().__init__(
            redis_service=redis_service,
            dlq_manager=dlq_manager,
            consumer_name=consumer_name,
        )
        self.generator = generator

    async def handle_event(self, event: ProductEvent) -> None:
        await self.generator.handle(event)


def create_embedding_worker() -> EmbeddingWorker:
    """Factory function to create an embedding worker with all dependencies."""
    encoder = create_encoder_client()
    if encoder is None:
        raise RuntimeError(
            "Image encoder is not configured. Set EMBEDDING_ENDPOINT_URL "
            "and EMBEDDING_API_TOKEN.",
        )

    redis_service = create_redis_stream_service(
        settings.EMBEDDINGS_STREAM_KEY,
        settings.EMBEDDINGS_CONSUMER_GROUP,
    )
    generator = EmbeddingGenerator(
        encoder=encoder,
        embedding_store=create_qdrant_service(),
        http_session=httpx.AsyncClient(
            timeout=httpx.Timeout(settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS)
        ),
        object_storage=create_object_storage(),
        dimensions=settings.EMBEDDING_DIMENSIONS,
    )

    return EmbeddingWorker(
        redis_service=redis_service,
        dlq_manager=DLQManager(redis_service),
        generator=generator,
    )


async def run_worker(concurrency: int | None = None) -> None:
    """Run one or more embedding workers."""
    worker_count = concurrency or max(1, settings.WORKER_CONCURRENCY)
    workers = [create_embedding_worker() for _ in range(worker_count)]

    tasks = [asyncio.create_task(worker.run_forever()) for worker in workers]
    try:
        await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        for worker in workers:
            await worker.generator.encoder.aclose()
            await worker.generator.http_session.aclose()


def main() -> None:
    """CLI entry point."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Embedding worker interrupted, shutting down")


if __name__ == "__main__":
    main()
