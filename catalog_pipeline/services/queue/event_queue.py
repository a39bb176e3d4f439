"""Redis-backed queues carrying product events to the workers."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import redis.asyncio as redis

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import ProductEvent

logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None


def create_redis_client() -> redis.Redis:
    """New client; scheduled jobs need one bound to their own event loop."""
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


def get_redis_client() -> redis.Redis:
    """Return a singleton Redis client for the current process."""

    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis_client()
    return _redis_client


class EventQueue:
    """Appends product events to a Redis stream for asynchronous handling."""

    def __init__(self, client: redis.Redis, stream_key: str) -> None:
        self._client = client
        self._stream_key = stream_key

    @property
    def stream_key(self) -> str:
        return self._stream_key

    async def enqueue(self, events: Sequence[ProductEvent]) -> int:
        """Push the provided events onto the stream, preserving their order."""

        if not events:
            return 0

        for event in events:
            await self._client.xadd(
                name=self._stream_key,
                fields={"payload": event.model_dump_json()},
                id="*",
            )

        logger.info(
            "Queued %s product events", len(events), extra={"stream": self._stream_key}
        )
        return len(events)


def get_catalog_event_queue() -> EventQueue:
    return EventQueue(get_redis_client(), settings.CATALOG_EVENTS_STREAM_KEY)


def get_embedding_queue() -> EventQueue:
    return EventQueue(get_redis_client(), settings.EMBEDDINGS_STREAM_KEY)
