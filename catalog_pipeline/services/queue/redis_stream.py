"""Consumer-group operations on a single Redis stream."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import redis.asyncio as redis  # type: ignore[import]
from redis.exceptions import ResponseError  # type: ignore[import]

from catalog_pipeline.config import settings

logger = logging.getLogger(__name__)

StreamEntries = list[tuple[str, Sequence[tuple[str, dict[str, str]]]]]


class RedisStreamService:
    """Reads, acknowledges and appends entries for one consumer group."""

    def __init__(self, client: redis.Redis, stream_key: str, group_name: str):
        self.client = client
        self.stream_key = stream_key
        self.group_name = group_name

    async def ensure_consumer_group(self) -> None:
        """Create the consumer group (and the stream) if missing."""
        try:
            await self.client.xgroup_create(
                name=self.stream_key,
                groupname=self.group_name,
                id="0",
                mkstream=True,
            )
            logger.info(
                "Created Redis consumer group",
                extra={"group": self.group_name, "stream": self.stream_key},
            )
        except ResponseError as exc:
            if "BUSYGROUP" in str(exc):
                logger.debug(
                    "Consumer group already exists", extra={"group": self.group_name}
                )
                return
            logger.error("Failed to create consumer group: %s", exc, exc_info=True)
            raise

    async def read_batch(
        self,
        consumer_name: str,
        count: int = 10,
        block_ms: int = 5000,
    ) -> StreamEntries:
        """Read new entries for ``consumer_name``, recreating a lost group once."""
        try:
            return await self._read(consumer_name, count, block_ms)
        except ResponseError as exc:
            if "NOGROUP" not in str(exc):
                raise
            logger.warning("Consumer group missing, recreating: %s", exc)
            await self.ensure_consumer_group()
            return await self._read(consumer_name, count, block_ms)

    async def _read(self, consumer_name: str, count: int, block_ms: int) -> StreamEntries:
        return await self.client.xreadgroup(
            groupname=self.group_name,
            consumername=consumer_name,
            streams={self.stream_key: ">"},
            count=count,
            block=block_ms,
        )

    async def acknowledge_and_delete(self, message_ids: list[str]) -> None:
        """Acknowledge handled entries and drop them from the stream."""
        if not message_ids:
            return
        await self.client.xack(self.stream_key, self.group_name, *message_ids)
        await self.client.xdel(self.stream_key, *message_ids)

    async def add_to_stream(
        self, fields: dict[str, str], stream_key: str | None = None
    ) -> str:
        key = stream_key or self.stream_key
        return await self.client.xadd(key, fields)


def create_redis_stream_service(stream_key: str, group_name: str) -> RedisStreamService:
    """Build a stream service with its own connection pool."""
    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=30,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )
    return RedisStreamService(client, stream_key, group_name)
