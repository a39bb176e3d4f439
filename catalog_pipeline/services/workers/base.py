"""Base worker functionality for consuming product events from a stream."""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
from abc import ABC, abstractmethod

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import ProductEvent
from catalog_pipeline.services.queue.dlq_manager import DLQManager
from catalog_pipeline.services.queue.redis_stream import RedisStreamService, StreamEntries

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """Consumer-group loop shared by the product event workers.

    Every entry is acknowledged once handled. Entries that cannot be parsed
    or whose handler raises are parked on the dead letter stream first, so a
    poison message is never redelivered.
    """

    name = "worker"

    def __init__(
        self,
        *,
        redis_service: RedisStreamService,
        dlq_manager: DLQManager,
        consumer_name: str | None = None,
    ) -> None:
        self.redis_service = redis_service
        self.dlq_manager = dlq_manager
        self.consumer_name = consumer_name or self._build_consumer_name()
        self.batch_size = settings.BATCH_MAX_MESSAGES
        self.block_ms = settings.BATCH_MAX_WAIT_MS
        self._shutdown_event = asyncio.Event()

    @abstractmethod
    async def handle_event(self, event: ProductEvent) -> None:
        """Process one product event."""

    async def on_shutdown(self) -> None:
        """Hook run once after the loop exits."""

    async def run_forever(self) -> None:
        """Main worker loop."""
        await self.redis_service.ensure_consumer_group()

        logger.info(
            "%s started",
            self.name,
            extra={
                "stream": self.redis_service.stream_key,
                "group": self.redis_service.group_name,
                "consumer": self.consumer_name,
            },
        )

        try:
            while not self.is_shutdown_requested():
                try:
                    entries = await self.redis_service.read_batch(
                        consumer_name=self.consumer_name,
                        count=self.batch_size,
                        block_ms=self.block_ms,
                    )
                except Exception as exc:
                    logger.error(
                        "Failed to read from Redis stream: %s", exc, exc_info=True
                    )
                    await asyncio.sleep(1)
                    continue

                if entries:
                    await self.process_entries(entries)
        except asyncio.CancelledError:
            logger.info("%s %s cancelled", self.name, self.consumer_name)
            raise
        finally:
            await self.on_shutdown()

    async def process_entries(self, entries: StreamEntries) -> None:
        """Handle a batch of stream entries, then acknowledge all of them."""
        ack_ids: list[str] = []

        for _stream, messages in entries:
            for message_id, data in messages:
                ack_ids.append(message_id)
                payload = data.get("payload")
                if payload is None:
                    logger.warning("Missing payload for entry %s", message_id)
                    continue

                try:
                    event = ProductEvent.model_validate_json(payload)
                    await self.handle_event(event)
                except Exception as exc:
                    logger.exception("Failed to process entry %s", message_id)
                    await self.dlq_manager.send_to_dlq(message_id, payload, exc)

        try:
            await self.redis_service.acknowledge_and_delete(ack_ids)
        except Exception as ack_exc:
            logger.error("Failed to ack/delete messages %s: %s", ack_ids, ack_exc)

    def shutdown(self) -> None:
        """Signal the worker to shut down gracefully."""
        self._shutdown_event.set()

    def is_shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    def _build_consumer_name(self) -> str:
        hostname = socket.gethostname()
        pid = os.getpid()
        suffix = uuid.uuid4().hex[:6]
        return f"{self.name}:{hostname}:{pid}:{suffix}"
