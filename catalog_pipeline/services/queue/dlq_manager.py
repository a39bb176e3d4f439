"""Dead letter stream for product events that could not be handled."""

from __future__ import annotations

import logging

from catalog_pipeline.config import settings
from catalog_pipeline.services.queue.redis_stream import RedisStreamService

logger = logging.getLogger(__name__)


class DLQManager:
    """Parks failed stream entries so they are never redelivered in a loop."""

    def __init__(self, redis_service: RedisStreamService, dlq_stream: str | None = None):
        self.redis_service = redis_service
        self.dlq_stream = dlq_stream or settings.DLQ_STREAM_KEY

    async def send_to_dlq(self, entry_id: str, payload: str, error: Exception) -> None:
        """Record the raw payload and the error. Never raises."""
        try:
            await self.redis_service.add_to_stream(
                fields={
                    "payload": payload,
                    "error": f"{type(error).__name__}: {error}",
                    "entry_id": entry_id,
                    "original_stream": self.redis_service.stream_key,
                },
                stream_key=self.dlq_stream,
            )
            logger.warning(
                "Message sent to DLQ",
                extra={
                    "entry_id": entry_id,
                    "dlq_stream": self.dlq_stream,
                    "error": str(error),
                },
            )
        except Exception as dlq_error:
            logger.error(
                "Failed to send message to DLQ: %s",
                dlq_error,
                extra={"entry_id": entry_id, "original_error": str(error)},
                exc_info=True,
            )
