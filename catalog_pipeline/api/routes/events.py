"""Routes accepting product write events from the catalog service."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException, Query, status

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import ProductEventBatch, ProductEventEnqueueResponse
from catalog_pipeline.services.queue.event_queue import (
    EventQueue,
    get_catalog_event_queue,
    get_redis_client,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/catalog/events", tags=["catalog"])

QueueDependency = Annotated[EventQueue, Depends(get_catalog_event_queue)]
RedisDependency = Annotated[redis.Redis, Depends(get_redis_client)]


@router.post(
    "",
    response_model=ProductEventEnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue product write events for projection",
)
async def enqueue_events(
    payload: ProductEventBatch, queue: QueueDependency
) -> ProductEventEnqueueResponse:
    """Append the events, in order, to the catalog event stream."""
    try:
        queued = await queue.enqueue(payload.items)
    except Exception:
        logger.exception("Failed to enqueue product events")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalog event queue unavailable",
        )

    return ProductEventEnqueueResponse(queued=queued)


@router.get(
    "/stream",
    summary="List recent entries from the catalog event stream",
)
async def list_stream_entries(
    client: RedisDependency, count: int = Query(100, ge=1, le=1000)
) -> list[dict]:
    return await _read_stream(client, settings.CATALOG_EVENTS_STREAM_KEY, count)


@router.get(
    "/dlq",
    summary="Read recent dead-letter queue entries",
)
async def read_dlq(
    client: RedisDependency, count: int = Query(100, ge=1, le=1000)
) -> list[dict]:
    return await _read_stream(client, settings.DLQ_STREAM_KEY, count)


async def _read_stream(client: redis.Redis, stream_key: str, count: int) -> list[dict]:
    try:
        entries = await client.xrange(stream_key, min="-", max="+", count=count)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        )

    return [
        {"id": entry_id, "payload": _parse_payload(fields.get("payload")), "fields": fields}
        for entry_id, fields in entries
    ]


def _parse_payload(payload: str | None) -> Any:
    if not payload:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return payload
