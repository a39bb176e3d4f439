"""System-level routes such as health checks."""

from __future__ import annotations

import logging
from typing import Annotated

import httpx
import redis.asyncio as redis
from fastapi import APIRouter, Depends

from catalog_pipeline.config import settings
from catalog_pipeline.services.queue.event_queue import get_redis_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])

RedisDependency = Annotated[redis.Redis, Depends(get_redis_client)]


@router.get("/health")
async def health_check(client: RedisDependency) -> dict[str, str]:
    """Health check endpoint with Redis and Qdrant connectivity checks."""

    try:
        await client.ping()
        redis_status = "connected"
    except Exception as exc:
        logger.warning("Redis health check failed: %s", exc)
        redis_status = "disconnected"

    try:
        async with httpx.AsyncClient() as http:
            response = await http.get(f"{settings.QDRANT_URL}/collections", timeout=5.0)
            qdrant_status = (
                "connected" if response.status_code == 200 else "disconnected"
            )
    except httpx.HTTPError as exc:
        logger.warning("Qdrant health check failed: %s", exc)
        qdrant_status = "disconnected"

    return {
        "status": "healthy" if redis_status == "connected" else "degraded",
        "redis": redis_status,
        "qdrant": qdrant_status,
        "environment": settings.ENVIRONMENT,
    }
