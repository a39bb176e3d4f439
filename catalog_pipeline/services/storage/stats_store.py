"""Per-seller aggregate statistics."""

from __future__ import annotations

import redis.asyncio as redis

from catalog_pipeline.models.stats import SellerStats


def _stats_key(user_id: str) -> str:
    return f"stats:user:{user_id}"


class SellerStatsStore:
    def __init__(self, client: redis.Redis):
        self._client = client

    async def save(self, stats: SellerStats) -> None:
        await self._client.set(_stats_key(stats.user_id), stats.model_dump_json())

    async def get(self, user_id: str) -> SellerStats | None:
        raw = await self._client.get(_stats_key(user_id))
        if raw is None:
            return None
        return SellerStats.model_validate_json(raw)
