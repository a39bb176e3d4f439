"""User device tokens and saved searches."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

import redis.asyncio as redis

from catalog_pipeline.models.saved_search import SavedSearch

logger = logging.getLogger(__name__)

USERS_KEY = "users"


def _tokens_key(user_id: str) -> str:
    return f"user:{user_id}:device_tokens"


def _searches_key(user_id: str) -> str:
    return f"user:{user_id}:saved_searches"


class UserStore:
    """Push credentials registered per user."""

    def __init__(self, client: redis.Redis):
        self._client = client

    async def add_device_token(self, user_id: str, token: str) -> None:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.sadd(_tokens_key(user_id), token)
            pipe.sadd(USERS_KEY, user_id)
            await pipe.execute()

    async def get_device_tokens(self, user_id: str) -> list[str]:
        return sorted(await self._client.smembers(_tokens_key(user_id)))

    async def remove_device_tokens(self, user_id: str, tokens: Iterable[str]) -> int:
        tokens = list(tokens)
        if not tokens:
            return 0
        removed = await self._client.srem(_tokens_key(user_id), *tokens)
        logger.info(
            "Removed invalid device tokens",
            extra={"user_id": user_id, "count": removed},
        )
        return removed

    async def list_user_ids(self) -> list[str]:
        return sorted(await self._client.smembers(USERS_KEY))


class SavedSearchStore:
    """Saved searches kept in one hash per user, keyed by search id."""

    def __init__(self, client: redis.Redis):
        self._client = client

    async def save(self, search: SavedSearch) -> None:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(_searches_key(search.user_id), search.id, search.model_dump_json())
            pipe.sadd(USERS_KEY, search.user_id)
            await pipe.execute()

    async def get(self, user_id: str, search_id: str) -> SavedSearch | None:
        raw = await self._client.hget(_searches_key(user_id), search_id)
        if raw is None:
            return None
        return SavedSearch.model_validate_json(raw)

    async def list_for_user(
        self, user_id: str, *, notify_only: bool = False
    ) -> list[SavedSearch]:
        raw = await self._client.hgetall(_searches_key(user_id))
        searches = [SavedSearch.model_validate_json(raw[key]) for key in sorted(raw)]
        if notify_only:
            searches = [search for search in searches if search.notify_new_items]
        return searches

    async def mark_notified(
        self,
        user_id: str,
        search_id: str,
        notified_at: datetime,
        new_items_count: int,
    ) -> bool:
        """Advance ``last_notified_at``; never moves it backwards."""
        key = _searches_key(user_id)
        async with self._client.pipeline(transaction=True) as pipe:
            await pipe.watch(key)
            raw = await pipe.hget(key, search_id)
            if raw is None:
                await pipe.unwatch()
                return False
            search = SavedSearch.model_validate_json(raw)
            if search.last_notified_at is not None and search.last_notified_at >= notified_at:
                await pipe.unwatch()
                return False
            search.last_notified_at = notified_at
            search.new_items_count = new_items_count
            pipe.multi()
            pipe.hset(key, search_id, search.model_dump_json())
            await pipe.execute()
        return True
