"""Search index documents stored as Redis hashes."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import redis.asyncio as redis

from catalog_pipeline.models.search_index import SearchIndexDocument

logger = logging.getLogger(__name__)

INDEX_IDS = "search_index:ids"


def _doc_key(product_id: str) -> str:
    return f"search_index:{product_id}"


def _encode_fields(fields: dict[str, Any]) -> dict[str, str]:
    return {name: json.dumps(value, sort_keys=True) for name, value in fields.items()}


class SearchIndexStore:
    """One hash per product, one JSON-encoded value per field.

    Writes are ``HSET`` merges: fields absent from an update keep their
    stored value, so concurrent writers touching different fields never
    clobber each other.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    async def upsert(self, document: SearchIndexDocument) -> None:
        fields = _encode_fields(document.model_dump(mode="json"))
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(_doc_key(document.product_id), mapping=fields)
            pipe.sadd(INDEX_IDS, document.product_id)
            await pipe.execute()

    async def update_fields(self, product_id: str, **fields: Any) -> bool:
        """Merge ``fields`` into an existing document. No-op when absent."""
        key = _doc_key(product_id)
        if not await self._client.exists(key):
            return False
        await self._client.hset(key, mapping=_encode_fields(fields))
        return True

    async def delete(self, product_id: str) -> bool:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(_doc_key(product_id))
            pipe.srem(INDEX_IDS, product_id)
            deleted, _ = await pipe.execute()
        return bool(deleted)

    async def get_raw(self, product_id: str) -> dict[str, str]:
        """Stored field encodings, exactly as persisted."""
        return await self._client.hgetall(_doc_key(product_id))

    async def get(self, product_id: str) -> SearchIndexDocument | None:
        raw = await self.get_raw(product_id)
        if not raw:
            return None
        return SearchIndexDocument.model_validate(
            {name: json.loads(value) for name, value in raw.items()}
        )

    async def iter_documents(self, batch_size: int = 200) -> AsyncIterator[SearchIndexDocument]:
        async for product_id in self._client.sscan_iter(INDEX_IDS, count=batch_size):
            document = await self.get(product_id)
            if document is not None:
                yield document
