"""Redis-backed product store with secondary indexes for windowed queries."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

import redis.asyncio as redis

from catalog_pipeline.models.product import Product

logger = logging.getLogger(__name__)

LIVE_INDEX = "products:live"


def _product_key(product_id: str) -> str:
    return f"product:{product_id}"


def _category_index(category_id: str) -> str:
    return f"{LIVE_INDEX}:category:{category_id}"


def _brand_index(brand: str) -> str:
    # Brands match case-insensitively, so the index key is lowercased.
    return f"{LIVE_INDEX}:brand:{brand.strip().lower()}"


def _seller_index(seller_id: str) -> str:
    return f"products:seller:{seller_id}"


def _live_indexes(product: Product) -> list[str]:
    """Sorted-set indexes (scored by creation time) a product belongs to."""
    if not product.is_live:
        return []
    attrs = product.attributes()
    keys = [LIVE_INDEX]
    keys.extend(_category_index(category_id) for category_id in attrs.category_ids)
    keys.extend(_brand_index(brand) for brand in attrs.brands)
    return keys


def _carry_geohash(previous: Product, product: Product) -> Product:
    old, new = previous.location, product.location
    if old is None or new is None or not old.geohash or new.geohash:
        return product
    if old.coordinates != new.coordinates:
        return product
    location = new.model_copy(update={"geohash": old.geohash})
    return product.model_copy(update={"location": location})


class ProductStore:
    """Products as JSON documents plus creation-time indexes of live listings.

    Only active, unsold products appear in the ``products:live`` sorted sets,
    so a window query never has to load inactive or sold inventory.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    async def get(self, product_id: str) -> Product | None:
        raw = await self._client.get(_product_key(product_id))
        if raw is None:
            return None
        return Product.model_validate_json(raw)

    async def get_many(self, product_ids: Iterable[str]) -> list[Product]:
        ids = list(product_ids)
        if not ids:
            return []
        raws = await self._client.mget([_product_key(pid) for pid in ids])
        return [Product.model_validate_json(raw) for raw in raws if raw is not None]

    async def save(self, product: Product) -> None:
        """Replace the stored product and re-index it.

        A geohash written back earlier survives a replacement that carries
        the same coordinates but no geohash of its own.
        """
        previous = await self.get(product.id)
        if previous is not None:
            product = _carry_geohash(previous, product)
        score = product.created_at.timestamp()

        async with self._client.pipeline(transaction=True) as pipe:
            if previous is not None:
                for key in _live_indexes(previous):
                    pipe.zrem(key, product.id)
                if previous.seller_id and previous.seller_id != product.seller_id:
                    pipe.srem(_seller_index(previous.seller_id), product.id)
            pipe.set(_product_key(product.id), product.model_dump_json())
            for key in _live_indexes(product):
                pipe.zadd(key, {product.id: score})
            if product.seller_id:
                pipe.sadd(_seller_index(product.seller_id), product.id)
            await pipe.execute()

    async def delete(self, product_id: str) -> bool:
        previous = await self.get(product_id)
        if previous is None:
            return False
        async with self._client.pipeline(transaction=True) as pipe:
            for key in _live_indexes(previous):
                pipe.zrem(key, product_id)
            if previous.seller_id:
                pipe.srem(_seller_index(previous.seller_id), product_id)
            pipe.delete(_product_key(product_id))
            await pipe.execute()
        return True

    async def set_geohash(self, product_id: str, geohash: str) -> bool:
        """Write ``location.geohash`` without touching any other field."""
        key = _product_key(product_id)
        async with self._client.pipeline(transaction=True) as pipe:
            await pipe.watch(key)
            raw = await pipe.get(key)
            if raw is None:
                await pipe.unwatch()
                return False
            product = Product.model_validate_json(raw)
            if product.location is None:
                await pipe.unwatch()
                return False
            product.location.geohash = geohash
            pipe.multi()
            pipe.set(key, product.model_dump_json())
            await pipe.execute()
        return True

    async def list_created_between(
        self,
        start: datetime,
        end: datetime,
        *,
        category_id: str | None = None,
        brands: list[str] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Product]:
        """Live products created in ``(start, end]``, oldest first.

        At most one narrowing predicate is applied here: the category index
        when ``category_id`` is given, else the union of the brand indexes.
        ``offset`` and ``limit`` page through that ordering.
        """
        if category_id:
            keys = [_category_index(category_id)]
        elif brands:
            keys = [_brand_index(brand) for brand in brands]
        else:
            keys = [LIVE_INDEX]
        keys = list(dict.fromkeys(keys))

        scored: dict[str, float] = {}
        for key in keys:
            rows = await self._client.zrangebyscore(
                key,
                f"({start.timestamp()}",
                end.timestamp(),
                start=0,
                num=offset + limit,
                withscores=True,
            )
            for product_id, score in rows:
                scored[product_id] = score

        ordered = sorted(scored, key=lambda pid: (scored[pid], pid))[offset : offset + limit]
        return await self.get_many(ordered)

    async def list_by_seller(self, seller_id: str) -> list[Product]:
        ids = await self._client.smembers(_seller_index(seller_id))
        return await self.get_many(sorted(ids))
