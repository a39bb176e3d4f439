"""Debounced recomputation of per-seller listing statistics."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from functools import partial

from catalog_pipeline.models.product import Product, ProductEvent
from catalog_pipeline.models.stats import SellerStats
from catalog_pipeline.services.storage.product_store import ProductStore
from catalog_pipeline.services.storage.stats_store import SellerStatsStore
from catalog_pipeline.utils.debounce import DebounceScheduler

logger = logging.getLogger(__name__)


def compute_seller_stats(seller_id: str, products: list[Product], now: datetime) -> SellerStats:
    sold = [product for product in products if product.is_sold]
    total_earnings = sum(product.price for product in sold)
    return SellerStats(
        user_id=seller_id,
        products_listed=len(products),
        products_active=sum(1 for product in products if product.is_live),
        products_sold=len(sold),
        products_views=sum(product.views for product in products),
        products_likes=sum(product.likes for product in products),
        total_earnings=total_earnings,
        average_sale_price=total_earnings / len(sold) if sold else 0.0,
        updated_at=now,
    )


class SellerStatsProjector:
    """Coalesces many product writes by one seller into one stats recompute."""

    def __init__(
        self,
        *,
        product_store: ProductStore,
        stats_store: SellerStatsStore,
        debouncer: DebounceScheduler,
        delay_ms: int = 10000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.product_store = product_store
        self.stats_store = stats_store
        self.debouncer = debouncer
        self.delay_ms = delay_ms
        self._clock = clock or (lambda: datetime.now(UTC))

    async def handle(self, event: ProductEvent) -> None:
        product = event.after or event.before
        if product is None or not product.seller_id:
            return
        self.debouncer.schedule(
            f"user_stats:{product.seller_id}",
            partial(self._recompute, product.seller_id),
            self.delay_ms,
        )

    async def _recompute(self, seller_id: str) -> None:
        products = await self.product_store.list_by_seller(seller_id)
        await self.stats_store.save(compute_seller_stats(seller_id, products, self._clock()))
        logger.info("Updated stats for user %s", seller_id)
