"""Keeps the search index consistent with product writes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from functools import partial

from catalog_pipeline.models.product import Product, ProductEvent
from catalog_pipeline.models.search_index import IndexedLocation, SearchIndexDocument
from catalog_pipeline.services.storage.product_store import ProductStore
from catalog_pipeline.services.storage.search_index_store import SearchIndexStore
from catalog_pipeline.utils import geohash
from catalog_pipeline.utils.debounce import DebounceScheduler
from catalog_pipeline.utils.search import generate_search_keywords, popularity_score

logger = logging.getLogger(__name__)


def index_key(product_id: str) -> str:
    return f"index:{product_id}"


def geohash_key(product_id: str) -> str:
    return f"geohash:{product_id}"


def build_search_document(
    product: Product, now: datetime, precision: int = 7
) -> SearchIndexDocument:
    """Project a product into its search document.

    Pure: the same product and the same ``now`` always produce the same
    document.
    """
    attrs = product.attributes()

    location = product.location
    coordinates = location.coordinates if location else None
    cell = geohash.encode(coordinates.lat, coordinates.lon, precision) if coordinates else ""

    search_text = " ".join(
        [product.title, product.description, " ".join(attrs.brands), " ".join(attrs.category_ids)]
    )

    return SearchIndexDocument(
        product_id=product.id,
        title=product.title,
        title_lowercase=product.title.lower(),
        description=product.description,
        keywords=generate_search_keywords(search_text),
        category_ids=attrs.category_ids,
        subcategory=product.subcategory,
        brands=attrs.brands,
        colors=attrs.colors,
        materials=attrs.materials,
        brand=attrs.brands[0] if attrs.brands else None,
        color=attrs.colors[0] if attrs.colors else None,
        material=attrs.materials[0] if attrs.materials else None,
        size=product.size,
        condition=product.condition,
        price=product.price,
        location=IndexedLocation(
            city=location.city if location else "",
            geohash=cell,
            coordinates=coordinates,
        ),
        seller_id=product.seller_id,
        seller_name=product.seller_name,
        seller_rating=product.seller_rating,
        first_image=product.primary_image_url,
        is_active=product.is_active,
        is_sold=product.is_sold,
        is_promoted=product.is_promoted,
        views=product.views,
        likes=product.likes,
        created_at=product.created_at,
        popularity_score=popularity_score(
            product.views, product.likes, product.created_at, now
        ),
    )


class SearchIndexProjector:
    """Upserts or removes the search document for each product event.

    Index writes are debounced per product, and the geohash write-back onto
    the product runs under its own key so it can never cancel an index write.
    """

    def __init__(
        self,
        *,
        index_store: SearchIndexStore,
        product_store: ProductStore,
        debouncer: DebounceScheduler,
        index_delay_ms: int = 5000,
        geohash_delay_ms: int = 5000,
        geohash_precision: int = 7,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.index_store = index_store
        self.product_store = product_store
        self.debouncer = debouncer
        self.index_delay_ms = index_delay_ms
        self.geohash_delay_ms = geohash_delay_ms
        self.geohash_precision = geohash_precision
        self._clock = clock or (lambda: datetime.now(UTC))

    async def handle(self, event: ProductEvent) -> None:
        """Project one event. Errors are logged, never raised to the caller."""
        try:
            await self._project(event)
        except Exception:
            logger.exception(
                "Error updating search index for product %s", event.product_id
            )

    async def _project(self, event: ProductEvent) -> None:
        product_id = event.product_id
        product = event.after

        if product is None or not product.is_indexable:
            # A pending upsert would resurrect the document after the delete.
            self.debouncer.cancel(index_key(product_id))
            if await self.index_store.delete(product_id):
                logger.info("Removed product %s from search index", product_id)
            return

        document = build_search_document(product, self._clock(), self.geohash_precision)
        self.debouncer.schedule(
            index_key(product_id),
            partial(self._write_document, document),
            self.index_delay_ms,
        )

        cell = document.location.geohash
        if cell and not (product.location and product.location.geohash):
            self.debouncer.schedule(
                geohash_key(product_id),
                partial(self._write_geohash, product_id, cell),
                self.geohash_delay_ms,
            )

    async def _write_document(self, document: SearchIndexDocument) -> None:
        await self.index_store.upsert(document)
        logger.info("Updated search index for product %s", document.product_id)

    async def _write_geohash(self, product_id: str, cell: str) -> None:
        if await self.product_store.set_geohash(product_id, cell):
            logger.info("Added geohash to product %s", product_id)
