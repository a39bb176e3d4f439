"""Best-effort image embedding generation for products."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

import httpx

from catalog_pipeline.models.embedding import EmbeddingMetadata, EmbeddingRecord, price_bucket
from catalog_pipeline.models.product import Product, ProductEvent
from catalog_pipeline.services.clients.encoder_client import ImageEncoderClient
from catalog_pipeline.services.clients.object_storage import (
    STORAGE_ERRORS,
    ObjectNotFoundError,
    ObjectStorage,
)
from catalog_pipeline.services.storage.qdrant_service import QdrantService

logger = logging.getLogger(__name__)


class EmbeddingGenerationError(RuntimeError):
    """A product's embedding could not be produced."""


def wants_embedding(event: ProductEvent) -> bool:
    """Creates with a primary image, and every update, need embedding work."""
    if event.op == "create":
        return event.after is not None and event.after.primary_image_url is not None
    return event.op == "update"


def embedding_metadata(product: Product) -> EmbeddingMetadata:
    attrs = product.attributes()
    return EmbeddingMetadata(
        category_ids=attrs.category_ids,
        brand=attrs.brands[0] if attrs.brands else None,
        price_bucket=price_bucket(product.price),
        is_active=product.is_active,
    )


class EmbeddingGenerator:
    """Keeps one embedding record per product in step with product updates.

    Only a change of primary image pays for an inference call; other updates
    merge the denormalized filter fields into the existing record. Any
    failure leaves the record missing or stale, to be retried on the next
    qualifying update. Records are kept when products are deleted.
    """

    def __init__(
        self,
        *,
        encoder: ImageEncoderClient,
        embedding_store: QdrantService,
        http_session: httpx.AsyncClient,
        object_storage: ObjectStorage | None = None,
        dimensions: int = 1408,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.encoder = encoder
        self.embedding_store = embedding_store
        self.http_session = http_session
        self.object_storage = object_storage
        self.dimensions = dimensions
        self._clock = clock or (lambda: datetime.now(UTC))

    async def handle(self, event: ProductEvent) -> None:
        """Apply one product event. Never raises."""
        try:
            await self._handle(event)
        except Exception:
            logger.exception("[embeddings] Error for %s", event.product_id)

    async def _handle(self, event: ProductEvent) -> None:
        after = event.after
        if after is None:
            return

        if event.before is None:
            if after.primary_image_url:
                await self.generate(after)
            return

        if event.before.is_active and not after.is_active:
            await self.deactivate(after.id)
            return

        if after.primary_image_url and after.primary_image_url != event.before.primary_image_url:
            await self.generate(after)
        else:
            await self.update_metadata(after)

    async def generate(self, product: Product) -> bool:
        """Download the primary image, embed it and store the record."""
        image_url = product.primary_image_url
        if not image_url:
            logger.info("[embeddings] No image for %s, skipping", product.id)
            return False

        try:
            image = await self._download(image_url)
            logger.info(
                "[embeddings] Generating embedding for %s (%dKB)",
                product.id,
                round(len(image) / 1024),
            )
            vector = await self.encoder.embed_image(image)
            if len(vector) != self.dimensions:
                raise EmbeddingGenerationError(
                    f"unexpected dimension {len(vector)}, expected {self.dimensions}"
                )

            now = self._clock()
            record = EmbeddingRecord(
                product_id=product.id,
                vector=vector,
                image_url=image_url,
                created_at=now,
                updated_at=now,
                **embedding_metadata(product).model_dump(),
            )
            await self.embedding_store.upsert_record(record)
        except Exception as exc:
            logger.error(
                "[embeddings] Failed to generate embedding for %s: %s",
                product.id,
                exc,
                extra={"product_id": product.id, "image_url": image_url},
            )
            return False

        logger.info("[embeddings] Stored embedding for %s (%d dims)", product.id, len(vector))
        return True

    async def update_metadata(self, product: Product) -> None:
        """Refresh filter fields only; generate when no record exists yet."""
        if await self.embedding_store.get_payload(product.id) is None:
            await self.generate(product)
            return

        fields = embedding_metadata(product).model_dump(mode="json")
        fields["updated_at"] = self._clock().isoformat()
        await self.embedding_store.merge_payload(product.id, fields)
        logger.info("[embeddings] Updated metadata for %s", product.id)

    async def deactivate(self, product_id: str) -> None:
        if await self.embedding_store.get_payload(product_id) is None:
            return
        await self.embedding_store.merge_payload(
            product_id,
            {"is_active": False, "updated_at": self._clock().isoformat()},
        )
        logger.info("[embeddings] Deactivated embedding for %s", product_id)

    async def _download(self, url: str) -> bytes:
        """Prefer a direct bucket read; fall back to HTTP for other URLs or storage errors."""
        location = self.object_storage.parse_url(url) if self.object_storage else None
        if location is not None:
            try:
                return await self.object_storage.read(*location)
            except ObjectNotFoundError as exc:
                raise EmbeddingGenerationError(f"image does not exist: {exc}") from exc
            except STORAGE_ERRORS as exc:
                logger.warning("[embeddings] Storage read failed, trying HTTP: %s", exc)

        response = await self.http_session.get(url, follow_redirects=True)
        response.raise_for_status()
        if not response.content:
            raise EmbeddingGenerationError(f"empty image body from {url}")
        return response.content
