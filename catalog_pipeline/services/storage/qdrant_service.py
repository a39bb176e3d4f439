"""Qdrant collection holding one image embedding per product."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from qdrant_client import QdrantClient  # type: ignore[import]
from qdrant_client.http import models as qmodels  # type: ignore[import]

from catalog_pipeline.config import settings
from catalog_pipeline.models.embedding import EmbeddingRecord

logger = logging.getLogger(__name__)


def point_id(product_id: str) -> str:
    """Deterministic point id so every write for a product hits the same point."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"product:{product_id}"))


class QdrantService:
    """Embedding records keyed by product id.

    The sync client is driven through ``asyncio.to_thread`` so calls never
    block the worker's event loop.
    """

    def __init__(self, client: QdrantClient, collection_name: str, vector_size: int):
        self.client = client
        self.collection_name = collection_name
        self.vector_size = vector_size
        self._collection_ready = False

    async def ensure_collection(self) -> None:
        """Create the collection on first use."""
        if self._collection_ready:
            return
        try:
            await asyncio.to_thread(
                self.client.get_collection,
                collection_name=self.collection_name,
            )
        except Exception:
            logger.info("Creating Qdrant collection %s", self.collection_name)
            await asyncio.to_thread(
                self.client.create_collection,
                collection_name=self.collection_name,
                vectors_config=qmodels.VectorParams(
                    size=self.vector_size,
                    distance=qmodels.Distance.COSINE,
                ),
            )
        self._collection_ready = True

    async def upsert_record(self, record: EmbeddingRecord) -> None:
        """Replace the vector and payload stored for the record's product."""
        await self.ensure_collection()
        point = qmodels.PointStruct(
            id=point_id(record.product_id),
            vector=record.vector,
            payload=record.payload(),
        )
        await asyncio.to_thread(
            self.client.upsert,
            collection_name=self.collection_name,
            points=[point],
        )

    async def get_payload(self, product_id: str) -> dict[str, Any] | None:
        """Stored payload for ``product_id``, or None when no record exists."""
        await self.ensure_collection()
        points = await asyncio.to_thread(
            self.client.retrieve,
            collection_name=self.collection_name,
            ids=[point_id(product_id)],
            with_payload=True,
            with_vectors=False,
        )
        if not points:
            return None
        return dict(points[0].payload or {})

    async def merge_payload(self, product_id: str, fields: dict[str, Any]) -> None:
        """Overwrite only the given payload keys, leaving the vector untouched."""
        await asyncio.to_thread(
            self.client.set_payload,
            collection_name=self.collection_name,
            payload=fields,
            points=[point_id(product_id)],
        )


def create_qdrant_service(collection_name: str | None = None) -> QdrantService:
    """Factory function to create a Qdrant service."""
    client = QdrantClient(url=settings.QDRANT_URL)
    collection = collection_name or settings.QDRANT_COLLECTION
    return QdrantService(client, collection, settings.EMBEDDING_DIMENSIONS)
