"""Models describing stored image embeddings."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

PriceBucket = Literal["low", "medium", "high"]


def price_bucket(price: float) -> PriceBucket:
    """Coarse price range used as a denormalized similarity filter."""
    if price < 20:
        return "low"
    if price <= 100:
        return "medium"
    return "high"


class EmbeddingMetadata(BaseModel):
    """Filter fields denormalized next to the vector."""

    category_ids: list[str] = Field(default_factory=list)
    brand: str | None = None
    price_bucket: PriceBucket = "low"
    is_active: bool = True


class EmbeddingRecord(EmbeddingMetadata):
    product_id: str = Field(..., min_length=1)
    vector: list[float]
    image_url: str
    created_at: datetime
    updated_at: datetime

    def payload(self) -> dict:
        """Qdrant payload: everything except the vector itself."""
        return self.model_dump(mode="json", exclude={"vector"})
