"""Read-optimized search index documents."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from catalog_pipeline.models.product import Coordinates


class IndexedLocation(BaseModel):
    city: str = ""
    geohash: str = ""
    coordinates: Coordinates | None = None


class SearchIndexDocument(BaseModel):
    """Denormalized projection of one active, approved product."""

    product_id: str
    title: str
    title_lowercase: str
    description: str
    keywords: list[str] = Field(default_factory=list)

    # Filterable fields
    category_ids: list[str] = Field(default_factory=list)
    subcategory: str | None = None
    brands: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    brand: str | None = None
    color: str | None = None
    material: str | None = None
    size: str | None = None
    condition: str | None = None
    price: float = 0

    location: IndexedLocation = Field(default_factory=IndexedLocation)

    # Cached display data
    seller_id: str | None = None
    seller_name: str | None = None
    seller_rating: float | None = None
    first_image: str | None = None

    is_active: bool = True
    is_sold: bool = False
    is_promoted: bool = False

    views: int = 0
    likes: int = 0
    created_at: datetime
    popularity_score: float = 0.0
