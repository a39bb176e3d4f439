"""Product snapshots and catalog write events."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

APPROVED = "approved"


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class ProductLocation(BaseModel):
    city: str = ""
    coordinates: Coordinates | None = None
    geohash: str | None = None


class ProductImage(BaseModel):
    url: str


class ProductAttributes(BaseModel):
    """Array-form attributes after resolving legacy singular fields."""

    brands: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)


def _as_list(plural: list[str] | None, singular: str | None) -> list[str]:
    # The plural field wins whenever it is present, even when empty.
    if plural is not None:
        return list(plural)
    if singular:
        return [singular]
    return []


class Product(BaseModel):
    """Snapshot of a catalog product as delivered by the catalog service."""

    id: str = Field(..., min_length=1)
    title: str = ""
    description: str = ""
    category_id: str | None = None
    category_ids: list[str] | None = None
    subcategory: str | None = None
    brand: str | None = None
    brands: list[str] | None = None
    color: str | None = None
    colors: list[str] | None = None
    material: str | None = None
    materials: list[str] | None = None
    size: str | None = None
    condition: str | None = None
    price: float = Field(0, ge=0)
    images: list[ProductImage] = Field(default_factory=list)
    location: ProductLocation | None = None
    views: int = Field(0, ge=0)
    likes: int = Field(0, ge=0)
    is_active: bool = True
    moderation_status: str = "pending"
    is_sold: bool = False
    is_promoted: bool = False
    seller_id: str | None = None
    seller_name: str | None = None
    seller_rating: float | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def is_indexable(self) -> bool:
        """Active and approved products are the only ones exposed to buyers."""
        return self.is_active and self.moderation_status == APPROVED

    @property
    def is_live(self) -> bool:
        return self.is_active and not self.is_sold

    @property
    def primary_image_url(self) -> str | None:
        return self.images[0].url if self.images else None

    def attributes(self) -> ProductAttributes:
        """Normalize legacy singular fields into their array counterparts."""
        return ProductAttributes(
            brands=_as_list(self.brands, self.brand),
            colors=_as_list(self.colors, self.color),
            materials=_as_list(self.materials, self.material),
            category_ids=_as_list(self.category_ids, self.category_id),
        )


class ProductEvent(BaseModel):
    """A single product mutation with full before/after snapshots."""

    product_id: str = Field(..., min_length=1)
    before: Product | None = None
    after: Product | None = None
    trace_id: str | None = Field(
        default=None,
        description="Optional trace identifier propagated from the catalog service",
    )

    @model_validator(mode="after")
    def _snapshots_match_product_id(self) -> ProductEvent:
        for snapshot in (self.before, self.after):
            if snapshot is not None and snapshot.id != self.product_id:
                raise ValueError(
                    f"Snapshot id {snapshot.id!r} does not match product_id {self.product_id!r}"
                )
        return self

    @property
    def op(self) -> Literal["create", "update", "delete"]:
        if self.after is None:
            return "delete"
        if self.before is None:
            return "create"
        return "update"


class ProductEventBatch(BaseModel):
    """Request body for POST /v1/catalog/events."""

    items: list[ProductEvent] = Field(..., min_length=1)

    @field_validator("items")
    @classmethod
    def _limit_items(cls, values: list[ProductEvent]) -> list[ProductEvent]:
        if len(values) > 500:
            raise ValueError("Batch size must be <= 500 items")
        return values


class ProductEventEnqueueResponse(BaseModel):
    queued: int = Field(..., ge=0)
