"""Saved searches and their filter sets."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SavedSearchFilters(BaseModel):
    """Filter set attached to a saved search.

    Serialized with camelCase keys because the mobile client reads the
    filters back out of the notification payload.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    category_ids: list[str] = Field(default_factory=list)
    brands: list[str] = Field(default_factory=list)
    sizes: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    condition: str | None = None
    min_price: float | None = None
    max_price: float | None = None


class SavedSearch(BaseModel):
    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    name: str = ""
    query: str = ""
    filters: SavedSearchFilters = Field(default_factory=SavedSearchFilters)
    notify_new_items: bool = True
    last_notified_at: datetime | None = None
    new_items_count: int = 0
