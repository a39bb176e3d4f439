"""Aggregate statistics derived from a seller's listings."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SellerStats(BaseModel):
    user_id: str
    products_listed: int = 0
    products_active: int = 0
    products_sold: int = 0
    products_views: int = 0
    products_likes: int = 0
    total_earnings: float = 0.0
    average_sale_price: float = 0.0
    updated_at: datetime
