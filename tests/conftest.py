"""Pytest configuration and fixtures for the catalog pipeline."""

from datetime import UTC, datetime

import pytest
import pytest_asyncio
from fakeredis import aioredis as fakeredis
from httpx import ASGITransport, AsyncClient

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import Product
from catalog_pipeline.services.queue.event_queue import (
    EventQueue,
    get_catalog_event_queue,
    get_redis_client,
)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "asyncio: marks tests as async tests")


@pytest.fixture()
def make_product():
    """Build an approved, active product with sensible defaults."""

    def _make(product_id: str = "p1", **overrides) -> Product:
        fields = {
            "id": product_id,
            "title": "Nike Air Max",
            "description": "Running shoes in great condition",
            "category_ids": ["women", "women_shoes"],
            "brands": ["Nike"],
            "colors": ["black"],
            "size": "38",
            "condition": "very_good",
            "price": 45.0,
            "images": [{"url": f"https://cdn.example.com/{product_id}.jpg"}],
            "location": {"city": "Paris", "coordinates": {"lat": 48.8566, "lon": 2.3522}},
            "is_active": True,
            "moderation_status": "approved",
            "seller_id": "seller-1",
            "seller_name": "Alice",
            "created_at": FIXED_NOW,
        }
        fields.update(overrides)
        return Product.model_validate(fields)

    return _make


@pytest_asyncio.fixture()
async def redis_client():
    """Provide a fake Redis client for each test."""
    from catalog_pipeline.main import app

    client = fakeredis.FakeRedis(decode_responses=True)
    app.dependency_overrides[get_redis_client] = lambda: client
    app.dependency_overrides[get_catalog_event_queue] = lambda: EventQueue(
        client, settings.CATALOG_EVENTS_STREAM_KEY
    )
    try:
        yield client
    finally:
        await client.flushdb()
        await client.aclose()
        app.dependency_overrides.pop(get_redis_client, None)
        app.dependency_overrides.pop(get_catalog_event_queue, None)


@pytest_asyncio.fixture()
async def client(redis_client):
    """Return an HTTPX async client pointing at the FastAPI app."""
    from catalog_pipeline.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as test_client:
        yield test_client
