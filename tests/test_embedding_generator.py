"""Tests for image embedding generation and metadata upkeep."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from botocore.exceptions import ClientError

from catalog_pipeline.models.embedding import price_bucket
from catalog_pipeline.models.product import ProductEvent
from catalog_pipeline.services.clients.encoder_client import ImageEncoderClient
from catalog_pipeline.services.clients.object_storage import ObjectNotFoundError, ObjectStorage
from catalog_pipeline.services.embeddings.generator import EmbeddingGenerator, wants_embedding
from catalog_pipeline.services.storage.qdrant_service import QdrantService

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
DIMENSIONS = 4


def _mock_store(payload=None):
    store = MagicMock(spec=QdrantService)
    store.upsert_record = AsyncMock()
    store.get_payload = AsyncMock(return_value=payload)
    store.merge_payload = AsyncMock()
    return store


def _mock_encoder(vector=None):
    encoder = MagicMock(spec=ImageEncoderClient)
    encoder.embed_image = AsyncMock(return_value=vector or [0.1, 0.2, 0.3, 0.4])
    return encoder


def _generator(encoder, store, session, object_storage=None):
    return EmbeddingGenerator(
        encoder=encoder,
        embedding_store=store,
        http_session=session,
        object_storage=object_storage,
        dimensions=DIMENSIONS,
        clock=lambda: NOW,
    )


@pytest.mark.parametrize(
    "price,bucket",
    [(0, "low"), (15, "low"), (20, "medium"), (100, "medium"), (101, "high")],
)
def test_price_bucket(price, bucket):
    assert price_bucket(price) == bucket


def test_wants_embedding(make_product):
    product = make_product()
    assert wants_embedding(ProductEvent(product_id="p1", after=product))
    assert not wants_embedding(
        ProductEvent(product_id="p1", after=product.model_copy(update={"images": []}))
    )
    assert wants_embedding(ProductEvent(product_id="p1", before=product, after=product))
    assert not wants_embedding(ProductEvent(product_id="p1", before=product))


@pytest.mark.asyncio
async def test_create_generates_embedding(make_product):
    product = make_product(price=150)
    encoder = _mock_encoder()
    store = _mock_store()

    async with respx.mock(assert_all_called=True) as router:
        router.get("https://cdn.example.com/p1.jpg").mock(
            return_value=httpx.Response(200, content=b"jpeg-bytes")
        )
        async with httpx.AsyncClient() as session:
            generator = _generator(encoder, store, session)
            await generator.handle(ProductEvent(product_id=product.id, after=product))

    encoder.embed_image.assert_awaited_once_with(b"jpeg-bytes")
    record = store.upsert_record.await_args.args[0]
    assert record.product_id == "p1"
    assert record.vector == [0.1, 0.2, 0.3, 0.4]
    assert record.brand == "Nike"
    assert record.category_ids == ["women", "women_shoes"]
    assert record.price_bucket == "high"
    assert record.is_active is True
    assert record.created_at == NOW


@pytest.mark.asyncio
async def test_metadata_update_skips_inference(make_product):
    before = make_product()
    after = before.model_copy(update={"price": 10.0, "brands": ["Adidas"]})
    encoder = _mock_encoder()
    store = _mock_store(payload={"product_id": "p1"})

    async with httpx.AsyncClient() as session:
        generator = _generator(encoder, store, session)
        await generator.handle(ProductEvent(product_id="p1", before=before, after=after))

    encoder.embed_image.assert_not_awaited()
    store.upsert_record.assert_not_awaited()
    product_id, fields = store.merge_payload.await_args.args
    assert product_id == "p1"
    assert fields["price_bucket"] == "low"
    assert fields["brand"] == "Adidas"
    assert fields["updated_at"] == NOW.isoformat()


@pytest.mark.asyncio
async def test_metadata_update_without_record_generates(make_product):
    product = make_product()
    encoder = _mock_encoder()
    store = _mock_store(payload=None)

    async with respx.mock(assert_all_called=True) as router:
        router.get("https://cdn.example.com/p1.jpg").mock(
            return_value=httpx.Response(200, content=b"img")
        )
        async with httpx.AsyncClient() as session:
            generator = _generator(encoder, store, session)
            await generator.handle(ProductEvent(product_id="p1", before=product, after=product))

    encoder.embed_image.assert_awaited_once()
    store.upsert_record.assert_awaited_once()
    store.merge_payload.assert_not_awaited()


@pytest.mark.asyncio
async def test_image_change_regenerates(make_product):
    before = make_product()
    after = make_product(images=[{"url": "https://cdn.example.com/new.jpg"}])
    encoder = _mock_encoder()
    store = _mock_store(payload={"product_id": "p1"})

    async with respx.mock(assert_all_called=True) as router:
        router.get("https://cdn.example.com/new.jpg").mock(
            return_value=httpx.Response(200, content=b"new")
        )
        async with httpx.AsyncClient() as session:
            generator = _generator(encoder, store, session)
            await generator.handle(ProductEvent(product_id="p1", before=before, after=after))

    encoder.embed_image.assert_awaited_once_with(b"new")
    assert store.upsert_record.await_args.args[0].image_url == "https://cdn.example.com/new.jpg"


@pytest.mark.asyncio
async def test_deactivation_flips_flag_only(make_product):
    before = make_product()
    after = before.model_copy(update={"is_active": False})
    encoder = _mock_encoder()
    store = _mock_store(payload={"product_id": "p1", "is_active": True})

    async with httpx.AsyncClient() as session:
        generator = _generator(encoder, store, session)
        await generator.handle(ProductEvent(product_id="p1", before=before, after=after))

    encoder.embed_image.assert_not_awaited()
    store.merge_payload.assert_awaited_once_with(
        "p1", {"is_active": False, "updated_at": NOW.isoformat()}
    )


@pytest.mark.asyncio
async def test_delete_keeps_record(make_product):
    store = _mock_store(payload={"product_id": "p1"})
    encoder = _mock_encoder()

    async with httpx.AsyncClient() as session:
        generator = _generator(encoder, store, session)
        await generator.handle(ProductEvent(product_id="p1", before=make_product()))

    store.upsert_record.assert_not_awaited()
    store.merge_payload.assert_not_awaited()


@pytest.mark.asyncio
async def test_inference_failure_is_swallowed(make_product):
    product = make_product()
    encoder = _mock_encoder()
    encoder.embed_image.side_effect = httpx.HTTPStatusError(
        "boom",
        request=httpx.Request("POST", "https://inference.example.com"),
        response=httpx.Response(500),
    )
    store = _mock_store()

    async with respx.mock() as router:
        router.get("https://cdn.example.com/p1.jpg").mock(
            return_value=httpx.Response(200, content=b"img")
        )
        async with httpx.AsyncClient() as session:
            generator = _generator(encoder, store, session)
            await generator.handle(ProductEvent(product_id="p1", after=product))
            assert await generator.generate(product) is False

    store.upsert_record.assert_not_awaited()


@pytest.mark.asyncio
async def test_dimension_mismatch_aborts(make_product):
    product = make_product()
    encoder = _mock_encoder(vector=[0.5, 0.5])
    store = _mock_store()

    async with respx.mock() as router:
        router.get("https://cdn.example.com/p1.jpg").mock(
            return_value=httpx.Response(200, content=b"img")
        )
        async with httpx.AsyncClient() as session:
            generator = _generator(encoder, store, session)
            assert await generator.generate(product) is False

    store.upsert_record.assert_not_awaited()


@pytest.mark.asyncio
async def test_image_download_failure_is_swallowed(make_product):
    product = make_product()
    encoder = _mock_encoder()
    store = _mock_store()

    async with respx.mock() as router:
        router.get("https://cdn.example.com/p1.jpg").mock(return_value=httpx.Response(404))
        async with httpx.AsyncClient() as session:
            generator = _generator(encoder, store, session)
            assert await generator.generate(product) is False

    encoder.embed_image.assert_not_awaited()


@pytest.mark.asyncio
async def test_storage_read_preferred(make_product):
    product = make_product(images=[{"url": "https://media.s3.amazonaws.com/products/p1.jpg"}])
    storage = MagicMock(spec=ObjectStorage)
    storage.parse_url.return_value = ("media", "products/p1.jpg")
    storage.read = AsyncMock(return_value=b"from-bucket")
    encoder = _mock_encoder()
    store = _mock_store()

    async with httpx.AsyncClient() as session:
        generator = _generator(encoder, store, session, object_storage=storage)
        assert await generator.generate(product) is True

    storage.read.assert_awaited_once_with("media", "products/p1.jpg")
    encoder.embed_image.assert_awaited_once_with(b"from-bucket")


@pytest.mark.asyncio
async def test_storage_error_falls_back_to_http(make_product):
    url = "https://media.s3.amazonaws.com/products/p1.jpg"
    product = make_product(images=[{"url": url}])
    storage = MagicMock(spec=ObjectStorage)
    storage.parse_url.return_value = ("media", "products/p1.jpg")
    storage.read = AsyncMock(
        side_effect=ClientError({"Error": {"Code": "AccessDenied"}}, "GetObject")
    )
    encoder = _mock_encoder()
    store = _mock_store()

    async with respx.mock(assert_all_called=True) as router:
        router.get(url).mock(return_value=httpx.Response(200, content=b"from-http"))
        async with httpx.AsyncClient() as session:
            generator = _generator(encoder, store, session, object_storage=storage)
            assert await generator.generate(product) is True

    encoder.embed_image.assert_awaited_once_with(b"from-http")


@pytest.mark.asyncio
async def test_missing_object_does_not_fall_back(make_product):
    product = make_product(images=[{"url": "https://media.s3.amazonaws.com/products/p1.jpg"}])
    storage = MagicMock(spec=ObjectStorage)
    storage.parse_url.return_value = ("media", "products/p1.jpg")
    storage.read = AsyncMock(side_effect=ObjectNotFoundError("s3://media/products/p1.jpg"))
    encoder = _mock_encoder()
    store = _mock_store()

    async with httpx.AsyncClient() as session:
        generator = _generator(encoder, store, session, object_storage=storage)
        assert await generator.generate(product) is False

    encoder.embed_image.assert_not_awaited()
