"""Image encoder client abstractions and implementations."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod

import httpx

from catalog_pipeline.config import settings


class ImageEncoderClient(ABC):
    """Abstract encoder interface responsible for producing image embeddings."""

    @abstractmethod
    async def embed_image(self, image: bytes) -> list[float]:
        """Return the embedding vector for the provided image bytes."""

    async def aclose(self) -> None:
        """Release network resources held by the client."""


class VertexImageEncoderClient(ImageEncoderClient):
    """Encoder backed by a multimodal embedding model's ``:predict`` endpoint.

    The request carries the image base64-encoded and the response is expected
    to contain ``predictions[0].imageEmbedding``.
    """

    def __init__(
        self,
        *,
        endpoint_url: str,
        api_token: str | None = None,
        session: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        if not endpoint_url:
            raise ValueError("Embedding endpoint URL must be provided")

        self._endpoint_url = endpoint_url
        self._headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._owns_session = session is None
        self._session = session or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def embed_image(self, image: bytes) -> list[float]:
        body = {
            "instances": [
                {"image": {"bytesBase64Encoded": base64.b64encode(image).decode("ascii")}}
            ]
        }
        response = await self._session.post(
            self._endpoint_url, json=body, headers=self._headers
        )
        response.raise_for_status()

        predictions = response.json().get("predictions") or []
        if not predictions:
            raise RuntimeError("Embedding response did not include predictions")

        values = predictions[0].get("imageEmbedding")
        if not values:
            raise RuntimeError("Embedding response did not include vector data")
        return [float(value) for value in values]

    async def aclose(self) -> None:
        if self._owns_session:
            await self._session.aclose()


def create_encoder_client() -> ImageEncoderClient | None:
    """Build the configured encoder, or None when inference is not configured."""
    if not settings.encoder_enabled:
        return None

    return VertexImageEncoderClient(
        endpoint_url=settings.EMBEDDING_ENDPOINT_URL,
        api_token=settings.EMBEDDING_API_TOKEN,
        timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
    )
