"""Direct reads from S3-compatible object storage."""

from __future__ import annotations

import asyncio
import logging
import re
from urllib.parse import unquote, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from catalog_pipeline.config import settings

logger = logging.getLogger(__name__)

_VIRTUAL_HOSTED = re.compile(
    r"^https://(?P<bucket>[a-z0-9][a-z0-9.-]*?)\.s3(?:[.-][a-z0-9-]+)?\.amazonaws\.com/(?P<key>[^?#]+)"
)
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class ObjectNotFoundError(LookupError):
    """The URL points into the bucket but the object does not exist."""


class ObjectStorage:
    """Resolves storage URLs to ``(bucket, key)`` and reads object bytes."""

    def __init__(self, client, endpoint_url: str | None = None) -> None:
        self._client = client
        self._endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None

    def parse_url(self, url: str) -> tuple[str, str] | None:
        """Return ``(bucket, key)`` for URLs served by the storage provider.

        Accepts AWS virtual-hosted URLs and path-style URLs under the
        configured endpoint. Anything else is not ours to read directly.
        """
        match = _VIRTUAL_HOSTED.match(url)
        if match:
            return match.group("bucket"), unquote(match.group("key"))

        if self._endpoint_url and url.startswith(f"{self._endpoint_url}/"):
            path = urlsplit(url).path.lstrip("/")
            endpoint_path = urlsplit(self._endpoint_url).path.strip("/")
            if endpoint_path:
                path = path[len(endpoint_path) :].lstrip("/")
            bucket, _, key = path.partition("/")
            if bucket and key:
                return bucket, unquote(key)
        return None

    async def read(self, bucket: str, key: str) -> bytes:
        """Download an object.

        Raises ObjectNotFoundError when the object is missing; other storage
        errors propagate as ``ClientError``/``BotoCoreError``.
        """
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=bucket, Key=key
            )
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise ObjectNotFoundError(f"s3://{bucket}/{key}") from exc
            raise
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        finally:
            body.close()


STORAGE_ERRORS = (ClientError, BotoCoreError)


def create_object_storage() -> ObjectStorage | None:
    if not settings.object_storage_enabled:
        return None

    session = boto3.session.Session()
    client = session.client(
        "s3",
        endpoint_url=settings.OBJECT_STORAGE_ENDPOINT_URL,
        region_name=settings.OBJECT_STORAGE_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        config=Config(
            connect_timeout=settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS,
            read_timeout=settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS,
        ),
    )
    return ObjectStorage(client, endpoint_url=settings.OBJECT_STORAGE_ENDPOINT_URL)
