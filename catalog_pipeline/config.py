"""
Configuration settings for the application.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Redis / queue settings
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT_SECONDS: float = float(
        os.getenv("REDIS_SOCKET_TIMEOUT_SECONDS", "10")
    )
    CATALOG_EVENTS_STREAM_KEY: str = os.getenv(
        "CATALOG_EVENTS_STREAM_KEY", "catalog:events"
    )
    CATALOG_EVENTS_CONSUMER_GROUP: str = os.getenv(
        "CATALOG_EVENTS_CONSUMER_GROUP",
        "catalog-projectors",
    )
    EMBEDDINGS_STREAM_KEY: str = os.getenv("EMBEDDINGS_STREAM_KEY", "embeddings:jobs")
    EMBEDDINGS_CONSUMER_GROUP: str = os.getenv(
        "EMBEDDINGS_CONSUMER_GROUP",
        "embeddings-workers",
    )
    DLQ_STREAM_KEY: str = os.getenv("DLQ_STREAM_KEY", "catalog:dlq")
    BATCH_MAX_MESSAGES: int = int(os.getenv("BATCH_MAX_MESSAGES", "32"))
    BATCH_MAX_WAIT_MS: int = int(os.getenv("BATCH_MAX_WAIT_MS", "200"))
    # Embedding consumers only; the catalog stream always runs one consumer
    # so events for a product are applied in order.
    WORKER_CONCURRENCY: int = int(os.getenv("WORKER_CONCURRENCY", "1"))

    # Debounce delays
    INDEX_DEBOUNCE_MS: int = int(os.getenv("INDEX_DEBOUNCE_MS", "5000"))
    GEOHASH_DEBOUNCE_MS: int = int(os.getenv("GEOHASH_DEBOUNCE_MS", "5000"))
    SELLER_STATS_DEBOUNCE_MS: int = int(os.getenv("SELLER_STATS_DEBOUNCE_MS", "10000"))
    GEOHASH_PRECISION: int = int(os.getenv("GEOHASH_PRECISION", "7"))

    # Qdrant settings
    QDRANT_URL: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    QDRANT_COLLECTION: str = os.getenv("QDRANT_COLLECTION", "product_embeddings")

    # Image embedding inference
    EMBEDDING_ENDPOINT_URL: str | None = os.getenv("EMBEDDING_ENDPOINT_URL")
    EMBEDDING_API_TOKEN: str | None = os.getenv("EMBEDDING_API_TOKEN")
    EMBEDDING_DIMENSIONS: int = int(os.getenv("EMBEDDING_DIMENSIONS", "1408"))
    EMBEDDING_TIMEOUT_SECONDS: float = float(
        os.getenv("EMBEDDING_TIMEOUT_SECONDS", "60")
    )
    IMAGE_DOWNLOAD_TIMEOUT_SECONDS: float = float(
        os.getenv("IMAGE_DOWNLOAD_TIMEOUT_SECONDS", "20")
    )

    # Object storage (S3 compatible)
    OBJECT_STORAGE_ENDPOINT_URL: str | None = os.getenv("OBJECT_STORAGE_ENDPOINT_URL")
    OBJECT_STORAGE_REGION: str = os.getenv("OBJECT_STORAGE_REGION", "us-east-1")
    AWS_ACCESS_KEY_ID: str | None = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: str | None = os.getenv("AWS_SECRET_ACCESS_KEY")

    # Push notifications (FCM HTTP v1)
    FCM_PROJECT_ID: str | None = os.getenv("FCM_PROJECT_ID")
    FCM_ACCESS_TOKEN: str | None = os.getenv("FCM_ACCESS_TOKEN")
    PUSH_TIMEOUT_SECONDS: float = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))

    # Saved search matcher
    MATCHER_INTERVAL_MINUTES: int = int(os.getenv("MATCHER_INTERVAL_MINUTES", "15"))
    MATCHER_CONCURRENCY: int = int(os.getenv("MATCHER_CONCURRENCY", "4"))
    MATCHER_RUN_TIMEOUT_SECONDS: float = float(
        os.getenv("MATCHER_RUN_TIMEOUT_SECONDS", "480")
    )
    MATCHER_CANDIDATE_LIMIT: int = int(os.getenv("MATCHER_CANDIDATE_LIMIT", "50"))

    @property
    def is_production(self) -> bool:
        """
        Check if running in production environment.
        """
        return self.ENVIRONMENT.lower() == "production"

    @property
    def encoder_enabled(self) -> bool:
        """Return True when an image encoder client can be initialized."""
        return bool(self.EMBEDDING_ENDPOINT_URL)

    @property
    def push_enabled(self) -> bool:
        """Return True when a push provider can be initialized."""
        return bool(self.FCM_PROJECT_ID and self.FCM_ACCESS_TOKEN)

    @property
    def object_storage_enabled(self) -> bool:
        """Direct bucket reads need either an explicit endpoint or AWS keys."""
        return bool(self.OBJECT_STORAGE_ENDPOINT_URL or self.AWS_ACCESS_KEY_ID)

    def __init__(self):
        self.env = os.getenv("ENV", "dev")
        self.debug = os.getenv("DEBUG", "false").lower() == "true"
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        logging.basicConfig(level=self.log_level)
        self.logger = logging.getLogger(__name__)

        self.logger.debug(
            f"Config initialized with env={self.env}, debug={self.debug}, "
            f"log_level={self.log_level}"
        )


# Create a global settings instance for import
settings = Settings()
