"""FastAPI application entry point."""

from catalog_pipeline.application import create_app

app = create_app()

__all__ = ["app"]
