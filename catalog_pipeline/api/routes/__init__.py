"""API route registration."""

from fastapi import FastAPI

from catalog_pipeline.api.routes import events, jobs, system


def include_api_routes(app: FastAPI) -> None:
    """Attach all API routers to the application."""

    app.include_router(system.router)
    app.include_router(events.router)
    app.include_router(jobs.router)
