"""Manual triggers for scheduled jobs."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from catalog_pipeline.config import settings
from catalog_pipeline.services.notifications.saved_searches import (
    SavedSearchMatcher,
    create_saved_search_matcher,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/jobs", tags=["jobs"])


def get_saved_search_matcher() -> SavedSearchMatcher | None:
    """Matcher bound to the shared Redis client, or None without a push provider."""
    if not settings.push_enabled:
        return None
    return create_saved_search_matcher()


MatcherDependency = Annotated[SavedSearchMatcher | None, Depends(get_saved_search_matcher)]


@router.post(
    "/saved-searches/run",
    summary="Run the saved search matcher once",
)
async def run_saved_searches(matcher: MatcherDependency) -> dict[str, Any]:
    if matcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Push notifications are not configured in this environment",
        )

    try:
        summary = await matcher.run(timeout=settings.MATCHER_RUN_TIMEOUT_SECONDS)
    finally:
        await matcher.dispatcher.provider.aclose()

    return asdict(summary)
