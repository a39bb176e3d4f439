"""Scheduled matching of saved searches against newly listed products."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import redis.asyncio as redis

from catalog_pipeline.config import settings
from catalog_pipeline.models.product import Product
from catalog_pipeline.models.saved_search import SavedSearch
from catalog_pipeline.services.clients.push_client import create_push_provider
from catalog_pipeline.services.notifications.dispatcher import NotificationDispatcher
from catalog_pipeline.services.notifications.matching import filter_candidates
from catalog_pipeline.services.queue.event_queue import get_redis_client
from catalog_pipeline.services.storage.product_store import ProductStore
from catalog_pipeline.services.storage.user_store import SavedSearchStore, UserStore

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
CHANNEL_ID = "saved_searches"
MAX_STORE_BRANDS = 10


@dataclass(slots=True)
class MatchRunSummary:
    users_checked: int = 0
    searches_checked: int = 0
    notifications_sent: int = 0
    tokens_removed: int = 0
    completed: bool = True


def compose_notification(search: SavedSearch, count: int) -> tuple[str, str]:
    """Return ``(title, body)`` for ``count`` new matches."""
    title = f"{count} new item{'s' if count > 1 else ''}"
    if search.name:
        body = f'New match for "{search.name}"'
    elif search.query:
        body = f'Results for "{search.query}"'
    else:
        body = "New items match your search"
    return title, body


def build_payload(search: SavedSearch, count: int) -> dict[str, str]:
    """Data payload routed by the mobile client's notification handler."""
    return {
        "type": "saved_search",
        "searchId": search.id,
        "searchName": search.name,
        "newItemsCount": str(count),
        "filters": search.filters.model_dump_json(by_alias=True, exclude_defaults=True),
        "query": search.query,
    }


class SavedSearchMatcher:
    """Notifies users about products listed since their last notification.

    Each saved search is matched over the window ``(last_notified_at, now]``.
    The window only closes once a notification reached at least one device,
    so a run where every send failed is retried on the next tick.
    """

    def __init__(
        self,
        *,
        product_store: ProductStore,
        user_store: UserStore,
        saved_search_store: SavedSearchStore,
        dispatcher: NotificationDispatcher,
        concurrency: int = 4,
        candidate_limit: int = 50,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.product_store = product_store
        self.user_store = user_store
        self.saved_search_store = saved_search_store
        self.dispatcher = dispatcher
        self.concurrency = max(1, concurrency)
        self.candidate_limit = max(1, candidate_limit)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run(
        self, now: datetime | None = None, *, timeout: float | None = None
    ) -> MatchRunSummary:
        """Check every user once. Users not reached before ``timeout`` wait for the next run."""
        now = now or self._clock()
        summary = MatchRunSummary()
        logger.info("Starting saved search notification check", extra={"now": now.isoformat()})

        try:
            await asyncio.wait_for(self._check_all_users(now, summary), timeout)
        except asyncio.TimeoutError:
            summary.completed = False
            logger.warning(
                "Saved search check hit its time limit; remaining users are deferred",
                extra={"timeout": timeout, "users_checked": summary.users_checked},
            )

        logger.info(
            "Saved search check complete. Checked %d searches, sent %d notifications.",
            summary.searches_checked,
            summary.notifications_sent,
            extra={
                "users_checked": summary.users_checked,
                "tokens_removed": summary.tokens_removed,
                "completed": summary.completed,
            },
        )
        return summary

    async def _check_all_users(self, now: datetime, summary: MatchRunSummary) -> None:
        user_ids = await self.user_store.list_user_ids()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _guarded(user_id: str) -> None:
            async with semaphore:
                await self._check_user(user_id, now, summary)

        await asyncio.gather(*(_guarded(user_id) for user_id in user_ids))

    async def _check_user(self, user_id: str, now: datetime, summary: MatchRunSummary) -> None:
        try:
            tokens = await self.user_store.get_device_tokens(user_id)
            if not tokens:
                return
            searches = await self.saved_search_store.list_for_user(user_id, notify_only=True)
        except Exception:
            logger.exception("Failed to load saved searches", extra={"user_id": user_id})
            return

        summary.users_checked += 1
        for search in searches:
            summary.searches_checked += 1
            try:
                tokens = await self._check_search(search, tokens, now, summary)
            except Exception:
                logger.exception(
                    "Saved search check failed",
                    extra={"user_id": user_id, "search_id": search.id},
                )
            if not tokens:
                break

    async def _collect_matches(
        self,
        search: SavedSearch,
        window_start: datetime,
        now: datetime,
        category_id: str | None,
        brands: list[str] | None,
    ) -> list[Product]:
        """Page through the whole window until ``candidate_limit`` matches are found."""
        matches: list[Product] = []
        offset = 0
        while len(matches) < self.candidate_limit:
            page = await self.product_store.list_created_between(
                window_start,
                now,
                category_id=category_id,
                brands=brands,
                limit=self.candidate_limit,
                offset=offset,
            )
            if not page:
                break
            matches.extend(filter_candidates(page, search.query, search.filters))
            offset += self.candidate_limit
        return matches[: self.candidate_limit]

    async def _check_search(
        self,
        search: SavedSearch,
        tokens: list[str],
        now: datetime,
        summary: MatchRunSummary,
    ) -> list[str]:
        """Match one search and notify. Returns the tokens still registered."""
        window_start = search.last_notified_at or EPOCH
        if window_start >= now:
            return tokens

        filters = search.filters
        category_id = filters.category_ids[-1] if filters.category_ids else None
        brands = None if category_id else (filters.brands[:MAX_STORE_BRANDS] or None)

        matches = await self._collect_matches(search, window_start, now, category_id, brands)
        if not matches:
            return tokens

        count = len(matches)
        title, body = compose_notification(search, count)
        report = await self.dispatcher.send(
            tokens,
            title,
            body,
            build_payload(search, count),
            channel_id=CHANNEL_ID,
            badge=count,
        )

        invalid = set(report.invalid_tokens)
        if invalid:
            tokens = [token for token in tokens if token not in invalid]
            try:
                summary.tokens_removed += await self.user_store.remove_device_tokens(
                    search.user_id, invalid
                )
            except Exception:
                logger.exception(
                    "Failed to remove invalid device tokens",
                    extra={"user_id": search.user_id},
                )

        if report.success_count == 0:
            logger.warning(
                "No device accepted the notification; window left open",
                extra={"user_id": search.user_id, "search_id": search.id},
            )
            return tokens

        await self.saved_search_store.mark_notified(search.user_id, search.id, now, count)
        summary.notifications_sent += 1
        logger.info(
            'Sent notification for search "%s" to user %s: %d new items',
            search.name,
            search.user_id,
            count,
        )
        return tokens


def create_saved_search_matcher(client: redis.Redis | None = None) -> SavedSearchMatcher:
    """Factory function to create a matcher with all dependencies."""
    provider = create_push_provider()
    if provider is None:
        raise RuntimeError(
            "Push provider is not configured. Set FCM_PROJECT_ID and FCM_ACCESS_TOKEN."
        )

    client = client or get_redis_client()
    return SavedSearchMatcher(
        product_store=ProductStore(client),
        user_store=UserStore(client),
        saved_search_store=SavedSearchStore(client),
        dispatcher=NotificationDispatcher(provider),
        concurrency=settings.MATCHER_CONCURRENCY,
        candidate_limit=settings.MATCHER_CANDIDATE_LIMIT,
    )
