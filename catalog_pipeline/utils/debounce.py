"""Keyed debouncing for coalescing bursts of writes into one."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DebouncedFn = Callable[[], Awaitable[None]]


class DebounceScheduler:
    """Process-local, last-writer-wins timers keyed by a logical target.

    Only the most recently scheduled function for a key ever runs. State lives
    in this instance's memory: separate worker processes keep separate timers,
    so the same key may still be written once per process.
    """

    def __init__(self) -> None:
        self._pending: dict[str, tuple[asyncio.Task[None], DebouncedFn]] = {}

    def schedule(self, key: str, fn: DebouncedFn, delay_ms: int) -> None:
        """Replace any pending call for ``key`` with ``fn`` after ``delay_ms``."""
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(
            self._fire(key, fn, delay_ms / 1000),
            name=f"debounce:{key}",
        )
        self._pending[key] = (task, fn)

    def cancel(self, key: str) -> bool:
        """Abort the pending call for ``key``. Returns True when one existed."""
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def shutdown(self) -> None:
        """Cancel every pending timer without running it."""
        for task, _fn in self._pending.values():
            task.cancel()
        self._pending.clear()

    async def flush(self) -> None:
        """Run every pending call now instead of waiting for its timer."""
        pending, self._pending = self._pending, {}
        for key, (task, fn) in pending.items():
            task.cancel()
            await self._run(key, fn)

    def __len__(self) -> int:
        return len(self._pending)

    async def _fire(self, key: str, fn: DebouncedFn, delay: float) -> None:
        await asyncio.sleep(delay)

        # Once fired the call is no longer pending: a new schedule() for the
        # same key arms a fresh timer instead of cancelling this write.
        entry = self._pending.get(key)
        if entry is not None and entry[0] is asyncio.current_task():
            del self._pending[key]

        await self._run(key, fn)

    @staticmethod
    async def _run(key: str, fn: DebouncedFn) -> None:
        try:
            await fn()
        except Exception:
            logger.exception("Debounced update failed", extra={"key": key})
