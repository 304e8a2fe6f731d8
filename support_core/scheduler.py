"""In-process timers for membership expiry."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[], Awaitable[object]]


class ExpiryScheduler:
    """
    Deferred callbacks keyed by ``(guild_id, user_id, role_id)``.

    Timers only speed up the common case. The persisted membership records
    are the real schedule and the periodic sweep catches anything a timer
    missed, so losing timers on restart is harmless.
    """

    def __init__(self) -> None:
        self._tasks: dict[Hashable, asyncio.Task] = {}

    def schedule(self, key: Hashable, delay_seconds: float, callback: ExpiryCallback) -> asyncio.Task:
        """Run ``callback`` after ``delay_seconds``, replacing any timer for ``key``."""
        self.cancel(key)
        task = asyncio.create_task(self._run(key, max(0.0, delay_seconds), callback))
        self._tasks[key] = task
        logger.debug("Scheduled expiry for %s in %.1fs", key, delay_seconds)
        return task

    async def _run(self, key: Hashable, delay_seconds: float, callback: ExpiryCallback) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("Scheduled expiry for %s failed", key, exc_info=True)
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    def cancel(self, key: Hashable) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)

    def is_scheduled(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return len(self._tasks)
