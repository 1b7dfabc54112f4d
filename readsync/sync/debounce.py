import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable

from readsync.config import DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)


class Debouncer:
    """Keyed delayed calls. Rescheduling a key cancels the call pending for it."""

    def __init__(self, delay: float = DEBOUNCE_SECONDS) -> None:
        self.delay = delay
        self._tasks: dict[Hashable, asyncio.Task] = {}

    def schedule(self, key: Hashable, func: Callable[[], Awaitable]) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.create_task(self._run(key, func))
        self._tasks[key] = task
        return task

    def pending(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def cancel(self, key: Hashable) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)

    async def join(self) -> None:
        """Wait for every pending call to fire or be cancelled."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, key: Hashable, func: Callable[[], Awaitable]) -> None:
        try:
            await asyncio.sleep(self.delay)
            await func()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Debounced call for %r failed", key)
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
