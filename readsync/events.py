"""In-process change notifications.

Presentation layers (live activity, widgets) subscribe here instead of
observing the store directly.
"""

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger(__name__)

LIVE_ACTIVITY_END = "live_activity_end"
ACTIVE_SESSION_CHANGED = "active_session_changed"
SESSION_RECEIVED = "session_received"
LIBRARY_SYNCED = "library_synced"
PROFILE_SETTINGS_CHANGED = "profile_settings_changed"
PROFILE_STATS_CHANGED = "profile_stats_changed"


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable]] = defaultdict(list)

    def subscribe(self, event: str, handler: Callable) -> Callable[[], None]:
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    async def emit(self, event: str, **payload) -> None:
        for handler in list(self._handlers[event]):
            try:
                result = handler(**payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for %s failed", event)
