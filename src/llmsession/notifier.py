# src/llmsession/notifier.py
"""
Lifecycle and fault notification.

A single optional handler registered by the owning application receives
``(event_kind, detail)`` for cache connectivity events, invocation and cache
write failures, and the final ``clean`` event after shutdown. It is a
side channel: errors are still raised to callers where the library raises
them, and a failing handler never breaks a turn.
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional

from .cache.base import BaseCacheProvider, CacheEvent

logger = logging.getLogger(__name__)


class FaultEvent(str, Enum):
    """Event kinds delivered to the fault handler."""
    ERROR = "error"
    CONNECT = "connect"
    RECONNECTING = "reconnecting"
    END = "end"
    CLEAN = "clean"


FaultHandler = Callable[[str, Any], Any]

_CACHE_EVENT_DETAILS = {
    CacheEvent.CONNECT: "Cache connected",
    CacheEvent.RECONNECTING: "Cache reconnecting...",
    CacheEvent.END: "Cache connection closed",
}


class FaultNotifier:
    """Forwards fault and lifecycle events to the registered handler."""

    def __init__(self, handler: Optional[FaultHandler] = None) -> None:
        self._handler = handler

    @property
    def handler(self) -> Optional[FaultHandler]:
        return self._handler

    def register(self, handler: Optional[FaultHandler]) -> None:
        """Install (or with None, remove) the handler, replacing any previous one."""
        self._handler = handler

    def attach_cache(self, provider: BaseCacheProvider) -> None:
        """Forward every connectivity event of `provider` to the handler."""
        for event in CacheEvent:
            provider.subscribe(event, self._on_cache_event)

    def _on_cache_event(self, event: CacheEvent, detail: Any) -> None:
        if event == CacheEvent.ERROR:
            self.notify(FaultEvent.ERROR, f"Error with connection to Cache: {detail}")
        else:
            self.notify(FaultEvent(event.value), _CACHE_EVENT_DETAILS[event])

    def notify(self, kind: FaultEvent, detail: Any = None) -> None:
        """
        Deliver an event to the handler, if one is registered.

        Args:
            kind: The event kind.
            detail: Human-readable message or the originating exception.
        """
        kind = FaultEvent(kind)
        logger.debug(f"Fault notifier event '{kind.value}': {detail}")
        if self._handler is None:
            return
        try:
            self._handler(kind.value, detail)
        except Exception as e:
            logger.error(f"Fault handler raised while handling '{kind.value}': {e}", exc_info=True)
