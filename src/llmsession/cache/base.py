# src/llmsession/cache/base.py
"""
Abstract Base Class for cache providers.

This module defines the key-value contract every cache backend must satisfy
so that the session store can depend on the interface alone: string values,
per-key expiry, bulk clearing at shutdown, resource release, and
subscription to connectivity events.
"""

import abc
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class CacheEvent(str, Enum):
    """Connectivity events a cache provider may emit."""
    ERROR = "error"
    CONNECT = "connect"
    RECONNECTING = "reconnecting"
    END = "end"


CacheEventHandler = Callable[[CacheEvent, Any], None]


class BaseCacheProvider(abc.ABC):
    """
    Abstract Base Class for key-value cache providers.

    Implementations must make a `set` observable by any later `get` on the
    same key from every caller sharing the provider, and must return None
    (never raise) for a key that is missing or expired.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[CacheEvent, List[CacheEventHandler]] = {}

    @abc.abstractmethod
    def get_name(self) -> str:
        """Return the provider identifier, e.g. "memory" or "redis"."""
        pass

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Retrieve a value by key.

        Args:
            key: The key to look up.

        Returns:
            The stored string, or None if the key is absent or expired.
        """
        pass

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """
        Insert or replace a value and reset its expiry.

        Args:
            key: The key to store under.
            value: The string value.
            ttl_seconds: Seconds until the entry expires.
        """
        pass

    @abc.abstractmethod
    async def clear_all(self) -> None:
        """Remove every key this provider manages. Used at shutdown."""
        pass

    @abc.abstractmethod
    async def close(self) -> None:
        """Release provider resources such as network connections."""
        pass

    def subscribe(self, event: CacheEvent, handler: CacheEventHandler) -> None:
        """
        Register a handler for a connectivity event.

        Args:
            event: The event kind to listen for.
            handler: Called as handler(event, detail) when the event fires.
        """
        self._subscribers.setdefault(CacheEvent(event), []).append(handler)

    def _emit(self, event: CacheEvent, detail: Any = None) -> None:
        """Deliver an event to its subscribers; handler failures are logged."""
        for handler in self._subscribers.get(event, []):
            try:
                handler(event, detail)
            except Exception as e:
                logger.error(f"Cache event handler for '{event.value}' failed: {e}", exc_info=True)
