# src/llmsession/sessions/store.py
"""
Session Context Store for llmsession.

This module defines the SessionContextStore class, the only component that
reads or writes session entries. Each session lives under a single cache key
(``session:<user_id>``) whose value is produced by the active strategy's
codec. Every write resets the entry's TTL, so sessions expire after a
period of inactivity rather than at a fixed time.
"""

import logging
from typing import Generic, Optional, TypeVar

from ..cache.base import BaseCacheProvider
from ..exceptions import LLMSessionError, SessionStorageError
from .codecs import ContextCodec

logger = logging.getLogger(__name__)

C = TypeVar("C")

SESSION_KEY_PREFIX = "session:"
DEFAULT_SESSION_TTL = 3600


class SessionContextStore(Generic[C]):
    """
    Loads and persists per-user session contexts through a cache provider.

    The store takes no locks. Concurrent writers to the same session are
    resolved by the provider: the last `save` wins and nothing is merged.
    """

    def __init__(
        self,
        provider: BaseCacheProvider,
        codec: ContextCodec[C],
        default_ttl: int = DEFAULT_SESSION_TTL,
    ):
        """
        Initializes the SessionContextStore.

        Args:
            provider: The shared cache provider holding session entries.
            codec: Converts contexts to and from cached strings.
            default_ttl: TTL in seconds applied when `save` is not given one.
        """
        if provider is None:
            raise LLMSessionError("SessionContextStore requires a cache provider instance.")
        if default_ttl < 1:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        self._provider = provider
        self._codec = codec
        self.default_ttl = default_ttl
        self._closed = False
        logger.debug(f"SessionContextStore initialized with cache provider: {provider.get_name()}")

    @property
    def provider(self) -> BaseCacheProvider:
        return self._provider

    @property
    def codec(self) -> ContextCodec[C]:
        return self._codec

    @property
    def closed(self) -> bool:
        return self._closed

    @staticmethod
    def session_key(user_id: str) -> str:
        """The cache key holding a user's session."""
        return f"{SESSION_KEY_PREFIX}{user_id}"

    async def load(self, user_id: str) -> C:
        """
        Retrieve a user's session context.

        A missing entry, a provider failure or an undecodable value all yield
        the codec's empty context; this method does not raise for them.

        Args:
            user_id: The user or session identifier.

        Returns:
            The stored context, or an empty one.
        """
        key = self.session_key(user_id)
        try:
            raw = await self._provider.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for '{key}'; continuing without prior context: {e}")
            return self._codec.empty()

        if raw is None:
            logger.debug(f"No stored context for '{key}'.")
            return self._codec.empty()

        try:
            context = self._codec.decode(raw)
        except ValueError as e:
            logger.warning(f"Stored context for '{key}' could not be decoded; starting fresh: {e}")
            return self._codec.empty()

        logger.debug(f"Loaded stored context for '{key}'.")
        return context

    async def save(self, user_id: str, context: C, ttl_seconds: Optional[int] = None) -> None:
        """
        Persist a user's session context, replacing any previous value.

        Args:
            user_id: The user or session identifier.
            context: The context to store.
            ttl_seconds: Expiry in seconds; defaults to the store's TTL.

        Raises:
            SessionStorageError: If the context cannot be encoded or written.
        """
        key = self.session_key(user_id)
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            raw = self._codec.encode(context)
            await self._provider.set(key, raw, ttl)
        except Exception as e:
            logger.error(f"Failed to save session '{key}': {e}")
            raise SessionStorageError(key, f"Failed to save session: {e}") from e
        logger.debug(f"Saved session '{key}' (ttl={ttl}s).")

    async def flush_and_close(self) -> bool:
        """
        Clear every entry of the provider, then close it.

        Only the first call acts; later calls return immediately.

        Returns:
            True if this call performed the flush, False if already closed.
        """
        if self._closed:
            logger.debug("flush_and_close called on an already closed store.")
            return False
        self._closed = True
        try:
            await self._provider.clear_all()
        finally:
            await self._provider.close()
        logger.info("Session cache flushed and closed.")
        return True
