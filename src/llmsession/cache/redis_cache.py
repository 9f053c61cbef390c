# src/llmsession/cache/redis_cache.py
"""
Redis cache provider.

Adapts an asyncio Redis client (`redis.asyncio`) to the cache contract so
that sessions can be shared by every process pointing at the same Redis
instance. The client connection pool is a shared, process-wide resource;
individual GET/SET calls rely on Redis' own atomicity and no locking is
performed here.

Connectivity events are derived from command outcomes:
- ``connect``: the first successful command (or `connect()` ping), and the
  first success after a lost connection.
- ``error``: any failed command.
- ``reconnecting``: the first command attempted after a connection loss, once
  per outage until a command succeeds again.
- ``end``: `close()` released the pool.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..exceptions import CacheConnectionError, CacheError
from .base import BaseCacheProvider, CacheEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
_CLEAR_BATCH_SIZE = 500


class RedisCacheProvider(BaseCacheProvider):
    """
    Cache provider backed by a Redis server.

    Either pass a ready `redis.asyncio.Redis` client or a URL from which one
    is created with `decode_responses=True`. When `key_prefix` is set every
    key is namespaced with it and `clear_all()` deletes only those keys;
    otherwise `clear_all()` flushes the selected database.
    """

    def __init__(
        self,
        url: str = DEFAULT_REDIS_URL,
        *,
        client: Optional[Redis] = None,
        key_prefix: str = "",
        **client_kwargs: Any,
    ):
        """
        Initializes the RedisCacheProvider.

        Args:
            url: Redis connection URL, used when no client is supplied.
            client: A pre-built asyncio Redis client.
            key_prefix: Optional namespace prepended to every key.
            **client_kwargs: Extra arguments for `Redis.from_url`.
        """
        super().__init__()
        self.url = url
        self.key_prefix = key_prefix
        if client is None:
            client_kwargs.setdefault("decode_responses", True)
            client = Redis.from_url(url, **client_kwargs)
        self._client = client
        self._connected = False
        self._connection_lost = False
        self._reconnecting = False
        self._closed = False
        logger.debug(f"RedisCacheProvider initialized for '{url}' (prefix='{key_prefix}')")

    def get_name(self) -> str:
        return "redis"

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _execute(self, op_name: str, call: Callable[[], Awaitable[T]]) -> T:
        """
        Run a Redis command, translating outcomes into events and errors.

        Raises:
            CacheConnectionError: If Redis cannot be reached.
            CacheError: For any other Redis failure.
        """
        if self._closed:
            raise CacheError(f"Redis cache is closed; cannot run {op_name}.")
        if self._connection_lost and not self._reconnecting:
            self._reconnecting = True
            self._emit(CacheEvent.RECONNECTING, f"Retrying Redis connection for {op_name}")
        try:
            result = await call()
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error(f"Redis connection failure during {op_name}: {e}")
            self._connected = False
            self._connection_lost = True
            self._emit(CacheEvent.ERROR, e)
            raise CacheConnectionError(f"Redis {op_name} failed: {e}") from e
        except RedisError as e:
            logger.error(f"Redis error during {op_name}: {e}")
            self._emit(CacheEvent.ERROR, e)
            raise CacheError(f"Redis {op_name} failed: {e}") from e

        if not self._connected:
            self._connected = True
            self._connection_lost = False
            self._reconnecting = False
            self._emit(CacheEvent.CONNECT, self.url)
        return result

    async def connect(self) -> None:
        """Ping the server so connection problems surface at startup."""
        await self._execute("PING", self._client.ping)
        logger.info(f"Connected to Redis at '{self.url}'")

    async def get(self, key: str) -> Optional[str]:
        value = await self._execute("GET", lambda: self._client.get(self._key(key)))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        await self._execute("SET", lambda: self._client.set(self._key(key), value, ex=ttl_seconds))

    async def clear_all(self) -> None:
        if not self.key_prefix:
            await self._execute("FLUSHDB", self._client.flushdb)
            logger.info("Flushed Redis database")
            return

        async def _delete_prefixed() -> int:
            deleted = 0
            batch: List[str] = []
            async for key in self._client.scan_iter(match=f"{self.key_prefix}*"):
                batch.append(key)
                if len(batch) >= _CLEAR_BATCH_SIZE:
                    deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._client.delete(*batch)
            return deleted

        deleted = await self._execute("CLEAR", _delete_prefixed)
        logger.info(f"Deleted {deleted} Redis keys with prefix '{self.key_prefix}'")

    async def close(self) -> None:
        if self._closed:
            logger.debug("Redis cache already closed")
            return
        self._closed = True
        try:
            await self._client.aclose()
        except RedisError as e:
            logger.error(f"Error closing Redis client: {e}", exc_info=True)
            self._emit(CacheEvent.ERROR, e)
        self._connected = False
        self._emit(CacheEvent.END, self.url)
        logger.info("Redis cache connection closed")
