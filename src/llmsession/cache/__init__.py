# src/llmsession/cache/__init__.py
"""
Cache provider package.

Defines the key-value contract the session store runs on and its two
implementations: a process-local in-memory map and a Redis adapter.
`create_cache_provider` builds the one selected by configuration.
"""

import logging
from typing import Dict, Type

from ..config.models import CacheSettings
from ..exceptions import ConfigError
from .base import BaseCacheProvider, CacheEvent, CacheEventHandler
from .memory import InMemoryCacheConfig, InMemoryCacheProvider
from .redis_cache import RedisCacheProvider

logger = logging.getLogger(__name__)

CACHE_PROVIDER_MAP: Dict[str, Type[BaseCacheProvider]] = {
    "memory": InMemoryCacheProvider,
    "redis": RedisCacheProvider,
}


def create_cache_provider(settings: CacheSettings) -> BaseCacheProvider:
    """
    Instantiate the cache provider named by `settings.backend`.

    Raises:
        ConfigError: If the backend is unknown.
    """
    backend = settings.backend.lower()
    if backend not in CACHE_PROVIDER_MAP:
        raise ConfigError(f"Unsupported cache backend configured: '{settings.backend}'. "
                          f"Available backends: {list(CACHE_PROVIDER_MAP.keys())}")
    if backend == "redis":
        provider: BaseCacheProvider = RedisCacheProvider(settings.url, key_prefix=settings.key_prefix)
    else:
        provider = InMemoryCacheProvider(max_items=settings.max_items)
    logger.info(f"Cache backend '{backend}' configured.")
    return provider


__all__ = [
    "BaseCacheProvider",
    "CacheEvent",
    "CacheEventHandler",
    "InMemoryCacheConfig",
    "InMemoryCacheProvider",
    "RedisCacheProvider",
    "CACHE_PROVIDER_MAP",
    "create_cache_provider",
]
