# src/llmsession/__init__.py
"""
llmsession - per-user conversational memory for LLM responders.

An AIResponder answers prompts on behalf of many users, keeping each user's
context in a cache entry with sliding expiry. Context is carried either as
a trimmed message transcript replayed on every call, or as an opaque
continuation token that lets the model provider keep the history.
"""

from importlib.metadata import PackageNotFoundError, version

from .cache import BaseCacheProvider, CacheEvent, InMemoryCacheProvider, RedisCacheProvider, create_cache_provider
from .config import CacheSettings, OpenAISettings, ResponderSettings, load_settings
from .context import ContextStrategy, ContinuationTokenStrategy, FullTranscriptStrategy, create_strategy
from .exceptions import (CacheConnectionError, CacheError, ConfigError, LLMSessionError, ProviderError,
                         SessionStorageError, StorageError, StructuredOutputError)
from .lifecycle import install_shutdown_signals
from .logging_config import configure_logging, log_display
from .models import (InvocationRequest, InvocationResult, Message, Role, StreamEvent, StructuredOutput, Tool,
                     ToolCall)
from .notifier import FaultEvent, FaultNotifier
from .providers import BaseInvoker, OpenAIInvoker
from .responder import AIResponder
from .sessions import SessionContextStore, trim_preserving_tool_pairs

try:
    __version__ = version("llmsession")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    # Core API
    "AIResponder",
    "install_shutdown_signals",
    # Models
    "Message",
    "Role",
    "Tool",
    "ToolCall",
    "StructuredOutput",
    "InvocationRequest",
    "InvocationResult",
    "StreamEvent",
    # Context and sessions
    "ContextStrategy",
    "FullTranscriptStrategy",
    "ContinuationTokenStrategy",
    "create_strategy",
    "SessionContextStore",
    "trim_preserving_tool_pairs",
    # Cache
    "BaseCacheProvider",
    "CacheEvent",
    "InMemoryCacheProvider",
    "RedisCacheProvider",
    "create_cache_provider",
    # Providers
    "BaseInvoker",
    "OpenAIInvoker",
    # Faults
    "FaultEvent",
    "FaultNotifier",
    # Configuration and logging
    "CacheSettings",
    "OpenAISettings",
    "ResponderSettings",
    "load_settings",
    "configure_logging",
    "log_display",
    # Exceptions
    "LLMSessionError",
    "ConfigError",
    "ProviderError",
    "StructuredOutputError",
    "StorageError",
    "CacheError",
    "CacheConnectionError",
    "SessionStorageError",
    "__version__",
]
