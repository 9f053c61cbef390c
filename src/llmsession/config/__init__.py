# src/llmsession/config/__init__.py
"""
Configuration module for the llmsession library.

Settings are loaded from a packaged ``default_config.toml``, an optional
user TOML file, ``LLMSESSION_``-prefixed environment variables and explicit
overrides, and validated by pydantic-settings.

Environment variables:
    - Prefix: LLMSESSION_
    - Nested keys use double underscores: LLMSESSION_CACHE__BACKEND=redis
"""

from .loader import load_settings
from .models import CacheSettings, LoggingSettings, OpenAISettings, ResponderSettings

__all__ = [
    "CacheSettings",
    "LoggingSettings",
    "OpenAISettings",
    "ResponderSettings",
    "load_settings",
]
