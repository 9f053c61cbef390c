# src/llmsession/sessions/__init__.py
"""
Session management module for the llmsession library.

Components:
    - SessionContextStore: per-user context persistence with sliding expiry
    - ContextCodec: transcript and continuation-token value formats
    - trim_preserving_tool_pairs: boundary-safe transcript trimming
"""

from .codecs import ContextCodec, ContinuationTokenCodec, TranscriptCodec
from .store import DEFAULT_SESSION_TTL, SESSION_KEY_PREFIX, SessionContextStore
from .trimming import find_tool_pairs, trim_preserving_tool_pairs

__all__ = [
    "ContextCodec",
    "ContinuationTokenCodec",
    "TranscriptCodec",
    "SessionContextStore",
    "SESSION_KEY_PREFIX",
    "DEFAULT_SESSION_TTL",
    "find_tool_pairs",
    "trim_preserving_tool_pairs",
]
