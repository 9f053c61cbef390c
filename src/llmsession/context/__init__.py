# src/llmsession/context/__init__.py
"""
Context strategies.

Two interchangeable ways of carrying conversation context between turns:
    - transcript: replay the stored, trimmed message history
    - continuation: replay an opaque provider token; history stays server-side

`create_strategy` builds one by name.
"""

from typing import Any

from .base import ContextStrategy
from .continuation import ContinuationTokenStrategy
from .transcript import DEFAULT_RETENTION_BUDGET, FullTranscriptStrategy


def create_strategy(name: str, retention_budget: int = DEFAULT_RETENTION_BUDGET) -> ContextStrategy[Any]:
    """
    Build a context strategy by name.

    Raises:
        ValueError: If the name is unknown.
    """
    normalized = name.lower()
    if normalized == "transcript":
        return FullTranscriptStrategy(retention_budget)
    if normalized == "continuation":
        return ContinuationTokenStrategy()
    raise ValueError(f"Unknown context strategy '{name}'. Available: ['transcript', 'continuation']")


__all__ = [
    "ContextStrategy",
    "ContinuationTokenStrategy",
    "FullTranscriptStrategy",
    "DEFAULT_RETENTION_BUDGET",
    "create_strategy",
]
