# src/llmsession/sessions/codecs.py
"""
Serialization of session contexts to cache values.

Each context strategy stores a different value under the session key: the
transcript strategy a JSON array of messages, the continuation strategy a
bare provider token. A codec converts between that value and the in-memory
context, and knows what an empty context looks like.
"""

import abc
from typing import Generic, List, Optional, TypeVar

from pydantic import TypeAdapter

from ..models import Message

C = TypeVar("C")

_TRANSCRIPT_ADAPTER = TypeAdapter(List[Message])


class ContextCodec(abc.ABC, Generic[C]):
    """Converts one kind of session context to and from its cached string."""

    @abc.abstractmethod
    def empty(self) -> C:
        """The context of a session with no history."""
        pass

    @abc.abstractmethod
    def encode(self, context: C) -> str:
        pass

    @abc.abstractmethod
    def decode(self, raw: str) -> C:
        """
        Parse a cached value.

        Raises:
            ValueError: If the value is not a valid context of this kind.
        """
        pass


class TranscriptCodec(ContextCodec[List[Message]]):
    """JSON array of messages, oldest first."""

    def empty(self) -> List[Message]:
        return []

    def encode(self, context: List[Message]) -> str:
        return _TRANSCRIPT_ADAPTER.dump_json(list(context), exclude_none=True).decode("utf-8")

    def decode(self, raw: str) -> List[Message]:
        # pydantic's ValidationError subclasses ValueError
        return _TRANSCRIPT_ADAPTER.validate_json(raw)


class ContinuationTokenCodec(ContextCodec[Optional[str]]):
    """A single opaque token stored verbatim."""

    def empty(self) -> Optional[str]:
        return None

    def encode(self, context: Optional[str]) -> str:
        if not context:
            raise ValueError("Cannot store an empty continuation token")
        return context

    def decode(self, raw: str) -> Optional[str]:
        token = raw.strip()
        if not token:
            raise ValueError("Stored continuation token is blank")
        return token
