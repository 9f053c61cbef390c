# src/llmsession/context/base.py
"""Base class for context strategies."""

from __future__ import annotations

import abc
from typing import Generic, Optional, TypeVar

from ..models import InvocationRequest, InvocationResult
from ..sessions.codecs import ContextCodec

C = TypeVar("C")


class ContextStrategy(abc.ABC, Generic[C]):
    """
    Abstract base class for representing conversation context across turns.

    Every turn follows the same skeleton (load, invoke, persist) driven by
    the responder. A strategy decides only what the stored context looks
    like, how it is folded into the invocation request, and how the
    invocation result becomes the next stored context.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Strategy identifier, as used in configuration."""
        ...

    @property
    @abc.abstractmethod
    def codec(self) -> ContextCodec[C]:
        """Codec used to persist this strategy's context."""
        ...

    @abc.abstractmethod
    def build_request(self, context: C, prompt: str, template: InvocationRequest) -> InvocationRequest:
        """
        Produce the invocation request for a turn.

        Args:
            context: The loaded (possibly empty) context.
            prompt: The new user prompt.
            template: Request carrying instructions, tools, limits and output schema.

        Returns:
            A new request; the template is not modified.
        """
        ...

    @abc.abstractmethod
    def merge(self, request: InvocationRequest, result: InvocationResult) -> Optional[C]:
        """
        Compute the context to persist after a successful invocation.

        Args:
            request: The request that was sent.
            result: What the invocation returned.

        Returns:
            The next context, or None when there is nothing to store.
        """
        ...
