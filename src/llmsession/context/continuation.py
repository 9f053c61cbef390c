# src/llmsession/context/continuation.py
"""Continuation-token context strategy."""

from __future__ import annotations

import logging
from typing import Optional

from ..models import InvocationRequest, InvocationResult
from ..sessions.codecs import ContinuationTokenCodec
from .base import ContextStrategy

logger = logging.getLogger(__name__)


class ContinuationTokenStrategy(ContextStrategy[Optional[str]]):
    """Let the provider keep the history and store only its latest token.

    Each turn sends just the new prompt together with the previous token (if
    any). The token returned by the provider replaces the stored one; no
    transcript is kept on this side, so nothing is trimmed.
    """

    def __init__(self) -> None:
        self._codec = ContinuationTokenCodec()

    @property
    def name(self) -> str:
        return "continuation"

    @property
    def codec(self) -> ContinuationTokenCodec:
        return self._codec

    def build_request(
        self, context: Optional[str], prompt: str, template: InvocationRequest
    ) -> InvocationRequest:
        return template.model_copy(
            update={
                "messages": [],
                "prompt": prompt,
                "continuation_token": context,
                "stateful": True,
            }
        )

    def merge(self, request: InvocationRequest, result: InvocationResult) -> Optional[str]:
        if not result.continuation_token:
            logger.warning("Invocation returned no continuation token; stored session left unchanged.")
            return None
        return result.continuation_token
