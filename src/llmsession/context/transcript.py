# src/llmsession/context/transcript.py
"""Full-transcript context strategy."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..models import InvocationRequest, InvocationResult, Message, StructuredOutput
from ..sessions.codecs import TranscriptCodec
from ..sessions.trimming import trim_preserving_tool_pairs
from .base import ContextStrategy

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_BUDGET = 10


class FullTranscriptStrategy(ContextStrategy[List[Message]]):
    """Replay the stored transcript on every turn.

    The new user message and every message the invocation produced
    (assistant tool calls, tool results and the final reply) are appended
    to the transcript, which is then trimmed to the retention budget
    without separating assistant/tool pairs.
    """

    def __init__(self, retention_budget: int = DEFAULT_RETENTION_BUDGET) -> None:
        if retention_budget < 1:
            raise ValueError(f"retention_budget must be at least 1, got {retention_budget}")
        self.retention_budget = retention_budget
        self._codec = TranscriptCodec()

    @property
    def name(self) -> str:
        return "transcript"

    @property
    def codec(self) -> TranscriptCodec:
        return self._codec

    def build_request(
        self, context: List[Message], prompt: str, template: InvocationRequest
    ) -> InvocationRequest:
        return template.model_copy(
            update={
                "messages": [*context, Message.user(prompt)],
                "prompt": None,
                "continuation_token": None,
                "stateful": False,
            }
        )

    def merge(self, request: InvocationRequest, result: InvocationResult) -> Optional[List[Message]]:
        """Append the produced messages to the transcript and trim it.

        A structured result is recorded as a single assistant message holding
        its serialized form, like any other reply.
        """
        if request.output is not None:
            produced = [Message.assistant(StructuredOutput.serialize(result.object))]
        elif result.messages:
            produced = list(result.messages)
        else:
            produced = [Message.assistant(result.text)]

        transcript = [*request.messages, *produced]
        trimmed = trim_preserving_tool_pairs(transcript, self.retention_budget)
        if len(transcript) != len(trimmed):
            logger.debug(f"Transcript trimmed from {len(transcript)} to {len(trimmed)} messages.")
        return trimmed
