# src/llmsession/providers/base.py
"""
Abstract Base Class for model invokers.

A model invoker is the collaborator that turns one InvocationRequest into
one InvocationResult: it formats the request for a concrete provider API,
runs the tool loop, and reports every message the model produced together
with any continuation token the provider issued.
"""

import abc
import inspect
import logging
from typing import AsyncIterator, Dict, List

from ..models import InvocationRequest, InvocationResult, Message, StreamEvent, Tool, ToolCall

logger = logging.getLogger(__name__)


class BaseInvoker(abc.ABC):
    """
    Abstract Base Class for model-invocation integrations.

    Implementations must:
    - honour `request.stateful` by issuing a continuation token and accept a
      previous token through `request.continuation_token`;
    - report in `InvocationResult.messages` the complete ordered list of
      messages produced, so assistant/tool pairs can be detected downstream;
    - raise ProviderError (or a subclass) for provider failures.
    """

    @abc.abstractmethod
    def get_name(self) -> str:
        """Return the provider identifier, e.g. "openai"."""
        pass

    @abc.abstractmethod
    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        """
        Perform one model invocation, including any tool round-trips.

        Args:
            request: What to send and how.

        Returns:
            The final text or structured object, produced messages and token.

        Raises:
            ProviderError: For any provider-specific errors.
            StructuredOutputError: If a requested schema is not satisfied.
        """
        pass

    async def stream(self, request: InvocationRequest) -> AsyncIterator[StreamEvent]:
        """
        Stream an invocation as text deltas followed by one final result event.

        The default implementation performs a regular invocation and emits
        its text as a single delta; providers with native streaming override it.
        """
        result = await self.invoke(request)
        if result.text:
            yield StreamEvent(delta=result.text)
        yield StreamEvent(result=result)

    async def close(self) -> None:
        """
        Clean up any resources used by the invoker, such as network sessions.
        Invokers without resources can rely on this no-op.
        """
        pass

    @staticmethod
    def _tools_by_name(tools: List[Tool]) -> Dict[str, Tool]:
        return {tool.name: tool for tool in tools}

    async def _run_tool(self, tools: Dict[str, Tool], call: ToolCall) -> Message:
        """
        Execute a requested tool and wrap its outcome in a tool message.

        Failures are reported to the model as the tool result so the
        conversation can continue.
        """
        tool = tools.get(call.name)
        if tool is None or tool.function is None:
            logger.warning(f"Model requested tool '{call.name}' which has no callable attached.")
            return Message.tool(call.id, call.name, f"Error: tool '{call.name}' is not available.")
        try:
            value = tool.function(**call.arguments)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            logger.error(f"Tool '{call.name}' failed: {e}", exc_info=True)
            value = f"Error: {type(e).__name__}: {e}"
        logger.debug(f"Tool '{call.name}' executed for call {call.id}.")
        return Message.tool(call.id, call.name, value)
