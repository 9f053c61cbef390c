# src/llmsession/responder.py
"""
AIResponder: the public entry point of llmsession.

Each turn follows the same skeleton regardless of context strategy:
load the user's stored context, fold it into an invocation request, call
the model invoker, fold the result back into a new context and save it.
The strategy decides what the context is; the store decides where it
lives; the fault notifier reports what went wrong along the way.
"""

import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel

from .cache import create_cache_provider
from .cache.base import BaseCacheProvider
from .cache.memory import InMemoryCacheProvider
from .config.models import ResponderSettings
from .context import ContextStrategy, create_strategy
from .context.transcript import DEFAULT_RETENTION_BUDGET
from .exceptions import SessionStorageError, StorageError
from .models import InvocationRequest, InvocationResult, Role, StructuredOutput, Tool
from .notifier import FaultEvent, FaultHandler, FaultNotifier
from .providers.base import BaseInvoker
from .sessions.store import DEFAULT_SESSION_TTL, SessionContextStore

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = "You are a helpful assistant."


class AIResponder:
    """
    Answers user prompts with per-user conversational memory.

    One instance serves many users; sessions are keyed by `user_id` and
    share one cache provider. Calls for different users are independent.
    Calls for the same user are not serialized: the last save wins.
    """

    def __init__(
        self,
        invoker: BaseInvoker,
        *,
        instructions: str = DEFAULT_INSTRUCTIONS,
        strategy: Union[str, ContextStrategy[Any]] = "transcript",
        cache: Optional[BaseCacheProvider] = None,
        expire_time: int = DEFAULT_SESSION_TTL,
        length_of_context: int = DEFAULT_RETENTION_BUDGET,
        tools: Optional[List[Tool]] = None,
        max_tokens: int = 500,
        max_steps: int = 5,
        temperature: Optional[float] = None,
        fault_handler: Optional[FaultHandler] = None,
    ):
        """
        Initializes the AIResponder.

        Args:
            invoker: The model invoker used for every call.
            instructions: System instructions sent with every call.
            strategy: "transcript", "continuation" or a ContextStrategy instance.
            cache: Cache provider for session entries; an in-memory one by default.
            expire_time: Session TTL in seconds, reset on every save.
            length_of_context: Retention budget for the transcript strategy.
            tools: Tools offered to the model on non-streamed calls.
            max_tokens: Output token limit per model call.
            max_steps: Maximum model calls per turn, tool round-trips included.
            temperature: Sampling temperature, provider default when None.
            fault_handler: Optional handler for fault and lifecycle events.
        """
        if isinstance(strategy, str):
            strategy = create_strategy(strategy, length_of_context)
        self._invoker = invoker
        self._strategy = strategy
        self._cache = cache if cache is not None else InMemoryCacheProvider()
        self._store: SessionContextStore[Any] = SessionContextStore(self._cache, strategy.codec, expire_time)
        self._notifier = FaultNotifier(fault_handler)
        self._notifier.attach_cache(self._cache)
        self._template = InvocationRequest(
            system_instructions=instructions,
            tools=list(tools or []),
            max_tokens=max_tokens,
            max_steps=max_steps,
            temperature=temperature,
        )
        logger.info(f"AIResponder initialized (strategy={strategy.name}, cache={self._cache.get_name()}, "
                    f"invoker={invoker.get_name()}, ttl={expire_time}s)")

    @classmethod
    def from_settings(cls, settings: ResponderSettings, invoker: Optional[BaseInvoker] = None,
                      tools: Optional[List[Tool]] = None) -> "AIResponder":
        """
        Build a responder from configuration.

        Args:
            settings: Validated responder settings, e.g. from `load_settings()`.
            invoker: Model invoker to use; an OpenAIInvoker built from
                     `settings.openai` when omitted.
            tools: Tools offered to the model.
        """
        if invoker is None:
            from .providers.openai_provider import OpenAIInvoker
            invoker = OpenAIInvoker(settings.openai)
        return cls(
            invoker,
            instructions=settings.instructions,
            strategy=settings.context_strategy,
            cache=create_cache_provider(settings.cache),
            expire_time=settings.cache.expire_time,
            length_of_context=settings.length_of_context,
            tools=tools,
            max_tokens=settings.max_tokens,
            max_steps=settings.max_steps,
            temperature=settings.temperature,
        )

    @property
    def store(self) -> SessionContextStore[Any]:
        return self._store

    @property
    def strategy(self) -> ContextStrategy[Any]:
        return self._strategy

    @property
    def notifier(self) -> FaultNotifier:
        return self._notifier

    @property
    def invoker(self) -> BaseInvoker:
        return self._invoker

    def register_fault_handler(self, handler: Optional[Callable[[str, Any], Any]]) -> None:
        """
        Register the handler receiving `(event_kind, detail)` for fault and
        lifecycle events. Replaces any previously registered handler.
        """
        self._notifier.register(handler)

    # ------------------------------------------------------------------
    # Turn skeleton
    # ------------------------------------------------------------------

    async def _prepare(self, user_id: str, prompt: str, memory: bool,
                       output: Optional[StructuredOutput] = None,
                       offer_tools: bool = True) -> InvocationRequest:
        update: Dict[str, Any] = {"output": output}
        if not offer_tools:
            update["tools"] = []
        template = self._template.model_copy(update=update)
        if not memory:
            logger.debug(f"Memoryless call for user '{user_id}'.")
            return template.model_copy(update={"prompt": prompt, "stateful": False})
        context = await self._store.load(user_id)
        return self._strategy.build_request(context, prompt, template)

    async def _invoke(self, request: InvocationRequest) -> InvocationResult:
        try:
            return await self._invoker.invoke(request)
        except Exception as e:
            logger.error(f"Failed to get response from AI: {e}", exc_info=True)
            self._notifier.notify(FaultEvent.ERROR, e)
            raise

    async def _persist(self, user_id: str, request: InvocationRequest, result: InvocationResult) -> None:
        next_context = self._strategy.merge(request, result)
        if next_context is None:
            return
        try:
            await self._store.save(user_id, next_context)
        except SessionStorageError as e:
            logger.error(f"Session for user '{user_id}' was not updated: {e}")
            self._notifier.notify(FaultEvent.ERROR, e)

    async def _run_turn(self, user_id: str, prompt: str, memory: bool,
                        output: Optional[StructuredOutput] = None) -> InvocationResult:
        request = await self._prepare(user_id, prompt, memory, output)
        result = await self._invoke(request)
        if memory:
            await self._persist(user_id, request, result)
        return result

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get_context_response(self, user_id: str, prompt: str, *, memory: bool = True) -> InvocationResult:
        """
        Answer `prompt` in the context of the user's session.

        Args:
            user_id: Session identifier.
            prompt: The new user message.
            memory: When False, no session state is read or written for this call.

        Returns:
            The invocation result; `result.text` holds the reply.

        Raises:
            ProviderError: If the model invocation fails (after notifying the handler).
        """
        return await self._run_turn(user_id, prompt, memory)

    async def get_structured_object(
        self,
        user_id: str,
        prompt: str,
        *,
        schema: Union[Type[BaseModel], Dict[str, Any]],
        schema_name: Optional[str] = None,
        schema_description: Optional[str] = None,
        memory: bool = True,
    ) -> InvocationResult:
        """
        Like `get_context_response`, but the reply must conform to `schema`.

        The validated value is in `result.object`: an instance of `schema`
        for a pydantic model class, decoded JSON for a JSON-schema dict. It
        is recorded in the session as a serialized assistant message.

        Raises:
            StructuredOutputError: If the reply does not satisfy the schema.
        """
        output = StructuredOutput(schema=schema, name=schema_name, description=schema_description)
        return await self._run_turn(user_id, prompt, memory, output)

    async def stream_context_response(self, user_id: str, prompt: str, *,
                                      memory: bool = True) -> AsyncIterator[str]:
        """
        Stream the reply to `prompt` as text deltas.

        Once the stream completes the reply is folded into the session the
        same way `get_context_response` does. Tools are not offered.
        """
        request = await self._prepare(user_id, prompt, memory, offer_tools=False)
        result: Optional[InvocationResult] = None
        try:
            async for event in self._invoker.stream(request):
                if event.delta:
                    yield event.delta
                if event.result is not None:
                    result = event.result
        except Exception as e:
            logger.error(f"Failed to stream response from AI: {e}", exc_info=True)
            self._notifier.notify(FaultEvent.ERROR, e)
            raise
        if result is None:
            logger.warning(f"Stream for user '{user_id}' ended without a final result; session not updated.")
            return
        if memory:
            await self._persist(user_id, request, result)

    async def shutdown(self) -> None:
        """
        Flush every session from the cache, close it and the invoker, then
        emit `clean`. Only the first call has any effect.

        A cache that cannot be flushed is reported as `error` instead of
        `clean`; the cache and the invoker are closed either way.
        """
        if self._store.closed:
            return
        try:
            await self._store.flush_and_close()
        except StorageError as e:
            logger.error(f"Failed to clear session cache during shutdown: {e}")
            self._notifier.notify(FaultEvent.ERROR, e)
            return
        finally:
            try:
                await self._invoker.close()
            except Exception as e:
                logger.warning(f"Error closing model invoker during shutdown: {e}")
        self._notifier.notify(FaultEvent.CLEAN, "Cache session is cleared")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def format_tool_response(result: InvocationResult) -> Optional[str]:
        """
        Describe the first tool-calling step of a result.

        Each tool call becomes one line, ``Tool args: <json> | Tool result: <json>``,
        with the result pretty-printed when it is JSON.

        Returns:
            The rendered lines, or None when no tool ran.
        """
        step = _first_tool_step(result)
        if not step:
            return None
        lines = []
        for arguments, output in step:
            try:
                rendered = json.dumps(json.loads(output), indent=2, ensure_ascii=False)
            except (json.JSONDecodeError, TypeError):
                rendered = json.dumps(output, ensure_ascii=False)
            lines.append(f"Tool args: {json.dumps(arguments, ensure_ascii=False)} | Tool result: {rendered}")
        return "\n".join(lines)


def _first_tool_step(result: InvocationResult) -> List[Tuple[Dict[str, Any], str]]:
    """Pair the calls of the first tool-calling assistant message with their results."""
    messages = result.messages
    for index, message in enumerate(messages):
        if message.role != Role.ASSISTANT or not message.tool_calls:
            continue
        outputs = {
            m.tool_call_id: m.content
            for m in messages[index + 1:]
            if m.role == Role.TOOL
        }
        return [(call.arguments, outputs.get(call.id, "")) for call in message.tool_calls]
    return []
