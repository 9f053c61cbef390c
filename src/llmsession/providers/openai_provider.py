# src/llmsession/providers/openai_provider.py
"""
OpenAI model invoker for the llmsession library.

Stateless requests (transcript replay and single-shot calls) go through the
Chat Completions API with the full message list. Stateful requests go
through the Responses API: the provider retains the history, the previous
response id is passed as ``previous_response_id`` and the new response id
becomes the continuation token.

Both paths run the same tool loop: each step makes one model call and runs
any tool the model requested, recording an assistant tool-call message
followed by its tool-result message. One tool call is requested per step,
and tools are disabled on the last step so a call never ends with an
unanswered tool request.
"""

import asyncio
import json
import logging
import os
import re
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from ..config.models import OpenAISettings
from ..exceptions import ConfigError, ProviderError, StructuredOutputError
from ..models import (InvocationRequest, InvocationResult, Message, Role,
                      StreamEvent, StructuredOutput, Tool, ToolCall)
from .base import BaseInvoker

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


def _schema_name(output: StructuredOutput) -> str:
    """OpenAI schema names allow letters, digits, '_' and '-', up to 64 characters."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", output.schema_name)[:64] or "response"


def _decode_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Tool arguments are not valid JSON: {raw[:200]}")
        return {}
    return decoded if isinstance(decoded, dict) else {"value": decoded}


def _assistant_steps(content: str, calls: List[ToolCall]) -> List[Message]:
    """
    One assistant message per tool call, so every call is directly followed
    by its result in the transcript. Text content stays on the first one.
    """
    if len(calls) <= 1:
        return [Message.assistant(content, calls)]
    logger.warning(f"Model returned {len(calls)} tool calls in one step; recording them one at a time.")
    return [Message.assistant(content if i == 0 else "", [call]) for i, call in enumerate(calls)]


def _add_usage(total: Dict[str, Any], usage: Any) -> None:
    if usage is None:
        return
    data = usage.model_dump() if hasattr(usage, "model_dump") else dict(vars(usage))
    for key, value in data.items():
        if isinstance(value, int):
            total[key] = total.get(key, 0) + value


class OpenAIInvoker(BaseInvoker):
    """
    Invoker for the OpenAI API.
    Handles both transcript (Chat Completions) and continuation (Responses) requests.
    """
    _client: Optional[AsyncOpenAI] = None

    def __init__(self, settings: Optional[OpenAISettings] = None, client: Optional[AsyncOpenAI] = None):
        """
        Initializes the OpenAIInvoker.

        Args:
            settings: Connection settings; api_key defaults to env var OPENAI_API_KEY.
            client: A pre-built AsyncOpenAI client (settings are then used only for the model).
        """
        settings = settings or OpenAISettings()
        self.model = settings.model or DEFAULT_MODEL
        self.timeout = settings.timeout

        if client is not None:
            self._client = client
            return

        api_key = settings.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            logger.warning("OpenAI API key not found in config or environment variable OPENAI_API_KEY. "
                           "Ensure it is set for the invoker to function.")
        try:
            self._client = AsyncOpenAI(api_key=api_key, base_url=settings.base_url, timeout=self.timeout)
            logger.debug("AsyncOpenAI client initialized.")
        except OpenAIError as e:
            logger.error(f"Failed to initialize AsyncOpenAI client: {e}", exc_info=True)
            raise ConfigError(f"OpenAI client initialization failed: {e}")

    def get_name(self) -> str:
        """Returns the provider name: 'openai'."""
        return "openai"

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            raise ProviderError(self.get_name(), "OpenAI client not initialized or already closed.")
        return self._client

    # ------------------------------------------------------------------
    # Payload formatting
    # ------------------------------------------------------------------

    @staticmethod
    def _chat_message(message: Message) -> Dict[str, Any]:
        role = Role(message.role)
        if role == Role.TOOL:
            return {"role": "tool", "tool_call_id": message.tool_call_id, "content": message.content}
        payload: Dict[str, Any] = {"role": role.value, "content": message.content}
        if message.tool_calls:
            payload["content"] = message.content or None
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in message.tool_calls
            ]
        return payload

    @staticmethod
    def _response_items(message: Message) -> List[Dict[str, Any]]:
        role = Role(message.role)
        if role == Role.TOOL:
            return [{"type": "function_call_output", "call_id": message.tool_call_id, "output": message.content}]
        items: List[Dict[str, Any]] = []
        if message.content:
            items.append({"role": role.value, "content": message.content})
        for call in message.tool_calls:
            items.append({
                "type": "function_call",
                "call_id": call.id,
                "name": call.name,
                "arguments": json.dumps(call.arguments),
            })
        return items

    @staticmethod
    def _chat_tools(tools: List[Tool]) -> List[Dict[str, Any]]:
        return [
            {"type": "function", "function": {"name": t.name, "description": t.description, "parameters": t.parameters}}
            for t in tools
        ]

    @staticmethod
    def _response_tools(tools: List[Tool]) -> List[Dict[str, Any]]:
        return [
            {"type": "function", "name": t.name, "description": t.description, "parameters": t.parameters, "strict": False}
            for t in tools
        ]

    def _chat_kwargs(self, request: InvocationRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"model": self.model, "max_completion_tokens": request.max_tokens}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.tools:
            kwargs["tools"] = self._chat_tools(request.tools)
            kwargs["parallel_tool_calls"] = False
        if request.output is not None:
            schema: Dict[str, Any] = {"name": _schema_name(request.output), "schema": request.output.json_schema(), "strict": False}
            if request.output.description:
                schema["description"] = request.output.description
            kwargs["response_format"] = {"type": "json_schema", "json_schema": schema}
        return kwargs

    def _responses_kwargs(self, request: InvocationRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"model": self.model, "max_output_tokens": request.max_tokens, "store": True}
        if request.system_instructions:
            kwargs["instructions"] = request.system_instructions
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.continuation_token:
            kwargs["previous_response_id"] = request.continuation_token
        if request.tools:
            kwargs["tools"] = self._response_tools(request.tools)
            kwargs["parallel_tool_calls"] = False
        if request.output is not None:
            fmt: Dict[str, Any] = {
                "type": "json_schema",
                "name": _schema_name(request.output),
                "schema": request.output.json_schema(),
                "strict": False,
            }
            if request.output.description:
                fmt["description"] = request.output.description
            kwargs["text"] = {"format": fmt}
        return kwargs

    def _chat_payload(self, request: InvocationRequest) -> List[Dict[str, Any]]:
        payload: List[Dict[str, Any]] = []
        if request.system_instructions:
            payload.append({"role": "system", "content": request.system_instructions})
        payload.extend(self._chat_message(m) for m in request.input_messages())
        if len(payload) == (1 if request.system_instructions else 0):
            raise ProviderError(self.get_name(), "No messages to send: request has neither messages nor prompt.")
        return payload

    def _finish(self, request: InvocationRequest, result: InvocationResult) -> InvocationResult:
        """Validate structured output, if one was requested."""
        if request.output is None:
            return result
        try:
            result.object = request.output.parse(result.text)
        except ValueError as e:
            logger.error(f"Structured output from OpenAI failed validation: {e}")
            raise StructuredOutputError(self.get_name(), request.output.schema_name, str(e))
        return result

    def _wrap_error(self, e: Exception) -> ProviderError:
        if isinstance(e, OpenAIError):
            status = getattr(e, "status_code", None)
            logger.error(f"OpenAI API error: Status {status} - {e}", exc_info=True)
            if status == 401:
                return ProviderError(self.get_name(), f"Authentication failed (Invalid API Key? Status 401): {e}")
            if status == 429:
                return ProviderError(self.get_name(), f"Rate limit exceeded (Status 429): {e}")
            return ProviderError(self.get_name(), f"OpenAI API Error (Status {status}): {e}")
        if isinstance(e, asyncio.TimeoutError):
            logger.error(f"Request to OpenAI API timed out after {self.timeout} seconds.")
            return ProviderError(self.get_name(), f"Request timed out after {self.timeout}s.")
        logger.error(f"Unexpected error during OpenAI invocation: {e}", exc_info=True)
        return ProviderError(self.get_name(), f"An unexpected error occurred: {e}")

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        client = self._require_client()
        logger.debug(f"Invoking OpenAI model '{self.model}' (stateful={request.stateful}, "
                     f"messages={len(request.messages)}, tools={len(request.tools)})")
        try:
            if request.stateful:
                result = await self._invoke_responses(client, request)
            else:
                result = await self._invoke_chat(client, request)
        except ProviderError:
            raise
        except Exception as e:
            raise self._wrap_error(e) from e
        return self._finish(request, result)

    async def _invoke_chat(self, client: AsyncOpenAI, request: InvocationRequest) -> InvocationResult:
        payload = self._chat_payload(request)
        kwargs = self._chat_kwargs(request)
        tools = self._tools_by_name(request.tools)
        produced: List[Message] = []
        usage: Dict[str, Any] = {}
        finish_reason: Optional[str] = None

        for step in range(request.max_steps):
            if tools and step == request.max_steps - 1:
                kwargs["tool_choice"] = "none"
            completion = await client.chat.completions.create(messages=payload, **kwargs)
            _add_usage(usage, completion.usage)
            choice = completion.choices[0]
            finish_reason = choice.finish_reason
            calls = [
                ToolCall(id=tc.id, name=tc.function.name, arguments=_decode_arguments(tc.function.arguments))
                for tc in (choice.message.tool_calls or [])
            ]
            if not calls:
                produced.append(Message.assistant(choice.message.content or ""))
                break
            for assistant in _assistant_steps(choice.message.content or "", calls):
                tool_message = await self._run_tool(tools, assistant.tool_calls[0])
                produced.extend([assistant, tool_message])
                payload.append(self._chat_message(assistant))
                payload.append(self._chat_message(tool_message))

        text = next((m.content for m in reversed(produced) if m.role == Role.ASSISTANT), "")
        return InvocationResult(text=text, messages=produced, finish_reason=finish_reason, usage=usage)

    async def _invoke_responses(self, client: AsyncOpenAI, request: InvocationRequest) -> InvocationResult:
        kwargs = self._responses_kwargs(request)
        kwargs["input"] = [item for m in request.input_messages() for item in self._response_items(m)]
        tools = self._tools_by_name(request.tools)
        produced: List[Message] = []
        usage: Dict[str, Any] = {}
        response = None

        for step in range(request.max_steps):
            if tools and step == request.max_steps - 1:
                kwargs["tool_choice"] = "none"
            response = await client.responses.create(**kwargs)
            _add_usage(usage, response.usage)
            calls = [
                ToolCall(id=item.call_id, name=item.name, arguments=_decode_arguments(item.arguments))
                for item in response.output
                if item.type == "function_call"
            ]
            if not calls:
                produced.append(Message.assistant(response.output_text or ""))
                break
            outputs = []
            for assistant in _assistant_steps(response.output_text or "", calls):
                tool_message = await self._run_tool(tools, assistant.tool_calls[0])
                produced.extend([assistant, tool_message])
                outputs.extend(self._response_items(tool_message))
            kwargs["previous_response_id"] = response.id
            kwargs["input"] = outputs

        text = next((m.content for m in reversed(produced) if m.role == Role.ASSISTANT), "")
        return InvocationResult(
            text=text,
            messages=produced,
            continuation_token=response.id if response is not None else None,
            finish_reason=getattr(response, "status", None),
            usage=usage,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(self, request: InvocationRequest) -> AsyncIterator[StreamEvent]:
        """
        Stream text deltas; tools and structured output are not offered to
        streamed calls.
        """
        client = self._require_client()
        try:
            if request.stateful:
                events = self._stream_responses(client, request)
            else:
                events = self._stream_chat(client, request)
            async for event in events:
                yield event
        except ProviderError:
            raise
        except Exception as e:
            raise self._wrap_error(e) from e

    async def _stream_chat(self, client: AsyncOpenAI, request: InvocationRequest) -> AsyncIterator[StreamEvent]:
        kwargs: Dict[str, Any] = {"model": self.model, "max_completion_tokens": request.max_tokens}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        stream = await client.chat.completions.create(messages=self._chat_payload(request), stream=True, **kwargs)
        parts: List[str] = []
        finish_reason: Optional[str] = None
        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            finish_reason = choice.finish_reason or finish_reason
            if choice.delta.content:
                parts.append(choice.delta.content)
                yield StreamEvent(delta=choice.delta.content)
        text = "".join(parts)
        yield StreamEvent(result=InvocationResult(
            text=text, messages=[Message.assistant(text)], finish_reason=finish_reason,
        ))

    async def _stream_responses(self, client: AsyncOpenAI, request: InvocationRequest) -> AsyncIterator[StreamEvent]:
        kwargs: Dict[str, Any] = {"model": self.model, "max_output_tokens": request.max_tokens, "store": True}
        if request.system_instructions:
            kwargs["instructions"] = request.system_instructions
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.continuation_token:
            kwargs["previous_response_id"] = request.continuation_token
        kwargs["input"] = [item for m in request.input_messages() for item in self._response_items(m)]
        stream = await client.responses.create(stream=True, **kwargs)
        parts: List[str] = []
        token: Optional[str] = None
        status: Optional[str] = None
        usage: Dict[str, Any] = {}
        async for event in stream:
            if event.type == "response.output_text.delta":
                parts.append(event.delta)
                yield StreamEvent(delta=event.delta)
            elif event.type == "response.completed":
                token = event.response.id
                status = event.response.status
                _add_usage(usage, event.response.usage)
        text = "".join(parts)
        yield StreamEvent(result=InvocationResult(
            text=text, messages=[Message.assistant(text)], continuation_token=token, finish_reason=status, usage=usage,
        ))

    async def close(self) -> None:
        """Closes the underlying OpenAI client session if applicable."""
        if self._client:
            try:
                await self._client.close()
                logger.info("OpenAIInvoker client closed successfully.")
            except RuntimeError as e:
                logger.warning(f"OpenAIInvoker client close failed: {e}")
            finally:
                self._client = None
