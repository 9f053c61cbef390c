# tests/providers/test_openai_invoker.py
"""
Tests for OpenAIInvoker with a mocked AsyncOpenAI client.

Covers request formatting for both APIs, the tool loop, structured output
validation, streaming and error wrapping.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from llmsession.config.models import OpenAISettings
from llmsession.exceptions import ProviderError, StructuredOutputError
from llmsession.models import InvocationRequest, Message, Role, StructuredOutput, Tool, ToolCall
from llmsession.providers.openai_provider import OpenAIInvoker
from llmsession.sessions.trimming import find_tool_pairs


class Answer(BaseModel):
    value: int


# =============================================================================
# Response builders
# =============================================================================


def chat_completion(content=None, tool_calls=None, finish_reason="stop"):
    calls = [
        SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=json.dumps(args)))
        for call_id, name, args in (tool_calls or [])
    ]
    message = SimpleNamespace(content=content, tool_calls=calls or None)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def response(response_id, text="", calls=None, status="completed"):
    output = [
        SimpleNamespace(type="function_call", call_id=call_id, name=name, arguments=json.dumps(args))
        for call_id, name, args in (calls or [])
    ]
    if text:
        output.append(SimpleNamespace(type="message"))
    return SimpleNamespace(
        id=response_id,
        output=output,
        output_text=text,
        status=status,
        usage=SimpleNamespace(input_tokens=7, output_tokens=3, total_tokens=10),
    )


class AsyncStream:
    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)


@pytest.fixture
def client():
    mock = MagicMock()
    mock.chat.completions.create = AsyncMock()
    mock.responses.create = AsyncMock()
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def invoker(client):
    return OpenAIInvoker(OpenAISettings(model="gpt-test"), client=client)


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    def test_name(self, invoker):
        assert invoker.get_name() == "openai"
        assert invoker.model == "gpt-test"

    def test_client_built_from_settings(self):
        with patch("llmsession.providers.openai_provider.AsyncOpenAI") as mock_openai:
            OpenAIInvoker(OpenAISettings(api_key="sk-test", base_url="http://localhost:1234/v1", timeout=5))
        mock_openai.assert_called_once_with(api_key="sk-test", base_url="http://localhost:1234/v1", timeout=5)

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        with patch("llmsession.providers.openai_provider.AsyncOpenAI") as mock_openai:
            OpenAIInvoker()
        assert mock_openai.call_args.kwargs["api_key"] == "sk-env"


# =============================================================================
# Chat Completions path
# =============================================================================


class TestChatInvocation:
    @pytest.mark.asyncio
    async def test_plain_reply(self, invoker, client):
        client.chat.completions.create.return_value = chat_completion("Hello!")
        request = InvocationRequest(
            system_instructions="Be brief.",
            messages=[Message.user("hi"), Message.assistant("hey"), Message.user("how are you?")],
            max_tokens=50,
            temperature=0.2,
        )

        result = await invoker.invoke(request)

        assert result.text == "Hello!"
        assert result.messages == [Message.assistant("Hello!")]
        assert result.continuation_token is None
        assert result.usage["total_tokens"] == 15
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["max_completion_tokens"] == 50
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hey"},
            {"role": "user", "content": "how are you?"},
        ]
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_prompt_only_request(self, invoker, client):
        client.chat.completions.create.return_value = chat_completion("ok")
        await invoker.invoke(InvocationRequest(prompt="single shot"))
        assert client.chat.completions.create.call_args.kwargs["messages"] == [
            {"role": "user", "content": "single shot"},
        ]

    @pytest.mark.asyncio
    async def test_empty_request_rejected(self, invoker):
        with pytest.raises(ProviderError):
            await invoker.invoke(InvocationRequest(system_instructions="x"))

    @pytest.mark.asyncio
    async def test_tool_loop(self, invoker, client):
        client.chat.completions.create.side_effect = [
            chat_completion(tool_calls=[("call_1", "weather", {"city": "Oslo"})], finish_reason="tool_calls"),
            chat_completion("It is 3C in Oslo."),
        ]
        weather = Tool(
            name="weather",
            description="Current weather",
            parameters={"type": "object", "properties": {"city": {"type": "string"}}},
            function=lambda city: {"city": city, "temp": 3},
        )

        result = await invoker.invoke(InvocationRequest(prompt="Weather in Oslo?", tools=[weather]))

        assert result.text == "It is 3C in Oslo."
        assert [m.role for m in result.messages] == [Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        assert result.messages[0].tool_calls == [ToolCall(id="call_1", name="weather", arguments={"city": "Oslo"})]
        assert json.loads(result.messages[1].content) == {"city": "Oslo", "temp": 3}
        assert result.usage["total_tokens"] == 30

        first = client.chat.completions.create.call_args_list[0].kwargs
        assert first["tools"][0] == {
            "type": "function",
            "function": {
                "name": "weather",
                "description": "Current weather",
                "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
            },
        }
        assert first["parallel_tool_calls"] is False

        second = client.chat.completions.create.call_args_list[1].kwargs["messages"]
        assert second[-2]["tool_calls"][0]["function"] == {"name": "weather", "arguments": '{"city": "Oslo"}'}
        assert second[-1] == {"role": "tool", "tool_call_id": "call_1", "content": result.messages[1].content}

    @pytest.mark.asyncio
    async def test_async_tool_function(self, invoker, client):
        async def lookup(q):
            return f"found {q}"

        client.chat.completions.create.side_effect = [
            chat_completion(tool_calls=[("c1", "lookup", {"q": "x"})]),
            chat_completion("done"),
        ]
        result = await invoker.invoke(InvocationRequest(prompt="q", tools=[Tool(name="lookup", function=lookup)]))
        assert result.messages[1].content == "found x"

    @pytest.mark.asyncio
    async def test_failing_and_unknown_tools_reported_to_model(self, invoker, client):
        def broken():
            raise RuntimeError("no network")

        client.chat.completions.create.side_effect = [
            chat_completion(tool_calls=[("c1", "broken", {})]),
            chat_completion(tool_calls=[("c2", "missing", {})]),
            chat_completion("sorry"),
        ]
        result = await invoker.invoke(InvocationRequest(prompt="q", tools=[Tool(name="broken", function=broken)]))

        assert result.messages[1].content == "Error: RuntimeError: no network"
        assert result.messages[3].content == "Error: tool 'missing' is not available."
        assert result.text == "sorry"

    @pytest.mark.asyncio
    async def test_several_calls_in_one_step_are_recorded_one_at_a_time(self, invoker, client, caplog):
        client.chat.completions.create.side_effect = [
            chat_completion(
                "Checking both.",
                tool_calls=[("c1", "weather", {"city": "Oslo"}), ("c2", "weather", {"city": "Rome"})],
                finish_reason="tool_calls",
            ),
            chat_completion("Oslo 3C, Rome 18C."),
        ]
        weather = Tool(name="weather", function=lambda city: {"Oslo": 3, "Rome": 18}[city])

        with caplog.at_level("WARNING", logger="llmsession.providers.openai_provider"):
            result = await invoker.invoke(InvocationRequest(prompt="Weather?", tools=[weather]))

        assert [m.role for m in result.messages] == [
            Role.ASSISTANT, Role.TOOL, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT,
        ]
        assert result.messages[0].content == "Checking both."
        assert [c.id for c in result.messages[0].tool_calls] == ["c1"]
        assert result.messages[1].tool_call_id == "c1"
        assert [c.id for c in result.messages[2].tool_calls] == ["c2"]
        assert result.messages[3].content == "18"
        assert find_tool_pairs(result.messages) == [0, 2]
        assert "2 tool calls in one step" in caplog.text

        sent = client.chat.completions.create.call_args_list[1].kwargs["messages"]
        assert [m["role"] for m in sent[-4:]] == ["assistant", "tool", "assistant", "tool"]
        assert [len(m["tool_calls"]) for m in sent[-4:] if m["role"] == "assistant"] == [1, 1]

    @pytest.mark.asyncio
    async def test_last_step_disables_tools(self, invoker, client):
        client.chat.completions.create.side_effect = [
            chat_completion(tool_calls=[("c1", "lookup", {})]),
            chat_completion("final"),
        ]
        await invoker.invoke(InvocationRequest(prompt="q", max_steps=2, tools=[Tool(name="lookup", function=lambda: 1)]))
        calls = client.chat.completions.create.call_args_list
        assert "tool_choice" not in calls[0].kwargs
        assert calls[1].kwargs["tool_choice"] == "none"

    @pytest.mark.asyncio
    async def test_structured_output(self, invoker, client):
        client.chat.completions.create.return_value = chat_completion('{"value": 42}')
        output = StructuredOutput(schema=Answer, name="the answer", description="A number")

        result = await invoker.invoke(InvocationRequest(prompt="6*7?", output=output))

        assert result.object == Answer(value=42)
        response_format = client.chat.completions.create.call_args.kwargs["response_format"]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["name"] == "the_answer"
        assert response_format["json_schema"]["description"] == "A number"
        assert response_format["json_schema"]["schema"] == Answer.model_json_schema()

    @pytest.mark.asyncio
    async def test_structured_output_mismatch(self, invoker, client):
        client.chat.completions.create.return_value = chat_completion('{"wrong": true}')
        with pytest.raises(StructuredOutputError) as exc_info:
            await invoker.invoke(InvocationRequest(prompt="q", output=StructuredOutput(schema=Answer)))
        assert exc_info.value.schema_name == "Answer"


# =============================================================================
# Responses path (continuation tokens)
# =============================================================================


class TestResponsesInvocation:
    @pytest.mark.asyncio
    async def test_stateful_request(self, invoker, client):
        client.responses.create.return_value = response("resp_2", text="Sure.")
        request = InvocationRequest(
            system_instructions="Be brief.", prompt="again", continuation_token="resp_1", stateful=True,
        )

        result = await invoker.invoke(request)

        assert result.text == "Sure."
        assert result.continuation_token == "resp_2"
        assert result.finish_reason == "completed"
        kwargs = client.responses.create.call_args.kwargs
        assert kwargs["previous_response_id"] == "resp_1"
        assert kwargs["instructions"] == "Be brief."
        assert kwargs["store"] is True
        assert kwargs["input"] == [{"role": "user", "content": "again"}]
        client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_first_turn_has_no_previous_id(self, invoker, client):
        client.responses.create.return_value = response("resp_1", text="Hi.")
        await invoker.invoke(InvocationRequest(prompt="hi", stateful=True))
        assert "previous_response_id" not in client.responses.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_tool_loop_chains_responses(self, invoker, client):
        client.responses.create.side_effect = [
            response("resp_a", calls=[("call_1", "lookup", {"q": "x"})]),
            response("resp_b", text="Found it."),
        ]
        request = InvocationRequest(
            prompt="find x", stateful=True, tools=[Tool(name="lookup", function=lambda q: "x-data")],
        )

        result = await invoker.invoke(request)

        assert result.continuation_token == "resp_b"
        assert result.text == "Found it."
        second = client.responses.create.call_args_list[1].kwargs
        assert second["previous_response_id"] == "resp_a"
        assert second["input"] == [{"type": "function_call_output", "call_id": "call_1", "output": "x-data"}]
        first_tools = client.responses.create.call_args_list[0].kwargs["tools"]
        assert first_tools[0]["name"] == "lookup"
        assert first_tools[0]["type"] == "function"

    @pytest.mark.asyncio
    async def test_several_calls_split_in_transcript(self, invoker, client):
        client.responses.create.side_effect = [
            response("resp_a", calls=[("call_1", "lookup", {"q": "x"}), ("call_2", "lookup", {"q": "y"})]),
            response("resp_b", text="Both found."),
        ]
        request = InvocationRequest(prompt="find", stateful=True, tools=[Tool(name="lookup", function=lambda q: q)])

        result = await invoker.invoke(request)

        assert [m.role for m in result.messages] == [
            Role.ASSISTANT, Role.TOOL, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT,
        ]
        assert find_tool_pairs(result.messages) == [0, 2]
        second = client.responses.create.call_args_list[1].kwargs
        assert [item["call_id"] for item in second["input"]] == ["call_1", "call_2"]

    @pytest.mark.asyncio
    async def test_structured_format(self, invoker, client):
        client.responses.create.return_value = response("resp_1", text='{"value": 1}')
        result = await invoker.invoke(
            InvocationRequest(prompt="q", stateful=True, output=StructuredOutput(schema=Answer))
        )
        assert result.object == Answer(value=1)
        fmt = client.responses.create.call_args.kwargs["text"]["format"]
        assert fmt["type"] == "json_schema"
        assert fmt["name"] == "Answer"


# =============================================================================
# Streaming
# =============================================================================


class TestStreaming:
    @pytest.mark.asyncio
    async def test_chat_stream(self, invoker, client):
        chunks = [
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="Hel"), finish_reason=None)]),
            SimpleNamespace(choices=[]),
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="lo"), finish_reason="stop")]),
        ]
        client.chat.completions.create.return_value = AsyncStream(chunks)

        events = [e async for e in invoker.stream(InvocationRequest(prompt="hi"))]

        assert [e.delta for e in events[:-1]] == ["Hel", "lo"]
        assert events[-1].result.text == "Hello"
        assert events[-1].result.finish_reason == "stop"
        assert client.chat.completions.create.call_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_responses_stream(self, invoker, client):
        completed = SimpleNamespace(id="resp_9", status="completed", usage=None)
        client.responses.create.return_value = AsyncStream([
            SimpleNamespace(type="response.created"),
            SimpleNamespace(type="response.output_text.delta", delta="Hi"),
            SimpleNamespace(type="response.output_text.delta", delta=" there"),
            SimpleNamespace(type="response.completed", response=completed),
        ])

        events = [e async for e in invoker.stream(InvocationRequest(prompt="hi", stateful=True,
                                                                    continuation_token="resp_8"))]

        assert "".join(e.delta for e in events) == "Hi there"
        assert events[-1].result.continuation_token == "resp_9"
        assert client.responses.create.call_args.kwargs["previous_response_id"] == "resp_8"


# =============================================================================
# Errors and cleanup
# =============================================================================


class TestErrors:
    @pytest.mark.asyncio
    async def test_timeout_wrapped(self, invoker, client):
        client.chat.completions.create.side_effect = asyncio.TimeoutError()
        with pytest.raises(ProviderError) as exc_info:
            await invoker.invoke(InvocationRequest(prompt="q"))
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, invoker, client):
        client.responses.create.side_effect = KeyError("boom")
        with pytest.raises(ProviderError) as exc_info:
            await invoker.invoke(InvocationRequest(prompt="q", stateful=True))
        assert exc_info.value.provider_name == "openai"

    @pytest.mark.asyncio
    async def test_closed_invoker(self, invoker, client):
        await invoker.close()
        client.close.assert_awaited_once()
        with pytest.raises(ProviderError):
            await invoker.invoke(InvocationRequest(prompt="q"))
