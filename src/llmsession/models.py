# src/llmsession/models.py
"""
Core data models for the llmsession library.

This module defines the Pydantic models shared by the cache, session,
context-strategy and provider layers: conversation messages and roles,
tool definitions, structured-output requests, and the request/result
envelope exchanged with the model-invocation collaborator.
"""

import json
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError, field_validator


class Role(str, Enum):
    """
    Enumeration of possible roles in a conversation.
    These roles define the origin or type of a message.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def _missing_(cls, value: object): # type: ignore[misc] # Pydantic uses this signature
        """
        Handles case-insensitive matching and common aliases for roles.
        For example, "Agent" or "AGENT" will be mapped to Role.ASSISTANT.
        """
        if isinstance(value, str):
            lower_value = value.lower()
            if lower_value == "agent":
                return cls.ASSISTANT
            for member in cls:
                if member.value == lower_value:
                    return member
        return None # Let Pydantic handle the error for truly invalid values


class ToolCall(BaseModel):
    """
    A single tool invocation requested by the assistant.

    Attributes:
        id: Provider-issued identifier linking the call to its result.
        name: Name of the tool to run.
        arguments: Decoded arguments for the tool.
    """
    id: str = Field(description="Identifier of the tool call, echoed by the tool result.")
    name: str = Field(description="Name of the tool being called.")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments for the tool.")

    class Config:
        frozen = True


class Message(BaseModel):
    """
    Represents a single element of a conversation transcript.

    Messages are immutable once created; a transcript only grows by
    appending new messages and only shrinks by trimming its oldest ones.

    Attributes:
        role: The role of the entity that produced the message.
        content: The textual content (may be empty for pure tool-call messages).
        tool_calls: Tool invocations requested by an assistant message.
        tool_call_id: For tool messages, the id of the call this result answers.
        name: For tool messages, the name of the tool that produced the result.
    """
    role: Role = Field(description="The role of the message sender.")
    content: str = Field(default="", description="The textual content of the message.")
    tool_calls: List[ToolCall] = Field(default_factory=list, description="Tool calls requested by the assistant.")
    tool_call_id: Optional[str] = Field(default=None, description="Tool call answered by this tool message.")
    name: Optional[str] = Field(default=None, description="Tool name for tool messages.")

    class Config:
        """Pydantic model configuration."""
        use_enum_values = True
        frozen = True

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v: Any) -> str:
        """Accept None and non-string payloads, storing them as text."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v
        return json.dumps(v, ensure_ascii=False, default=str)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, tool_call_id: str, name: str, content: Any) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)

    @property
    def is_tool_call(self) -> bool:
        """True for assistant messages that requested at least one tool."""
        return self.role == Role.ASSISTANT and bool(self.tool_calls)


class Tool(BaseModel):
    """
    A tool the model may call during an invocation.

    Attributes:
        name: Unique tool name exposed to the model.
        description: What the tool does, shown to the model.
        parameters: JSON schema of the tool arguments.
        function: Optional callable (sync or async) run by the invoker's tool loop.
                  It receives the decoded arguments as keyword arguments.
    """
    name: str = Field(description="Name of the tool.")
    description: str = Field(default="", description="Human-readable description of the tool.")
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema describing the tool arguments.",
    )
    function: Optional[Callable[..., Any]] = Field(default=None, exclude=True, description="Callable executing the tool.")


class StructuredOutput(BaseModel):
    """
    A caller-supplied schema the model response must conform to.

    The schema is either a Pydantic model class (results are validated into
    an instance of it) or a plain JSON-schema dictionary (results are returned
    as decoded JSON).
    """
    schema_: Union[Type[BaseModel], Dict[str, Any]] = Field(alias="schema", description="Pydantic model class or JSON schema.")
    name: Optional[str] = Field(default=None, description="Name of the schema, sent to the model.")
    description: Optional[str] = Field(default=None, description="Description of the schema, sent to the model.")

    class Config:
        arbitrary_types_allowed = True
        populate_by_name = True

    @property
    def schema_name(self) -> str:
        if self.name:
            return self.name
        if isinstance(self.schema_, type):
            return self.schema_.__name__
        return str(self.schema_.get("title") or "response")

    def json_schema(self) -> Dict[str, Any]:
        """Return the JSON schema for the expected response."""
        if isinstance(self.schema_, type) and issubclass(self.schema_, BaseModel):
            return self.schema_.model_json_schema()
        return dict(self.schema_)

    def parse(self, raw_text: str) -> Any:
        """
        Decode and validate raw model output against the schema.

        Raises:
            ValueError: If the text is not valid JSON or does not match the model.
        """
        try:
            payload = json.loads(raw_text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Response is not valid JSON: {e}") from e
        if isinstance(self.schema_, type) and issubclass(self.schema_, BaseModel):
            try:
                return self.schema_.model_validate(payload)
            except ValidationError as e:
                raise ValueError(str(e)) from e
        return payload

    @staticmethod
    def serialize(obj: Any) -> str:
        """Render a structured result as text for storage in a transcript."""
        if isinstance(obj, BaseModel):
            return obj.model_dump_json()
        if isinstance(obj, str):
            return obj
        return json.dumps(obj, ensure_ascii=False, default=str)


class InvocationRequest(BaseModel):
    """
    Everything the model-invocation collaborator needs for a single call.

    For transcript replay, `messages` carries the prior transcript followed by
    the new user message. For continuation replay or single-shot calls,
    `prompt` carries the new user text and `continuation_token` (if any) the
    provider handle for the retained history.
    """
    system_instructions: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
    prompt: Optional[str] = None
    continuation_token: Optional[str] = None
    stateful: bool = Field(default=False, description="Ask the provider to retain history and issue a continuation token.")
    tools: List[Tool] = Field(default_factory=list)
    max_tokens: int = Field(default=500, ge=1)
    max_steps: int = Field(default=5, ge=1)
    temperature: Optional[float] = None
    output: Optional[StructuredOutput] = None

    def input_messages(self) -> List[Message]:
        """The conversation to submit: prior messages plus the prompt, if any."""
        if self.prompt is None:
            return list(self.messages)
        return [*self.messages, Message.user(self.prompt)]


class InvocationResult(BaseModel):
    """
    Outcome of a single model invocation.

    Attributes:
        text: Final assistant text.
        object: Validated structured result when an output schema was requested.
        messages: Every message produced during the invocation, in order,
                  including intermediate assistant tool calls and tool results.
        continuation_token: Provider handle for the server-side history, if issued.
        finish_reason: Provider-reported reason the generation stopped.
        usage: Aggregated token usage reported by the provider.
    """
    text: str = ""
    object: Any = None
    messages: List[Message] = Field(default_factory=list)
    continuation_token: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        arbitrary_types_allowed = True


class StreamEvent(BaseModel):
    """A chunk of a streamed invocation: a text delta, or the final result."""
    delta: str = ""
    result: Optional[InvocationResult] = None
