"""
Pydantic schemas for generate requests, messages and model responses.

All models are frozen and serialize with camelCase aliases, so the same
classes are used in Python code and at the JSON boundary. Sequence fields
are tuples: a conversation is extended by building new values, never by
mutating existing ones.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _Schema(BaseModel):
    """Base for all genloop schemas."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Role(str, Enum):
    """Author of a message."""

    SYSTEM = "system"
    USER = "user"
    MODEL = "model"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Why a model stopped producing a candidate."""

    STOP = "stop"
    LENGTH = "length"
    BLOCKED = "blocked"
    OTHER = "other"
    UNKNOWN = "unknown"


class Media(_Schema):
    """Reference to non-text content."""

    url: str = Field(..., description="URL or data URI of the media")
    content_type: Optional[str] = Field(default=None, description="MIME type")


class ToolRequest(_Schema):
    """A tool call requested by the model."""

    ref: Optional[str] = Field(
        default=None, description="Correlation token echoed back in the response"
    )
    name: str = Field(..., description="Name of the tool to call")
    input: Any = Field(default=None, description="Tool input as produced by the model")


class ToolResponse(_Schema):
    """The result of a tool call, paired with its request by ``ref``."""

    ref: Optional[str] = Field(default=None, description="Ref of the matching request")
    name: str = Field(..., description="Name of the tool that was called")
    output: Any = Field(default=None, description="Tool output or an error payload")


class Part(_Schema):
    """One piece of message content. Exactly one field is populated."""

    text: Optional[str] = None
    media: Optional[Media] = None
    tool_request: Optional[ToolRequest] = None
    tool_response: Optional[ToolResponse] = None

    @model_validator(mode="after")
    def _exactly_one_kind(self) -> "Part":
        populated = [
            name
            for name in ("text", "media", "tool_request", "tool_response")
            if getattr(self, name) is not None
        ]
        if len(populated) != 1:
            raise ValueError(
                "Part must have exactly one of text, media, toolRequest, "
                f"toolResponse (got {populated or 'none'})"
            )
        return self

    @classmethod
    def of_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def of_tool_request(
        cls, name: str, input: Any = None, ref: Optional[str] = None
    ) -> "Part":
        return cls(tool_request=ToolRequest(ref=ref, name=name, input=input))

    @classmethod
    def of_tool_response(
        cls, name: str, output: Any = None, ref: Optional[str] = None
    ) -> "Part":
        return cls(tool_response=ToolResponse(ref=ref, name=name, output=output))


class Message(_Schema):
    """A single message in a conversation."""

    role: Role
    content: tuple[Part, ...] = ()
    metadata: Optional[dict[str, Any]] = None

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.content if part.text is not None)

    @property
    def tool_request_parts(self) -> list[Part]:
        """Parts carrying a tool request, in content order."""
        return [part for part in self.content if part.tool_request is not None]


class Document(_Schema):
    """A context document supplied alongside the conversation."""

    content: tuple[Part, ...] = ()
    metadata: Optional[dict[str, Any]] = None


class OutputConfig(_Schema):
    """Desired output format of the model."""

    format: Optional[str] = Field(default=None, description="e.g. 'text' or 'json'")
    json_schema: Optional[dict[str, Any]] = Field(
        default=None, alias="schema", description="JSON Schema of the output"
    )
    constrained: Optional[bool] = None
    content_type: Optional[str] = None


class ToolDefinition(_Schema):
    """Schema surface of a tool as advertised to the model."""

    name: str
    description: str = ""
    input_schema: Optional[dict[str, Any]] = None
    output_schema: Optional[dict[str, Any]] = None


class GenerateRequest(_Schema):
    """Caller-facing request to run the generate loop."""

    model: Optional[str] = Field(default=None, description="Name of the model to use")
    messages: tuple[Message, ...] = ()
    tools: Optional[tuple[str, ...]] = Field(
        default=None, description="Names of tools the model may call"
    )
    tool_choice: Optional[str] = Field(
        default=None, description="Hint forwarded to the model; not enforced"
    )
    config: Optional[dict[str, Any]] = Field(
        default=None, description="Model parameters such as temperature"
    )
    output: Optional[OutputConfig] = None
    docs: Optional[tuple[Document, ...]] = None
    return_tool_requests: Optional[bool] = Field(
        default=None, description="Return tool requests to the caller unexecuted"
    )
    max_turns: Optional[int] = Field(
        default=None, ge=0, description="Maximum model invocations (default 5)"
    )
    step_name: Optional[str] = None


class ModelRequest(_Schema):
    """What a model receives on each turn."""

    messages: tuple[Message, ...] = ()
    config: Optional[dict[str, Any]] = None
    tools: tuple[ToolDefinition, ...] = ()
    tool_choice: Optional[str] = None
    output: Optional[OutputConfig] = None
    docs: Optional[tuple[Document, ...]] = None


class GenerationUsage(_Schema):
    """Token accounting for a model response."""

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class Candidate(_Schema):
    """One alternative produced by the model."""

    index: int = 0
    message: Message
    finish_reason: Optional[FinishReason] = None
    finish_message: Optional[str] = None


class ModelResponse(_Schema):
    """Aggregated output of one model invocation."""

    candidates: tuple[Candidate, ...] = Field(..., min_length=1)
    usage: Optional[GenerationUsage] = None
    custom: Optional[dict[str, Any]] = None

    @property
    def message(self) -> Message:
        """Message of the first candidate."""
        return self.candidates[0].message

    @property
    def text(self) -> str:
        return self.message.text

    @property
    def finish_reason(self) -> Optional[FinishReason]:
        return self.candidates[0].finish_reason


class ModelResponseChunk(_Schema):
    """Incremental fragment of a streamed candidate. Never stored."""

    index: int = 0
    role: Role = Role.MODEL
    content: tuple[Part, ...] = ()
    finish_reason: Optional[FinishReason] = None
    usage: Optional[GenerationUsage] = None

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.content if part.text is not None)
