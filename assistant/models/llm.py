"""LLM-related data models and types (provider-agnostic)."""

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    model_config = ConfigDict(extra="ignore")  # Anthropic blocks carry extra fields


class ImageBlockSource(BaseModel):
    """Base64 image source."""

    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class ImageBlock(BaseModel):
    """Image content block."""

    type: Literal["image"] = "image"
    source: ImageBlockSource


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    model_config = ConfigDict(extra="ignore")  # Anthropic blocks carry extra fields


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    model_config = ConfigDict(extra="ignore")


ContentBlock = TextBlock | ImageBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """A message for LLM conversation."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


@dataclass
class LLMTool:
    """Tool with both schema and callable."""

    name: str
    description: str
    input_schema: dict[str, Any]
    callable: Callable[[dict[str, Any]], Awaitable[str]]
    requires_approval: bool = False


class LLMToolDefinition(BaseModel):
    """Tool definition sent to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class LLMUsage:
    """Token/resource usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        """Accumulate another response's usage into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total_input = self.input_tokens + self.cache_read_input_tokens + self.cache_creation_input_tokens
        if total_input == 0:
            return 0.0
        return (self.cache_read_input_tokens / total_input) * 100


# Streaming events produced by an AgentModel
@dataclass
class StreamTextDelta:
    """Incremental text fragment."""

    text: str


@dataclass
class StreamMessageComplete:
    """Final assembled model response for one model call."""

    content: list[ContentBlock]
    stop_reason: str | None
    usage: LLMUsage | None = None
    model: str = ""


StreamEvent = StreamTextDelta | StreamMessageComplete


class AgentModel(Protocol):
    """Streaming tool-calling model primitive.

    Implementations yield zero or more ``StreamTextDelta`` events followed by
    exactly one ``StreamMessageComplete``.
    """

    def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> AsyncIterator[StreamEvent]: ...
