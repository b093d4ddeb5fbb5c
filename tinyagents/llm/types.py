"""Provider-neutral chat, streaming, embedding and tool-calling shapes."""

from __future__ import annotations

import abc
import enum
from collections.abc import Iterator
from dataclasses import dataclass, field


class Role(str, enum.Enum):
    """Author of a message in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCall:
    """A function-call request emitted by the assistant.

    ``arguments`` is the provider's own JSON text; callers parse it
    against the tool's schema before invoking the tool.
    """

    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class ToolSpec:
    """A callable tool advertised to the provider.

    ``schema`` is a JSON Schema document (as JSON text) describing the
    arguments object.
    """

    name: str
    description: str = ""
    schema: str = ""


@dataclass
class Message:
    """One element of a chat transcript.

    ``tool_calls`` is set on assistant messages that request tool
    invocation; ``tool_call_id`` names the originating call on tool-role
    messages that report a result.
    """

    role: Role
    content: str = ""
    name: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str = ""


@dataclass
class Usage:
    """Token accounting; providers that expose no counts leave zeros."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatRequest:
    """The request every adapter accepts. ``None`` means "unset"."""

    model: str = ""
    messages: list[Message] = field(default_factory=list)
    tools: list[ToolSpec] = field(default_factory=list)
    temperature: float | None = None
    max_tokens: int | None = None
    stop: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ChatResponse:
    """Outcome of a non-streaming chat call."""

    message: Message = field(default_factory=lambda: Message(Role.ASSISTANT))
    finish_reason: str = ""
    usage: Usage | None = None


@dataclass
class Chunk:
    """One frame of a streaming response.

    ``delta`` carries incremental text; ``tool_call`` is set once per
    complete tool invocation; ``finish_reason`` and ``usage`` are set on
    the terminal chunk of a turn.
    """

    delta: str = ""
    tool_call: ToolCall | None = None
    finish_reason: str = ""
    usage: Usage | None = None


@dataclass
class EmbedRequest:
    """Ask a provider to turn each input string into a vector."""

    model: str = ""
    input: list[str] = field(default_factory=list)


@dataclass
class EmbedResponse:
    """Vectors in the same order as the request's input."""

    vectors: list[list[float]] = field(default_factory=list)
    usage: Usage | None = None


@dataclass
class Model:
    """One entry of a provider's model catalog."""

    id: str
    context_tokens: int = 0
    max_output_tokens: int = 0


class ProviderError(Exception):
    """Raised when a provider call fails."""


class Provider(abc.ABC):
    """Interface every adapter satisfies; must be safe for concurrent use."""

    @abc.abstractmethod
    def name(self) -> str:
        """Short identifier used in logs and registry lookups."""

    @abc.abstractmethod
    def chat(self, request: ChatRequest) -> ChatResponse:
        """Perform a non-streaming completion."""

    @abc.abstractmethod
    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        """Perform a streaming completion, yielding chunks until the terminal one."""

    @abc.abstractmethod
    def embed(self, request: EmbedRequest) -> EmbedResponse:
        """Turn each input string into a vector."""

    @abc.abstractmethod
    def models(self) -> list[Model]:
        """List the models the provider offers."""