"""Chat message types and the streaming transport contract."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator

if TYPE_CHECKING:
    from tenx.tools.registry import ToolResult


@dataclass(frozen=True)
class Message:
    """A message in the conversation.

    `content` is either plain text or an ordered list of parts, each shaped
    like `{"type": "text", "text": ...}` or
    `{"type": "image_url", "image_url": {"url": ...}}`.
    """

    role: str  # "system", "user", "assistant", "tool"
    content: str | list[dict[str, Any]] | None = ""
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    def text(self) -> str:
        """Concatenated text of the message, ignoring image parts."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(
            str(part.get("text", ""))
            for part in self.content
            if isinstance(part, dict) and part.get("type") == "text"
        )

    def has_images(self) -> bool:
        if not isinstance(self.content, list):
            return False
        return any(
            isinstance(part, dict) and part.get("type") == "image_url"
            for part in self.content
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the OpenAI-compatible wire/storage shape."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = self.tool_calls
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            role=str(data.get("role", "user")),
            content=data.get("content", ""),
            tool_calls=data.get("tool_calls"),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass
class ToolCall:
    """A model-requested tool invocation within one turn."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    status: str = "pending"  # "pending", "running", "success", "error"
    output: "ToolResult | None" = None


@dataclass
class Usage:
    """Token usage reported by the upstream API."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_wire(cls, data: dict[str, Any] | None) -> "Usage | None":
        if not isinstance(data, dict):
            return None
        prompt = int(data.get("prompt_tokens", 0) or 0)
        completion = int(data.get("completion_tokens", 0) or 0)
        total = int(data.get("total_tokens", prompt + completion) or 0)
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


@dataclass
class ChatRequest:
    """A chat completion request."""

    model: str
    messages: list[Message]
    tools: list[dict[str, Any]] | None = None
    provider: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None

    def to_payload(self, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [msg.to_dict() for msg in self.messages],
            "stream": stream,
        }
        if self.tools:
            payload["tools"] = self.tools
        if self.provider:
            payload["provider"] = {"order": [self.provider]}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload


@dataclass
class ToolCallDelta:
    """A fragment of a tool call; arguments may be split across chunks."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass
class StreamChunk:
    """One incremental delta of a streaming completion."""

    content: str | None = None
    tool_calls: list[ToolCallDelta] = field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "StreamChunk":
        choices = data.get("choices") or []
        choice = choices[0] if choices and isinstance(choices[0], dict) else {}
        delta = choice.get("delta") or {}

        tool_calls: list[ToolCallDelta] = []
        for raw in delta.get("tool_calls") or []:
            function = raw.get("function") or {}
            tool_calls.append(ToolCallDelta(
                index=int(raw.get("index", 0) or 0),
                id=raw.get("id"),
                name=function.get("name"),
                arguments=function.get("arguments"),
            ))

        return cls(
            content=delta.get("content"),
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason"),
            usage=Usage.from_wire(data.get("usage")),
        )


@dataclass
class ChatResponse:
    """A complete (non-streaming) chat response."""

    content: str
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    finish_reason: str | None = None
    model: str = ""
    usage: Usage | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "ChatResponse":
        choices = data.get("choices") or []
        choice = choices[0] if choices and isinstance(choices[0], dict) else {}
        message = choice.get("message") or {}
        return cls(
            content=message.get("content") or "",
            tool_calls=list(message.get("tool_calls") or []),
            finish_reason=choice.get("finish_reason"),
            model=str(data.get("model", "")),
            usage=Usage.from_wire(data.get("usage")),
        )


class ChatTransport(ABC):
    """Abstract chat client consumed by the router."""

    @abstractmethod
    async def chat(
        self,
        request: ChatRequest,
        abort_event: asyncio.Event | None = None,
    ) -> ChatResponse:
        pass

    @abstractmethod
    def chat_stream(
        self,
        request: ChatRequest,
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamChunk]:
        pass

    async def close(self) -> None:
        return None
