"""Streaming agent loop: classify, stream, dispatch tools, repeat."""

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator

from tenx.classifier import classify_with_default
from tenx.config import Config, ModelTier
from tenx.exceptions import AbortedError, TransportError
from tenx.llm import ChatRequest, ChatTransport, Message, StreamChunk, ToolCall, Usage
from tenx.logging import get_logger
from tenx.tools.registry import ToolRegistry, ToolResult

log = get_logger(__name__)


class RouterState(str, Enum):
    CLASSIFYING = "classifying"
    STREAMING = "streaming"
    TOOL_DISPATCH = "tool_dispatch"
    DONE = "done"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass
class StreamEvent:
    """One event emitted by an agent turn."""

    type: str  # "text", "tool_call", "tool_result", "done"
    content: str | None = None
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None
    tier: ModelTier | None = None
    usage: Usage | None = None


@dataclass
class CompletionResult:
    """Result of a non-streaming completion."""

    content: str
    tier: ModelTier
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage | None = None


@dataclass
class _PendingCall:
    id: str
    name: str
    arguments: str


class ToolCallAccumulator:
    """Reassembles streamed tool-call fragments keyed by index."""

    def __init__(self) -> None:
        self._slots: dict[int, _PendingCall] = {}

    def add(self, chunk: StreamChunk) -> None:
        for delta in chunk.tool_calls:
            existing = self._slots.get(delta.index)
            if existing is None:
                self._slots[delta.index] = _PendingCall(
                    id=delta.id or f"call_{delta.index}",
                    name=delta.name or "",
                    arguments=delta.arguments or "",
                )
            elif delta.arguments:
                existing.arguments += delta.arguments

    def calls(self) -> list[_PendingCall]:
        """Accumulated calls in first-observed order."""
        return list(self._slots.values())

    def clear(self) -> None:
        self._slots.clear()

    def __len__(self) -> int:
        return len(self._slots)


def _latest_user_message(messages: list[Message]) -> Message | None:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


def _latest_user_text(messages: list[Message]) -> str:
    message = _latest_user_message(messages)
    return message.text() if message is not None else ""


def _add_usage(total: Usage | None, extra: Usage | None) -> Usage | None:
    if extra is None:
        return total
    if total is None:
        return Usage(extra.prompt_tokens, extra.completion_tokens, extra.total_tokens)
    total.prompt_tokens += extra.prompt_tokens
    total.completion_tokens += extra.completion_tokens
    total.total_tokens += extra.total_tokens
    return total


class AgentTurn:
    """One user turn: owns the working message list and the loop state."""

    def __init__(
        self,
        router: "StreamingRouter",
        messages: list[Message],
        tier: ModelTier | None = None,
        has_images: bool | None = None,
        abort_event: asyncio.Event | None = None,
    ):
        self.router = router
        self.abort_event = abort_event or asyncio.Event()
        self.messages: list[Message] = []
        if router.system_prompt:
            self.messages.append(Message(role="system", content=router.system_prompt))
        self.messages.extend(messages)

        self.state = RouterState.CLASSIFYING
        self.requested_tier = tier
        if has_images is None:
            # Only images attached to this turn select the vision model.
            latest = _latest_user_message(messages)
            has_images = latest is not None and latest.has_images()
        self.has_images = has_images
        self.tier: ModelTier | None = None
        self.model: str | None = None
        self.provider: str | None = None
        self.usage: Usage | None = None
        self.tool_calls: list[ToolCall] = []
        # Assistant text not yet recorded in a synthetic tool-call message.
        self.reply = ""
        self._started = False

    def _check_abort(self) -> None:
        if self.abort_event.is_set():
            raise AbortedError()

    def _select_model(self) -> None:
        self.tier = self.requested_tier or self.router.classify(
            _latest_user_text(self.messages)
        )
        config = self.router.config
        if self.has_images:
            self.model = config.models.vision_model
            self.provider = None
        else:
            self.model = config.model_for_tier(self.tier)
            self.provider = config.models.providers.get(self.tier)
        log.info("Turn classified", tier=self.tier, model=self.model, images=self.has_images)

    async def run(self) -> AsyncIterator[StreamEvent]:
        """Drive the turn, yielding events until DONE.

        Raises:
            AbortedError when the abort event is observed (state ABORTED)
            TransportError on transport failure (state ERROR)
        """
        if self._started:
            raise RuntimeError("AgentTurn.run() may only be called once")
        self._started = True

        try:
            self._select_model()
            async for event in self._loop():
                yield event
            self.state = RouterState.DONE
            yield StreamEvent(type="done", tier=self.tier, usage=self.usage)
        except (AbortedError, asyncio.CancelledError):
            self.state = RouterState.ABORTED
            log.info("Turn aborted", tier=self.tier)
            raise
        except TransportError as e:
            self.state = RouterState.ERROR
            log.error("Turn failed", tier=self.tier, error=str(e), status=e.status_code)
            raise

    async def _loop(self) -> AsyncIterator[StreamEvent]:
        registry = self.router.tools
        accumulator = ToolCallAccumulator()

        while True:
            self._check_abort()
            self.state = RouterState.STREAMING
            accumulator.clear()
            content = ""
            self.reply = ""
            finish_reason: str | None = None

            request = ChatRequest(
                model=self.model or "",
                messages=list(self.messages),
                tools=registry.get_definitions() if len(registry) else None,
                provider=self.provider,
            )
            async for chunk in self.router.transport.chat_stream(request, self.abort_event):
                if chunk.content:
                    content += chunk.content
                    self.reply += chunk.content
                    yield StreamEvent(type="text", content=chunk.content, tier=self.tier)
                if chunk.tool_calls:
                    accumulator.add(chunk)
                self.usage = _add_usage(self.usage, chunk.usage)
                # Usage may arrive in a trailing chunk after the finish reason.
                if chunk.finish_reason:
                    finish_reason = chunk.finish_reason

            if finish_reason != "tool_calls" or not len(accumulator):
                return

            self.state = RouterState.TOOL_DISPATCH
            for pending in accumulator.calls():
                self._check_abort()
                async for event in self._dispatch(pending, content):
                    yield event

    async def _dispatch(self, pending: _PendingCall, content: str) -> AsyncIterator[StreamEvent]:
        parse_error: str | None = None
        try:
            arguments = json.loads(pending.arguments) if pending.arguments.strip() else {}
            if not isinstance(arguments, dict):
                parse_error = "Tool arguments must be a JSON object"
                arguments = {}
        except json.JSONDecodeError as e:
            parse_error = f"Invalid tool arguments JSON: {e}"
            arguments = {}

        call = ToolCall(id=pending.id, name=pending.name, input=arguments, status="running")
        self.tool_calls.append(call)
        yield StreamEvent(type="tool_call", tool_call=call, tier=self.tier)

        if parse_error is not None:
            result = ToolResult(success=False, error=parse_error)
        else:
            result = await self.router.tools.execute(pending.name, arguments, self.abort_event)
        call.output = result
        call.status = "success" if result.success else "error"
        yield StreamEvent(type="tool_result", tool_call=call, tool_result=result, tier=self.tier)

        self.messages.append(Message(
            role="assistant",
            content=content or None,
            tool_calls=[{
                "id": pending.id,
                "type": "function",
                "function": {"name": pending.name, "arguments": pending.arguments},
            }],
        ))
        self.messages.append(Message(
            role="tool",
            tool_call_id=pending.id,
            content=result.to_message_content(),
        ))
        self.reply = ""


class StreamingRouter:
    """Routes conversations to a model tier and runs the tool loop."""

    def __init__(
        self,
        transport: ChatTransport,
        tools: ToolRegistry | None = None,
        config: Config | None = None,
        system_prompt: str = "",
        default_tier: ModelTier | None = None,
    ):
        self.transport = transport
        self.tools = tools if tools is not None else ToolRegistry()
        self.config = config or Config()
        self.system_prompt = system_prompt
        self.default_tier: ModelTier = default_tier or self.config.models.default_tier

    def classify(self, text: str) -> ModelTier:
        return classify_with_default(text, self.default_tier)

    def start_turn(
        self,
        messages: list[Message],
        tier: ModelTier | None = None,
        has_images: bool | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> AgentTurn:
        return AgentTurn(self, messages, tier=tier, has_images=has_images, abort_event=abort_event)

    def stream(
        self,
        messages: list[Message],
        tier: ModelTier | None = None,
        has_images: bool | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        return self.start_turn(messages, tier, has_images, abort_event).run()

    async def complete(
        self,
        messages: list[Message],
        tier: ModelTier | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> CompletionResult:
        """Single non-streaming request; tool calls are returned, not executed."""
        selected = tier or self.classify(_latest_user_text(messages))
        full_messages = list(messages)
        if self.system_prompt:
            full_messages.insert(0, Message(role="system", content=self.system_prompt))

        request = ChatRequest(
            model=self.config.model_for_tier(selected),
            messages=full_messages,
            tools=self.tools.get_definitions() if len(self.tools) else None,
            provider=self.config.models.providers.get(selected),
        )
        response = await self.transport.chat(request, abort_event)

        tool_calls: list[ToolCall] = []
        for raw in response.tool_calls:
            function: dict[str, Any] = raw.get("function") or {}
            try:
                arguments = json.loads(function.get("arguments") or "{}")
            except json.JSONDecodeError:
                log.warning("Unparseable tool arguments", tool=function.get("name"))
                arguments = {}
            tool_calls.append(ToolCall(
                id=str(raw.get("id") or f"call_{len(tool_calls)}"),
                name=str(function.get("name") or ""),
                input=arguments if isinstance(arguments, dict) else {},
            ))

        return CompletionResult(
            content=response.content,
            tier=selected,
            tool_calls=tool_calls,
            usage=response.usage,
        )
