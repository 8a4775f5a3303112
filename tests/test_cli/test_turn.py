from pathlib import Path

import pytest

from tenx.llm import ChatTransport, StreamChunk, ToolCallDelta
from tenx.main import _run_turn
from tenx.router import StreamingRouter
from tenx.session import SessionManager
from tenx.tools.registry import Tool, ToolRegistry, ToolResult


class ScriptedTransport(ChatTransport):
    def __init__(self, scripts: list[list[StreamChunk]]):
        self.scripts = list(scripts)

    async def chat(self, request, abort_event=None):
        raise AssertionError("not used")

    async def chat_stream(self, request, abort_event=None):
        for chunk in self.scripts.pop(0):
            yield chunk


class OkTool(Tool):
    name = "ok"
    description = "Always succeeds"
    parameters = {"type": "object", "properties": {}}

    async def execute(self, **kwargs):
        return ToolResult(success=True, output="ok")


@pytest.mark.asyncio
async def test_turn_stores_text_before_tool_call_once(tmp_path: Path):
    transport = ScriptedTransport([
        [
            StreamChunk(content="Hello"),
            StreamChunk(
                tool_calls=[ToolCallDelta(index=0, id="call_1", name="ok", arguments="{}")],
                finish_reason="tool_calls",
            ),
        ],
        [StreamChunk(content=" Done", finish_reason="stop")],
    ])
    tools = ToolRegistry(tmp_path)
    tools.register(OkTool())
    router = StreamingRouter(transport, tools=tools)
    sessions = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        await _run_turn(router, sessions, "go", tmp_path)
        stored = await sessions.require(sessions.current.id)
    finally:
        await sessions.close()

    assert [(m.role, m.text()) for m in stored.messages] == [
        ("user", "go"),
        ("assistant", "Hello"),
        ("tool", "ok"),
        ("assistant", " Done"),
    ]


@pytest.mark.asyncio
async def test_text_only_turn_stores_full_reply(tmp_path: Path):
    transport = ScriptedTransport([
        [StreamChunk(content="Hel"), StreamChunk(content="lo", finish_reason="stop")],
    ])
    router = StreamingRouter(transport)
    sessions = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        await _run_turn(router, sessions, "hi", tmp_path)
        messages = sessions.current.messages
    finally:
        await sessions.close()

    assert [(m.role, m.text()) for m in messages] == [("user", "hi"), ("assistant", "Hello")]
