import asyncio

import pytest

from tenx.agents import (
    AgentExecutor,
    AgentParams,
    AgentRegistry,
    format_context,
    get_agent_config,
    list_agent_types,
)
from tenx.exceptions import AbortedError, TransportError
from tenx.llm import ChatTransport, Message, StreamChunk
from tenx.tools.registry import Tool, ToolRegistry, ToolResult


class ScriptedTransport(ChatTransport):
    def __init__(self, scripts: list[list[StreamChunk]]):
        self.scripts = list(scripts)
        self.requests = []

    async def chat(self, request, abort_event=None):
        raise NotImplementedError

    async def chat_stream(self, request, abort_event=None):
        self.requests.append(request)
        for chunk in self.scripts.pop(0):
            yield chunk


class BrokenTransport(ChatTransport):
    async def chat(self, request, abort_event=None):
        raise NotImplementedError

    async def chat_stream(self, request, abort_event=None):
        raise TransportError("upstream 500", status_code=500)
        yield StreamChunk()


class NamedTool(Tool):
    parameters = {"type": "object", "properties": {}, "required": []}

    def __init__(self, name: str):
        self.name = name
        self.description = name

    async def execute(self, **kwargs):
        return ToolResult(success=True, output=self.name)


def _tools() -> ToolRegistry:
    registry = ToolRegistry()
    for name in ("read", "write", "edit", "glob", "grep", "bash"):
        registry.register(NamedTool(name))
    return registry


def test_agent_catalogue():
    assert list_agent_types() == ["Explore", "Summarize", "ReviewPR", "TitleGen", "Plan"]
    plan = get_agent_config("Plan")
    assert plan is not None
    assert "write" not in plan.tools
    assert get_agent_config("Nope") is None


@pytest.mark.asyncio
async def test_explore_agent_gets_restricted_tools_and_tier():
    transport = ScriptedTransport([[StreamChunk(content="Found it", finish_reason="stop")]])
    executor = AgentExecutor(transport, _tools())

    result = await executor.execute(AgentParams(
        description="find", prompt="Where is main?", subagent_type="Explore",
    ))

    assert result.success is True
    assert result.output == "Found it"
    assert result.agent_id.startswith("agent-")

    request = transport.requests[0]
    assert [t["function"]["name"] for t in request.tools] == ["read", "glob", "grep", "bash"]
    assert request.model == executor.config.models.tiers["fast"]
    assert request.messages[0].role == "system"
    assert request.messages[0].text().endswith("Task: Where is main?")

    state = executor.registry.get(result.agent_id)
    assert state is not None
    assert state.status == "completed"


@pytest.mark.asyncio
async def test_model_override_and_resume_of_completed_agent():
    transport = ScriptedTransport([[StreamChunk(content="title", finish_reason="stop")]])
    registry = AgentRegistry()
    executor = AgentExecutor(transport, _tools(), registry=registry)

    first = await executor.execute(AgentParams(
        description="t", prompt="name it", subagent_type="TitleGen", model="smart",
    ))
    resumed = await executor.execute(AgentParams(
        description="t", prompt="name it", subagent_type="TitleGen", resume=first.agent_id,
    ))

    assert transport.requests[0].model == executor.config.models.tiers["smart"]
    assert transport.requests[0].tools is None
    assert resumed == first
    assert len(transport.requests) == 1
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_resume_of_unknown_agent_id_fails_without_running():
    transport = ScriptedTransport([[StreamChunk(content="fresh run", finish_reason="stop")]])
    registry = AgentRegistry()
    executor = AgentExecutor(transport, _tools(), registry=registry)

    result = await executor.execute(AgentParams(
        description="t", prompt="go", subagent_type="Explore", resume="agent-doesnotexist",
    ))

    assert result.success is False
    assert result.agent_id == "agent-doesnotexist"
    assert result.error == "Unknown agent id: agent-doesnotexist"
    assert transport.requests == []
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_summarize_agent_receives_conversation_context():
    transport = ScriptedTransport([[StreamChunk(content="summary", finish_reason="stop")]])
    executor = AgentExecutor(transport, _tools())
    executor.set_context([Message(role="user", content="hi"), Message(role="assistant", content="hello")])

    await executor.execute(AgentParams(description="s", prompt="Summarize", subagent_type="Summarize"))

    user_text = transport.requests[0].messages[-1].text()
    assert "user: hi\n\n---\n\nassistant: hello" in user_text
    assert user_text.endswith("Summarize")


@pytest.mark.asyncio
async def test_unknown_type_and_transport_failure_are_failed_results():
    executor = AgentExecutor(BrokenTransport(), _tools())

    unknown = await executor.execute(AgentParams(description="x", prompt="x", subagent_type="Wizard"))
    broken = await executor.execute(AgentParams(description="x", prompt="x", subagent_type="Explore"))

    assert unknown.success is False
    assert (unknown.error or "").startswith("Unknown agent type: Wizard")
    assert broken.success is False
    assert broken.error == "upstream 500"
    assert executor.registry.get(broken.agent_id).status == "error"


@pytest.mark.asyncio
async def test_abort_propagates():
    abort_event = asyncio.Event()
    abort_event.set()
    executor = AgentExecutor(ScriptedTransport([]), _tools())

    with pytest.raises(AbortedError):
        await executor.execute(
            AgentParams(description="x", prompt="x", subagent_type="Explore"),
            abort_event,
        )


def test_format_context():
    text = format_context([Message(role="user", content="a"), Message(role="assistant", content="b")])
    assert text == "user: a\n\n---\n\nassistant: b"
