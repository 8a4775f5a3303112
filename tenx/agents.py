"""Typed sub-agents with restricted tool sets, run by the task tool."""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from tenx.config import Config, ModelTier
from tenx.exceptions import AbortedError, TenxError
from tenx.llm import ChatTransport, Message
from tenx.logging import get_logger
from tenx.router import StreamingRouter
from tenx.tools.registry import ToolRegistry

log = get_logger(__name__)

AgentStatus = Literal["running", "completed", "error", "background"]


@dataclass(frozen=True)
class AgentConfig:
    """Static definition of an agent type."""

    prompt: str
    tools: tuple[str, ...]
    default_tier: ModelTier
    description: str
    read_only: bool = True


AGENT_CONFIGS: dict[str, AgentConfig] = {
    "Explore": AgentConfig(
        prompt="You are a fast codebase exploration agent. Find files, read code and report concise findings.",
        tools=("read", "glob", "grep", "bash"),
        default_tier="fast",
        description="Fast agent specialized for exploring codebases",
    ),
    "Summarize": AgentConfig(
        prompt="Summarize the conversation, keeping decisions, file paths and open tasks.",
        tools=(),
        default_tier="fast",
        description="Summarizes conversation context",
    ),
    "ReviewPR": AgentConfig(
        prompt="Review the code changes for bugs, risks and style issues. Be specific.",
        tools=("read", "glob", "grep", "bash"),
        default_tier="smart",
        description="Reviews pull requests and code changes",
    ),
    "TitleGen": AgentConfig(
        prompt="Generate a short session title (max 6 words) and a kebab-case branch name.",
        tools=(),
        default_tier="superfast",
        description="Generates session titles and branch names",
    ),
    "Plan": AgentConfig(
        # The task prompt is used directly.
        prompt="",
        tools=("read", "glob", "grep"),
        default_tier="smart",
        description="Plans implementation approaches",
    ),
}


def list_agent_types() -> list[str]:
    return list(AGENT_CONFIGS)


def get_agent_config(agent_type: str) -> AgentConfig | None:
    return AGENT_CONFIGS.get(agent_type)


class AgentParams(BaseModel):
    """Arguments of a task tool invocation."""

    model_config = ConfigDict(extra="ignore")

    description: str
    prompt: str
    subagent_type: str
    run_in_background: bool = False
    resume: str | None = None
    model: ModelTier | None = None


class AgentResult(BaseModel):
    success: bool
    output: str = ""
    agent_id: str
    error: str | None = None


@dataclass
class AgentState:
    """Bookkeeping for one task invocation."""

    id: str
    type: str
    params: AgentParams
    messages: list[Message] = field(default_factory=list)
    status: AgentStatus = "running"
    result: AgentResult | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def generate_agent_id() -> str:
    return f"agent-{uuid.uuid4().hex[:12]}"


class AgentRegistry:
    """Agent states by id, so agents can be resumed."""

    def __init__(self) -> None:
        self._states: dict[str, AgentState] = {}

    def create(self, agent_id: str, agent_type: str, params: AgentParams) -> AgentState:
        state = AgentState(id=agent_id, type=agent_type, params=params)
        self._states[agent_id] = state
        return state

    def get(self, agent_id: str) -> AgentState | None:
        return self._states.get(agent_id)

    def finish(self, state: AgentState, result: AgentResult) -> None:
        state.status = "completed" if result.success else "error"
        state.result = result
        state.updated_at = datetime.now(UTC)

    def clear(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)


def format_context(messages: list[Message]) -> str:
    """Render messages as `role: content` blocks for the summarizer."""
    return "\n\n---\n\n".join(f"{message.role}: {message.text()}" for message in messages)


class AgentExecutor:
    """Runs sub-agents through their own router turn."""

    def __init__(
        self,
        transport: ChatTransport,
        tools: ToolRegistry,
        config: Config | None = None,
        registry: AgentRegistry | None = None,
    ):
        self.transport = transport
        self.tools = tools
        self.config = config or Config()
        self.registry = registry if registry is not None else AgentRegistry()
        self.context: list[Message] = []

    def set_context(self, messages: list[Message]) -> None:
        """Conversation the Summarize agent works on."""
        self.context = list(messages)

    def _build_messages(self, agent_type: str, params: AgentParams) -> list[Message]:
        if agent_type == "Summarize" and self.context:
            return [Message(
                role="user",
                content=(
                    "Here is the conversation to summarize:\n\n"
                    f"{format_context(self.context)}\n\n---\n\n{params.prompt}"
                ),
            )]
        return [Message(role="user", content=params.prompt)]

    async def execute(
        self,
        params: AgentParams,
        abort_event: asyncio.Event | None = None,
    ) -> AgentResult:
        """Run an agent to completion and return its collected text output.

        Raises:
            AbortedError if the abort event fires during the run
        """
        agent_id = params.resume or generate_agent_id()
        agent_config = get_agent_config(params.subagent_type)
        if agent_config is None:
            return AgentResult(
                success=False,
                agent_id=agent_id,
                error=(
                    f"Unknown agent type: {params.subagent_type}. "
                    f"Available types: {', '.join(list_agent_types())}"
                ),
            )

        if params.resume:
            existing = self.registry.get(params.resume)
            if existing is None:
                return AgentResult(
                    success=False,
                    agent_id=agent_id,
                    error=f"Unknown agent id: {params.resume}",
                )
            if existing.status == "completed" and existing.result:
                log.info("Resuming completed agent", agent_id=agent_id)
                return existing.result

        state = self.registry.create(agent_id, params.subagent_type, params)
        system_prompt = (
            f"{agent_config.prompt}\n\nTask: {params.prompt}" if agent_config.prompt else params.prompt
        )
        router = StreamingRouter(
            transport=self.transport,
            tools=self.tools.subset(list(agent_config.tools)),
            config=self.config,
            system_prompt=system_prompt,
        )
        tier = params.model or agent_config.default_tier
        log.info("Launching agent", agent_id=agent_id, type=params.subagent_type, tier=tier)

        try:
            turn = router.start_turn(
                self._build_messages(params.subagent_type, params),
                tier=tier,
                has_images=False,
                abort_event=abort_event,
            )
            output = ""
            async for event in turn.run():
                if event.type == "text" and event.content:
                    output += event.content
            state.messages = turn.messages
            result = AgentResult(success=True, output=output, agent_id=agent_id)
        except AbortedError:
            state.status = "error"
            state.result = AgentResult(success=False, agent_id=agent_id, error="Agent execution was cancelled")
            raise
        except TenxError as e:
            log.error("Agent failed", agent_id=agent_id, error=str(e))
            result = AgentResult(success=False, agent_id=agent_id, error=str(e))

        self.registry.finish(state, result)
        return result
