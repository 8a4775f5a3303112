"""Task tool: launch a specialized sub-agent."""

import asyncio
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from tenx.agents import AgentParams, list_agent_types
from tenx.exceptions import AbortedError
from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult

if TYPE_CHECKING:
    from tenx.agents import AgentExecutor

log = get_logger(__name__)


class TaskTool(Tool):
    """Delegate a self-contained task to a sub-agent."""

    name = "task"
    description = (
        "Launch a specialized sub-agent for a self-contained task. The agent "
        "works with a restricted tool set and returns its final report."
    )
    timeout_seconds = 600.0
    parameters = {
        "type": "object",
        "properties": {
            "description": {
                "type": "string",
                "description": "A short (3-5 word) description of the task",
            },
            "prompt": {
                "type": "string",
                "description": "The task for the agent to perform",
            },
            "subagent_type": {
                "type": "string",
                "description": f"The type of specialized agent to use. Available: {', '.join(list_agent_types())}",
                "enum": list_agent_types(),
            },
            "run_in_background": {
                "type": "boolean",
                "description": "Set to true to run this agent in the background (not yet supported)",
            },
            "resume": {
                "type": "string",
                "description": "Optional agent ID to resume from a previous invocation",
            },
            "model": {
                "type": "string",
                "description": "Optional model tier override (superfast, fast, smart)",
                "enum": ["superfast", "fast", "smart"],
            },
        },
        "required": ["description", "prompt", "subagent_type"],
    }

    def __init__(self, executor: "AgentExecutor | None" = None):
        self.executor = executor

    async def execute(self, **kwargs: Any) -> ToolResult:
        arguments = {key: value for key, value in kwargs.items() if not key.startswith("_")}
        for field in ("description", "prompt"):
            if not arguments.get(field):
                return ToolResult(success=False, error=f"Missing required parameter: {field}")
        if not arguments.get("subagent_type"):
            return ToolResult(
                success=False,
                error=(
                    "Missing required parameter: subagent_type. "
                    f"Available types: {', '.join(list_agent_types())}"
                ),
            )

        if self.executor is None:
            return ToolResult(
                success=False,
                error="Task tool not configured. An agent executor must be set before executing agents.",
            )

        try:
            params = AgentParams.model_validate(arguments)
        except ValidationError as e:
            return ToolResult(success=False, error=f"Invalid task parameters: {e.errors()[0]['msg']}")

        if params.run_in_background:
            return ToolResult(
                success=False,
                error="Background agent execution is not yet supported. Please run agents synchronously.",
            )

        abort_event = kwargs.get("_abort_event")
        try:
            result = await self.executor.execute(
                params,
                abort_event if isinstance(abort_event, asyncio.Event) else None,
            )
        except AbortedError:
            return ToolResult(success=False, error="Agent execution was cancelled")

        if result.success:
            return ToolResult(success=True, output=f"Agent completed (ID: {result.agent_id}):\n\n{result.output}")
        return ToolResult(
            success=False,
            error=result.error or "Agent execution failed",
            output=f"Agent failed (ID: {result.agent_id}): {result.error}",
        )
