"""Tools package for tenx."""

from pathlib import Path

from tenx.config import ToolsConfig
from tenx.tools.ask_user import AskQuestionPromptFn, AskUserQuestionTool
from tenx.tools.bash import BashTool
from tenx.tools.edit import EditTool
from tenx.tools.glob import GlobTool
from tenx.tools.grep import GrepTool
from tenx.tools.plan_mode import EnterPlanModeTool, ExitPlanModeTool, PlanModeController
from tenx.tools.read import ReadTool
from tenx.tools.registry import Tool, ToolRegistry, ToolResult
from tenx.tools.todo import TodoItem, TodoList, TodoWriteTool
from tenx.tools.write import WriteTool

CORE_TOOL_NAMES: tuple[str, ...] = ("read", "write", "edit", "glob", "grep", "bash")


def create_core_tool_registry(
    config: ToolsConfig | None = None,
    base_path: Path | str | None = None,
) -> ToolRegistry:
    """Registry holding the six core tools."""
    config = config or ToolsConfig()
    registry = ToolRegistry(base_path)
    registry.register(ReadTool(max_lines=config.read_max_lines))
    registry.register(WriteTool())
    registry.register(EditTool())
    registry.register(GlobTool())
    registry.register(GrepTool())
    registry.register(BashTool(
        timeout_seconds=config.bash_timeout,
        max_output_chars=config.max_output_chars,
    ))
    return registry


def register_session_tools(
    registry: ToolRegistry,
    todo_list: TodoList | None = None,
    ask_prompt: AskQuestionPromptFn | None = None,
    plan_mode: PlanModeController | None = None,
) -> ToolRegistry:
    """Add the conversation-scoped tools, each bound to its own state."""
    plan_mode = plan_mode or PlanModeController()
    registry.register(TodoWriteTool(todo_list))
    registry.register(AskUserQuestionTool(ask_prompt))
    registry.register(EnterPlanModeTool(plan_mode))
    registry.register(ExitPlanModeTool(plan_mode))
    return registry


__all__ = [
    "CORE_TOOL_NAMES",
    "AskUserQuestionTool",
    "BashTool",
    "EditTool",
    "EnterPlanModeTool",
    "ExitPlanModeTool",
    "GlobTool",
    "GrepTool",
    "PlanModeController",
    "ReadTool",
    "TodoItem",
    "TodoList",
    "TodoWriteTool",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "WriteTool",
    "create_core_tool_registry",
    "register_session_tools",
]
