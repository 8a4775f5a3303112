"""Plan mode tools: enter a research-only planning phase and exit for review."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult

log = get_logger(__name__)

# (task) -> (approved, plan_file_path)
EnterPlanModeCallback = Callable[[str], Awaitable[tuple[bool, str]]]
# (plan_file_path) -> (approved, plan_content)
ExitPlanModeCallback = Callable[[str], Awaitable[tuple[bool, str]]]

_PLAN_STEPS = """1. Explore the codebase using Glob, Grep, and Read tools
2. Understand existing patterns and architecture
{write_step}
4. Use AskUserQuestion if you need to clarify approaches
5. Call ExitPlanMode when your plan is ready for review"""


@dataclass
class PlanModeState:
    active: bool = False
    plan_file_path: str | None = None
    original_task: str | None = None


class PlanModeController:
    """Plan mode state plus the UI callbacks that approve transitions."""

    def __init__(
        self,
        on_enter: EnterPlanModeCallback | None = None,
        on_exit: ExitPlanModeCallback | None = None,
    ):
        self.on_enter = on_enter
        self.on_exit = on_exit
        self.state = PlanModeState()

    @property
    def active(self) -> bool:
        return self.state.active

    def reset(self) -> None:
        self.state = PlanModeState()


class EnterPlanModeTool(Tool):
    """Switch into plan mode."""

    name = "enterplanmode"
    description = (
        "Enter plan mode for non-trivial implementation tasks: explore the "
        "codebase and write a plan for user approval before changing code."
    )
    timeout_seconds = 3600.0
    parameters = {"type": "object", "properties": {}, "required": []}

    def __init__(self, controller: PlanModeController):
        self.controller = controller

    async def execute(self, task: str = "Implementation task", **kwargs: Any) -> ToolResult:
        if self.controller.on_enter is None:
            steps = _PLAN_STEPS.format(write_step="3. Write your implementation plan to a markdown file")
            return ToolResult(
                success=True,
                output=(
                    f"Entering plan mode. In plan mode, you should:\n\n{steps}\n\n"
                    "Note: Write tools (Write, Edit, Bash with side effects) are restricted in plan mode.\n"
                    "Focus on research and planning, not implementation."
                ),
            )

        approved, plan_file_path = await self.controller.on_enter(task)
        if not approved:
            return ToolResult(
                success=False,
                output="User declined to enter plan mode. Proceed with direct implementation or ask for clarification.",
            )

        self.controller.state = PlanModeState(
            active=True,
            plan_file_path=plan_file_path,
            original_task=task,
        )
        log.info("Entered plan mode", plan_file=plan_file_path)
        steps = _PLAN_STEPS.format(write_step="3. Write your plan to the file above")
        return ToolResult(
            success=True,
            output=(
                f"Entered plan mode. Write your implementation plan to: {plan_file_path}\n\n"
                f"In plan mode, you should:\n{steps}\n\n"
                "Note: Write tools are restricted to the plan file only."
            ),
        )


class ExitPlanModeTool(Tool):
    """Leave plan mode and submit the plan for approval."""

    name = "exitplanmode"
    description = "Exit plan mode and present the written plan to the user for approval."
    timeout_seconds = 3600.0
    parameters = {"type": "object", "properties": {}, "required": []}

    def __init__(self, controller: PlanModeController):
        self.controller = controller

    async def execute(self, **kwargs: Any) -> ToolResult:
        state = self.controller.state
        if not state.active:
            return ToolResult(
                success=False,
                output="Not currently in plan mode. Use EnterPlanMode first to start planning.",
            )

        if self.controller.on_exit is None:
            plan_path = state.plan_file_path or "the plan file"
            self.controller.reset()
            return ToolResult(
                success=True,
                output=(
                    f"Exiting plan mode. The plan has been written to {plan_path}.\n\n"
                    "The user should review the plan before implementation proceeds.\n"
                    "Plan mode restrictions have been lifted - you can now use all tools."
                ),
            )

        if not state.plan_file_path:
            return ToolResult(
                success=False,
                output="No plan file path set. Something went wrong with plan mode state.",
            )

        plan_path = state.plan_file_path
        try:
            approved, plan_content = await self.controller.on_exit(plan_path)
        finally:
            self.controller.reset()

        if not approved:
            return ToolResult(
                success=False,
                output=(
                    f"User did not approve the plan. The plan file is at: {plan_path}\n\n"
                    "Please either:\n"
                    "1. Revise the plan based on user feedback and call ExitPlanMode again\n"
                    "2. Use AskUserQuestion to clarify requirements\n"
                    "3. Proceed with a different approach"
                ),
            )

        log.info("Plan approved", plan_file=plan_path)
        return ToolResult(
            success=True,
            output=(
                "Plan approved! Exiting plan mode.\n\n"
                f"Plan content:\n{plan_content}\n\n"
                "You can now proceed with implementation following the approved plan.\n"
                "All tools are now available."
            ),
        )
