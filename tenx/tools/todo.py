"""Todo tool for tracking task progress within a session."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult

log = get_logger(__name__)

TodoStatus = Literal["pending", "in_progress", "completed"]

_STATUS_ICONS = {"pending": "[ ]", "in_progress": "[>]", "completed": "[x]"}


class TodoItem(BaseModel):
    """One task in the todo list."""

    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(min_length=1)
    status: TodoStatus
    active_form: str = Field(alias="activeForm", min_length=1)


class TodoList:
    """In-memory todo state owned by one conversation."""

    def __init__(self) -> None:
        self._items: list[TodoItem] = []

    @property
    def items(self) -> list[TodoItem]:
        return list(self._items)

    def replace(self, items: list[TodoItem]) -> None:
        self._items = list(items)

    def clear(self) -> None:
        self._items = []

    def __len__(self) -> int:
        return len(self._items)

    def format(self) -> str:
        if not self._items:
            return "Todo list is empty."

        lines = []
        for index, item in enumerate(self._items, start=1):
            label = f" ({item.active_form})" if item.status == "in_progress" else ""
            lines.append(f"{index}. {_STATUS_ICONS[item.status]} {item.content}{label}")

        completed = sum(1 for item in self._items if item.status == "completed")
        in_progress = sum(1 for item in self._items if item.status == "in_progress")
        pending = sum(1 for item in self._items if item.status == "pending")
        lines.append("")
        lines.append(
            f"Progress: {completed}/{len(self._items)} completed, "
            f"{in_progress} in progress, {pending} pending"
        )
        return "\n".join(lines)


class TodoWriteTool(Tool):
    """Replace the session's todo list."""

    name = "todowrite"
    description = (
        "Create and update a structured task list for the current session. "
        "Send the complete updated list every time; keep exactly one task in_progress."
    )
    parameters = {
        "type": "object",
        "properties": {
            "todos": {
                "type": "array",
                "description": "The updated todo list",
                "items": {
                    "type": "object",
                    "properties": {
                        "content": {
                            "type": "string",
                            "description": "The task description (imperative form)",
                        },
                        "status": {
                            "type": "string",
                            "enum": ["pending", "in_progress", "completed"],
                            "description": "The task status",
                        },
                        "activeForm": {
                            "type": "string",
                            "description": 'Present continuous form shown during execution (e.g., "Running tests")',
                        },
                    },
                    "required": ["content", "status", "activeForm"],
                },
            },
        },
        "required": ["todos"],
    }

    def __init__(self, todo_list: TodoList | None = None):
        self.todo_list = todo_list if todo_list is not None else TodoList()

    async def execute(self, todos: Any, **kwargs: Any) -> ToolResult:
        if not isinstance(todos, list):
            return ToolResult(success=False, error="todos must be an array")

        items: list[TodoItem] = []
        for raw in todos:
            if not isinstance(raw, dict):
                return ToolResult(success=False, error="Each todo must be an object")
            status = raw.get("status")
            if status not in _STATUS_ICONS:
                return ToolResult(
                    success=False,
                    error=f"Invalid status: {status}. Must be pending, in_progress, or completed",
                )
            try:
                items.append(TodoItem.model_validate(raw))
            except ValidationError as e:
                field = e.errors()[0]["loc"][0] if e.errors() else "content"
                return ToolResult(success=False, error=f"Each todo must have a {field} string")

        self.todo_list.replace(items)
        log.debug("Todo list updated", count=len(items))
        return ToolResult(success=True, output=self.todo_list.format())
