"""Tool registry and base tool class."""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, model_validator

from tenx.exceptions import (
    AbortedError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolTimeoutError,
)
from tenx.logging import get_logger

if TYPE_CHECKING:
    from tenx.permissions import PermissionManager

log = get_logger(__name__)

ABORTED_MESSAGE = "Tool execution aborted"
PERMISSION_DENIED_OUTPUT = (
    "Action was blocked by permission settings. "
    "You can ask the user to update their permissions if needed."
)

# Argument that carries the permission-relevant part of each core tool's input.
_PERMISSION_FIELDS = {
    "read": "path",
    "write": "path",
    "edit": "path",
    "glob": "path",
    "grep": "pattern",
    "bash": "command",
}


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    output: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.output or "").strip()
            self.error = fallback or "Tool execution failed"
        return self

    def to_message_content(self) -> str:
        """Text for the tool-role message sent back to the model."""
        return self.output or self.error or "No output"


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments, plus `_abort_event` and
                `_runtime_base_path` supplied by the registry

        Returns:
            ToolResult with success status and output
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition in OpenAI function format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Check required arguments are present.

        Raises:
            ToolExecutionError if a required argument is missing
        """
        required = self.parameters.get("required", [])
        for field in required:
            if field not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {field}",
                )


def resolve_tool_path(path: str | None, kwargs: dict[str, Any]) -> Path:
    """Resolve a tool path argument against the registry's runtime base path."""
    runtime_base_raw = kwargs.get("_runtime_base_path")
    base = Path(runtime_base_raw) if runtime_base_raw is not None else Path.cwd()
    if not path:
        return base.resolve()
    requested = Path(path).expanduser()
    if not requested.is_absolute():
        requested = base / requested
    return requested.resolve()


def permission_input(name: str, arguments: dict[str, Any]) -> str:
    """Project tool arguments onto the string permission rules match against."""
    field = _PERMISSION_FIELDS.get(name)
    if field is None:
        return json.dumps(arguments, ensure_ascii=False)
    return str(arguments.get(field) or "")


class ToolRegistry:
    """Registry for managing and executing available tools."""

    def __init__(
        self,
        base_path: Path | str | None = None,
        permission_manager: "PermissionManager | None" = None,
    ):
        self._tools: dict[str, Tool] = {}
        self._permission_manager = permission_manager
        self._runtime_base_path = Path.cwd()
        self.set_runtime_base_path(base_path or Path.cwd())

    def set_runtime_base_path(self, base_path: Path | str) -> None:
        """Set the directory relative tool paths resolve against."""
        self._runtime_base_path = Path(base_path).expanduser().resolve()

    @property
    def runtime_base_path(self) -> Path:
        return self._runtime_base_path

    def set_permission_manager(self, manager: "PermissionManager | None") -> None:
        self._permission_manager = manager

    @property
    def permission_manager(self) -> "PermissionManager | None":
        return self._permission_manager

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def get_definitions(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        """Tool definitions in registration order, optionally restricted to `names`."""
        allowed = set(names) if names is not None else None
        return [
            tool.get_definition()
            for tool in self._tools.values()
            if allowed is None or tool.name in allowed
        ]

    def subset(self, names: list[str]) -> "ToolRegistry":
        """New registry sharing this one's tools and permission manager."""
        registry = ToolRegistry(self._runtime_base_path, self._permission_manager)
        for name in names:
            if name in self._tools:
                registry.register(self._tools[name])
        return registry

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.debug("Cancelled task raised", error=str(e))

    @staticmethod
    async def _bridge_abort_event(source: asyncio.Event, target: asyncio.Event) -> None:
        """Mirror external abort event to local tool abort event."""
        await source.wait()
        target.set()

    @staticmethod
    def _timeout_for(tool: Tool, arguments: dict[str, Any]) -> float:
        timeout_seconds = float(getattr(tool, "timeout_seconds", 30.0) or 30.0)
        timeout_override = arguments.get("timeout")
        if timeout_override is not None:
            try:
                timeout_seconds = float(timeout_override)
            except (TypeError, ValueError):
                pass
        return max(1.0, timeout_seconds)

    async def _run(
        self,
        tool: Tool,
        arguments: dict[str, Any],
        abort_event: asyncio.Event | None,
    ) -> ToolResult:
        """Run a tool under its timeout, mirroring the caller's abort event.

        Raises:
            AbortedError if the abort event fires first
            ToolTimeoutError if the timeout expires first
        """
        execute_task: asyncio.Task[ToolResult] | None = None
        abort_wait_task: asyncio.Task[bool] | None = None
        bridge_task: asyncio.Task[None] | None = None
        tool_abort_event = asyncio.Event()
        try:
            timeout_seconds = self._timeout_for(tool, arguments)

            if abort_event is not None:
                bridge_task = asyncio.create_task(
                    self._bridge_abort_event(abort_event, tool_abort_event)
                )

            execute_task = asyncio.create_task(
                tool.execute(
                    **arguments,
                    _runtime_base_path=self.runtime_base_path,
                    _abort_event=tool_abort_event,
                )
            )
            abort_wait_task = asyncio.create_task(tool_abort_event.wait())
            done, _ = await asyncio.wait(
                {execute_task, abort_wait_task},
                timeout=timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if execute_task in done:
                result = await execute_task
                if not isinstance(result, ToolResult):
                    raise ToolExecutionError(tool.name, "Tool returned invalid result payload")
                return result

            if abort_wait_task in done:
                await self._cancel_task(execute_task)
                raise AbortedError(ABORTED_MESSAGE)

            tool_abort_event.set()
            await self._cancel_task(execute_task)
            raise ToolTimeoutError(tool.name, timeout_seconds)
        except asyncio.CancelledError:
            tool_abort_event.set()
            await self._cancel_task(execute_task)
            raise
        finally:
            await self._cancel_task(abort_wait_task)
            await self._cancel_task(bridge_task)

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        abort_event: asyncio.Event | None = None,
    ) -> ToolResult:
        """Execute a tool by name.

        Never raises for tool-level problems: an abort, an unknown tool, a
        permission denial, a timeout or a crash inside the tool all come
        back as a failed ToolResult.

        Args:
            name: Tool name
            arguments: Tool arguments
            abort_event: Cancellation token shared with the caller

        Returns:
            ToolResult from execution
        """
        if abort_event is not None and abort_event.is_set():
            return ToolResult(success=False, error=ABORTED_MESSAGE)

        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(success=False, error=str(ToolNotFoundError(name)))

        if self._permission_manager is not None:
            value = permission_input(name, arguments)
            allowed = await self._permission_manager.check(name, value)
            if not allowed:
                return ToolResult(
                    success=False,
                    error=f"Permission denied for {name}: {value}",
                    output=PERMISSION_DENIED_OUTPUT,
                )

        try:
            tool.validate_arguments(arguments)
            log.info("Executing tool", tool=name)
            result = await self._run(tool, arguments, abort_event)
            log.info("Tool executed", tool=name, success=result.success)
            return result
        except AbortedError:
            log.info("Tool aborted", tool=name)
            return ToolResult(success=False, error=ABORTED_MESSAGE)
        except ToolTimeoutError as e:
            log.warning("Tool timed out", tool=name, timeout=e.timeout_seconds)
            return ToolResult(success=False, error=str(e))
        except ToolExecutionError as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            return ToolResult(success=False, error=str(e))
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            return ToolResult(success=False, error=str(e) or "Tool execution failed")
