"""Bash tool for executing shell commands."""

import asyncio
import os
from typing import Any

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
MAX_OUTPUT_CHARS = 30000


class BashTool(Tool):
    """Execute shell commands."""

    name = "bash"
    description = (
        "Execute a bash command. Use for running scripts, git commands, "
        "package managers, etc."
    )
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The bash command to execute",
            },
            "timeout": {
                "type": "number",
                "description": f"Timeout in seconds. Default: {int(DEFAULT_TIMEOUT_SECONDS)}",
            },
        },
        "required": ["command"],
    }

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_output_chars: int = MAX_OUTPUT_CHARS,
    ):
        self.timeout_seconds = float(timeout_seconds)
        self.max_output_chars = int(max_output_chars)

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process, communicate_task: asyncio.Task[Any]) -> None:
        if process.returncode is None:
            process.kill()
            await process.wait()
        communicate_task.cancel()
        try:
            await communicate_task
        except asyncio.CancelledError:
            pass

    def _format_output(self, stdout: bytes, stderr: bytes) -> str:
        output = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")
        if stderr_text:
            if output:
                output += "\n"
            output += f"[stderr]\n{stderr_text}"
        if len(output) > self.max_output_chars:
            output = output[:self.max_output_chars] + "\n\n... (output truncated)"
        return output

    async def execute(self, command: str, timeout: float | None = None, **kwargs: Any) -> ToolResult:
        """Execute a shell command.

        Args:
            command: Shell command to execute
            timeout: Optional timeout override in seconds

        Returns:
            ToolResult with command output; a nonzero exit is a failure
        """
        if not str(command or "").strip():
            return ToolResult(success=False, error="Command is empty")

        timeout = max(1.0, float(timeout if timeout is not None else self.timeout_seconds))

        abort_event = kwargs.get("_abort_event")
        if isinstance(abort_event, asyncio.Event) and abort_event.is_set():
            return ToolResult(success=False, error="Command aborted")

        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env["npm_config_yes"] = "true"
        cwd = resolve_tool_path(None, kwargs)

        try:
            log.info("Executing shell command", command=command, timeout=timeout)

            process = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
            )
        except OSError as e:
            log.error("Shell command failed", command=command, error=str(e))
            return ToolResult(success=False, error=f"Command failed: {e}")

        communicate_task = asyncio.create_task(process.communicate())
        abort_wait_task: asyncio.Task[bool] | None = None
        if isinstance(abort_event, asyncio.Event):
            abort_wait_task = asyncio.create_task(abort_event.wait())
        try:
            wait_tasks: set[asyncio.Task[Any]] = {communicate_task}
            if abort_wait_task is not None:
                wait_tasks.add(abort_wait_task)
            done, _ = await asyncio.wait(
                wait_tasks,
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if communicate_task in done:
                stdout, stderr = await communicate_task
            elif abort_wait_task is not None and abort_wait_task in done:
                await self._kill(process, communicate_task)
                return ToolResult(success=False, error="Command aborted")
            else:
                await self._kill(process, communicate_task)
                label = int(timeout) if timeout.is_integer() else timeout
                return ToolResult(success=False, error=f"Command timed out after {label}s")
        except asyncio.CancelledError:
            await self._kill(process, communicate_task)
            raise
        finally:
            if abort_wait_task is not None and not abort_wait_task.done():
                abort_wait_task.cancel()
                try:
                    await abort_wait_task
                except asyncio.CancelledError:
                    pass

        output = self._format_output(stdout, stderr)

        if process.returncode != 0:
            return ToolResult(
                success=False,
                output=output,
                error=f"Command exited with code {process.returncode}",
            )
        return ToolResult(success=True, output=output or "(no output)")
