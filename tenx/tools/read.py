"""Read tool for reading file contents."""

from typing import Any

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

MAX_LINES = 2000
MAX_LINE_LENGTH = 2000
MAX_FILE_BYTES = 10 * 1024 * 1024


class ReadTool(Tool):
    """Read file contents with line numbers."""

    name = "read"
    description = (
        "Read a file from the local filesystem. Output is line-numbered. "
        "Use offset and limit to page through large files."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the file to read (absolute or relative to cwd)",
            },
            "offset": {
                "type": "number",
                "description": "Line number to start reading from (1-based). Default: 1",
            },
            "limit": {
                "type": "number",
                "description": f"Maximum number of lines to read. Default: {MAX_LINES}",
            },
        },
        "required": ["path"],
    }

    def __init__(self, max_lines: int = MAX_LINES):
        self.max_lines = max(1, int(max_lines))

    async def execute(
        self,
        path: str,
        offset: int | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Read a file.

        Args:
            path: Path to file
            offset: 1-based first line
            limit: Maximum number of lines

        Returns:
            ToolResult with the numbered lines
        """
        try:
            file_path = resolve_tool_path(path, kwargs)

            if not file_path.exists():
                return ToolResult(success=False, error=f"File not found: {path}")

            if file_path.is_dir():
                return ToolResult(success=False, error=f"Path is a directory, not a file: {path}")

            file_size = file_path.stat().st_size
            if file_size > MAX_FILE_BYTES:
                return ToolResult(
                    success=False,
                    error=f"File too large ({file_size / 1024 / 1024:.1f}MB). Maximum: 10MB",
                )

            lines = file_path.read_text(encoding="utf-8", errors="replace").split("\n")

            start_line = max(1, int(offset or 1))
            line_limit = max(1, int(limit or self.max_lines))
            end_line = min(len(lines), start_line + line_limit - 1)
            selected = lines[start_line - 1:end_line]

            formatted = []
            for index, line in enumerate(selected):
                if len(line) > MAX_LINE_LENGTH:
                    line = line[:MAX_LINE_LENGTH] + "..."
                formatted.append(f"{start_line + index:>6}\t{line}")

            output = "\n".join(formatted)
            if end_line < len(lines):
                output += f"\n\n... ({len(lines) - end_line} more lines)"

            return ToolResult(
                success=True,
                output=f"File: {path} ({len(lines)} lines)\n\n{output}",
            )

        except (OSError, ValueError) as e:
            log.error("Read failed", path=path, error=str(e))
            return ToolResult(success=False, error=f"Failed to read file: {e}")
