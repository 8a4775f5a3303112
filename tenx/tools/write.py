"""Write tool for writing file contents."""

from typing import Any

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)


class WriteTool(Tool):
    """Create or overwrite files."""

    name = "write"
    description = (
        "Write a file to the local filesystem, creating parent directories "
        "as needed. Overwrites existing files."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to write to (absolute or relative to cwd)",
            },
            "content": {
                "type": "string",
                "description": "The content to write to the file",
            },
        },
        "required": ["path", "content"],
    }

    async def execute(self, path: str, content: str, **kwargs: Any) -> ToolResult:
        """Write content to a file.

        Args:
            path: Path to file
            content: Content to write

        Returns:
            ToolResult with status
        """
        try:
            file_path = resolve_tool_path(path, kwargs)
            file_path.parent.mkdir(parents=True, exist_ok=True)

            with open(file_path, "w", encoding="utf-8") as f:
                f.write(content)

            line_count = len(content.split("\n"))
            return ToolResult(
                success=True,
                output=f"Successfully wrote {line_count} lines to {path}",
            )

        except OSError as e:
            log.error("Write failed", path=path, error=str(e))
            return ToolResult(success=False, error=f"Failed to write file: {e}")
