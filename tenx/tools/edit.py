"""Edit tool for exact string replacement in files."""

from typing import Any

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)


class EditTool(Tool):
    """Replace a unique string in a file."""

    name = "edit"
    description = (
        "Replace an exact string in a file. old_string must appear exactly "
        "once; include surrounding context to make it unique."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the file to edit",
            },
            "old_string": {
                "type": "string",
                "description": "The exact string to find and replace (must be unique in the file)",
            },
            "new_string": {
                "type": "string",
                "description": "The string to replace it with",
            },
        },
        "required": ["path", "old_string", "new_string"],
    }

    async def execute(self, path: str, old_string: str, new_string: str, **kwargs: Any) -> ToolResult:
        try:
            file_path = resolve_tool_path(path, kwargs)
            if not file_path.is_file():
                return ToolResult(success=False, error=f"File not found: {path}")

            content = file_path.read_text(encoding="utf-8")
            occurrences = content.count(old_string) if old_string else 0

            if occurrences == 0:
                return ToolResult(
                    success=False,
                    error=(
                        "String not found in file. Make sure the old_string matches "
                        "exactly, including whitespace and indentation."
                    ),
                )
            if occurrences > 1:
                return ToolResult(
                    success=False,
                    error=(
                        f"String appears {occurrences} times in the file. It must be unique. "
                        "Include more surrounding context to make it unique."
                    ),
                )

            file_path.write_text(content.replace(old_string, new_string, 1), encoding="utf-8")

            delta = len(new_string.split("\n")) - len(old_string.split("\n"))
            delta_label = f"+{delta}" if delta > 0 else str(delta) if delta < 0 else "±0"
            return ToolResult(
                success=True,
                output=f"Successfully edited {path} ({delta_label} lines)",
            )

        except OSError as e:
            log.error("Edit failed", path=path, error=str(e))
            return ToolResult(success=False, error=f"Failed to edit file: {e}")
