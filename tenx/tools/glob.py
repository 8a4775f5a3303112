"""Glob tool for finding files by pattern."""

import asyncio
import fnmatch
import glob
from pathlib import Path
from typing import Any

from tenx.logging import get_logger
from tenx.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

IGNORED_DIRS = {"node_modules", ".git", "dist", "build", ".next", "coverage", "__pycache__", ".venv"}
IGNORED_FILES = ("*.min.js", "*.bundle.js")
MAX_RESULTS = 1000


def is_ignored(relative: str) -> bool:
    parts = Path(relative).parts
    if any(part in IGNORED_DIRS for part in parts[:-1]):
        return True
    return any(fnmatch.fnmatchcase(parts[-1], pattern) for pattern in IGNORED_FILES) if parts else False


class GlobTool(Tool):
    """Find files by pattern."""

    name = "glob"
    description = (
        "Find files matching a glob pattern. Returns paths relative to the "
        "search directory, most recently modified first."
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": 'Glob pattern to match (e.g., "**/*.py", "src/**/*.ts", "*.json")',
            },
            "path": {
                "type": "string",
                "description": "Directory to search in. Default: current working directory",
            },
        },
        "required": ["pattern"],
    }

    @staticmethod
    def _find(pattern: str, base: Path) -> list[str]:
        matches = [
            match
            for match in glob.glob(pattern, root_dir=base, recursive=True)
            if (base / match).is_file() and not is_ignored(match)
        ]

        def mtime(match: str) -> float:
            try:
                return (base / match).stat().st_mtime
            except OSError:
                return 0.0

        return sorted(matches, key=mtime, reverse=True)

    async def execute(self, pattern: str, path: str | None = None, **kwargs: Any) -> ToolResult:
        """Find files matching pattern.

        Args:
            pattern: Glob pattern
            path: Optional directory to search from

        Returns:
            ToolResult with matching files
        """
        try:
            base = resolve_tool_path(path, kwargs)
            if not base.is_dir():
                return ToolResult(success=False, error=f"Directory not found: {path}")

            loop = asyncio.get_running_loop()
            matches = await loop.run_in_executor(None, self._find, pattern, base)

            if not matches:
                return ToolResult(success=True, output=f"No files found matching pattern: {pattern}")

            noun = "file" if len(matches) == 1 else "files"
            output = f"Found {len(matches)} {noun}:\n\n"
            output += "\n".join(matches[:MAX_RESULTS])
            if len(matches) > MAX_RESULTS:
                output += f"\n\n... and {len(matches) - MAX_RESULTS} more files"

            return ToolResult(success=True, output=output)

        except (OSError, ValueError) as e:
            log.error("Glob failed", pattern=pattern, error=str(e))
            return ToolResult(success=False, error=f"Glob failed: {e}")
