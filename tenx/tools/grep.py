"""Grep tool for regex search over file contents."""

import asyncio
import fnmatch
import os
import re
from pathlib import Path
from typing import Any

from tenx.logging import get_logger
from tenx.tools.glob import IGNORED_DIRS, IGNORED_FILES
from tenx.tools.registry import Tool, ToolResult, resolve_tool_path

log = get_logger(__name__)

MAX_RESULTS = 100
MAX_MATCHES_PER_FILE = 5
MAX_FILE_BYTES = 2 * 1024 * 1024


def _expand_braces(pattern: str) -> list[str]:
    """Expand a single `{a,b}` group, e.g. "*.{js,jsx}"."""
    match = re.search(r"\{([^{}]*)\}", pattern)
    if not match:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(_expand_braces(head + option + tail))
    return expanded


class GrepTool(Tool):
    """Search file contents with a regular expression."""

    name = "grep"
    description = (
        "Search file contents with a regular expression. Returns "
        "path:line:text matches, at most 5 per file."
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regex pattern to search for",
            },
            "path": {
                "type": "string",
                "description": "Directory or file to search in. Default: current working directory",
            },
            "glob": {
                "type": "string",
                "description": 'Glob pattern to filter files (e.g., "*.py", "*.{js,jsx}")',
            },
        },
        "required": ["pattern"],
    }

    @staticmethod
    def _iter_files(base: Path, file_globs: list[str]) -> list[Path]:
        if base.is_file():
            return [base]
        files: list[Path] = []
        for root, dirs, names in os.walk(base):
            dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
            for name in sorted(names):
                if any(fnmatch.fnmatchcase(name, pattern) for pattern in IGNORED_FILES):
                    continue
                if file_globs and not any(fnmatch.fnmatchcase(name, pattern) for pattern in file_globs):
                    continue
                files.append(Path(root) / name)
        return files

    def _search(self, regex: re.Pattern[str], base: Path, file_glob: str | None) -> list[str]:
        file_globs = _expand_braces(file_glob) if file_glob else []
        display_root = base.parent if base.is_file() else base
        results: list[str] = []
        for file_path in self._iter_files(base, file_globs):
            try:
                if file_path.stat().st_size > MAX_FILE_BYTES:
                    continue
                with open(file_path, encoding="utf-8") as f:
                    per_file = 0
                    for line_number, line in enumerate(f, start=1):
                        if regex.search(line):
                            relative = file_path.relative_to(display_root)
                            results.append(f"{relative}:{line_number}:{line.rstrip()}")
                            per_file += 1
                            if per_file >= MAX_MATCHES_PER_FILE:
                                break
            except (OSError, UnicodeDecodeError):
                # Binary or unreadable file
                continue
        return results

    async def execute(
        self,
        pattern: str,
        path: str | None = None,
        glob: str | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            return ToolResult(success=False, error=f"Invalid regex pattern: {e}")

        base = resolve_tool_path(path, kwargs)
        if not base.exists():
            return ToolResult(success=False, error=f"Path not found: {path}")

        try:
            loop = asyncio.get_running_loop()
            lines = await loop.run_in_executor(None, self._search, regex, base, glob)
        except OSError as e:
            log.error("Grep failed", pattern=pattern, error=str(e))
            return ToolResult(success=False, error=f"Grep failed: {e}")

        if not lines:
            return ToolResult(success=True, output=f"No matches found for pattern: {pattern}")

        noun = "match" if len(lines) == 1 else "matches"
        output = f"Found {len(lines)} {noun}:\n\n" + "\n".join(lines[:MAX_RESULTS])
        if len(lines) > MAX_RESULTS:
            output += f"\n\n... and {len(lines) - MAX_RESULTS} more matches"
        return ToolResult(success=True, output=output)
