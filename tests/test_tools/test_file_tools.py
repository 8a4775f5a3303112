from pathlib import Path

import pytest

from tenx.tools import CORE_TOOL_NAMES, create_core_tool_registry
from tenx.tools.edit import EditTool
from tenx.tools.glob import GlobTool, is_ignored
from tenx.tools.grep import GrepTool, _expand_braces
from tenx.tools.read import ReadTool
from tenx.tools.write import WriteTool


@pytest.mark.asyncio
async def test_read_numbers_lines_and_reports_remaining(tmp_path: Path):
    (tmp_path / "notes.txt").write_text("alpha\nbeta\ngamma\ndelta", encoding="utf-8")
    tool = ReadTool()

    result = await tool.execute(path="notes.txt", limit=2, _runtime_base_path=tmp_path)

    assert result.success is True
    assert result.output is not None
    assert result.output.startswith("File: notes.txt (4 lines)\n\n")
    assert "     1\talpha" in result.output
    assert "     2\tbeta" in result.output
    assert "gamma" not in result.output
    assert result.output.endswith("... (2 more lines)")


@pytest.mark.asyncio
async def test_read_offset_is_one_based(tmp_path: Path):
    (tmp_path / "notes.txt").write_text("a\nb\nc", encoding="utf-8")

    result = await ReadTool().execute(path="notes.txt", offset=2, _runtime_base_path=tmp_path)

    assert "     2\tb" in (result.output or "")
    assert "     1\ta" not in (result.output or "")


@pytest.mark.asyncio
async def test_read_missing_file_and_directory(tmp_path: Path):
    tool = ReadTool()

    missing = await tool.execute(path="nope.txt", _runtime_base_path=tmp_path)
    directory = await tool.execute(path=".", _runtime_base_path=tmp_path)

    assert missing.success is False
    assert missing.error == "File not found: nope.txt"
    assert directory.success is False
    assert "directory" in (directory.error or "")


@pytest.mark.asyncio
async def test_write_creates_parent_directories(tmp_path: Path):
    result = await WriteTool().execute(
        path="pkg/mod.py",
        content="x = 1\ny = 2\n",
        _runtime_base_path=tmp_path,
    )

    assert result.success is True
    assert result.output == "Successfully wrote 3 lines to pkg/mod.py"
    assert (tmp_path / "pkg" / "mod.py").read_text(encoding="utf-8") == "x = 1\ny = 2\n"


@pytest.mark.asyncio
async def test_edit_replaces_unique_string(tmp_path: Path):
    target = tmp_path / "app.py"
    target.write_text("def main():\n    pass\n", encoding="utf-8")

    result = await EditTool().execute(
        path="app.py",
        old_string="    pass\n",
        new_string="    print('hi')\n    return 0\n",
        _runtime_base_path=tmp_path,
    )

    assert result.success is True
    assert result.output == "Successfully edited app.py (+1 lines)"
    assert "return 0" in target.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_edit_rejects_missing_and_ambiguous_strings(tmp_path: Path):
    target = tmp_path / "app.py"
    target.write_text("x = 1\nx = 1\n", encoding="utf-8")
    tool = EditTool()

    ambiguous = await tool.execute(path="app.py", old_string="x = 1", new_string="x = 2", _runtime_base_path=tmp_path)
    missing = await tool.execute(path="app.py", old_string="y = 1", new_string="y = 2", _runtime_base_path=tmp_path)

    assert ambiguous.success is False
    assert "appears 2 times" in (ambiguous.error or "")
    assert missing.success is False
    assert "String not found" in (missing.error or "")
    assert target.read_text(encoding="utf-8") == "x = 1\nx = 1\n"


@pytest.mark.asyncio
async def test_glob_skips_ignored_directories(tmp_path: Path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("", encoding="utf-8")
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / "node_modules" / "lib" / "b.py").write_text("", encoding="utf-8")

    result = await GlobTool().execute(pattern="**/*.py", _runtime_base_path=tmp_path)

    assert result.success is True
    assert result.output == "Found 1 file:\n\nsrc/a.py"


@pytest.mark.asyncio
async def test_glob_no_matches(tmp_path: Path):
    result = await GlobTool().execute(pattern="*.rs", _runtime_base_path=tmp_path)

    assert result.success is True
    assert result.output == "No files found matching pattern: *.rs"


def test_is_ignored():
    assert is_ignored("node_modules/x/index.js")
    assert is_ignored("static/app.min.js")
    assert not is_ignored("src/app.js")


@pytest.mark.asyncio
async def test_grep_reports_path_line_and_text(tmp_path: Path):
    (tmp_path / "a.py").write_text("import os\n# TODO: fix\n", encoding="utf-8")
    (tmp_path / "b.txt").write_text("TODO later\n", encoding="utf-8")

    result = await GrepTool().execute(pattern="TODO", glob="*.py", _runtime_base_path=tmp_path)

    assert result.success is True
    assert result.output == "Found 1 match:\n\na.py:2:# TODO: fix"


@pytest.mark.asyncio
async def test_grep_caps_matches_per_file(tmp_path: Path):
    (tmp_path / "many.txt").write_text("hit\n" * 10, encoding="utf-8")

    result = await GrepTool().execute(pattern="hit", _runtime_base_path=tmp_path)

    assert (result.output or "").startswith("Found 5 matches:")


@pytest.mark.asyncio
async def test_grep_invalid_regex_and_no_matches(tmp_path: Path):
    tool = GrepTool()

    invalid = await tool.execute(pattern="(", _runtime_base_path=tmp_path)
    empty = await tool.execute(pattern="absent", _runtime_base_path=tmp_path)

    assert invalid.success is False
    assert (invalid.error or "").startswith("Invalid regex pattern")
    assert empty.output == "No matches found for pattern: absent"


def test_expand_braces():
    assert _expand_braces("*.{js,jsx}") == ["*.js", "*.jsx"]
    assert _expand_braces("*.py") == ["*.py"]


def test_core_registry_has_six_tools(tmp_path: Path):
    registry = create_core_tool_registry(base_path=tmp_path)

    assert registry.names() == list(CORE_TOOL_NAMES)
    assert registry.runtime_base_path == tmp_path.resolve()


@pytest.mark.asyncio
async def test_core_registry_round_trip_through_write_and_read(tmp_path: Path):
    registry = create_core_tool_registry(base_path=tmp_path)

    written = await registry.execute("write", {"path": "hello.txt", "content": "hello"})
    read = await registry.execute("read", {"path": "hello.txt"})

    assert written.success is True
    assert "     1\thello" in (read.output or "")
