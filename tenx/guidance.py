"""Project guidance: `10X.md` files merged into the system prompt."""

from dataclasses import dataclass, field
from pathlib import Path

from tenx.config import CONFIG_DIR
from tenx.logging import get_logger

log = get_logger(__name__)

GUIDANCE_FILENAME = "10X.md"
MAX_WALK_DEPTH = 20


@dataclass
class GuidanceResult:
    content: str = ""
    sources: list[Path] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.sources)


def _read_guidance(path: Path) -> str | None:
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding="utf-8").strip() or None
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Unreadable guidance file", path=str(path), error=str(e))
        return None


def _section(title: str, content: str) -> str:
    return f"## {title}\n\n{content}"


def load_guidance(
    cwd: Path | str | None = None,
    global_dir: Path | str | None = None,
    home: Path | str | None = None,
) -> GuidanceResult:
    """Collect guidance from the global config dir, then from cwd upward.

    The walk stops at the home directory or the filesystem root. Each file is
    included once even when reached twice.
    """
    cwd = Path(cwd or Path.cwd()).resolve()
    global_dir = Path(global_dir) if global_dir is not None else CONFIG_DIR
    home = Path(home).resolve() if home is not None else Path.home().resolve()

    result = GuidanceResult()
    sections: list[str] = []
    seen: set[Path] = set()

    def include(path: Path, title: str) -> None:
        resolved = path.resolve()
        if resolved in seen:
            return
        seen.add(resolved)
        content = _read_guidance(path)
        if content:
            sections.append(_section(title, content))
            result.sources.append(path)

    include(global_dir / GUIDANCE_FILENAME, "Global Guidance")

    current = cwd
    for _ in range(MAX_WALK_DEPTH):
        title = "Project Guidance" if current == cwd else f"Guidance ({current})"
        include(current / GUIDANCE_FILENAME, title)
        if current == home or current.parent == current:
            break
        current = current.parent

    result.content = "\n\n".join(sections)
    if result.found:
        log.debug("Loaded guidance", sources=[str(source) for source in result.sources])
    return result


def build_system_prompt(base_prompt: str, guidance: GuidanceResult) -> str:
    if not guidance.found:
        return base_prompt
    if not base_prompt:
        return guidance.content
    return f"{base_prompt}\n\n# Project Guidance\n\n{guidance.content}"
