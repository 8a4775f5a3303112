"""Session data models."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from tenx.config import ModelTier
from tenx.llm import Message

SessionState = Literal["active", "compacted", "archived"]

# Allowed forward transitions; anything else is rejected.
_TRANSITIONS: dict[str, set[str]] = {
    "active": {"active", "compacted", "archived"},
    "compacted": {"compacted", "archived"},
    "archived": {"archived"},
}

PREVIEW_CHARS = 50


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def generate_session_id() -> str:
    return str(uuid.uuid4())


def can_transition(current: str, requested: str) -> bool:
    return requested in _TRANSITIONS.get(current, set())


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    """Collapse whitespace and truncate with `...` to at most `limit` chars."""
    cleaned = " ".join(text.split())
    if len(cleaned) > limit:
        return cleaned[:limit - 3] + "..."
    return cleaned


@dataclass
class TokenUsage:
    """Estimated token counters for a session."""

    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass
class Session:
    """A conversation session."""

    id: str
    name: str | None = None
    parent_id: str | None = None
    messages: list[Message] = field(default_factory=list)
    working_directory: str = ""
    model: ModelTier = "smart"
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    state: SessionState = "active"

    def touch(self) -> None:
        self.updated_at = _utcnow_iso()

    def last_user_prompt(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == "user":
                return preview(message.text())
        return None


@dataclass
class SessionSummary:
    """Lightweight listing entry for a session."""

    id: str
    name: str | None
    message_count: int
    model: ModelTier
    created_at: str
    updated_at: str
    state: SessionState
    last_user_prompt: str | None = None
