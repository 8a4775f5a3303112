"""Session lifecycle: message log, token accounting and compaction."""

import math
from dataclasses import replace
from pathlib import Path
from typing import Awaitable, Callable

from tenx.config import ContextConfig, ModelTier
from tenx.exceptions import SessionNotFoundError, SessionStateError
from tenx.llm import Message
from tenx.logging import get_logger
from tenx.session.models import (
    Session,
    SessionSummary,
    TokenUsage,
    can_transition,
    generate_session_id,
)
from tenx.session.storage import SessionStore

log = get_logger(__name__)

Summarizer = Callable[[list[Message]], Awaitable[str]]

SUMMARY_PREFIX = "[Session Summary]\n"


class SessionManager:
    """Owns the current session and persists every mutation."""

    def __init__(
        self,
        store: SessionStore | None = None,
        db_path: Path | str | None = None,
        context: ContextConfig | None = None,
    ):
        self.store = store or SessionStore(db_path)
        self.context = context or ContextConfig()
        self.current: Session | None = None

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text) / self.context.chars_per_token)

    def _set_state(self, session: Session, requested: str) -> None:
        if not can_transition(session.state, requested):
            raise SessionStateError(session.state, requested)
        session.state = requested

    async def save(self) -> None:
        """Persist the current session."""
        if self.current is None:
            return
        self.current.touch()
        await self.store.save(self.current)

    async def create(
        self,
        name: str | None = None,
        model: ModelTier = "smart",
        working_directory: str | Path | None = None,
    ) -> Session:
        """Create and persist a new session, making it current."""
        session = Session(
            id=generate_session_id(),
            name=name,
            model=model,
            working_directory=str(working_directory or Path.cwd()),
        )
        self.current = session
        await self.store.save(session)
        log.info("Created new session", session_id=session.id, name=name)
        return session

    async def get_or_create(
        self,
        name: str | None = None,
        model: ModelTier = "smart",
        working_directory: str | Path | None = None,
    ) -> Session:
        if self.current is not None:
            return self.current
        return await self.create(name=name, model=model, working_directory=working_directory)

    def _adopt(self, session: Session | None) -> Session | None:
        if session is not None:
            self.current = session
        return session

    async def load(self, session_id: str) -> Session | None:
        return self._adopt(await self.store.get(session_id))

    async def require(self, session_id: str) -> Session:
        session = await self.load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def load_by_name(self, name: str) -> Session | None:
        return self._adopt(await self.store.get_by_name(name))

    async def resume_last(self) -> Session | None:
        """Make the most recently updated non-archived session current."""
        return self._adopt(await self.store.get_last())

    async def add_message(self, message: Message) -> Session:
        """Append a message, update token estimates and persist."""
        session = self.current or await self.create()
        session.messages.append(message)

        tokens = self.estimate_tokens(message.text())
        if message.role == "user":
            session.token_usage.input += tokens
        else:
            session.token_usage.output += tokens

        session.touch()
        await self.store.save(session)
        return session

    async def rename(self, name: str) -> bool:
        if self.current is None:
            return False
        self.current.name = name
        await self.save()
        return True

    async def list(self, limit: int = 20) -> list[SessionSummary]:
        return await self.store.list_summaries(limit)

    async def delete(self, session_id: str) -> bool:
        if self.current is not None and self.current.id == session_id:
            self.current = None
        return await self.store.delete(session_id)

    async def fork(self, name: str | None = None) -> Session | None:
        """Copy the current session under a new id; the fork becomes current."""
        parent = self.current
        if parent is None:
            return None

        forked = Session(
            id=generate_session_id(),
            name=name or f"{parent.name or 'session'}-fork",
            parent_id=parent.id,
            messages=list(parent.messages),
            working_directory=parent.working_directory,
            model=parent.model,
            token_usage=replace(parent.token_usage),
            state="active",
        )
        await self.store.save(forked)
        self.current = forked
        log.info("Forked session", session_id=forked.id, parent_id=parent.id)
        return forked

    async def clear(self) -> None:
        """Drop all messages and reset counters."""
        if self.current is None:
            return
        self.current.messages = []
        self.current.token_usage = TokenUsage()
        await self.save()

    async def archive(self) -> Session | None:
        if self.current is None:
            return None
        self._set_state(self.current, "archived")
        await self.save()
        return self.current

    def get_token_count(self) -> int:
        if self.current is None:
            return 0
        return self.current.token_usage.total

    def get_context_window(self) -> int:
        windows = self.context.windows
        tier = self.current.model if self.current is not None else "smart"
        return int(windows.get(tier) or windows.get("smart") or 200000)

    def needs_compaction(self) -> bool:
        """Advisory: estimated tokens exceed the threshold share of the window."""
        if self.current is None:
            return False
        threshold = self.get_context_window() * self.context.compaction_threshold
        return self.get_token_count() > threshold

    async def compact(self, summarizer: Summarizer) -> str | None:
        """Summarize all but the most recent messages.

        Returns the summary, or None when there is nothing to summarize.

        Raises:
            SessionStateError if the session is archived
        """
        session = self.current
        if session is None or len(session.messages) < self.context.min_messages:
            return None

        keep = self.context.keep_recent
        to_summarize = session.messages[:-keep] if keep else list(session.messages)
        to_keep = session.messages[-keep:] if keep else []
        if not to_summarize:
            return None

        if not can_transition(session.state, "compacted"):
            raise SessionStateError(session.state, "compacted")
        summary = await summarizer(to_summarize)

        self._set_state(session, "compacted")
        session.messages = [Message(role="system", content=f"{SUMMARY_PREFIX}{summary}"), *to_keep]

        estimated = self.estimate_tokens("".join(message.text() for message in session.messages))
        session.token_usage = TokenUsage(
            input=math.floor(estimated * 0.6),
            output=math.floor(estimated * 0.4),
        )

        await self.save()
        log.info(
            "Compacted session",
            session_id=session.id,
            summarized=len(to_summarize),
            kept=len(to_keep),
        )
        return summary

    async def close(self) -> None:
        await self.store.close()
