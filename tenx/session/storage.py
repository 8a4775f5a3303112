"""SQLite-backed session storage."""

import json
from pathlib import Path
from typing import Any

import aiosqlite

from tenx.config import DEFAULT_DB_PATH
from tenx.llm import Message
from tenx.logging import get_logger
from tenx.session.models import Session, SessionSummary, TokenUsage

log = get_logger(__name__)

_COLUMNS = (
    "id, name, parent_id, messages, working_directory, model, "
    "created_at, updated_at, token_usage_input, token_usage_output, state"
)


def _row_to_session(row: Any) -> Session:
    return Session(
        id=row[0],
        name=row[1],
        parent_id=row[2],
        messages=[Message.from_dict(item) for item in json.loads(row[3])],
        working_directory=row[4],
        model=row[5],
        created_at=row[6],
        updated_at=row[7],
        token_usage=TokenUsage(input=int(row[8] or 0), output=int(row[9] or 0)),
        state=row[10] or "active",
    )


class SessionStore:
    """One row per session; every save replaces the whole record."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH
        self._db: aiosqlite.Connection | None = None

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Ensure database is initialized."""
        if self._db is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(str(self.db_path))
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    parent_id TEXT,
                    messages TEXT NOT NULL DEFAULT '[]',
                    working_directory TEXT NOT NULL,
                    model TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    token_usage_input INTEGER DEFAULT 0,
                    token_usage_output INTEGER DEFAULT 0,
                    state TEXT DEFAULT 'active'
                )
            """)
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_updated_at ON sessions(updated_at DESC)"
            )
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_name ON sessions(name)"
            )
            await self._db.commit()
        return self._db

    async def save(self, session: Session) -> None:
        db = await self._ensure_db()
        await db.execute(
            f"INSERT OR REPLACE INTO sessions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                session.id,
                session.name,
                session.parent_id,
                json.dumps([message.to_dict() for message in session.messages]),
                session.working_directory,
                session.model,
                session.created_at,
                session.updated_at,
                session.token_usage.input,
                session.token_usage.output,
                session.state,
            ),
        )
        await db.commit()

    async def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Session | None:
        db = await self._ensure_db()
        async with db.execute(query, params) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        try:
            return _row_to_session(row)
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError, KeyError) as e:
            log.warning("Unreadable session row", session_id=row[0], error=str(e))
            return None

    async def get(self, session_id: str) -> Session | None:
        return await self._fetch_one(
            f"SELECT {_COLUMNS} FROM sessions WHERE id = ?",
            (session_id,),
        )

    async def get_by_name(self, name: str) -> Session | None:
        """Most recently updated session with this name."""
        return await self._fetch_one(
            f"SELECT {_COLUMNS} FROM sessions WHERE name = ? "
            "ORDER BY updated_at DESC, rowid DESC LIMIT 1",
            (name,),
        )

    async def get_last(self) -> Session | None:
        """Most recently updated session that is not archived."""
        return await self._fetch_one(
            f"SELECT {_COLUMNS} FROM sessions WHERE state != 'archived' "
            "ORDER BY updated_at DESC, rowid DESC LIMIT 1",
            (),
        )

    async def list_summaries(self, limit: int = 20) -> list[SessionSummary]:
        db = await self._ensure_db()
        async with db.execute(
            f"SELECT {_COLUMNS} FROM sessions ORDER BY updated_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()

        summaries: list[SessionSummary] = []
        for row in rows:
            try:
                session = _row_to_session(row)
            except (json.JSONDecodeError, AttributeError, TypeError, ValueError, KeyError) as e:
                log.warning("Skipping unreadable session row", session_id=row[0], error=str(e))
                continue
            summaries.append(SessionSummary(
                id=session.id,
                name=session.name,
                message_count=len(session.messages),
                model=session.model,
                created_at=session.created_at,
                updated_at=session.updated_at,
                state=session.state,
                last_user_prompt=session.last_user_prompt(),
            ))
        return summaries

    async def delete(self, session_id: str) -> bool:
        """Delete a session; True if a row was removed."""
        db = await self._ensure_db()
        cursor = await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        await db.commit()
        return cursor.rowcount > 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None
