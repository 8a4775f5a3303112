import pytest

from tenx.config import ContextConfig
from tenx.exceptions import SessionNotFoundError, SessionStateError
from tenx.llm import Message
from tenx.session import SUMMARY_PREFIX, SessionManager


def _message(index: int) -> Message:
    role = "user" if index % 2 == 0 else "assistant"
    return Message(role=role, content=f"message {index}")


class RecordingSummarizer:
    def __init__(self, summary: str = "earlier work summarized"):
        self.summary = summary
        self.calls: list[list[Message]] = []

    async def __call__(self, messages: list[Message]) -> str:
        self.calls.append(list(messages))
        return self.summary


@pytest.mark.asyncio
async def test_session_manager_uses_db_path_override(tmp_path):
    db_path = tmp_path / "custom-sessions.db"
    manager = SessionManager(db_path=db_path)
    try:
        await manager.create(name="alpha", working_directory=tmp_path)
        assert db_path.exists()
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_add_message_round_trips_through_storage(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        created = await manager.create(name="alpha", model="fast", working_directory=tmp_path)
        await manager.add_message(Message(role="user", content="abcd"))
        await manager.add_message(Message(role="assistant", content="abcdefghi"))

        assert created.token_usage.input == 1
        assert created.token_usage.output == 3

        reopened = SessionManager(db_path=tmp_path / "sessions.db")
        try:
            loaded = await reopened.load(created.id)
            assert loaded is not None
            assert loaded.name == "alpha"
            assert loaded.model == "fast"
            assert loaded.working_directory == str(tmp_path)
            assert [m.content for m in loaded.messages] == ["abcd", "abcdefghi"]
            assert loaded.token_usage.total == 4
            assert reopened.current is loaded
        finally:
            await reopened.close()
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_add_message_creates_session_when_none_is_current(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        session = await manager.add_message(Message(role="user", content="hi"))
        assert manager.current is session
        assert len(session.messages) == 1
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_load_missing_session_returns_none(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        assert await manager.load("missing") is None
        assert await manager.load_by_name("missing") is None
        assert manager.current is None
        with pytest.raises(SessionNotFoundError):
            await manager.require("missing")
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_compaction_keeps_recent_messages(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    summarizer = RecordingSummarizer()
    try:
        await manager.create(working_directory=tmp_path)
        for index in range(6):
            await manager.add_message(_message(index))

        summary = await manager.compact(summarizer)

        session = manager.current
        assert summary == "earlier work summarized"
        assert [m.content for m in summarizer.calls[0]] == ["message 0", "message 1"]
        assert len(session.messages) == 5
        assert session.messages[0] == Message(role="system", content=f"{SUMMARY_PREFIX}earlier work summarized")
        assert [m.content for m in session.messages[1:]] == [f"message {i}" for i in range(2, 6)]
        assert session.state == "compacted"

        text = "".join(m.text() for m in session.messages)
        estimated = -(-len(text) // 4)
        assert session.token_usage.input == int(estimated * 0.6)
        assert session.token_usage.output == int(estimated * 0.4)

        again = await manager.compact(summarizer)
        assert again is not None
        assert len(session.messages) == 5
        assert len(summarizer.calls[1]) == 1
        assert summarizer.calls[1][0].role == "system"

        stored = await manager.store.get(session.id)
        assert stored is not None
        assert stored.state == "compacted"
        assert len(stored.messages) == 5
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_compaction_needs_minimum_history(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    summarizer = RecordingSummarizer()
    try:
        await manager.create(working_directory=tmp_path)
        for index in range(3):
            await manager.add_message(_message(index))

        assert await manager.compact(summarizer) is None

        await manager.add_message(_message(3))
        # Four messages, all kept: empty prefix.
        assert await manager.compact(summarizer) is None
        assert summarizer.calls == []
        assert manager.current.state == "active"
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_failed_summarizer_leaves_session_untouched(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")

    async def broken(messages):
        raise RuntimeError("summarizer down")

    try:
        await manager.create(working_directory=tmp_path)
        for index in range(6):
            await manager.add_message(_message(index))

        with pytest.raises(RuntimeError):
            await manager.compact(broken)

        assert len(manager.current.messages) == 6
        assert manager.current.state == "active"
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_archived_session_cannot_be_compacted(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        await manager.create(working_directory=tmp_path)
        for index in range(6):
            await manager.add_message(_message(index))
        await manager.archive()

        with pytest.raises(SessionStateError):
            await manager.compact(RecordingSummarizer())
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_needs_compaction_uses_tier_window(tmp_path):
    context = ContextConfig(windows={"smart": 100}, compaction_threshold=0.8)
    manager = SessionManager(db_path=tmp_path / "sessions.db", context=context)
    try:
        await manager.create(working_directory=tmp_path)
        await manager.add_message(Message(role="user", content="x" * 320))
        assert manager.get_token_count() == 80
        assert manager.needs_compaction() is False

        await manager.add_message(Message(role="assistant", content="y" * 4))
        assert manager.needs_compaction() is True
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_fork_copies_history_with_lineage(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        parent = await manager.create(name="main", working_directory=tmp_path)
        await manager.add_message(Message(role="user", content="hello"))

        forked = await manager.fork()

        assert forked is not None
        assert forked.id != parent.id
        assert forked.parent_id == parent.id
        assert forked.name == "main-fork"
        assert forked.messages == parent.messages
        assert manager.current is forked

        await manager.add_message(Message(role="assistant", content="only in fork"))
        assert len(parent.messages) == 1
        stored_parent = await manager.store.get(parent.id)
        assert stored_parent is not None
        assert len(stored_parent.messages) == 1
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_resume_last_skips_archived_sessions(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        first = await manager.create(name="one", working_directory=tmp_path)
        await manager.create(name="two", working_directory=tmp_path)
        await manager.archive()

        resumed = await manager.resume_last()

        assert resumed is not None
        assert resumed.id == first.id
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_list_orders_by_last_update(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        first = await manager.create(name="one", working_directory=tmp_path)
        second = await manager.create(name="two", working_directory=tmp_path)

        await manager.load(first.id)
        await manager.add_message(Message(role="user", content="most recent"))

        summaries = await manager.list(limit=10)
        assert [s.id for s in summaries] == [first.id, second.id]
        assert summaries[0].message_count == 1
        assert summaries[0].last_user_prompt == "most recent"
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_rename_clear_and_delete(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        assert await manager.rename("nothing") is False

        session = await manager.create(working_directory=tmp_path)
        await manager.add_message(Message(role="user", content="hello world"))

        assert await manager.rename("renamed") is True
        assert (await manager.load_by_name("renamed")).id == session.id

        await manager.clear()
        assert manager.current.messages == []
        assert manager.get_token_count() == 0

        assert await manager.delete(session.id) is True
        assert manager.current is None
        assert await manager.delete(session.id) is False
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_corrupt_rows_are_skipped(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        good = await manager.create(name="good", working_directory=tmp_path)
        bad = await manager.create(name="bad", working_directory=tmp_path)
        db = await manager.store._ensure_db()
        await db.execute("UPDATE sessions SET messages = ? WHERE id = ?", ("{broken", bad.id))
        await db.commit()

        assert await manager.store.get(bad.id) is None
        summaries = await manager.list()
        assert [s.id for s in summaries] == [good.id]
    finally:
        await manager.close()
