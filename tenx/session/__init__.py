"""Session management with SQLite storage."""

from tenx.session.manager import SUMMARY_PREFIX, SessionManager, Summarizer
from tenx.session.models import Session, SessionState, SessionSummary, TokenUsage
from tenx.session.storage import SessionStore

__all__ = [
    "SUMMARY_PREFIX",
    "Session",
    "SessionManager",
    "SessionState",
    "SessionStore",
    "SessionSummary",
    "Summarizer",
    "TokenUsage",
]
