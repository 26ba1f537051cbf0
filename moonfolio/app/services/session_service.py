"""
Client sessions (in-memory).

A session is an opaque id stored in the ``moonfolio_session`` cookie; it
remembers the client's active portfolio. The registry lives on the
application state and is lost on restart.
"""
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional

from moonfolio.app.logging_config import get_logger
from moonfolio.app.utils.datetime_utils import utcnow

logger = get_logger(__name__)

SESSION_COOKIE_NAME = "moonfolio_session"
SESSION_EXPIRE_HOURS = 24 * 30
SESSION_ID_LENGTH = 32


@dataclass
class ClientSession:
    session_id: str
    expires_at: datetime
    active_portfolio_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)


class SessionRegistry:
    """Session id -> ClientSession, with lazy expiry."""

    def __init__(self, expire_hours: int = SESSION_EXPIRE_HOURS):
        self.expire_after = timedelta(hours=expire_hours)
        self._sessions: Dict[str, ClientSession] = {}

    def create(self) -> ClientSession:
        session_id = secrets.token_urlsafe(SESSION_ID_LENGTH)
        session = ClientSession(session_id=session_id, expires_at=utcnow() + self.expire_after)
        self._sessions[session_id] = session
        logger.debug("Session created", session_id=session_id[:8] + "...")
        return session

    def get(self, session_id: Optional[str]) -> Optional[ClientSession]:
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if utcnow() > session.expires_at:
            self._sessions.pop(session_id, None)
            return None
        return session

    def get_or_create(self, session_id: Optional[str]) -> ClientSession:
        return self.get(session_id) or self.create()

    def set_active_portfolio(self, session_id: str, portfolio_id: Optional[int]) -> ClientSession:
        session = self.get_or_create(session_id)
        session.active_portfolio_id = portfolio_id
        return session

    def forget_portfolio(self, portfolio_id: int) -> int:
        """Clear a deleted portfolio from every session that had it active."""
        cleared = 0
        for session in self._sessions.values():
            if session.active_portfolio_id == portfolio_id:
                session.active_portfolio_id = None
                cleared += 1
        return cleared

    def __len__(self) -> int:
        return len(self._sessions)
