"""
In-memory session store. session_id is generated on the backend (POST /api/sessions).

Live ConversationSession objects are kept until closed; on close the session is
disposed and its final snapshot is kept in a bounded history (SESSION_HISTORY_MAX)
for GET requests after the conversation ended.
"""
from __future__ import annotations

import logging
import uuid
from collections import OrderedDict

from handsfree.config import get_settings
from handsfree.errors import SessionNotFound
from handsfree.session import ConversationSession, SessionSnapshot

logger = logging.getLogger(__name__)

_session_store: dict[str, ConversationSession] = {}
_session_history: OrderedDict[str, SessionSnapshot] = OrderedDict()


def generate_session_id() -> str:
    """Generate a new session_id (UUID hex, 12 chars). Backend only."""
    return uuid.uuid4().hex[:12]


def create_session(
    employee_language: str | None = None,
    customer_language: str | None = None,
    **kwargs,
) -> ConversationSession:
    """Create and register a session. kwargs go to ConversationSession (clock, backend, output...)."""
    session_id = generate_session_id()
    session = ConversationSession(
        session_id,
        employee_language=employee_language,
        customer_language=customer_language,
        **kwargs,
    )
    _session_store[session_id] = session
    logger.info("Session %s created (%s <-> %s)", session_id,
                session.state.employee_language, session.state.customer_language)
    return session


def get_session(session_id: str) -> ConversationSession | None:
    """Return live session or None if not found."""
    return _session_store.get(session_id)


def require_session(session_id: str) -> ConversationSession:
    """Return live session or raise SessionNotFound."""
    session = _session_store.get(session_id)
    if session is None:
        raise SessionNotFound(session_id)
    return session


def get_snapshot(session_id: str) -> SessionSnapshot | None:
    """Final snapshot of a closed session, if still in history."""
    return _session_history.get(session_id)


async def close_session(session_id: str) -> SessionSnapshot:
    """Dispose the session, remove it and keep its snapshot. Raises SessionNotFound."""
    session = _session_store.pop(session_id, None)
    if session is None:
        raise SessionNotFound(session_id)
    snapshot = await session.dispose()
    _session_history[session_id] = snapshot
    max_history = get_settings().SESSION_HISTORY_MAX
    while len(_session_history) > max_history:
        _session_history.popitem(last=False)
    return snapshot


async def close_all_sessions() -> None:
    """Dispose every live session (shutdown)."""
    for session_id in list(_session_store):
        await close_session(session_id)


def session_store() -> dict[str, ConversationSession]:
    """Return the underlying store (read-only view for debugging)."""
    return _session_store


def clear_history() -> None:
    _session_history.clear()
