# Overview: Service-layer operations for timekeeping; encapsulates business logic and database work.

"""
Work Sessions

WHY: Cashier hours come from login/logout spans. A session is closed
exactly once; closed sessions are immutable and feed payroll.

RECOVERY RULE: a login while a session is still open (crash, forgotten
logout) force-closes the stale session before opening the new one.
"""

import logging
from datetime import datetime

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import User, WorkSession
from ..time_utils import utcnow
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)

AUTO_END_NOTE = "Auto-ended on new login"
LOGOUT_NOTE = "Normal logout"


def _close(session: WorkSession, at: datetime, notes: str | None) -> None:
    session.logout_time = at
    session.duration_seconds = max(0, int((at - session.login_time).total_seconds()))
    if notes:
        session.notes = notes


def _active_session(user_id: int) -> WorkSession | None:
    return lock_for_update(
        db.session.query(WorkSession).filter_by(user_id=user_id, logout_time=None)
    ).order_by(WorkSession.login_time.desc()).first()


def start_session(user_id: int, notes: str | None = None, at: datetime | None = None) -> WorkSession:
    now = at or utcnow()

    with atomic():
        if not db.session.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")

        stale = _active_session(user_id)
        while stale is not None:
            _close(stale, now, AUTO_END_NOTE)
            logger.warning(
                "Work session %s for user %s was still open; auto-closed after %ss",
                stale.id, user_id, stale.duration_seconds,
            )
            db.session.flush()
            stale = _active_session(user_id)

        session = WorkSession(user_id=user_id, login_time=now, notes=notes)
        db.session.add(session)
        db.session.flush()

    return session


def end_session(user_id: int, notes: str | None = LOGOUT_NOTE, at: datetime | None = None) -> WorkSession | None:
    """Close the active session; None when the user has none open."""
    now = at or utcnow()

    with atomic():
        session = _active_session(user_id)
        if session is None:
            return None
        if now < session.login_time:
            raise ValidationError("logout time cannot be before login time")
        _close(session, now, notes)

    return session


def get_current_session(user_id: int) -> WorkSession | None:
    return (
        db.session.query(WorkSession)
        .filter_by(user_id=user_id, logout_time=None)
        .order_by(WorkSession.login_time.desc())
        .first()
    )


def list_sessions(
    user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[WorkSession]:
    query = db.session.query(WorkSession)
    if user_id is not None:
        query = query.filter(WorkSession.user_id == user_id)
    if start is not None:
        query = query.filter(WorkSession.login_time >= start)
    if end is not None:
        query = query.filter(WorkSession.login_time < end)
    return query.order_by(WorkSession.login_time.desc(), WorkSession.id.desc()).limit(limit).all()
