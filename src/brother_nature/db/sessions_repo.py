"""Bearer session persistence.

A session row maps an opaque token to a user id. The API layer resolves a
token into a typed principal exactly once per request.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from brother_nature.clock import to_db, utcnow
from brother_nature.db.connection import connection_scope
from brother_nature.db.errors import raise_read_error, raise_write_error


def create_session(user_id: int, session_id: str, *, ttl_minutes: int = 0) -> None:
    """Persist a new session for ``user_id``.

    Args:
        ttl_minutes: Lifetime of the session; ``0`` means no expiry.
    """
    now = utcnow()
    expires_at = to_db(now + timedelta(minutes=ttl_minutes)) if ttl_minutes > 0 else None
    try:
        with connection_scope(write=True) as conn:
            conn.execute(
                """
                INSERT INTO sessions (session_id, user_id, created_at, last_activity, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (session_id, user_id, to_db(now), to_db(now), expires_at),
            )
            conn.execute("UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE id = ?", (user_id,))
    except Exception as exc:
        raise_write_error("sessions.create_session", exc, details=f"user_id={user_id}")


def get_session_user_id(session_id: str, *, now: datetime | None = None) -> int | None:
    """Return the user id owning a live session, or ``None``.

    Expired sessions and sessions of deactivated users resolve to ``None``.
    """
    now_text = to_db(now or utcnow())
    try:
        with connection_scope() as conn:
            row = conn.execute(
                """
                SELECT s.user_id
                FROM sessions s
                JOIN users u ON u.id = s.user_id
                WHERE s.session_id = ?
                  AND (s.expires_at IS NULL OR s.expires_at >= ?)
                  AND u.is_active = 1
                """,
                (session_id, now_text),
            ).fetchone()
        return int(row[0]) if row else None
    except Exception as exc:
        raise_read_error("sessions.get_session_user_id", exc)


def touch_session(session_id: str) -> bool:
    """Record activity on a session. Returns False for unknown sessions."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                "UPDATE sessions SET last_activity = ? WHERE session_id = ?",
                (to_db(utcnow()), session_id),
            )
            return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error("sessions.touch_session", exc)


def remove_session(session_id: str) -> bool:
    """Delete a session. Returns False when it did not exist."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error("sessions.remove_session", exc)


def count_active_sessions() -> int:
    """Return the number of unexpired sessions."""
    try:
        with connection_scope() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM sessions WHERE expires_at IS NULL OR expires_at >= ?",
                (to_db(utcnow()),),
            ).fetchone()
        return int(row[0])
    except Exception as exc:
        raise_read_error("sessions.count_active_sessions", exc)
