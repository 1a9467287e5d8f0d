"""User account repository operations for the SQLite backend.

This is the UserStore the wallet core consumes: read a user, look up who owns
an address, and clear a binding. Setting a binding only ever happens inside
the challenge consumption transaction in :mod:`brother_nature.db.challenges_repo`.
"""

from __future__ import annotations

import sqlite3

from brother_nature.db.connection import connection_scope
from brother_nature.db.errors import raise_read_error, raise_write_error
from brother_nature.db.types import UserRecord

_USER_COLUMNS = "id, username, role, wallet_address, is_active"


def create_user(username: str, password: str, *, role: str = "user") -> int | None:
    """Create an account row.

    Returns:
        The new user id, or ``None`` when the username is already taken.
    """
    from brother_nature.api.password import hash_password

    password_hash = hash_password(password)
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO users (username, password_hash, role) VALUES (?, ?, ?)",
                (username, password_hash, role),
            )
            return int(cursor.lastrowid) if cursor.lastrowid is not None else None
    except sqlite3.IntegrityError:
        return None
    except Exception as exc:
        raise_write_error("users.create_user", exc, details=f"username={username!r}")


def get_user(user_id: int) -> UserRecord | None:
    """Return the user row for ``user_id`` or ``None`` if missing."""
    try:
        with connection_scope() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        return UserRecord.from_row(row) if row else None
    except Exception as exc:
        raise_read_error("users.get_user", exc, details=f"user_id={user_id}")


def get_user_by_username(username: str) -> UserRecord | None:
    """Return the user row for ``username`` or ``None`` if missing."""
    try:
        with connection_scope() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE username = ?", (username,)
            ).fetchone()
        return UserRecord.from_row(row) if row else None
    except Exception as exc:
        raise_read_error("users.get_user_by_username", exc, details=f"username={username!r}")


def get_user_id_for_address(address: str) -> int | None:
    """Return the id of the user currently bound to ``address``."""
    try:
        with connection_scope() as conn:
            row = conn.execute(
                "SELECT id FROM users WHERE wallet_address = ?", (address,)
            ).fetchone()
        return int(row[0]) if row else None
    except Exception as exc:
        raise_read_error("users.get_user_id_for_address", exc)


def verify_credentials(username: str, password: str) -> UserRecord | None:
    """Return the active user matching ``username``/``password``.

    Uses a dummy hash when the lookup fails to preserve timing behavior.
    """
    from brother_nature.api.password import verify_password

    dummy_hash = "$2b$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/X4.G5j1L3tDPZ3q4q"  # nosec B105

    try:
        with connection_scope() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS}, password_hash FROM users WHERE username = ?",
                (username,),
            ).fetchone()
    except Exception as exc:
        raise_read_error("users.verify_credentials", exc, details=f"username={username!r}")

    if not row:
        verify_password(password, dummy_hash)
        return None
    if not verify_password(password, row["password_hash"]):
        return None
    user = UserRecord.from_row(row)
    return user if user.is_active else None


def set_user_role(username: str, role: str) -> bool:
    """Update a user's role. Returns False when the user does not exist."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute("UPDATE users SET role = ? WHERE username = ?", (role, username))
            return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error("users.set_user_role", exc, details=f"username={username!r}")


def clear_wallet_address(user_id: int) -> UserRecord | None:
    """Remove the bound wallet address from ``user_id``.

    Returns:
        The updated user, or ``None`` when the user does not exist.
    """
    try:
        with connection_scope(write=True) as conn:
            conn.execute("UPDATE users SET wallet_address = NULL WHERE id = ?", (user_id,))
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        return UserRecord.from_row(row) if row else None
    except Exception as exc:
        raise_write_error("users.clear_wallet_address", exc, details=f"user_id={user_id}")
