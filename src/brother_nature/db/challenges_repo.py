"""Wallet challenge persistence.

The single interesting operation here is :func:`consume_and_bind`, which
performs the terminal transition of a challenge and the address binding on
the user row as one SQLite transaction:

1. A conditional ``UPDATE ... WHERE consumed = 0 AND expires_at >= now`` is
   the compare-and-set. Only one caller can ever see ``rowcount == 1``.
2. The user update runs inside a savepoint. The UNIQUE index on
   ``users.wallet_address`` rejects a second binding of the same address;
   the savepoint is rolled back, the challenge stays consumed but unverified,
   and the outer transaction commits so the rejected challenge is final.
3. Otherwise the challenge is marked verified and everything commits.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from enum import Enum

from brother_nature.clock import to_db
from brother_nature.db.connection import connection_scope, immediate_transaction
from brother_nature.db.errors import raise_read_error, raise_write_error
from brother_nature.db.types import Challenge

logger = logging.getLogger(__name__)


class BindOutcome(str, Enum):
    """Result of :func:`consume_and_bind`."""

    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    ALREADY_CONSUMED = "already_consumed"
    EXPIRED = "expired"
    ADDRESS_CONFLICT = "address_conflict"


def insert_challenge(challenge: Challenge) -> None:
    """Persist a freshly issued challenge."""
    try:
        with connection_scope(write=True) as conn:
            conn.execute(
                """
                INSERT INTO wallet_challenges (
                    nonce,
                    message,
                    claimed_address,
                    user_id,
                    created_at,
                    expires_at,
                    consumed,
                    verified
                )
                VALUES (?, ?, ?, ?, ?, ?, 0, 0)
                """,
                (
                    challenge.nonce,
                    challenge.message,
                    challenge.claimed_address,
                    challenge.requesting_user_id,
                    to_db(challenge.created_at),
                    to_db(challenge.expires_at),
                ),
            )
    except Exception as exc:
        raise_write_error(
            "challenges.insert_challenge",
            exc,
            details=f"user_id={challenge.requesting_user_id}",
        )


def get_challenge(nonce: str) -> Challenge | None:
    """Return the challenge stored under ``nonce`` or ``None``."""
    try:
        with connection_scope() as conn:
            row = conn.execute("SELECT * FROM wallet_challenges WHERE nonce = ?", (nonce,)).fetchone()
        return Challenge.from_row(row) if row else None
    except Exception as exc:
        raise_read_error("challenges.get_challenge", exc)


def consume_and_bind(nonce: str, user_id: int, address: str, *, now: datetime) -> BindOutcome:
    """Atomically consume a challenge and bind ``address`` to ``user_id``.

    Args:
        nonce: Challenge key.
        user_id: Account that receives the binding.
        address: Address to bind; must equal the challenge's claimed address.
        now: Verification time, compared against ``expires_at`` in SQL.

    Returns:
        A :class:`BindOutcome`. Only ``VERIFIED`` means the binding happened.
    """
    now_text = to_db(now)
    try:
        with immediate_transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE wallet_challenges
                SET consumed = 1
                WHERE nonce = ? AND consumed = 0 AND expires_at >= ?
                """,
                (nonce, now_text),
            )
            if cursor.rowcount != 1:
                row = conn.execute(
                    "SELECT consumed FROM wallet_challenges WHERE nonce = ?", (nonce,)
                ).fetchone()
                if row is None:
                    return BindOutcome.NOT_FOUND
                if row["consumed"]:
                    return BindOutcome.ALREADY_CONSUMED
                return BindOutcome.EXPIRED

            conn.execute("SAVEPOINT bind_wallet")
            try:
                conn.execute(
                    "UPDATE users SET wallet_address = ? WHERE id = ?",
                    (address, user_id),
                )
            except sqlite3.IntegrityError:
                conn.execute("ROLLBACK TO bind_wallet")
                conn.execute("RELEASE bind_wallet")
                logger.warning(
                    "Challenge %s… rejected: address already bound to another user",
                    nonce[:8],
                )
                return BindOutcome.ADDRESS_CONFLICT
            conn.execute("RELEASE bind_wallet")

            conn.execute(
                "UPDATE wallet_challenges SET verified = 1, verified_at = ? WHERE nonce = ?",
                (now_text, nonce),
            )
            return BindOutcome.VERIFIED
    except Exception as exc:
        raise_write_error("challenges.consume_and_bind", exc, details=f"user_id={user_id}")


def purge_expired(older_than: datetime) -> int:
    """Delete challenges whose expiry is before ``older_than``.

    Housekeeping only; verification never depends on rows being removed.

    Returns:
        Number of rows deleted.
    """
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                "DELETE FROM wallet_challenges WHERE expires_at < ?", (to_db(older_than),)
            )
            return cursor.rowcount
    except Exception as exc:
        raise_write_error("challenges.purge_expired", exc)
