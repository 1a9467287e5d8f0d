"""Reward request persistence.

Every status transition is a conditional UPDATE guarded by the expected
current status, so a transition either happens exactly once or reports
``False`` to the caller. The one move out of a terminal state is
:func:`confirm_late_payment`, for a FAILED request whose transaction the
ledger validated after the request gave up on it.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

from brother_nature.clock import to_db
from brother_nature.db.connection import connection_scope
from brother_nature.db.errors import raise_read_error, raise_write_error
from brother_nature.db.types import RewardRequest, RewardStatus


def _insert(conn: sqlite3.Connection, request: RewardRequest) -> None:
    conn.execute(
        """
        INSERT INTO reward_requests (
            id,
            beneficiary_user_id,
            token_kind,
            amount,
            reason,
            contribution_ref,
            destination_address,
            issuer_address,
            currency_code,
            status,
            attempts,
            created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
        """,
        (
            request.id,
            request.beneficiary_user_id,
            request.token_kind,
            request.amount,
            request.reason,
            request.contribution_ref,
            request.destination_address,
            request.issuer_address,
            request.currency_code,
            request.status.value,
            to_db(request.created_at),
        ),
    )


def _find_live(
    conn: sqlite3.Connection, user_id: int, contribution_ref: str, token_kind: str
) -> RewardRequest | None:
    row = conn.execute(
        """
        SELECT * FROM reward_requests
        WHERE beneficiary_user_id = ? AND contribution_ref = ? AND token_kind = ?
          AND status != 'FAILED'
        """,
        (user_id, contribution_ref, token_kind),
    ).fetchone()
    return RewardRequest.from_row(row) if row else None


def insert_or_get_live(request: RewardRequest) -> tuple[RewardRequest, bool]:
    """Insert ``request`` unless a live request already holds its dedupe key.

    Returns:
        ``(stored_request, created)``. When ``created`` is False the returned
        request is the pre-existing PENDING/PROCESSING/CONFIRMED row.
    """
    user_id, contribution_ref, token_kind = request.dedupe_key
    try:
        with connection_scope(write=True) as conn:
            existing = _find_live(conn, user_id, contribution_ref, token_kind)
            if existing is not None:
                return existing, False
            try:
                _insert(conn, request)
            except sqlite3.IntegrityError:
                # Lost a race against a concurrent insert of the same key.
                winner = _find_live(conn, user_id, contribution_ref, token_kind)
                if winner is None:
                    raise
                return winner, False
            return request, True
    except Exception as exc:
        raise_write_error(
            "rewards.insert_or_get_live",
            exc,
            details=f"user_id={user_id} contribution_ref={contribution_ref!r}",
        )


def get_request(request_id: str) -> RewardRequest | None:
    """Return the reward request with ``request_id`` or ``None``."""
    try:
        with connection_scope() as conn:
            row = conn.execute(
                "SELECT * FROM reward_requests WHERE id = ?", (request_id,)
            ).fetchone()
        return RewardRequest.from_row(row) if row else None
    except Exception as exc:
        raise_read_error("rewards.get_request", exc, details=f"request_id={request_id}")


def list_for_contribution(contribution_ref: str) -> list[RewardRequest]:
    """Return every request for a contribution, oldest first."""
    try:
        with connection_scope() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reward_requests
                WHERE contribution_ref = ?
                ORDER BY created_at ASC
                """,
                (contribution_ref,),
            ).fetchall()
        return [RewardRequest.from_row(row) for row in rows]
    except Exception as exc:
        raise_read_error("rewards.list_for_contribution", exc)


def list_for_user(
    user_id: int, *, status: RewardStatus | None = None, limit: int | None = None
) -> list[RewardRequest]:
    """Return a user's requests, newest first, optionally filtered by status."""
    query = "SELECT * FROM reward_requests WHERE beneficiary_user_id = ?"
    params: list[object] = [user_id]
    if status is not None:
        query += " AND status = ?"
        params.append(status.value)
    query += " ORDER BY created_at DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)
    try:
        with connection_scope() as conn:
            rows = conn.execute(query, params).fetchall()
        return [RewardRequest.from_row(row) for row in rows]
    except Exception as exc:
        raise_read_error("rewards.list_for_user", exc, details=f"user_id={user_id}")


def list_by_status(status: RewardStatus) -> list[RewardRequest]:
    """Return every request currently in ``status``, oldest first."""
    try:
        with connection_scope() as conn:
            rows = conn.execute(
                "SELECT * FROM reward_requests WHERE status = ? ORDER BY created_at ASC",
                (status.value,),
            ).fetchall()
        return [RewardRequest.from_row(row) for row in rows]
    except Exception as exc:
        raise_read_error("rewards.list_by_status", exc, details=f"status={status.value}")


def mark_processing(request_id: str, *, now: datetime) -> bool:
    """PENDING → PROCESSING. Returns False when the request was not PENDING."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE reward_requests
                SET status = 'PROCESSING', processed_at = ?
                WHERE id = ? AND status = 'PENDING'
                """,
                (to_db(now), request_id),
            )
            return cursor.rowcount == 1
    except Exception as exc:
        raise_write_error("rewards.mark_processing", exc, details=f"request_id={request_id}")


def record_attempt(
    request_id: str, *, tx_hash: str | None, last_ledger_sequence: int | None = None
) -> bool:
    """Count a submission attempt and remember the signed transaction."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE reward_requests
                SET attempts = attempts + 1,
                    external_tx_ref = COALESCE(?, external_tx_ref),
                    last_ledger_sequence = COALESCE(?, last_ledger_sequence)
                WHERE id = ? AND status = 'PROCESSING'
                """,
                (tx_hash, last_ledger_sequence, request_id),
            )
            return cursor.rowcount == 1
    except Exception as exc:
        raise_write_error("rewards.record_attempt", exc, details=f"request_id={request_id}")


def mark_confirmed(request_id: str, *, tx_hash: str, now: datetime) -> bool:
    """PROCESSING → CONFIRMED with the validated transaction hash."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE reward_requests
                SET status = 'CONFIRMED',
                    external_tx_ref = ?,
                    error_detail = NULL,
                    confirmed_at = ?
                WHERE id = ? AND status = 'PROCESSING'
                """,
                (tx_hash, to_db(now), request_id),
            )
            return cursor.rowcount == 1
    except Exception as exc:
        raise_write_error("rewards.mark_confirmed", exc, details=f"request_id={request_id}")


def mark_failed(request_id: str, *, detail: str, now: datetime) -> bool:
    """PENDING/PROCESSING → FAILED with a non-empty error detail.

    A request that never recorded a signed transaction releases its dedupe
    key immediately.
    """
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE reward_requests
                SET status = 'FAILED',
                    error_detail = ?,
                    processed_at = COALESCE(processed_at, ?),
                    released_at = CASE WHEN external_tx_ref IS NULL THEN ? END
                WHERE id = ? AND status IN ('PENDING', 'PROCESSING')
                """,
                (detail or "unknown failure", to_db(now), to_db(now), request_id),
            )
            return cursor.rowcount == 1
    except Exception as exc:
        raise_write_error("rewards.mark_failed", exc, details=f"request_id={request_id}")


def list_unreleased_failures(
    user_id: int, contribution_ref: str, token_kind: str
) -> list[RewardRequest]:
    """FAILED requests for a dedupe key whose transaction may still validate."""
    try:
        with connection_scope() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reward_requests
                WHERE beneficiary_user_id = ? AND contribution_ref = ? AND token_kind = ?
                  AND status = 'FAILED' AND released_at IS NULL
                  AND external_tx_ref IS NOT NULL
                ORDER BY created_at ASC
                """,
                (user_id, contribution_ref, token_kind),
            ).fetchall()
        return [RewardRequest.from_row(row) for row in rows]
    except Exception as exc:
        raise_read_error(
            "rewards.list_unreleased_failures",
            exc,
            details=f"user_id={user_id} contribution_ref={contribution_ref!r}",
        )


def release_failed(request_id: str, *, now: datetime) -> bool:
    """Give up the dedupe key of a FAILED request whose transaction cannot land."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE reward_requests
                SET released_at = ?
                WHERE id = ? AND status = 'FAILED' AND released_at IS NULL
                """,
                (to_db(now), request_id),
            )
            return cursor.rowcount == 1
    except Exception as exc:
        raise_write_error("rewards.release_failed", exc, details=f"request_id={request_id}")


def confirm_late_payment(request_id: str, *, tx_hash: str, now: datetime) -> bool:
    """FAILED → CONFIRMED for a transaction the ledger validated after the timeout."""
    try:
        with connection_scope(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE reward_requests
                SET status = 'CONFIRMED',
                    external_tx_ref = ?,
                    error_detail = NULL,
                    confirmed_at = ?
                WHERE id = ? AND status = 'FAILED' AND released_at IS NULL
                """,
                (tx_hash, to_db(now), request_id),
            )
            return cursor.rowcount == 1
    except Exception as exc:
        raise_write_error(
            "rewards.confirm_late_payment", exc, details=f"request_id={request_id}"
        )
