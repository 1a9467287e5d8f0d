"""Schema-level constraints and bootstrap behaviour."""

import sqlite3
from unittest.mock import patch

import pytest

from brother_nature.db import users_repo
from brother_nature.db.connection import connection_scope
from brother_nature.db.schema import init_database


@pytest.mark.unit
@pytest.mark.db
def test_init_is_idempotent(test_db):
    init_database(skip_admin=True)

    with connection_scope() as conn:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
    assert {"users", "sessions", "wallet_challenges", "reward_requests"} <= tables


@pytest.mark.unit
@pytest.mark.db
def test_verified_challenge_must_be_consumed(users):
    with pytest.raises(sqlite3.IntegrityError):
        with connection_scope(write=True) as conn:
            conn.execute(
                """
                INSERT INTO wallet_challenges
                    (nonce, message, claimed_address, user_id, created_at, expires_at,
                     consumed, verified)
                VALUES (?, 'm', 'r', ?, 'x', 'y', 0, 1)
                """,
                ("a" * 64, users["alice"]),
            )


@pytest.mark.unit
@pytest.mark.db
def test_unknown_reward_status_is_rejected(users):
    with pytest.raises(sqlite3.IntegrityError):
        with connection_scope(write=True) as conn:
            conn.execute(
                """
                INSERT INTO reward_requests
                    (id, beneficiary_user_id, token_kind, amount, reason, contribution_ref,
                     destination_address, issuer_address, currency_code, status, created_at)
                VALUES ('r1', ?, 'REGEN', '1', 'x', 'p', 'r', 'r', 'RGN', 'PAID', 'now')
                """,
                (users["alice"],),
            )


@pytest.mark.unit
@pytest.mark.db
def test_bootstrap_admin_from_environment(temp_db_path):
    env = {"BN_ADMIN_USER": "root", "BN_ADMIN_PASSWORD": "long-enough-password"}
    with patch.dict("os.environ", env):
        init_database()

    admin = users_repo.get_user_by_username("root")
    assert admin is not None and admin.role == "admin"


@pytest.mark.unit
@pytest.mark.db
def test_bootstrap_skipped_for_short_password(temp_db_path):
    with patch.dict("os.environ", {"BN_ADMIN_USER": "root", "BN_ADMIN_PASSWORD": "short"}):
        init_database()

    assert users_repo.get_user_by_username("root") is None


@pytest.mark.unit
@pytest.mark.db
def test_settlement_columns_added_to_older_table(temp_db_path):
    with connection_scope(write=True) as conn:
        conn.execute(
            """
            CREATE TABLE reward_requests (
                id TEXT PRIMARY KEY,
                beneficiary_user_id INTEGER NOT NULL,
                token_kind TEXT NOT NULL,
                amount TEXT NOT NULL,
                reason TEXT NOT NULL,
                contribution_ref TEXT NOT NULL,
                destination_address TEXT NOT NULL,
                issuer_address TEXT NOT NULL,
                currency_code TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                external_tx_ref TEXT,
                error_detail TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                processed_at TEXT,
                confirmed_at TEXT
            )
            """
        )

    init_database(skip_admin=True)

    with connection_scope() as conn:
        columns = {row[1] for row in conn.execute("PRAGMA table_info(reward_requests)")}
    assert {"last_ledger_sequence", "released_at"} <= columns
