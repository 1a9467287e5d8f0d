"""Schema creation for the SQLite backend.

The schema layer is isolated from query code so schema changes are reviewable
without wading through repository logic. Two constraints carry correctness
weight and must not be relaxed:

- ``users.wallet_address`` is UNIQUE. Concurrent bindings of one address to
  two accounts are resolved here, not in application code.
- ``idx_reward_requests_dedupe`` is a partial unique index over
  ``(beneficiary_user_id, contribution_ref, token_kind)`` for every status
  except FAILED, so a contribution can never have two live payouts.
- A FAILED request that had a signed transaction only gives up its dedupe
  key once ``released_at`` is set, i.e. once the ledger has shown that the
  transaction can no longer validate.
"""

from __future__ import annotations

import os
import sqlite3

from brother_nature.api.password import hash_password
from brother_nature.db.connection import get_connection

INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
    (
        "CREATE INDEX IF NOT EXISTS idx_wallet_challenges_user "
        "ON wallet_challenges(user_id, created_at)"
    ),
    "CREATE INDEX IF NOT EXISTS idx_wallet_challenges_expires ON wallet_challenges(expires_at)",
    (
        "CREATE INDEX IF NOT EXISTS idx_reward_requests_contribution "
        "ON reward_requests(contribution_ref)"
    ),
    (
        "CREATE INDEX IF NOT EXISTS idx_reward_requests_user_status "
        "ON reward_requests(beneficiary_user_id, status)"
    ),
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_reward_requests_dedupe "
        "ON reward_requests(beneficiary_user_id, contribution_ref, token_kind) "
        "WHERE status != 'FAILED'"
    ),
)


def ensure_reward_settlement_columns(cursor: sqlite3.Cursor) -> None:
    """Add the settlement-tracking columns to an older ``reward_requests`` table."""
    cursor.execute("PRAGMA table_info(reward_requests)")
    existing_columns = {row[1] for row in cursor.fetchall()}

    columns_to_add = {
        "last_ledger_sequence": "INTEGER",
        "released_at": "TEXT",
    }

    for column_name, column_def in columns_to_add.items():
        if column_name in existing_columns:
            continue
        cursor.execute(f"ALTER TABLE reward_requests ADD COLUMN {column_name} {column_def}")


def init_database(*, skip_admin: bool = False) -> None:
    """Initialize the SQLite database schema.

    Behavior:
    - Creates required tables and indexes if missing.
    - Optionally creates a bootstrap admin from ``BN_ADMIN_USER`` and
      ``BN_ADMIN_PASSWORD`` when the users table is empty.

    Args:
        skip_admin: When True, skip bootstrap admin creation.
    """
    conn = get_connection()
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'steward', 'admin')),
            wallet_address TEXT UNIQUE,
            is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            last_login TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS sessions (
            session_id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TEXT NOT NULL,
            last_activity TEXT NOT NULL,
            expires_at TEXT
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS wallet_challenges (
            nonce TEXT PRIMARY KEY CHECK (length(nonce) = 64),
            message TEXT NOT NULL,
            claimed_address TEXT NOT NULL,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            consumed INTEGER NOT NULL DEFAULT 0 CHECK (consumed IN (0, 1)),
            verified INTEGER NOT NULL DEFAULT 0 CHECK (verified IN (0, 1)),
            verified_at TEXT,
            CHECK (verified = 0 OR consumed = 1)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS reward_requests (
            id TEXT PRIMARY KEY,
            beneficiary_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_kind TEXT NOT NULL,
            amount TEXT NOT NULL,
            reason TEXT NOT NULL,
            contribution_ref TEXT NOT NULL,
            destination_address TEXT NOT NULL,
            issuer_address TEXT NOT NULL,
            currency_code TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING'
                CHECK (status IN ('PENDING', 'PROCESSING', 'CONFIRMED', 'FAILED')),
            external_tx_ref TEXT,
            last_ledger_sequence INTEGER,
            error_detail TEXT,
            attempts INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            processed_at TEXT,
            confirmed_at TEXT,
            released_at TEXT
        )
    """)
    ensure_reward_settlement_columns(cursor)

    for statement in INDEX_STATEMENTS:
        cursor.execute(statement)
    conn.commit()

    if skip_admin:
        conn.close()
        return

    cursor.execute("SELECT COUNT(*) FROM users")
    user_count = int(cursor.fetchone()[0])

    if user_count == 0:
        admin_user = os.environ.get("BN_ADMIN_USER")
        admin_password = os.environ.get("BN_ADMIN_PASSWORD")

        if admin_user and admin_password:
            if len(admin_password) < 8:
                print("Warning: BN_ADMIN_PASSWORD must be at least 8 characters. Skipping.")
            else:
                cursor.execute(
                    "INSERT INTO users (username, password_hash, role) VALUES (?, ?, ?)",
                    (admin_user, hash_password(admin_password), "admin"),
                )
                conn.commit()

                print("\n" + "=" * 60)
                print("ADMIN CREATED FROM ENVIRONMENT VARIABLES")
                print("=" * 60)
                print(f"Username: {admin_user}")
                print("=" * 60 + "\n")
        else:
            print("\n" + "=" * 60)
            print("DATABASE INITIALIZED (no admin created)")
            print("=" * 60)
            print("To create an admin, either:")
            print("  1. Set BN_ADMIN_USER and BN_ADMIN_PASSWORD environment variables")
            print("     and run: bn-server init-db")
            print("  2. Run: bn-server create-user <name> --role admin")
            print("=" * 60 + "\n")

    conn.close()
