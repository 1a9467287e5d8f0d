"""Shared DB-layer dataclasses for repository contracts."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from brother_nature.clock import from_db


@dataclass(slots=True)
class UserRecord:
    """
    Account row as seen by the wallet and reward core.

    Attributes:
        id: Primary key.
        username: Unique login name.
        role: ``user``, ``steward`` or ``admin``.
        wallet_address: Bound XRPL classic address, unique across all users.
        is_active: False for deactivated accounts.
    """

    id: int
    username: str
    role: str
    wallet_address: str | None
    is_active: bool

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> UserRecord:
        return cls(
            id=int(row["id"]),
            username=row["username"],
            role=row["role"],
            wallet_address=row["wallet_address"],
            is_active=bool(row["is_active"]),
        )


class ChallengeState(str, Enum):
    """Derived lifecycle state of a wallet challenge."""

    ISSUED = "ISSUED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


@dataclass(slots=True)
class Challenge:
    """
    A time-boxed, single-use proof-of-ownership challenge.

    ``consumed`` flips from False to True exactly once. ``verified`` implies
    ``consumed``. A consumed but unverified challenge was rejected at binding
    time and can never be used again.
    """

    nonce: str
    message: str
    claimed_address: str
    requesting_user_id: int
    created_at: datetime
    expires_at: datetime
    consumed: bool = False
    verified: bool = False
    verified_at: datetime | None = None

    @property
    def state(self) -> ChallengeState:
        if not self.consumed:
            return ChallengeState.ISSUED
        return ChallengeState.VERIFIED if self.verified else ChallengeState.REJECTED

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Challenge:
        return cls(
            nonce=row["nonce"],
            message=row["message"],
            claimed_address=row["claimed_address"],
            requesting_user_id=int(row["user_id"]),
            created_at=from_db(row["created_at"]),  # type: ignore[arg-type]
            expires_at=from_db(row["expires_at"]),  # type: ignore[arg-type]
            consumed=bool(row["consumed"]),
            verified=bool(row["verified"]),
            verified_at=from_db(row["verified_at"]),
        )


class RewardStatus(str, Enum):
    """Reward request lifecycle. CONFIRMED and FAILED are terminal."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


@dataclass(slots=True)
class RewardRequest:
    """
    One payout from the issuer account to a contributor's bound wallet.

    ``destination_address``, ``issuer_address`` and ``currency_code`` are a
    snapshot taken at creation time and never re-read from configuration.
    ``amount`` is a fixed-point decimal string.
    """

    id: str
    beneficiary_user_id: int
    token_kind: str
    amount: str
    reason: str
    contribution_ref: str
    destination_address: str
    issuer_address: str
    currency_code: str
    status: RewardStatus
    created_at: datetime
    external_tx_ref: str | None = None
    last_ledger_sequence: int | None = None
    error_detail: str | None = None
    attempts: int = 0
    processed_at: datetime | None = None
    confirmed_at: datetime | None = None
    released_at: datetime | None = None

    @property
    def dedupe_key(self) -> tuple[int, str, str]:
        return (self.beneficiary_user_id, self.contribution_ref, self.token_kind)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> RewardRequest:
        return cls(
            id=row["id"],
            beneficiary_user_id=int(row["beneficiary_user_id"]),
            token_kind=row["token_kind"],
            amount=row["amount"],
            reason=row["reason"],
            contribution_ref=row["contribution_ref"],
            destination_address=row["destination_address"],
            issuer_address=row["issuer_address"],
            currency_code=row["currency_code"],
            status=RewardStatus(row["status"]),
            created_at=from_db(row["created_at"]),  # type: ignore[arg-type]
            external_tx_ref=row["external_tx_ref"],
            last_ledger_sequence=row["last_ledger_sequence"],
            error_detail=row["error_detail"],
            attempts=int(row["attempts"]),
            processed_at=from_db(row["processed_at"]),
            confirmed_at=from_db(row["confirmed_at"]),
            released_at=from_db(row["released_at"]),
        )
