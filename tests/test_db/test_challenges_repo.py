"""Focused tests for ``brother_nature.db.challenges_repo``."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from brother_nature.db import challenges_repo, users_repo
from brother_nature.db.challenges_repo import BindOutcome
from brother_nature.db.types import Challenge, ChallengeState

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
ADDRESS = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"


def _challenge(user_id: int, nonce: str = "a" * 64, *, address: str = ADDRESS) -> Challenge:
    return Challenge(
        nonce=nonce,
        message=f"message for {nonce[:8]}",
        claimed_address=address,
        requesting_user_id=user_id,
        created_at=NOW,
        expires_at=NOW + timedelta(minutes=5),
    )


@pytest.mark.unit
@pytest.mark.db
class TestInsertAndGet:
    def test_round_trips_all_fields(self, users):
        challenges_repo.insert_challenge(_challenge(users["alice"]))

        stored = challenges_repo.get_challenge("a" * 64)

        assert stored is not None
        assert stored.requesting_user_id == users["alice"]
        assert stored.claimed_address == ADDRESS
        assert stored.expires_at == NOW + timedelta(minutes=5)
        assert stored.state is ChallengeState.ISSUED

    def test_unknown_nonce_is_none(self, users):
        assert challenges_repo.get_challenge("f" * 64) is None


@pytest.mark.unit
@pytest.mark.db
class TestConsumeAndBind:
    def test_success_binds_address_and_marks_verified(self, users):
        challenges_repo.insert_challenge(_challenge(users["alice"]))

        outcome = challenges_repo.consume_and_bind("a" * 64, users["alice"], ADDRESS, now=NOW)

        assert outcome is BindOutcome.VERIFIED
        stored = challenges_repo.get_challenge("a" * 64)
        assert stored is not None and stored.state is ChallengeState.VERIFIED
        assert stored.verified_at == NOW
        user = users_repo.get_user(users["alice"])
        assert user is not None and user.wallet_address == ADDRESS

    def test_second_consume_reports_already_consumed(self, users):
        challenges_repo.insert_challenge(_challenge(users["alice"]))
        challenges_repo.consume_and_bind("a" * 64, users["alice"], ADDRESS, now=NOW)

        outcome = challenges_repo.consume_and_bind("a" * 64, users["alice"], ADDRESS, now=NOW)

        assert outcome is BindOutcome.ALREADY_CONSUMED

    def test_expired_challenge_is_left_unconsumed(self, users):
        challenges_repo.insert_challenge(_challenge(users["alice"]))

        later = NOW + timedelta(minutes=5, seconds=1)
        outcome = challenges_repo.consume_and_bind("a" * 64, users["alice"], ADDRESS, now=later)

        assert outcome is BindOutcome.EXPIRED
        stored = challenges_repo.get_challenge("a" * 64)
        assert stored is not None and stored.consumed is False

    def test_expiry_instant_itself_is_still_valid(self, users):
        challenges_repo.insert_challenge(_challenge(users["alice"]))

        at_expiry = NOW + timedelta(minutes=5)
        outcome = challenges_repo.consume_and_bind("a" * 64, users["alice"], ADDRESS, now=at_expiry)

        assert outcome is BindOutcome.VERIFIED

    def test_missing_nonce(self, users):
        outcome = challenges_repo.consume_and_bind("b" * 64, users["alice"], ADDRESS, now=NOW)

        assert outcome is BindOutcome.NOT_FOUND

    def test_address_conflict_rejects_challenge_and_keeps_first_binding(self, users):
        challenges_repo.insert_challenge(_challenge(users["alice"], "a" * 64))
        challenges_repo.insert_challenge(_challenge(users["bob"], "b" * 64))
        challenges_repo.consume_and_bind("a" * 64, users["alice"], ADDRESS, now=NOW)

        outcome = challenges_repo.consume_and_bind("b" * 64, users["bob"], ADDRESS, now=NOW)

        assert outcome is BindOutcome.ADDRESS_CONFLICT
        rejected = challenges_repo.get_challenge("b" * 64)
        assert rejected is not None
        assert rejected.state is ChallengeState.REJECTED
        alice = users_repo.get_user(users["alice"])
        bob = users_repo.get_user(users["bob"])
        assert alice is not None and alice.wallet_address == ADDRESS
        assert bob is not None and bob.wallet_address is None


@pytest.mark.unit
@pytest.mark.db
def test_purge_expired_only_removes_old_rows(users):
    challenges_repo.insert_challenge(_challenge(users["alice"], "a" * 64))
    old = _challenge(users["alice"], "b" * 64)
    old.created_at = NOW - timedelta(days=40)
    old.expires_at = NOW - timedelta(days=40) + timedelta(minutes=5)
    challenges_repo.insert_challenge(old)

    removed = challenges_repo.purge_expired(NOW - timedelta(days=30))

    assert removed == 1
    assert challenges_repo.get_challenge("a" * 64) is not None
    assert challenges_repo.get_challenge("b" * 64) is None
