"""Focused tests for ``brother_nature.db.rewards_repo`` transitions and dedupe."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from brother_nature.db import rewards_repo
from brother_nature.db.types import RewardRequest, RewardStatus
from tests.constants import ISSUER_ADDRESS

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)


def _request(user_id: int, *, ref: str = "post-1", kind: str = "REGEN") -> RewardRequest:
    return RewardRequest(
        id=uuid.uuid4().hex,
        beneficiary_user_id=user_id,
        token_kind=kind,
        amount="10",
        reason="test",
        contribution_ref=ref,
        destination_address="rPEPPER7kfTD9w2To4CQk6UCfuHM9c6GDY",
        issuer_address=ISSUER_ADDRESS,
        currency_code="RGN",
        status=RewardStatus.PENDING,
        created_at=NOW,
    )


@pytest.mark.unit
@pytest.mark.db
class TestDedupe:
    def test_second_insert_for_same_key_returns_existing(self, users):
        first, created_first = rewards_repo.insert_or_get_live(_request(users["alice"]))
        second, created_second = rewards_repo.insert_or_get_live(_request(users["alice"]))

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert len(rewards_repo.list_for_contribution("post-1")) == 1

    def test_different_token_kind_is_a_different_key(self, users):
        rewards_repo.insert_or_get_live(_request(users["alice"], kind="REGEN"))
        _, created = rewards_repo.insert_or_get_live(_request(users["alice"], kind="GUARDIAN"))

        assert created is True

    def test_failed_request_frees_the_key(self, users):
        first, _ = rewards_repo.insert_or_get_live(_request(users["alice"]))
        rewards_repo.mark_failed(first.id, detail="boom", now=NOW)

        second, created = rewards_repo.insert_or_get_live(_request(users["alice"]))

        assert created is True
        assert second.id != first.id


@pytest.mark.unit
@pytest.mark.db
class TestTransitions:
    def test_happy_path(self, users):
        request, _ = rewards_repo.insert_or_get_live(_request(users["alice"]))

        assert rewards_repo.mark_processing(request.id, now=NOW) is True
        assert rewards_repo.record_attempt(request.id, tx_hash="AB" * 32) is True
        assert rewards_repo.mark_confirmed(
            request.id, tx_hash="AB" * 32, now=NOW + timedelta(seconds=5)
        )

        stored = rewards_repo.get_request(request.id)
        assert stored is not None
        assert stored.status is RewardStatus.CONFIRMED
        assert stored.external_tx_ref == "AB" * 32
        assert stored.attempts == 1
        assert stored.processed_at == NOW
        assert stored.confirmed_at == NOW + timedelta(seconds=5)

    def test_processing_requires_pending(self, users):
        request, _ = rewards_repo.insert_or_get_live(_request(users["alice"]))
        rewards_repo.mark_processing(request.id, now=NOW)

        assert rewards_repo.mark_processing(request.id, now=NOW) is False

    def test_confirm_requires_processing(self, users):
        request, _ = rewards_repo.insert_or_get_live(_request(users["alice"]))

        assert rewards_repo.mark_confirmed(request.id, tx_hash="AA", now=NOW) is False

    def test_terminal_states_are_never_left(self, users):
        request, _ = rewards_repo.insert_or_get_live(_request(users["alice"]))
        rewards_repo.mark_processing(request.id, now=NOW)
        rewards_repo.mark_confirmed(request.id, tx_hash="AA", now=NOW)

        assert rewards_repo.mark_failed(request.id, detail="late", now=NOW) is False
        assert rewards_repo.mark_processing(request.id, now=NOW) is False
        stored = rewards_repo.get_request(request.id)
        assert stored is not None and stored.status is RewardStatus.CONFIRMED

    def test_failed_detail_is_never_empty(self, users):
        request, _ = rewards_repo.insert_or_get_live(_request(users["alice"]))

        rewards_repo.mark_failed(request.id, detail="", now=NOW)

        stored = rewards_repo.get_request(request.id)
        assert stored is not None and stored.error_detail


@pytest.mark.unit
@pytest.mark.db
class TestFailedSettlement:
    def _signed_failure(self, user_id: int) -> RewardRequest:
        request, _ = rewards_repo.insert_or_get_live(_request(user_id))
        rewards_repo.mark_processing(request.id, now=NOW)
        rewards_repo.record_attempt(request.id, tx_hash="DD" * 32, last_ledger_sequence=1020)
        rewards_repo.mark_failed(request.id, detail="timed out", now=NOW)
        return request

    def test_unsigned_failure_is_released_at_once(self, users):
        request, _ = rewards_repo.insert_or_get_live(_request(users["alice"]))
        rewards_repo.mark_failed(request.id, detail="no issuer", now=NOW)

        stored = rewards_repo.get_request(request.id)
        assert stored is not None and stored.released_at is not None
        assert rewards_repo.list_unreleased_failures(users["alice"], "post-1", "REGEN") == []

    def test_signed_failure_stays_unreleased(self, users):
        request = self._signed_failure(users["alice"])

        pending = rewards_repo.list_unreleased_failures(users["alice"], "post-1", "REGEN")

        assert [row.id for row in pending] == [request.id]
        assert pending[0].last_ledger_sequence == 1020

    def test_release_happens_once(self, users):
        request = self._signed_failure(users["alice"])

        assert rewards_repo.release_failed(request.id, now=NOW) is True
        assert rewards_repo.release_failed(request.id, now=NOW) is False
        assert rewards_repo.list_unreleased_failures(users["alice"], "post-1", "REGEN") == []

    def test_late_payment_confirms_unreleased_failure(self, users):
        request = self._signed_failure(users["alice"])

        assert rewards_repo.confirm_late_payment(request.id, tx_hash="DD" * 32, now=NOW) is True

        stored = rewards_repo.get_request(request.id)
        assert stored is not None
        assert stored.status is RewardStatus.CONFIRMED
        assert stored.error_detail is None
        assert stored.confirmed_at is not None

    def test_released_failure_cannot_be_confirmed(self, users):
        request = self._signed_failure(users["alice"])
        rewards_repo.release_failed(request.id, now=NOW)

        assert rewards_repo.confirm_late_payment(request.id, tx_hash="DD" * 32, now=NOW) is False


@pytest.mark.unit
@pytest.mark.db
def test_list_for_user_filters_by_status(users):
    confirmed, _ = rewards_repo.insert_or_get_live(_request(users["alice"], ref="a"))
    rewards_repo.insert_or_get_live(_request(users["alice"], ref="b"))
    rewards_repo.mark_processing(confirmed.id, now=NOW)
    rewards_repo.mark_confirmed(confirmed.id, tx_hash="CC", now=NOW)

    everything = rewards_repo.list_for_user(users["alice"])
    only_confirmed = rewards_repo.list_for_user(users["alice"], status=RewardStatus.CONFIRMED)

    assert len(everything) == 2
    assert [r.id for r in only_confirmed] == [confirmed.id]
    assert rewards_repo.list_for_user(users["bob"]) == []
