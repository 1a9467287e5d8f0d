"""
Reward issuance state machine.

Lifecycle of a :class:`RewardRequest`::

    PENDING ──► PROCESSING ──► CONFIRMED
       │             │              ▲
       └─────────────┴──► FAILED ───┘ (late validation)

CONFIRMED and FAILED are terminal, except that a FAILED request whose
transaction the ledger validates after all is settled to CONFIRMED. A
request is never moved back to PENDING.

At-most-one payout per dedupe key ``(beneficiary, contribution_ref,
token_kind)`` rests on two things:

1. The storage layer allows only one non-FAILED request per key, and
   :meth:`RewardLedger.create` returns the existing one instead of adding a
   second. A FAILED request whose signed transaction could still validate
   keeps the key until the ledger proves otherwise.
2. :meth:`RewardLedger.submit` signs the payment once and every retry
   resubmits that same signed transaction. The ledger validates at most one
   transaction per issuer sequence number, so retries cannot double-pay.

Chain failures never propagate out of :meth:`RewardLedger.submit`; they are
recorded on the request as ``error_detail``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from decimal import Decimal

from brother_nature.chain.client import ChainClient, ChainReceipt, SignedPayment
from brother_nature.clock import Clock, utcnow
from brother_nature.config import ServerConfig
from brother_nature.db import rewards_repo, users_repo
from brother_nature.db.types import RewardRequest, RewardStatus
from brother_nature.errors import (
    ChainSubmissionError,
    ChainTimeoutError,
    Conflict,
    NoWalletLinked,
    NotFound,
    ValidationError,
)
from brother_nature.rewards.tokens import TokenKind, currency_map, normalize_amount, parse_token_kind

logger = logging.getLogger(__name__)

MAX_CONTRIBUTION_REF_LENGTH = 128
MAX_REASON_LENGTH = 500
DEFAULT_REASON = "Verified contribution"
INTERRUPTED_DETAIL = "interrupted before finality was observed"

Sleep = Callable[[float], Awaitable[None]]


class RewardLedger:
    """Creates reward requests and drives them to a terminal state.

    Args:
        chain: Client used for payment submission and lookups.
        issuer_address: Issuer account snapshotted onto every new request.
        currencies: Currency code per token kind.
        clock: Time source for ``processed_at``/``confirmed_at``.
        max_attempts: Submission attempts before a transient failure is final.
        backoff_base: First retry delay in seconds; doubles per attempt.
        backoff_max: Upper bound on a single retry delay.
        finality_timeout: Seconds to wait for a validated result per attempt.
        sleep: Awaitable used between retries.
    """

    def __init__(
        self,
        chain: ChainClient,
        *,
        issuer_address: str,
        currencies: Mapping[TokenKind, str],
        clock: Clock = utcnow,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        finality_timeout: float = 30.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.chain = chain
        self.issuer_address = issuer_address
        self.currencies = dict(currencies)
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.finality_timeout = finality_timeout
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(cls, chain: ChainClient, cfg: ServerConfig, **kwargs) -> RewardLedger:
        return cls(
            chain,
            issuer_address=cfg.chain.issuer_address,
            currencies=currency_map(cfg.tokens),
            max_attempts=cfg.chain.max_attempts,
            backoff_base=cfg.chain.backoff_base_seconds,
            backoff_max=cfg.chain.backoff_max_seconds,
            finality_timeout=cfg.chain.finality_timeout_seconds,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Creation and queries
    # ------------------------------------------------------------------

    async def create(
        self,
        beneficiary_user_id: int,
        amount: str | Decimal,
        token_kind: str | TokenKind,
        reason: str | None,
        contribution_ref: str,
    ) -> RewardRequest:
        """Record a PENDING reward, or return the live request for the same key.

        Earlier FAILED requests for the key are reconciled with the ledger
        first; one that turns out to have been paid is returned as CONFIRMED.

        Raises:
            ValidationError: Bad amount, token kind, reference or reason.
            NotFound: Unknown beneficiary.
            NoWalletLinked: Beneficiary has no bound address. Nothing is
                persisted in that case.
            Conflict: An earlier payment for the key may still validate.
            ChainSubmissionError: The issuer is not configured, or the ledger
                could not be asked about an earlier payment.
        """
        kind = parse_token_kind(token_kind)
        value = normalize_amount(amount)
        contribution_ref = (contribution_ref or "").strip()
        if not contribution_ref or len(contribution_ref) > MAX_CONTRIBUTION_REF_LENGTH:
            raise ValidationError(
                f"contribution_ref must be 1-{MAX_CONTRIBUTION_REF_LENGTH} characters"
            )
        reason = (reason or DEFAULT_REASON).strip()
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"reason must be at most {MAX_REASON_LENGTH} characters")
        if not self.issuer_address:
            raise ChainSubmissionError("Reward issuer account is not configured")

        user = users_repo.get_user(beneficiary_user_id)
        if user is None:
            raise NotFound("Beneficiary not found")
        if not user.wallet_address:
            raise NoWalletLinked()

        request = RewardRequest(
            id=uuid.uuid4().hex,
            beneficiary_user_id=user.id,
            token_kind=kind.value,
            amount=value,
            reason=reason,
            contribution_ref=contribution_ref,
            destination_address=user.wallet_address,
            issuer_address=self.issuer_address,
            currency_code=self.currencies[kind],
            status=RewardStatus.PENDING,
            created_at=self._clock(),
        )
        settled = await self._reconcile_failures(request)
        if settled is not None:
            return settled
        stored, created = rewards_repo.insert_or_get_live(request)
        if created:
            logger.info(
                "Reward %s created: %s %s for user %s (contribution %s)",
                stored.id,
                stored.amount,
                stored.currency_code,
                stored.beneficiary_user_id,
                stored.contribution_ref,
            )
        else:
            logger.info(
                "Duplicate reward trigger for contribution %s; reusing %s (%s)",
                contribution_ref,
                stored.id,
                stored.status.value,
            )
        return stored

    async def _reconcile_failures(self, request: RewardRequest) -> RewardRequest | None:
        """Settle or release unreleased FAILED requests sharing ``request``'s key.

        Returns the earlier request when its payment turned out to have
        landed. Raises :class:`Conflict` while any earlier payment could still
        land.
        """
        for failed in rewards_repo.list_unreleased_failures(*request.dedupe_key):
            # Read the ledger index before the lookup: a transaction missing
            # from the ledger at or after its LastLedgerSequence can never land.
            ledger_index = await self.chain.validated_ledger_index()
            receipt = await self.chain.lookup_transaction(failed.external_tx_ref)
            now = self._clock()

            if receipt is not None and receipt.succeeded:
                rewards_repo.confirm_late_payment(failed.id, tx_hash=receipt.tx_hash, now=now)
                logger.warning(
                    "Reward %s was paid after it was marked FAILED (%s); now CONFIRMED",
                    failed.id,
                    receipt.tx_hash,
                )
                return self.get(failed.id)

            if (receipt is not None and receipt.validated) or (
                failed.last_ledger_sequence is not None
                and ledger_index >= failed.last_ledger_sequence
            ):
                rewards_repo.release_failed(failed.id, now=now)
                logger.info("Reward %s can no longer be paid; key released", failed.id)
                continue

            raise Conflict(
                f"Earlier payment {failed.external_tx_ref} for this contribution may still "
                f"be validated (ledger {ledger_index}, last ledger "
                f"{failed.last_ledger_sequence or 'unknown'}); try again later"
            )
        return None

    def get(self, request_id: str) -> RewardRequest:
        request = rewards_repo.get_request(request_id)
        if request is None:
            raise NotFound("Reward request not found")
        return request

    def list_for_contribution(self, contribution_ref: str) -> list[RewardRequest]:
        return rewards_repo.list_for_contribution(contribution_ref)

    def list_for_user(
        self, user_id: int, *, status: RewardStatus | None = None, limit: int | None = None
    ) -> list[RewardRequest]:
        return rewards_repo.list_for_user(user_id, status=status, limit=limit)

    def totals_for_user(self, user_id: int) -> dict[str, str]:
        """Sum CONFIRMED amounts per token kind."""
        totals = {kind.value: Decimal(0) for kind in TokenKind}
        for request in rewards_repo.list_for_user(user_id, status=RewardStatus.CONFIRMED):
            totals[request.token_kind] = totals.get(request.token_kind, Decimal(0)) + Decimal(
                request.amount
            )
        return {kind: format(total.normalize(), "f") if total else "0" for kind, total in totals.items()}

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, request_id: str) -> RewardRequest:
        """Drive a PENDING request to CONFIRMED or FAILED.

        A request that is not PENDING is returned unchanged. Cancellation
        leaves the request PROCESSING for :meth:`recover_interrupted`.
        """
        request = self.get(request_id)
        if request.status is not RewardStatus.PENDING:
            logger.info("Reward %s is %s; not submitting", request_id, request.status.value)
            return request

        if not rewards_repo.mark_processing(request_id, now=self._clock()):
            return self.get(request_id)
        logger.info("Reward %s → PROCESSING", request_id)

        try:
            receipt = await self._deliver(request)
        except (ChainSubmissionError, ChainTimeoutError) as exc:
            self._fail(request_id, str(exc) or exc.__class__.__name__)
        except Exception as exc:
            logger.exception("Unexpected error while submitting reward %s", request_id)
            self._fail(request_id, f"unexpected error: {exc.__class__.__name__}")
            raise
        else:
            rewards_repo.mark_confirmed(request_id, tx_hash=receipt.tx_hash, now=self._clock())
            logger.info("Reward %s → CONFIRMED (%s)", request_id, receipt.tx_hash)

        return self.get(request_id)

    def _fail(self, request_id: str, detail: str) -> None:
        rewards_repo.mark_failed(request_id, detail=detail, now=self._clock())
        logger.warning("Reward %s → FAILED: %s", request_id, detail)

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)

    async def _deliver(self, request: RewardRequest) -> ChainReceipt:
        signed: SignedPayment | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                if signed is None:
                    signed = await self.chain.prepare_payment(
                        request.destination_address,
                        request.currency_code,
                        request.issuer_address,
                        request.amount,
                    )
                else:
                    # A previous attempt may have landed before its error surfaced.
                    earlier = await self.chain.lookup_transaction(signed.tx_hash)
                    if earlier is not None and earlier.validated:
                        return self._settle(earlier)

                rewards_repo.record_attempt(
                    request.id,
                    tx_hash=signed.tx_hash,
                    last_ledger_sequence=signed.last_ledger_sequence,
                )
                receipt = await asyncio.wait_for(
                    self.chain.submit_and_wait(signed), timeout=self.finality_timeout
                )
            except TimeoutError:
                return await self._after_timeout(signed)
            except ChainSubmissionError as exc:
                if not exc.transient or attempt >= self.max_attempts:
                    if exc.transient:
                        raise ChainSubmissionError(
                            f"gave up after {attempt} attempts: {exc}", transient=True
                        ) from exc
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    "Reward %s attempt %d/%d failed (%s); retrying in %.1fs",
                    request.id,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)
                continue
            return self._settle(receipt)

        raise ChainSubmissionError("no submission attempts were made")

    def _settle(self, receipt: ChainReceipt) -> ChainReceipt:
        if receipt.succeeded:
            return receipt
        raise ChainSubmissionError(
            f"payment {receipt.tx_hash} failed with {receipt.result_code}",
            result_code=receipt.result_code,
        )

    async def _after_timeout(self, signed: SignedPayment | None) -> ChainReceipt:
        if signed is not None:
            try:
                late = await self.chain.lookup_transaction(signed.tx_hash)
            except ChainSubmissionError:
                late = None
            if late is not None and late.validated:
                return self._settle(late)
            raise ChainTimeoutError(
                f"no finality for {signed.tx_hash} within {self.finality_timeout:g}s"
            )
        raise ChainTimeoutError(f"could not prepare payment within {self.finality_timeout:g}s")

    # ------------------------------------------------------------------
    # Startup reconciliation
    # ------------------------------------------------------------------

    async def recover_interrupted(self) -> list[RewardRequest]:
        """Settle PROCESSING requests left behind by a previous process.

        A request whose signed transaction the ledger reports as validated
        is settled from that result. Anything else becomes FAILED. Requests
        whose lookup fails transiently stay PROCESSING for the next run.
        """
        settled: list[RewardRequest] = []
        for request in rewards_repo.list_by_status(RewardStatus.PROCESSING):
            receipt = None
            if request.external_tx_ref:
                try:
                    receipt = await self.chain.lookup_transaction(request.external_tx_ref)
                except ChainSubmissionError:
                    logger.warning(
                        "Could not look up %s for reward %s; leaving it PROCESSING",
                        request.external_tx_ref,
                        request.id,
                        exc_info=True,
                    )
                    continue

            now = self._clock()
            if receipt is not None and receipt.succeeded:
                rewards_repo.mark_confirmed(request.id, tx_hash=receipt.tx_hash, now=now)
                logger.info("Recovered reward %s as CONFIRMED", request.id)
            elif receipt is not None and receipt.validated:
                self._fail(request.id, f"payment failed with {receipt.result_code}")
            else:
                self._fail(request.id, INTERRUPTED_DETAIL)
            settled.append(self.get(request.id))
        return settled

    def pending_ids(self) -> list[str]:
        return [request.id for request in rewards_repo.list_by_status(RewardStatus.PENDING)]
