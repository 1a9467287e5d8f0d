"""Wallet verification state machine.

States per challenge: ``ISSUED → {VERIFIED | REJECTED}``. Both outcomes are
terminal and mutually exclusive. Checks run in a fixed order so the caller
gets the most actionable error first:

1. NotFound         unknown nonce
2. Forbidden        challenge was issued to another user
3. Expired          now > expires_at
4. AlreadyUsed      challenge already consumed
5. AddressMismatch  submitted address differs from the claimed one
6. InvalidSignature bad signature, or the key does not derive the address
7. consume + bind   one transaction; Conflict if the address was taken

Steps 1-6 are advisory reads. Step 7 repeats the consumed/expiry conditions
inside a compare-and-set, so concurrent callers cannot both pass it.
A failed signature does not consume the challenge; the client may re-sign
until it expires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from brother_nature.clock import Clock, utcnow
from brother_nature.db import challenges_repo, users_repo
from brother_nature.db.challenges_repo import BindOutcome
from brother_nature.db.types import Challenge, UserRecord
from brother_nature.errors import (
    AddressMismatch,
    AlreadyUsed,
    Conflict,
    Expired,
    Forbidden,
    InvalidSignature,
    NotFound,
)
from brother_nature.wallet.formats import (
    require_address,
    require_nonce,
    require_public_key,
    require_signature,
)
from brother_nature.wallet.signatures import SignatureVerifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VerificationResult:
    """Successful verification: the consumed challenge and the updated user."""

    challenge: Challenge
    user: UserRecord


class VerificationProtocol:
    """Turns a signed challenge into a durable address binding."""

    def __init__(
        self,
        verifier: SignatureVerifier | None = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.verifier = verifier or SignatureVerifier()
        self._clock = clock

    def verify(
        self,
        nonce: str,
        claimed_address: str,
        signature: str,
        public_key: str,
        requesting_user_id: int,
    ) -> VerificationResult:
        """Verify a signed challenge and bind the address to the requester.

        Raises:
            ValidationError, NotFound, Forbidden, Expired, AlreadyUsed,
            AddressMismatch, InvalidSignature, Conflict.
        """
        require_nonce(nonce)
        require_address(claimed_address)
        signature = require_signature(signature)
        public_key = require_public_key(public_key)

        challenge = challenges_repo.get_challenge(nonce)
        if challenge is None:
            raise NotFound("Challenge not found")

        if challenge.requesting_user_id != requesting_user_id:
            logger.warning(
                "User %s attempted to use challenge %s… issued to another user",
                requesting_user_id,
                nonce[:8],
            )
            raise Forbidden("This challenge does not belong to you")

        now = self._clock()
        if challenge.is_expired(now):
            raise Expired()

        if challenge.consumed:
            raise AlreadyUsed()

        if claimed_address != challenge.claimed_address:
            raise AddressMismatch()

        if not self.verifier.verify(challenge.message, signature, public_key, claimed_address):
            logger.warning("Invalid wallet signature for challenge %s…", nonce[:8])
            raise InvalidSignature()

        outcome = challenges_repo.consume_and_bind(
            nonce, requesting_user_id, claimed_address, now=now
        )
        if outcome is BindOutcome.ALREADY_CONSUMED:
            raise AlreadyUsed()
        if outcome is BindOutcome.EXPIRED:
            raise Expired()
        if outcome is BindOutcome.NOT_FOUND:
            raise NotFound("Challenge not found")
        if outcome is BindOutcome.ADDRESS_CONFLICT:
            raise Conflict()

        user = users_repo.get_user(requesting_user_id)
        if user is None:
            raise NotFound("User not found")
        logger.info("User %s linked wallet via challenge %s…", requesting_user_id, nonce[:8])
        return VerificationResult(challenge=challenges_repo.get_challenge(nonce) or challenge, user=user)

    def unlink(self, user_id: int) -> UserRecord:
        """Remove the wallet binding from ``user_id``."""
        user = users_repo.clear_wallet_address(user_id)
        if user is None:
            raise NotFound("User not found")
        logger.info("User %s unlinked their wallet", user_id)
        return user
