"""Challenge issuance.

A challenge binds one (user, claimed address) pair to a random nonce and a
human-readable message the wallet signs. The message is rendered once at
issuance and stored verbatim, so the verify path checks the signature
against exactly the bytes the client was shown.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from brother_nature.clock import Clock, to_display, utcnow
from brother_nature.db import challenges_repo, users_repo
from brother_nature.db.types import Challenge
from brother_nature.errors import Conflict, NotFound
from brother_nature.wallet.formats import NONCE_BYTES, require_address

logger = logging.getLogger(__name__)

MESSAGE_VERSION = 1

_MESSAGE_TEMPLATE = (
    "{app_name} Wallet Verification (v{version})\n"
    "\n"
    "Please sign this message to verify ownership of your XRPL wallet.\n"
    "\n"
    "Wallet Address: {address}\n"
    "Verification Code: {nonce}\n"
    "Timestamp: {issued_at}\n"
    "\n"
    "This request will expire in {ttl_text}."
)


def _ttl_text(ttl_seconds: int) -> str:
    if ttl_seconds % 60 == 0:
        minutes = ttl_seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{ttl_seconds} seconds"


def build_challenge_message(
    nonce: str,
    address: str,
    issued_at: datetime,
    *,
    ttl_seconds: int,
    app_name: str = "Brother Nature",
) -> str:
    """Render the versioned challenge text.

    Deterministic: identical inputs always give byte-identical output. Lines
    are joined with ``\\n`` and carry no trailing whitespace.
    """
    return _MESSAGE_TEMPLATE.format(
        app_name=app_name.strip(),
        version=MESSAGE_VERSION,
        address=address,
        nonce=nonce,
        issued_at=to_display(issued_at),
        ttl_text=_ttl_text(ttl_seconds),
    )


class ChallengeManager:
    """Issues and persists time-boxed, single-use wallet challenges."""

    def __init__(
        self,
        *,
        ttl_seconds: int = 300,
        app_name: str = "Brother Nature",
        clock: Clock = utcnow,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.app_name = app_name
        self._clock = clock

    def issue(self, user_id: int, claimed_address: str) -> Challenge:
        """Issue a challenge for ``user_id`` to prove control of ``claimed_address``.

        Raises:
            ValidationError: The address is malformed.
            NotFound: The user does not exist.
            Conflict: The address is bound to a different user. This is a
                courtesy pre-check only; the binding step enforces it again.
        """
        require_address(claimed_address)

        if users_repo.get_user(user_id) is None:
            raise NotFound("User not found")

        owner_id = users_repo.get_user_id_for_address(claimed_address)
        if owner_id is not None and owner_id != user_id:
            logger.info("Challenge refused for user %s: address bound elsewhere", user_id)
            raise Conflict()

        now = self._clock()
        nonce = secrets.token_hex(NONCE_BYTES)
        challenge = Challenge(
            nonce=nonce,
            message=build_challenge_message(
                nonce,
                claimed_address,
                now,
                ttl_seconds=self.ttl_seconds,
                app_name=self.app_name,
            ),
            claimed_address=claimed_address,
            requesting_user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        challenges_repo.insert_challenge(challenge)
        logger.info("Issued wallet challenge %s… for user %s", nonce[:8], user_id)
        return challenge

    def get(self, nonce: str) -> Challenge | None:
        return challenges_repo.get_challenge(nonce)

    def purge_expired(self, retention: timedelta) -> int:
        """Delete challenges that expired more than ``retention`` ago."""
        removed = challenges_repo.purge_expired(self._clock() - retention)
        if removed:
            logger.info("Purged %d expired wallet challenges", removed)
        return removed
