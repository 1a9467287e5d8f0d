"""XRPL message signature verification.

A valid signature only proves the signer holds *some* private key. Ownership
of the claimed address additionally requires that the address derived from
the presented public key equals the claimed address, so :meth:`verify`
performs both checks and accepts only when both hold.
"""

from __future__ import annotations

import logging

from xrpl.core.keypairs import derive_classic_address, is_valid_message

logger = logging.getLogger(__name__)


class SignatureVerifier:
    """Checks secp256k1/ed25519 signatures over challenge messages."""

    def derive_address(self, public_key: str) -> str | None:
        """Return the classic address for ``public_key``, or None if it is unusable."""
        try:
            return derive_classic_address(public_key.upper())
        except Exception as exc:  # nosec B110 - malformed keys are a False outcome
            logger.info("Could not derive address from public key: %s", exc)
            return None

    def is_valid_signature(self, message: str, signature: str, public_key: str) -> bool:
        """Return True when ``signature`` signs the UTF-8 bytes of ``message``."""
        try:
            return bool(
                is_valid_message(
                    message.encode("utf-8"),
                    bytes.fromhex(signature),
                    public_key.upper(),
                )
            )
        except Exception as exc:  # nosec B110 - malformed input is a False outcome
            logger.info("Signature verification error: %s", exc)
            return False

    def verify(self, message: str, signature: str, public_key: str, claimed_address: str) -> bool:
        """Accept only a valid signature from the key that owns ``claimed_address``."""
        derived = self.derive_address(public_key)
        if derived is None or derived != claimed_address:
            logger.info("Public key does not derive the claimed address")
            return False
        return self.is_valid_signature(message, signature, public_key)
