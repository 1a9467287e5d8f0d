"""Wallet ownership verification: challenges, signatures and address binding.

Public surface
--------------
- :class:`ChallengeManager`: issue and look up single-use challenges.
- :class:`SignatureVerifier`: signature check plus address derivation.
- :class:`VerificationProtocol`: ISSUED → VERIFIED | REJECTED transition.
"""

from brother_nature.wallet.challenges import ChallengeManager, build_challenge_message
from brother_nature.wallet.signatures import SignatureVerifier
from brother_nature.wallet.verification import VerificationProtocol, VerificationResult

__all__ = [
    "ChallengeManager",
    "SignatureVerifier",
    "VerificationProtocol",
    "VerificationResult",
    "build_challenge_message",
]
