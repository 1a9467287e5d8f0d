"""Typed failures for the wallet verification and reward core.

Every verification-path failure is a distinct subclass so the HTTP layer can
tell the caller whether to re-issue a challenge, re-sign, or pick another
address. Each class carries a stable machine-readable ``code`` and the HTTP
status it maps to; :mod:`brother_nature.api.errors` does the translation.

Storage failures are *not* part of this hierarchy. They raise
:class:`brother_nature.db.errors.DatabaseError` subclasses and surface as a
generic internal error.
"""

from __future__ import annotations


class CoreError(Exception):
    """Base class for all expected, user-actionable core failures."""

    code = "error"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])


class ValidationError(CoreError):
    """Malformed address, nonce, signature, amount or token kind."""

    code = "validation_error"
    status_code = 400


class NotFound(CoreError):
    """Unknown challenge nonce, reward request or user."""

    code = "not_found"
    status_code = 404


class Forbidden(CoreError):
    """The challenge or resource belongs to another user."""

    code = "forbidden"
    status_code = 403


class Expired(CoreError):
    """Challenge has expired. Please request a new one."""

    code = "expired"
    status_code = 410


class AlreadyUsed(CoreError):
    """Challenge has already been used."""

    code = "already_used"
    status_code = 409


class AddressMismatch(CoreError):
    """Wallet address does not match the challenge."""

    code = "address_mismatch"
    status_code = 400


class InvalidSignature(CoreError):
    """Signature verification failed. Please ensure you signed the correct message."""

    code = "invalid_signature"
    status_code = 422


class Conflict(CoreError):
    """This wallet is already linked to another account."""

    code = "conflict"
    status_code = 409


class NoWalletLinked(CoreError):
    """User must link an XRPL wallet before receiving rewards."""

    code = "no_wallet_linked"
    status_code = 409


class ChainSubmissionError(CoreError):
    """The external ledger rejected the request or could not be reached.

    Attributes:
        transient: True when the failure is worth retrying (network errors,
            unreachable node). Definitive ledger rejections set it False.
        result_code: XRPL engine result (``tecNO_LINE`` ...) when known.
    """

    code = "chain_submission_error"
    status_code = 502

    def __init__(
        self,
        message: str | None = None,
        *,
        transient: bool = False,
        result_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.result_code = result_code


class ChainTimeoutError(CoreError):
    """The external ledger did not report finality in time."""

    code = "chain_timeout"
    status_code = 504
