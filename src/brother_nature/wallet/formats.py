"""Shape validation for wallet-protocol inputs.

These checks run before anything touches storage or cryptography. They only
decide whether an input is well-formed; ownership is decided elsewhere.
"""

from __future__ import annotations

import re

from xrpl.core.addresscodec import is_valid_classic_address

from brother_nature.errors import ValidationError

NONCE_BYTES = 32
NONCE_PATTERN = re.compile(r"^[0-9a-f]{64}$")

# Classic addresses: 'r' followed by base58 (XRPL alphabet has no 0, O, I, l).
ADDRESS_PATTERN = re.compile(r"^r[1-9A-HJ-NP-Za-km-z]{24,34}$")

# Compressed secp256k1 (02/03 prefix) or ed25519 ('ED' prefix), hex encoded.
PUBLIC_KEY_PATTERN = re.compile(r"^(?:0[23][0-9A-Fa-f]{64}|[Ee][Dd][0-9A-Fa-f]{64})$")

# DER-encoded ECDSA (up to 72 bytes) or raw ed25519 (64 bytes), hex encoded.
SIGNATURE_PATTERN = re.compile(r"^(?:[0-9A-Fa-f]{2}){8,72}$")


def is_valid_address(address: str) -> bool:
    """Return True for a well-formed XRPL classic address with a valid checksum."""
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        return False
    return is_valid_classic_address(address)


def require_address(address: str) -> str:
    if not is_valid_address(address):
        raise ValidationError("Invalid XRPL classic address")
    return address


def require_nonce(nonce: str) -> str:
    if not isinstance(nonce, str) or not NONCE_PATTERN.match(nonce):
        raise ValidationError("Nonce must be 64 lowercase hex characters")
    return nonce


def require_public_key(public_key: str) -> str:
    """Validate and normalize a public key to uppercase hex."""
    if not isinstance(public_key, str) or not PUBLIC_KEY_PATTERN.match(public_key):
        raise ValidationError("Public key must be a 33-byte hex-encoded XRPL key")
    return public_key.upper()


def require_signature(signature: str) -> str:
    """Validate and normalize a signature to uppercase hex."""
    if not isinstance(signature, str) or not SIGNATURE_PATTERN.match(signature):
        raise ValidationError("Signature must be hex encoded")
    return signature.upper()
