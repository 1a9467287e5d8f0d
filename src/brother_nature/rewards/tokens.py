"""Reward token kinds, currency codes and amount parsing."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from enum import Enum

from brother_nature.config import TokenSettings
from brother_nature.errors import ValidationError

# XRPL issued-currency amounts carry at most 15 significant digits.
MAX_SIGNIFICANT_DIGITS = 15

_STANDARD_CURRENCY = re.compile(r"^[A-Za-z0-9?!@#$%^&*<>(){}\[\]|]{3}$")
_HEX_CURRENCY = re.compile(r"^[0-9A-F]{40}$")


class TokenKind(str, Enum):
    """Reward token families."""

    EXPLORER = "EXPLORER"
    REGEN = "REGEN"
    GUARDIAN = "GUARDIAN"


def parse_token_kind(value: str | TokenKind) -> TokenKind:
    if isinstance(value, TokenKind):
        return value
    try:
        return TokenKind(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(kind.value for kind in TokenKind)
        raise ValidationError(f"Unknown token kind {value!r}; expected one of {allowed}") from None


def is_valid_currency_code(code: str) -> bool:
    if _HEX_CURRENCY.match(code):
        return True
    return bool(_STANDARD_CURRENCY.match(code)) and code.upper() != "XRP"


def currency_map(settings: TokenSettings) -> dict[TokenKind, str]:
    """Return the configured currency code for each token kind.

    Raises:
        ValueError: A configured code is not a valid XRPL currency code.
    """
    mapping = {
        TokenKind.EXPLORER: settings.explorer_currency,
        TokenKind.REGEN: settings.regen_currency,
        TokenKind.GUARDIAN: settings.guardian_currency,
    }
    for kind, code in mapping.items():
        if not is_valid_currency_code(code):
            raise ValueError(f"Invalid currency code {code!r} for {kind.value}")
    return mapping


def normalize_amount(value: str | int | Decimal) -> str:
    """Validate a payout amount and return it as a plain decimal string.

    Accepts positive finite values with at most 15 significant digits.
    ``"10.50"`` becomes ``"10.5"``; exponents are expanded.
    """
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount {value!r}") from None

    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive number")

    normalized = amount.normalize()
    if len(normalized.as_tuple().digits) > MAX_SIGNIFICANT_DIGITS:
        raise ValidationError(f"Amount has more than {MAX_SIGNIFICANT_DIGITS} significant digits")

    return format(normalized, "f")
