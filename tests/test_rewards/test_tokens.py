"""Tests for token kinds, currency codes and amount normalization."""

import pytest

from brother_nature.config import TokenSettings
from brother_nature.errors import ValidationError
from brother_nature.rewards.tokens import (
    TokenKind,
    currency_map,
    is_valid_currency_code,
    normalize_amount,
    parse_token_kind,
)


@pytest.mark.unit
@pytest.mark.rewards
class TestTokenKind:
    @pytest.mark.parametrize("value", ["REGEN", "regen", " Regen "])
    def test_parse_is_case_insensitive(self, value):
        assert parse_token_kind(value) is TokenKind.REGEN

    def test_parse_passes_enum_through(self):
        assert parse_token_kind(TokenKind.GUARDIAN) is TokenKind.GUARDIAN

    def test_unknown_kind(self):
        with pytest.raises(ValidationError, match="expected one of"):
            parse_token_kind("GOLD")


@pytest.mark.unit
@pytest.mark.rewards
class TestCurrencyCodes:
    @pytest.mark.parametrize("code", ["RGN", "EXP", "a1$", "0158415500000000C1F76FF6ECB0BAC600000000"])
    def test_valid_codes(self, code):
        assert is_valid_currency_code(code)

    @pytest.mark.parametrize("code", ["XRP", "xrp", "TOOLONG", "AB", "0158415500000000c1f76ff6ecb0bac600000000"])
    def test_invalid_codes(self, code):
        assert not is_valid_currency_code(code)

    def test_currency_map_defaults(self):
        mapping = currency_map(TokenSettings())

        assert mapping == {
            TokenKind.EXPLORER: "EXP",
            TokenKind.REGEN: "RGN",
            TokenKind.GUARDIAN: "GRD",
        }

    def test_currency_map_rejects_xrp(self):
        with pytest.raises(ValueError, match="GUARDIAN"):
            currency_map(TokenSettings(guardian_currency="XRP"))


@pytest.mark.unit
@pytest.mark.rewards
class TestNormalizeAmount:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("10", "10"),
            ("10.50", "10.5"),
            ("1e3", "1000"),
            ("0.000001", "0.000001"),
            (25, "25"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "-1", "abc", "NaN", "Infinity", ""])
    def test_rejects_non_positive_or_non_numeric(self, raw):
        with pytest.raises(ValidationError):
            normalize_amount(raw)

    def test_rejects_excess_precision(self):
        with pytest.raises(ValidationError, match="significant digits"):
            normalize_amount("1.234567890123456")

    def test_fifteen_digits_are_fine(self):
        assert normalize_amount("1.23456789012345") == "1.23456789012345"
