"""Tests for monetary value normalization."""

from decimal import Decimal

import pytest

from statement_ledger.exceptions import ParseError
from statement_ledger.utils.decimal_utils import (
    amounts_match,
    format_brl,
    is_minor_units_token,
    minor_to_major,
    parse_amount,
)


class TestParseAmount:
    """Tests for parse_amount."""

    @pytest.mark.parametrize(
        "raw",
        ["3.205,56", "R$ 3.205,56", "3205,56", "3205.56", "R$3205.56", "+3.205,56"],
    )
    def test_positive_notations(self, raw: str) -> None:
        """Test that Brazilian and plain notations give the same value."""
        assert parse_amount(raw) == (Decimal("3205.56"), False)

    @pytest.mark.parametrize(
        "raw",
        ["-32,50", "R$ -32,50", "-R$ 32,50", "(32,50)", "32,50 D", "32,50-", "-32.50"],
    )
    def test_negative_notations(self, raw: str) -> None:
        """Test every supported way of writing a negative amount."""
        assert parse_amount(raw) == (Decimal("32.50"), True)

    def test_credit_flag_is_positive(self) -> None:
        """Test that a trailing C flag keeps the amount positive."""
        assert parse_amount("32,50 C") == (Decimal("32.50"), False)

    def test_thousands_separators(self) -> None:
        """Test multiple thousands separators in Brazilian notation."""
        assert parse_amount("1.234.567,89") == (Decimal("1234567.89"), False)

    def test_integer_token_not_scaled(self) -> None:
        """Test that integer tokens are returned as-is, without cents scaling."""
        assert parse_amount("320556") == (Decimal("320556"), False)

    def test_non_breaking_space(self) -> None:
        """Test that a non-breaking space after the currency marker is accepted."""
        assert parse_amount("R$\u00a0100,00") == (Decimal("100.00"), False)

    def test_zero_is_never_negative(self) -> None:
        """Test that -0,00 is reported as a non-negative zero."""
        assert parse_amount("-0,00") == (Decimal("0"), False)

    def test_rounds_to_cents(self) -> None:
        """Test half-up rounding to two decimal places."""
        amount, _ = parse_amount("10,005")
        assert amount == Decimal("10.01")

    @pytest.mark.parametrize("raw", ["abc", "12,34,56", "R$", "1.2.3a"])
    def test_invalid_tokens_raise(self, raw: str) -> None:
        """Test that non-numeric tokens raise ParseError with the raw value."""
        with pytest.raises(ParseError) as exc_info:
            parse_amount(raw)
        assert exc_info.value.field == "amount"
        assert exc_info.value.raw_value == raw

    def test_empty_token_raises(self) -> None:
        """Test that an empty token raises ParseError."""
        with pytest.raises(ParseError, match="Empty"):
            parse_amount("   ")

    def test_custom_field_name(self) -> None:
        """Test that the field name is carried into the error."""
        with pytest.raises(ParseError) as exc_info:
            parse_amount("xyz", field="valor")
        assert exc_info.value.field == "valor"

    def test_brazilian_and_plain_forms_agree(self) -> None:
        """Test that an amount formatted for display parses back to itself."""
        for value in [Decimal("0.01"), Decimal("32.50"), Decimal("3205.56"), Decimal("1234567.89")]:
            brazilian = format_brl(value)
            plain = f"{value:.2f}"
            assert parse_amount(brazilian) == parse_amount(plain) == (value, False)


class TestMinorUnits:
    """Tests for cents detection and conversion."""

    @pytest.mark.parametrize("raw", ["320556", "-294740", "+100", " 42 "])
    def test_integer_tokens_are_minor_units(self, raw: str) -> None:
        """Test that digit-only tokens are recognized as cents."""
        assert is_minor_units_token(raw)

    @pytest.mark.parametrize("raw", ["(294740)", "294740 D", "294740-", "R$ (294740)", "294740 C"])
    def test_sign_markers_keep_minor_units(self, raw: str) -> None:
        """Test that negative markers are not mistaken for separators."""
        assert is_minor_units_token(raw)

    @pytest.mark.parametrize("raw", ["(2.947,40)", "2947,40 D", "2947.40-"])
    def test_sign_markers_with_separators(self, raw: str) -> None:
        """Test that marked tokens with separators are still reais."""
        assert not is_minor_units_token(raw)

    @pytest.mark.parametrize("raw", ["3.205,56", "3205.56", "32,50", "", "abc"])
    def test_separated_tokens_are_not_minor_units(self, raw: str) -> None:
        """Test that tokens with separators are not treated as cents."""
        assert not is_minor_units_token(raw)

    def test_minor_to_major(self) -> None:
        """Test conversion from cents to reais."""
        assert minor_to_major(Decimal("320556")) == Decimal("3205.56")
        assert minor_to_major(Decimal("5")) == Decimal("0.05")


class TestHelpers:
    """Tests for amount comparison and display."""

    def test_amounts_match_within_tolerance(self) -> None:
        """Test the default one-cent tolerance."""
        assert amounts_match(Decimal("100.00"), Decimal("100.01"))
        assert not amounts_match(Decimal("100.00"), Decimal("100.02"))

    def test_amounts_match_custom_tolerance(self) -> None:
        """Test a wider tolerance."""
        assert amounts_match(Decimal("100.00"), Decimal("100.50"), Decimal("1.00"))

    def test_format_brl(self) -> None:
        """Test Brazilian display formatting."""
        assert format_brl(Decimal("3205.56")) == "R$ 3.205,56"
        assert format_brl(Decimal("-32.5")) == "-R$ 32,50"
        assert format_brl(Decimal("0")) == "R$ 0,00"
