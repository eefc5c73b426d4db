"""Decimal utilities for monetary values.

All monetary calculations must use Decimal to avoid floating-point precision issues.
Amounts arrive either in Brazilian notation (1.234,56) or as plain decimals (1234.56).
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from statement_ledger.exceptions import ParseError

CENTS = Decimal("0.01")

# Currency markers to strip before parsing
CURRENCY_MARKERS = ("R$", "BRL", "$")

# Regex for parentheses-enclosed negatives: (1.234,56)
PARENS_NEGATIVE_PATTERN = re.compile(r"^\s*\(\s*([^)]+)\s*\)\s*$")

# Trailing debit/credit flag: "150,00 D", "150,00 C"
DEBIT_CREDIT_PATTERN = re.compile(r"\s*\b([DC])\s*$", re.IGNORECASE)

# Digits only once sign markers are gone: "320556", "-294740", "(294740)", "294740 D"
MINOR_UNITS_PATTERN = re.compile(r"^\d+$")

# What may remain once separators are normalized
PLAIN_DECIMAL_PATTERN = re.compile(r"^\d+(\.\d+)?$")


def _clean_token(raw_amount: str) -> str:
    amount_str = raw_amount.replace("\u00a0", " ").strip()
    for marker in CURRENCY_MARKERS:
        amount_str = amount_str.replace(marker, "")
    return amount_str.strip()


def _strip_sign_markers(raw_amount: str) -> tuple[str, bool]:
    """Remove currency markers and every negative marker from a token.

    Returns:
        Tuple of (bare number text, is_negative flag).
    """
    amount_str = _clean_token(raw_amount)
    is_negative = False

    parens_match = PARENS_NEGATIVE_PATTERN.match(amount_str)
    if parens_match:
        amount_str = parens_match.group(1).strip()
        is_negative = True

    flag_match = DEBIT_CREDIT_PATTERN.search(amount_str)
    if flag_match:
        if flag_match.group(1).upper() == "D":
            is_negative = True
        amount_str = amount_str[: flag_match.start()].strip()

    # Sign may sit on either side of the currency marker: "-R$ 5,00", "R$ -5,00", "5,00-"
    amount_str = _clean_token(amount_str)
    if amount_str.startswith("-"):
        is_negative = True
        amount_str = amount_str[1:].strip()
    elif amount_str.startswith("+"):
        amount_str = amount_str[1:].strip()
    elif amount_str.endswith("-"):
        is_negative = True
        amount_str = amount_str[:-1].strip()

    return amount_str.replace(" ", ""), is_negative


def parse_amount(raw_amount: str, field: str = "amount") -> tuple[Decimal, bool]:
    """Parse a monetary token into an absolute Decimal and a sign flag.

    Handles:
    - Brazilian: 3.205,56, -32,50, R$ 3.205,56
    - Plain decimal: 3205.56, -3205.56
    - Parentheses for negative: (32,50)
    - Trailing debit/credit flag: 32,50 D, 32,50 C
    - Integer tokens: 320556 (returned as-is, scaling is the caller's job)

    Detection rule: if the token contains a comma, the comma is the decimal
    separator and every period is a thousands separator. Otherwise the token
    is parsed as a plain decimal.

    Args:
        raw_amount: The raw amount token.
        field: Field name reported in ParseError.

    Returns:
        Tuple of (absolute amount quantized to cents, is_negative flag).

    Raises:
        ParseError: If the token is empty or not numeric after cleaning.
    """
    if raw_amount is None or not str(raw_amount).strip():
        raise ParseError(f"Empty {field} value", field=field, raw_value=raw_amount)

    original = str(raw_amount)
    amount_str, is_negative = _strip_sign_markers(original)

    if "," in amount_str:
        amount_str = amount_str.replace(".", "").replace(",", ".")

    if not PLAIN_DECIMAL_PATTERN.match(amount_str):
        raise ParseError(
            f"Cannot parse {field} '{original}'", field=field, raw_value=original
        )

    try:
        amount = Decimal(amount_str)
    except InvalidOperation as e:
        raise ParseError(
            f"Cannot parse {field} '{original}': {e}", field=field, raw_value=original
        ) from e

    amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    return amount, is_negative and amount != 0


def is_minor_units_token(raw_amount: str) -> bool:
    """Check whether a token is an integer amount in cents (no separators).

    Sign markers do not count as separators: "(294740)", "294740 D" and
    "294740-" are cents just like "-294740".
    """
    amount_str, _ = _strip_sign_markers(raw_amount or "")
    return bool(MINOR_UNITS_PATTERN.match(amount_str))


def minor_to_major(amount: Decimal) -> Decimal:
    """Convert an amount in cents to reais."""
    return (amount / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def quantize_cents(amount: Decimal) -> Decimal:
    """Round an amount to two decimal places."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def amounts_match(first: Decimal, second: Decimal, tolerance: Decimal = CENTS) -> bool:
    """Check whether two amounts are equal within a tolerance."""
    return abs(first - second) <= tolerance


def format_brl(amount: Decimal) -> str:
    """Format an amount for display in Brazilian notation.

    Args:
        amount: The amount to format.

    Returns:
        String like "R$ 3.205,56" or "-R$ 32,50".
    """
    rounded = quantize_cents(amount)
    sign = "-" if rounded < 0 else ""
    integer_part, _, cents = f"{abs(rounded):,.2f}".partition(".")
    return f"{sign}R$ {integer_part.replace(',', '.')},{cents}"


def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    """Sum Decimal amounts.

    Args:
        amounts: Decimal amounts.

    Returns:
        Sum as Decimal.
    """
    total = Decimal("0")
    for amount in amounts:
        total += amount
    return total
