"""Sanitization helpers for exported ledger cells and parsed text."""

import re
from typing import Optional

# Characters that trigger formula execution in spreadsheet applications
# when they appear at the start of a cell value (| covers DDE payloads)
FORMULA_CHARS = ("=", "+", "-", "@", "\t", "\r", "\n", "|")

_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_for_csv(value: Optional[str]) -> Optional[str]:
    """Neutralize spreadsheet formula injection in an exported cell.

    Values starting with a formula-triggering character get a leading single
    quote, the mitigation OWASP recommends for CSV injection.

    Args:
        value: Cell value, or None.

    Returns:
        Sanitized string, or None if input was None.
    """
    if not value:
        return value

    if value.startswith(FORMULA_CHARS):
        return "'" + value

    return value


def collapse_whitespace(text: Optional[str]) -> str:
    """Trim a description and collapse internal whitespace runs.

    Case and accents are preserved.
    """
    if not text:
        return ""
    return _WHITESPACE_RUN.sub(" ", text).strip()
