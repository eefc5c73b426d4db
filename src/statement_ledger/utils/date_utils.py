"""Date parsing and normalization utilities."""

import re
from datetime import date, datetime, tzinfo
from typing import Optional

from statement_ledger.exceptions import ParseError

# Accepted date layouts, tried in order.
#
# Slash-separated dates with the year last are always day-first (DD/MM/YYYY),
# as written by Brazilian banks. Year-first layouts are unambiguous.
# Two-digit years are rejected: "05/07/25" could be 1925 or 2025.
DATE_PATTERNS = [
    # ISO format (most common, try first)
    (r"^(?P<y>\d{4})-(?P<m>\d{1,2})-(?P<d>\d{1,2})$"),
    # Year-first with slashes: 2025/07/15, 2025/7/5
    (r"^(?P<y>\d{4})/(?P<m>\d{1,2})/(?P<d>\d{1,2})$"),
    # Brazilian day-first: 15/07/2025, 5/7/2025, 15-07-2025, 15.07.2025
    (r"^(?P<d>\d{1,2})/(?P<m>\d{1,2})/(?P<y>\d{4})$"),
    (r"^(?P<d>\d{1,2})-(?P<m>\d{1,2})-(?P<y>\d{4})$"),
    (r"^(?P<d>\d{1,2})\.(?P<m>\d{1,2})\.(?P<y>\d{4})$"),
]

COMPILED_PATTERNS = [re.compile(pattern) for pattern in DATE_PATTERNS]

TWO_DIGIT_YEAR_PATTERN = re.compile(r"^\d{1,2}[/.-]\d{1,2}[/.-]\d{2}$")

# Timestamps and times after the date are ignored: "2025-07-15T10:22:00", "15/07/2025 10:22"
TIME_SUFFIX_PATTERN = re.compile(r"[T\s]\d{1,2}:\d{2}(:\d{2})?.*$")


def parse_date(raw_date: str) -> date:
    """Parse a raw date string into a date object.

    Handles:
    - ISO: 2025-07-15, 2025-7-5
    - Year-first slashes: 2025/07/15, 2025/7/5
    - Day-first: 15/07/2025, 15-07-2025, 15.07.2025

    Args:
        raw_date: The raw date string to parse.

    Returns:
        Parsed date object.

    Raises:
        ParseError: If the date is empty, uses a two-digit year, or is not a
            valid calendar date.
    """
    if raw_date is None or not str(raw_date).strip():
        raise ParseError("Empty date string", field="date", raw_value=raw_date)

    date_str = TIME_SUFFIX_PATTERN.sub("", str(raw_date).strip())

    if TWO_DIGIT_YEAR_PATTERN.match(date_str):
        raise ParseError(
            f"Ambiguous two-digit year in date: '{raw_date}'",
            field="date",
            raw_value=raw_date,
        )

    for pattern in COMPILED_PATTERNS:
        match = pattern.match(date_str)
        if match:
            try:
                return date(int(match["y"]), int(match["m"]), int(match["d"]))
            except ValueError as e:
                raise ParseError(
                    f"Invalid calendar date '{raw_date}': {e}",
                    field="date",
                    raw_value=raw_date,
                ) from e

    raise ParseError(f"Cannot parse date: '{raw_date}'", field="date", raw_value=raw_date)


def date_to_iso(d: date) -> str:
    """Convert a date to ISO 8601 format (YYYY-MM-DD).

    Args:
        d: Date to convert.

    Returns:
        ISO format date string.
    """
    return d.isoformat()


def month_key(d: date) -> str:
    """Return the YYYY-MM period a date belongs to."""
    return f"{d.year:04d}-{d.month:02d}"


def date_from_epoch_millis(timestamp_ms: Optional[int], tz: Optional[tzinfo] = None) -> date:
    """Convert an epoch-millis timestamp to a calendar date.

    Args:
        timestamp_ms: Milliseconds since the epoch, or None for "now".
        tz: Timezone the calendar date is taken in (local time if None).

    Returns:
        The calendar date of the timestamp in the given timezone.

    Raises:
        ParseError: If the timestamp is outside the supported range.
    """
    if timestamp_ms is None:
        return datetime.now(tz).date()
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000, tz).date()
    except (OverflowError, OSError, ValueError) as e:
        raise ParseError(
            f"Timestamp out of range: {timestamp_ms}",
            field="timestamp",
            raw_value=str(timestamp_ms),
        ) from e
