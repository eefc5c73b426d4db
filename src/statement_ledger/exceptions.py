"""Exception and warning types shared across the ledger pipeline."""

from typing import Optional


class LedgerError(Exception):
    """Base class for statement ledger errors."""

    pass


class ParseError(LedgerError, ValueError):
    """Raised when a single field of a statement row cannot be normalized.

    Row-level and recoverable: callers normally skip the row, record it in the
    audit recorder and continue with the rest of the file.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        raw_value: Optional[str] = None,
        row_index: Optional[int] = None,
        source: Optional[str] = None,
    ):
        """Initialize ParseError.

        Args:
            message: Error message.
            field: Name of the offending field (e.g. "amount", "date").
            raw_value: The raw token that failed to parse.
            row_index: 1-based data row index, when known.
            source: File name or source app the row came from.
        """
        self.field = field
        self.raw_value = raw_value
        self.row_index = row_index
        self.source = source
        super().__init__(message)

    def at_row(self, row_index: int, source: Optional[str] = None) -> "ParseError":
        """Return a copy of this error bound to a row position."""
        return ParseError(
            str(self),
            field=self.field,
            raw_value=self.raw_value,
            row_index=row_index,
            source=source if source is not None else self.source,
        )


class FormatUnrecognizedError(LedgerError):
    """Raised when a file cannot be classified and the fallback is disabled."""

    def __init__(self, message: str, file_name: Optional[str] = None):
        self.file_name = file_name
        super().__init__(message)


class FormatUnrecognizedWarning(UserWarning):
    """Emitted when a file falls back to the generic CSV interpretation."""


class ConfigError(LedgerError):
    """Exception raised for configuration errors."""

    pass
