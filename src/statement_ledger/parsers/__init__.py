"""Format detection and parsers for statement files and notifications."""

from statement_ledger.exceptions import (
    FormatUnrecognizedError,
    FormatUnrecognizedWarning,
    ParseError,
)
from statement_ledger.parsers.detector import FormatDetection, FormatDetector, discover_files
from statement_ledger.parsers.notification_parser import NotificationParser
from statement_ledger.parsers.statement_parser import (
    ColumnMapping,
    StatementParser,
    detect_delimiter,
    normalize_amount,
    run_self_check,
)

__all__ = [
    "ParseError",
    "FormatUnrecognizedError",
    "FormatUnrecognizedWarning",
    "FormatDetector",
    "FormatDetection",
    "discover_files",
    "StatementParser",
    "ColumnMapping",
    "detect_delimiter",
    "normalize_amount",
    "run_self_check",
    "NotificationParser",
]
