"""Audit recorder for per-batch inclusion and exclusion counts.

The recorder is diagnostic only: parsers and the validator append to it, the
reporting side reads it. Nothing in the pipeline reads it back to make a
parsing decision.

Use one recorder per batch (or per file, merged sequentially once each file
completes). A recorder is NOT thread-safe.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from statement_ledger.exceptions import ParseError


class ExclusionReason(Enum):
    """Reason codes for records that did not make it into the ledger."""

    INVALID_AMOUNT = "invalid_amount"
    INVALID_DATE = "invalid_date"
    MISSING_FIELD = "missing_field"
    MALFORMED_ROW = "malformed_row"
    INVALID_TIMESTAMP = "invalid_timestamp"
    ZERO_AMOUNT = "zero_amount"
    NOT_COMPLETED = "not_completed"
    PENDING = "pending"
    TRANSFER_ARTIFACT = "transfer_artifact"
    REVERSAL_PAIR = "reversal_pair"
    DEBIT_ADJUSTMENT = "debit_adjustment"
    ALREADY_STORED = "already_stored"
    UNKNOWN_SOURCE_APP = "unknown_source_app"
    NO_TEMPLATE_MATCH = "no_template_match"

    @classmethod
    def for_error(cls, error: ParseError) -> "ExclusionReason":
        """Map a ParseError to its reason code."""
        if error.raw_value is None or not str(error.raw_value).strip():
            return cls.MISSING_FIELD
        if error.field == "row":
            return cls.MALFORMED_ROW
        if error.field == "amount":
            return cls.INVALID_AMOUNT
        if error.field == "date":
            return cls.INVALID_DATE
        if error.field == "timestamp":
            return cls.INVALID_TIMESTAMP
        return cls.MISSING_FIELD


@dataclass(frozen=True)
class RowError:
    """A row that failed to parse."""

    source: str
    row_index: Optional[int]
    field: Optional[str]
    raw_value: Optional[str]
    reason: ExclusionReason
    message: str = ""


@dataclass
class FileAudit:
    """Counts for a single file or notification source."""

    source: str
    format: Optional[str] = None
    format_confident: bool = True
    rows_included: int = 0
    rows_excluded: int = 0
    exclusion_reasons: Counter = field(default_factory=Counter)


@dataclass
class AuditRecorder:
    """Accumulates included/excluded/ambiguous counts for one upload session."""

    files_processed: int = 0
    notifications_processed: int = 0
    rows_included: int = 0
    rows_excluded: int = 0
    exclusion_reasons: Counter = field(default_factory=Counter)
    row_errors: list[RowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    files: dict[str, FileAudit] = field(default_factory=dict)

    def _file(self, source: str) -> FileAudit:
        if source not in self.files:
            self.files[source] = FileAudit(source=source)
        return self.files[source]

    def start_file(
        self, source: str, format_name: Optional[str] = None, confident: bool = True
    ) -> None:
        """Register a file at the start of its parse."""
        self.files_processed += 1
        entry = self._file(source)
        entry.format = format_name
        entry.format_confident = confident

    def start_notification(self, source: str) -> None:
        """Register one notification event."""
        self.notifications_processed += 1
        self._file(source)

    def record_included(self, source: str, count: int = 1) -> None:
        """Count records accepted from a source."""
        self.rows_included += count
        self._file(source).rows_included += count

    def record_excluded(self, source: str, reason: ExclusionReason, count: int = 1) -> None:
        """Count records dropped from a source with a reason code."""
        self.rows_excluded += count
        self.exclusion_reasons[reason.value] += count
        entry = self._file(source)
        entry.rows_excluded += count
        entry.exclusion_reasons[reason.value] += count

    def record_removed(self, source: str, reason: ExclusionReason, count: int = 1) -> None:
        """Move records already counted as included to the excluded side.

        Used by the validator, which drops records a parser had accepted.
        """
        self.rows_included -= count
        self._file(source).rows_included -= count
        self.record_excluded(source, reason, count)

    def record_parse_error(
        self,
        error: ParseError,
        source: Optional[str] = None,
        reason: Optional[ExclusionReason] = None,
    ) -> RowError:
        """Record a row-level ParseError and count the row as excluded."""
        source_name = source or error.source or ""
        reason = reason or ExclusionReason.for_error(error)
        row_error = RowError(
            source=source_name,
            row_index=error.row_index,
            field=error.field,
            raw_value=error.raw_value,
            reason=reason,
            message=str(error),
        )
        self.row_errors.append(row_error)
        self.record_excluded(source_name, reason)
        return row_error

    def record_warning(self, message: str) -> None:
        """Record a caller-visible warning (e.g. an unconfident format guess)."""
        self.warnings.append(message)

    def merge(self, other: "AuditRecorder") -> "AuditRecorder":
        """Fold another recorder's counts into this one.

        Args:
            other: Recorder of a completed file or batch.

        Returns:
            This recorder, for chaining.
        """
        self.files_processed += other.files_processed
        self.notifications_processed += other.notifications_processed
        self.rows_included += other.rows_included
        self.rows_excluded += other.rows_excluded
        self.exclusion_reasons.update(other.exclusion_reasons)
        self.row_errors.extend(other.row_errors)
        self.warnings.extend(other.warnings)
        for source, entry in other.files.items():
            mine = self._file(source)
            if entry.format is not None:
                mine.format = entry.format
                mine.format_confident = entry.format_confident
            mine.rows_included += entry.rows_included
            mine.rows_excluded += entry.rows_excluded
            mine.exclusion_reasons.update(entry.exclusion_reasons)
        return self

    def reset(self) -> None:
        """Clear all counters for a new upload session."""
        self.files_processed = 0
        self.notifications_processed = 0
        self.rows_included = 0
        self.rows_excluded = 0
        self.exclusion_reasons = Counter()
        self.row_errors = []
        self.warnings = []
        self.files = {}

    @property
    def ambiguous_files(self) -> list[str]:
        """Files whose format was a fallback guess."""
        return [name for name, entry in self.files.items() if not entry.format_confident]

    def summary(self) -> dict[str, object]:
        """Return the counts as plain data for the reporting collaborator."""
        return {
            "filesProcessed": self.files_processed,
            "notificationsProcessed": self.notifications_processed,
            "rowsIncluded": self.rows_included,
            "rowsExcluded": self.rows_excluded,
            "exclusionReasons": dict(self.exclusion_reasons),
            "ambiguousFiles": self.ambiguous_files,
            "rowErrors": [
                {
                    "source": e.source,
                    "rowIndex": e.row_index,
                    "field": e.field,
                    "rawValue": e.raw_value,
                    "reason": e.reason.value,
                }
                for e in self.row_errors
            ],
            "warnings": list(self.warnings),
        }
