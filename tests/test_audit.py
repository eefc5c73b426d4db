"""Tests for the audit recorder."""

from statement_ledger.exceptions import ParseError
from statement_ledger.processing.audit import AuditRecorder, ExclusionReason


class TestExclusionReason:
    """Tests for mapping parse errors to reason codes."""

    def test_field_mapping(self) -> None:
        """Test that the failing field decides the reason."""
        assert ExclusionReason.for_error(ParseError("x", "amount", "abc")) == ExclusionReason.INVALID_AMOUNT
        assert ExclusionReason.for_error(ParseError("x", "date", "ontem")) == ExclusionReason.INVALID_DATE
        assert ExclusionReason.for_error(ParseError("x", "timestamp", "ontem")) == ExclusionReason.INVALID_TIMESTAMP
        assert ExclusionReason.for_error(ParseError("x", "row", "2025-07-02,\"xxx")) == ExclusionReason.MALFORMED_ROW

    def test_empty_value_is_missing_field(self) -> None:
        """Test that a blank token counts as a missing field."""
        assert ExclusionReason.for_error(ParseError("x", "amount", "  ")) == ExclusionReason.MISSING_FIELD
        assert ExclusionReason.for_error(ParseError("x", "date")) == ExclusionReason.MISSING_FIELD


class TestAuditRecorder:
    """Tests for AuditRecorder counting."""

    def test_counts_per_file(self) -> None:
        """Test included and excluded counts per source."""
        recorder = AuditRecorder()
        recorder.start_file("NU_2025-07.csv", "bank_statement")
        recorder.record_included("NU_2025-07.csv", 3)
        recorder.record_excluded("NU_2025-07.csv", ExclusionReason.ZERO_AMOUNT)

        assert recorder.files_processed == 1
        assert recorder.rows_included == 3
        assert recorder.rows_excluded == 1
        entry = recorder.files["NU_2025-07.csv"]
        assert entry.format == "bank_statement"
        assert entry.exclusion_reasons == {"zero_amount": 1}

    def test_record_removed_moves_count(self) -> None:
        """Test that a validator removal leaves the totals consistent."""
        recorder = AuditRecorder()
        recorder.record_included("a.csv", 2)
        recorder.record_removed("a.csv", ExclusionReason.TRANSFER_ARTIFACT)

        assert recorder.rows_included == 1
        assert recorder.rows_excluded == 1
        assert recorder.files["a.csv"].rows_included == 1

    def test_record_parse_error(self) -> None:
        """Test that a row error is kept with its position."""
        recorder = AuditRecorder()
        error = ParseError("Invalid amount", field="amount", raw_value="abc", row_index=3, source="f.csv")

        row_error = recorder.record_parse_error(error)

        assert row_error.source == "f.csv"
        assert row_error.row_index == 3
        assert row_error.reason == ExclusionReason.INVALID_AMOUNT
        assert recorder.row_errors == [row_error]
        assert recorder.exclusion_reasons["invalid_amount"] == 1

    def test_ambiguous_files(self) -> None:
        """Test that unconfident format guesses are listed."""
        recorder = AuditRecorder()
        recorder.start_file("NU_2025-07.csv", "bank_statement")
        recorder.start_file("dados.csv", "generic_csv", confident=False)

        assert recorder.ambiguous_files == ["dados.csv"]

    def test_merge(self) -> None:
        """Test folding per-file recorders into a batch recorder."""
        batch = AuditRecorder()
        for name in ("a.csv", "b.csv"):
            file_recorder = AuditRecorder()
            file_recorder.start_file(name, "invoice", confident=name == "a.csv")
            file_recorder.record_included(name, 2)
            file_recorder.record_excluded(name, ExclusionReason.INVALID_DATE)
            file_recorder.record_warning(f"{name} checked")
            batch.merge(file_recorder)

        assert batch.files_processed == 2
        assert batch.rows_included == 4
        assert batch.rows_excluded == 2
        assert batch.exclusion_reasons == {"invalid_date": 2}
        assert batch.warnings == ["a.csv checked", "b.csv checked"]
        assert batch.ambiguous_files == ["b.csv"]

    def test_reset(self) -> None:
        """Test that reset clears every counter."""
        recorder = AuditRecorder()
        recorder.start_notification("com.nu.production")
        recorder.record_included("com.nu.production")
        recorder.record_warning("x")

        recorder.reset()

        assert recorder.summary() == AuditRecorder().summary()

    def test_summary_keys(self) -> None:
        """Test the plain-data summary handed to reporting."""
        recorder = AuditRecorder()
        recorder.start_notification("com.unknown")
        recorder.record_excluded("com.unknown", ExclusionReason.UNKNOWN_SOURCE_APP)
        recorder.record_parse_error(ParseError("bad", field="date", raw_value="x", row_index=1), "f.csv")

        summary = recorder.summary()

        assert summary["notificationsProcessed"] == 1
        assert summary["rowsExcluded"] == 2
        assert summary["exclusionReasons"] == {"unknown_source_app": 1, "invalid_date": 1}
        assert summary["rowErrors"] == [
            {"source": "f.csv", "rowIndex": 1, "field": "date", "rawValue": "x", "reason": "invalid_date"}
        ]
        assert summary["ambiguousFiles"] == []
