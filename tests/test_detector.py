"""Tests for statement format detection and file discovery."""

import warnings
from pathlib import Path

import pytest

from statement_ledger.config import ConfigError, DetectionConfig
from statement_ledger.exceptions import FormatUnrecognizedError, FormatUnrecognizedWarning
from statement_ledger.models.transaction import StatementFormat
from statement_ledger.parsers.detector import FormatDetector, discover_files, normalize_header


class TestFormatDetector:
    """Tests for FormatDetector.detect."""

    @pytest.fixture
    def detector(self) -> FormatDetector:
        """Detector with the default configuration."""
        return FormatDetector()

    def test_statement_prefix(self, detector: FormatDetector) -> None:
        """Test that NU_ exports are account statements."""
        result = detector.detect("NU_2025-07.csv")
        assert result.format == StatementFormat.BANK_STATEMENT
        assert result.confident

    def test_invoice_prefix(self, detector: FormatDetector) -> None:
        """Test that Nubank_ exports are card invoices."""
        result = detector.detect("Nubank_2025-07-10.csv")
        assert result.format == StatementFormat.INVOICE
        assert result.confident

    def test_invoice_keyword(self, detector: FormatDetector) -> None:
        """Test that a filename mentioning the invoice is an invoice."""
        assert detector.detect("minha_fatura_julho.csv").format == StatementFormat.INVOICE
        assert detector.detect("Cartao-2025.csv").format == StatementFormat.INVOICE

    def test_filename_rule_wins_over_header(self, detector: FormatDetector) -> None:
        """Test that the first matching rule decides, in table order."""
        result = detector.detect("NU_2025-07.csv", header="date,title,amount")
        assert result.format == StatementFormat.BANK_STATEMENT

    def test_directories_are_ignored(self, detector: FormatDetector) -> None:
        """Test that only the base name is matched."""
        result = detector.detect("downloads/NU_2025-07.csv")
        assert result.format == StatementFormat.BANK_STATEMENT

    def test_statement_header(self, detector: FormatDetector) -> None:
        """Test detection by the statement header line."""
        result = detector.detect("export.csv", header="Data,Valor,Identificador,Descrição")
        assert result.format == StatementFormat.BANK_STATEMENT
        assert result.confident

    def test_invoice_header(self, detector: FormatDetector) -> None:
        """Test detection by the invoice header line."""
        result = detector.detect("export.csv", header="date,title,amount")
        assert result.format == StatementFormat.INVOICE

    def test_generic_header_is_confident(self, detector: FormatDetector) -> None:
        """Test that a date/description/value header is a confident generic CSV."""
        result = detector.detect("export.csv", header="Data;Descrição;Valor")
        assert result.format == StatementFormat.GENERIC_CSV
        assert result.confident

    def test_unrecognized_falls_back_with_warning(self, detector: FormatDetector) -> None:
        """Test the generic fallback for files no rule recognizes."""
        with pytest.warns(FormatUnrecognizedWarning, match="dados.csv"):
            result = detector.detect("dados.csv", header="foo,bar")
        assert result.format == StatementFormat.GENERIC_CSV
        assert not result.confident

    def test_non_text_mime_type_falls_back(self, detector: FormatDetector) -> None:
        """Test that a PDF is never trusted as a statement export."""
        with pytest.warns(FormatUnrecognizedWarning):
            result = detector.detect("NU_2025-07.csv", mime_type="application/pdf")
        assert not result.confident

    def test_reject_policy_raises(self) -> None:
        """Test that the reject policy refuses unrecognized files."""
        detector = FormatDetector(DetectionConfig(fallback_policy="reject"))
        with pytest.raises(FormatUnrecognizedError) as exc_info:
            detector.detect("dados.csv", header="foo,bar")
        assert exc_info.value.file_name == "dados.csv"

    def test_reject_policy_keeps_known_files(self) -> None:
        """Test that the reject policy only affects unrecognized files."""
        detector = FormatDetector(DetectionConfig(fallback_policy="reject"))
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = detector.detect("NU_2025-07.csv")
        assert result.format == StatementFormat.BANK_STATEMENT

    def test_custom_prefixes(self) -> None:
        """Test that configured prefixes replace the defaults."""
        detector = FormatDetector(
            DetectionConfig(statement_prefixes=["extrato_"], invoice_prefixes=["fatura_"])
        )
        assert detector.detect("extrato_julho.csv").format == StatementFormat.BANK_STATEMENT
        with pytest.warns(FormatUnrecognizedWarning):
            assert not detector.detect("NU_2025-07.csv").confident

    def test_invalid_policy(self) -> None:
        """Test that an unknown fallback policy is a configuration error."""
        with pytest.raises(ConfigError, match="fallback_policy"):
            DetectionConfig(fallback_policy="maybe")


class TestNormalizeHeader:
    """Tests for header cell normalization."""

    def test_strips_accents_bom_and_case(self) -> None:
        """Test that header cells compare without accents, BOM or case."""
        assert normalize_header("\ufeffDescrição") == "descricao"
        assert normalize_header(' "Histórico" ') == "historico"


class TestDiscoverFiles:
    """Tests for discover_files."""

    def test_finds_supported_files_recursively(self, tmp_path: Path) -> None:
        """Test that CSV and TXT files are found in subdirectories."""
        (tmp_path / "b.csv").write_text("x")
        (tmp_path / "a.txt").write_text("x")
        (tmp_path / "c.pdf").write_text("x")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "D.CSV").write_text("x")

        files = discover_files(tmp_path)

        assert [f.name for f in files] == ["a.txt", "b.csv", "D.CSV"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test that a missing directory yields no files."""
        assert discover_files(tmp_path / "missing") == []

    def test_symlink_outside_directory_skipped(self, tmp_path: Path) -> None:
        """Test that symlinks escaping the input directory are ignored."""
        outside = tmp_path / "outside.csv"
        outside.write_text("x")
        inbox = tmp_path / "inbox"
        inbox.mkdir()
        (inbox / "link.csv").symlink_to(outside)

        assert discover_files(inbox) == []
