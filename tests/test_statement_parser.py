"""Tests for the statement parser."""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from statement_ledger.config import Config, DetectionConfig
from statement_ledger.exceptions import FormatUnrecognizedError, FormatUnrecognizedWarning, ParseError
from statement_ledger.models.category import EDUCATION, FOOD, TRANSFER_RECEIVED, TRANSFER_SENT, TRANSPORT
from statement_ledger.models.transaction import StatementFile, StatementFormat, TransactionType
from statement_ledger.parsers.detector import FormatDetector
from statement_ledger.parsers.statement_parser import (
    ColumnMapping,
    StatementParser,
    detect_delimiter,
    looks_like_header,
    normalize_amount,
    run_self_check,
)
from statement_ledger.processing.audit import AuditRecorder, ExclusionReason
from statement_ledger.processing.payment_method import CREDIT_CARD, DEBIT_CARD, PIX

FIXTURES = Path(__file__).parent / "fixtures"

INVOICE_WITH_BAD_ROW = """date,title,amount
2025-07-01,Padaria Central,12.50
2025-07-02,Uber viagem,25.90
2025-07-03,Farmacia Popular,abc
2025-07-04,Netflix,55.90
2025-07-05,PUC mensalidade,1200.00
"""


@pytest.fixture
def parser() -> StatementParser:
    """Parser with built-in rules."""
    return StatementParser()


class TestNormalizeAmount:
    """Tests for format-conditional cents scaling."""

    def test_statement_integer_is_cents(self) -> None:
        """Test that a digit-only statement token is read as cents."""
        assert normalize_amount("320556", StatementFormat.BANK_STATEMENT) == (Decimal("3205.56"), False)
        assert normalize_amount("-294740", StatementFormat.BANK_STATEMENT) == (Decimal("2947.40"), True)

    def test_invoice_integer_is_reais(self) -> None:
        """Test that the same token in an invoice is not scaled."""
        assert normalize_amount("320556", StatementFormat.INVOICE) == (Decimal("320556"), False)

    def test_generic_integer_is_reais(self) -> None:
        """Test that the generic fallback reads integers as reais."""
        assert normalize_amount("320556", StatementFormat.GENERIC_CSV) == (Decimal("320556"), False)

    def test_statement_separated_token_not_scaled(self) -> None:
        """Test that tokens with separators are never scaled."""
        assert normalize_amount("3.205,56", StatementFormat.BANK_STATEMENT) == (Decimal("3205.56"), False)
        assert normalize_amount("-32.50", StatementFormat.BANK_STATEMENT) == (Decimal("32.50"), True)

    @pytest.mark.parametrize("raw", ["(294740)", "294740 D", "294740-"])
    def test_statement_marked_negative_is_cents(self, raw: str) -> None:
        """Test that cents scaling ignores how the negative sign is written."""
        assert normalize_amount(raw, StatementFormat.BANK_STATEMENT) == (Decimal("2947.40"), True)


class TestCsvHelpers:
    """Tests for delimiter and header detection."""

    @pytest.mark.parametrize(
        "lines,expected",
        [
            (["a,b,c", "1,2,3"], ","),
            (["a;b;c", "1;2,50;3"], ";"),
            (["a\tb\tc", "1\t2\t3"], "\t"),
        ],
    )
    def test_detect_delimiter(self, lines: list[str], expected: str) -> None:
        """Test delimiter detection."""
        assert detect_delimiter(lines) == expected

    def test_looks_like_header(self) -> None:
        """Test header recognition by first cell or known column names."""
        assert looks_like_header(["Data", "Valor", "Identificador", "Descrição"])
        assert looks_like_header(["title", "date", "amount"])
        assert looks_like_header(["Lançamento", "Valor"])
        assert not looks_like_header(["01/07/2025", "-3250", "id-1", "Padaria"])
        assert not looks_like_header([])

    def test_column_mapping_from_header(self) -> None:
        """Test mapping columns by header keyword in any order."""
        mapping = ColumnMapping.from_header(["Valor", "Histórico", "Data"])
        assert mapping == ColumnMapping(date_col=2, description_col=1, amount_col=0)

    def test_column_mapping_incomplete_header(self) -> None:
        """Test that a header without a value column gives no mapping."""
        assert ColumnMapping.from_header(["Data", "Descrição"]) is None


class TestStatementParsing:
    """Tests for bank statement files."""

    def test_statement_fixture(self, parser: StatementParser) -> None:
        """Test a Nubank account statement export."""
        recorder = AuditRecorder()
        statement_file = StatementFile.read(FIXTURES / "NU_2025-07.csv")

        transactions = parser.parse_file(statement_file, recorder)

        assert len(transactions) == 3
        sent, received, purchase = transactions

        assert sent.date == date(2025, 7, 1)
        assert sent.amount == Decimal("2947.40")
        assert sent.type == TransactionType.EXPENSE
        assert sent.category == TRANSFER_SENT
        assert sent.payment_method == PIX
        assert sent.include_in_totals
        assert sent.row_index == 1
        assert sent.origin == StatementFormat.BANK_STATEMENT

        assert received.amount == Decimal("3205.56")
        assert received.type == TransactionType.INCOME
        assert received.category == TRANSFER_RECEIVED

        assert purchase.amount == Decimal("32.50")
        assert purchase.category == FOOD
        assert purchase.payment_method == DEBIT_CARD

        assert recorder.files_processed == 1
        assert recorder.rows_included == 3
        assert recorder.files["NU_2025-07.csv"].format == "bank_statement"

    def test_bom_crlf_and_semicolons(self, parser: StatementParser) -> None:
        """Test a statement with BOM, Windows line endings and semicolons."""
        content = "\ufeffData;Valor;Identificador;Descrição\r\n01/07/2025;-3250;id-1;Padaria\r\n\r\n"
        transactions = parser.parse(content, "NU_2025-07.csv")
        assert len(transactions) == 1
        assert transactions[0].amount == Decimal("32.50")

    def test_quoted_description_with_delimiter(self, parser: StatementParser) -> None:
        """Test that quoted cells may contain the delimiter."""
        content = 'Data,Valor,Identificador,Descrição\n01/07/2025,-3250,id-1,"Padaria, Centro"\n'
        transactions = parser.parse(content, "NU_2025-07.csv")
        assert transactions[0].description == "Padaria, Centro"

    def test_estorno_forces_income(self, parser: StatementParser) -> None:
        """Test that a refund row is income even when signed negative."""
        content = "Data,Valor,Identificador,Descrição\n01/07/2025,-3250,id-1,Estorno - Padaria\n"
        transactions = parser.parse(content, "NU_2025-07.csv")
        assert transactions[0].type == TransactionType.INCOME

    def test_parenthesized_cents_row(self, parser: StatementParser) -> None:
        """Test a statement row whose cents amount is negated with parentheses."""
        content = "Data,Valor,Identificador,Descrição\n01/07/2025,(294740),id-1,Padaria\n"
        transactions = parser.parse(content, "NU_2025-07.csv")
        assert transactions[0].amount == Decimal("2947.40")
        assert transactions[0].type == TransactionType.EXPENSE

    def test_description_whitespace_collapsed(self, parser: StatementParser) -> None:
        """Test that descriptions are trimmed and inner runs collapsed."""
        content = "Data,Valor,Identificador,Descrição\n01/07/2025,-3250,id-1,  Padaria    Central  \n"
        transactions = parser.parse(content, "NU_2025-07.csv")
        assert transactions[0].description == "Padaria Central"

    def test_zero_amount_skipped(self, parser: StatementParser) -> None:
        """Test that zero-amount rows are excluded with their own reason."""
        recorder = AuditRecorder()
        content = "Data,Valor,Identificador,Descrição\n01/07/2025,0,id-1,Ajuste\n02/07/2025,-100,id-2,Padaria\n"
        transactions = parser.parse(content, "NU_2025-07.csv", recorder=recorder)
        assert len(transactions) == 1
        assert recorder.exclusion_reasons[ExclusionReason.ZERO_AMOUNT.value] == 1

    def test_repeated_header_skipped(self, parser: StatementParser) -> None:
        """Test that a header repeated inside the data is not a row error."""
        recorder = AuditRecorder()
        content = (
            "Data,Valor,Identificador,Descrição\n"
            "01/07/2025,-3250,id-1,Padaria\n"
            "Data,Valor,Identificador,Descrição\n"
            "02/07/2025,-1000,id-2,Mercado\n"
        )
        transactions = parser.parse(content, "NU_2025-07.csv", recorder=recorder)
        assert len(transactions) == 2
        assert recorder.row_errors == []

    def test_empty_file(self, parser: StatementParser) -> None:
        """Test that an empty statement yields nothing."""
        recorder = AuditRecorder()
        assert parser.parse("", "NU_2025-07.csv", recorder=recorder) == []
        assert recorder.files_processed == 1


class TestInvoiceParsing:
    """Tests for card invoice files."""

    def test_invoice_fixture(self, parser: StatementParser) -> None:
        """Test a Nubank card invoice export."""
        recorder = AuditRecorder()
        transactions = parser.parse_file(
            StatementFile.read(FIXTURES / "Nubank_2025-07-10.csv"), recorder
        )

        assert len(transactions) == 3
        uber, netflix, refund = transactions

        assert uber.amount == Decimal("25.90")
        assert uber.type == TransactionType.EXPENSE
        assert uber.category == TRANSPORT
        assert uber.payment_method == CREDIT_CARD
        assert not uber.include_in_totals

        assert netflix.type == TransactionType.EXPENSE
        assert refund.type == TransactionType.INCOME
        assert refund.amount == Decimal("25.90")
        assert recorder.warnings == []

    def test_invoice_integer_not_scaled(self, parser: StatementParser) -> None:
        """Test that an invoice amount without separators stays in reais."""
        content = "date,title,amount\n2025-07-05,Notebook,320556\n"
        transactions = parser.parse(content, "Nubank_2025-07-10.csv")
        assert transactions[0].amount == Decimal("320556")

    def test_mostly_credit_invoice_warns(self, parser: StatementParser) -> None:
        """Test the audit warning for an invoice month that is mostly credits."""
        recorder = AuditRecorder()
        content = (
            "date,title,amount\n"
            "2025-07-01,Estorno Loja,-100.00\n"
            "2025-07-02,Pagamento recebido,-50.00\n"
            "2025-07-03,Padaria,10.00\n"
        )
        parser.parse(content, "Nubank_2025-07-10.csv", recorder=recorder)
        assert len(recorder.warnings) == 1
        assert "2025-07" in recorder.warnings[0]


class TestRowFailures:
    """Tests for row-level error handling."""

    def test_oversized_field_skips_only_its_row(self, parser: StatementParser) -> None:
        """Test that a field over the csv size limit costs one row, not the file."""
        recorder = AuditRecorder()
        content = (
            "date,title,amount\n"
            "2025-07-01,Padaria Central,12.50\n"
            f"2025-07-02,\"{'x' * 200_000}\",25.90\n"
            "2025-07-03,Netflix,55.90\n"
        )

        transactions = parser.parse(content, "Nubank_2025-07-10.csv", recorder=recorder)

        assert [t.row_index for t in transactions] == [1, 3]
        assert len(recorder.row_errors) == 1
        assert recorder.row_errors[0].row_index == 2
        assert recorder.row_errors[0].reason == ExclusionReason.MALFORMED_ROW

    def test_partial_failure(self, parser: StatementParser) -> None:
        """Test that one bad row out of five leaves four transactions."""
        recorder = AuditRecorder()
        transactions = parser.parse(INVOICE_WITH_BAD_ROW, "Nubank_2025-07.csv", recorder=recorder)

        assert len(transactions) == 4
        assert [t.row_index for t in transactions] == [1, 2, 4, 5]
        assert len(recorder.row_errors) == 1

        error = recorder.row_errors[0]
        assert error.row_index == 3
        assert error.field == "amount"
        assert error.raw_value == "abc"
        assert error.reason == ExclusionReason.INVALID_AMOUNT
        assert error.source == "Nubank_2025-07.csv"
        assert recorder.rows_included == 4
        assert recorder.rows_excluded == 1

    def test_category_of_remaining_rows(self, parser: StatementParser) -> None:
        """Test that rows after a failure are still classified."""
        transactions = parser.parse(INVOICE_WITH_BAD_ROW, "Nubank_2025-07.csv")
        assert transactions[-1].category == EDUCATION

    def test_strict_mode_raises(self) -> None:
        """Test that strict mode stops at the first bad row."""
        parser = StatementParser(strict=True)
        with pytest.raises(ParseError) as exc_info:
            parser.parse(INVOICE_WITH_BAD_ROW, "Nubank_2025-07.csv")
        assert exc_info.value.row_index == 3
        assert exc_info.value.source == "Nubank_2025-07.csv"

    def test_invalid_date(self, parser: StatementParser) -> None:
        """Test that a bad date is recorded with its reason code."""
        recorder = AuditRecorder()
        content = "date,title,amount\n31/02/2025,Padaria,12.50\n"
        assert parser.parse(content, "Nubank_2025-07.csv", recorder=recorder) == []
        assert recorder.row_errors[0].reason == ExclusionReason.INVALID_DATE

    def test_missing_cell(self, parser: StatementParser) -> None:
        """Test that a short row is recorded as a missing field."""
        recorder = AuditRecorder()
        content = "date,title,amount\n2025-07-01,Padaria,12.50\n2025-07-02,Mercado\n"
        transactions = parser.parse(content, "Nubank_2025-07.csv", recorder=recorder)
        assert len(transactions) == 1
        assert recorder.row_errors[0].reason == ExclusionReason.MISSING_FIELD
        assert recorder.row_errors[0].row_index == 2


class TestGenericFiles:
    """Tests for files that fall back to the generic interpretation."""

    def test_headerless_four_columns_use_statement_layout(self, parser: StatementParser) -> None:
        """Test the generic layout choice and that integers are not scaled."""
        recorder = AuditRecorder()
        with pytest.warns(FormatUnrecognizedWarning):
            transactions = parser.parse("15/07/2025,-3250,x1,Padaria\n", "dados.csv", recorder=recorder)

        assert transactions[0].amount == Decimal("3250")
        assert transactions[0].type == TransactionType.EXPENSE
        assert transactions[0].description == "Padaria"
        assert recorder.ambiguous_files == ["dados.csv"]
        assert any("please confirm" in w for w in recorder.warnings)

    def test_generic_header_mapping(self, parser: StatementParser) -> None:
        """Test a generic export with its own column order."""
        content = "Valor;Histórico;Data\n-45,90;Supermercado Dia;15/07/2025\n"
        transactions = parser.parse(content, "export.csv")
        assert transactions[0].amount == Decimal("45.90")
        assert transactions[0].description == "Supermercado Dia"
        assert transactions[0].category == FOOD

    def test_reject_policy(self) -> None:
        """Test that a rejecting detector refuses the file."""
        parser = StatementParser(detector=FormatDetector(DetectionConfig(fallback_policy="reject")))
        with pytest.raises(FormatUnrecognizedError):
            parser.parse("15/07/2025,-3250,x1,Padaria\n", "dados.csv")

    def test_from_config(self) -> None:
        """Test building a parser from the configuration."""
        config = Config(strict=True)
        parser = StatementParser.from_config(config)
        assert parser.strict
        assert parser.detector.config is config.detection


class TestSelfCheck:
    """Tests for the normalization self-check."""

    def test_self_check_passes(self) -> None:
        """Test that every known case normalizes as expected."""
        assert run_self_check() == []
