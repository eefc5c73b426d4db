"""Statement parser for Nubank-style account statements, card invoices and generic CSVs."""

import csv
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from statement_ledger.config import Config
from statement_ledger.exceptions import ParseError
from statement_ledger.models.category import OTHER
from statement_ledger.models.transaction import (
    CandidateTransaction,
    StatementFile,
    StatementFormat,
    TransactionType,
)
from statement_ledger.parsers.detector import (
    DATE_HEADERS,
    DESCRIPTION_HEADERS,
    IDENTIFIER_HEADERS,
    VALUE_HEADERS,
    FormatDetection,
    FormatDetector,
    normalize_header,
)
from statement_ledger.processing.audit import AuditRecorder, ExclusionReason
from statement_ledger.processing.categorizer import CategoryClassifier
from statement_ledger.processing.payment_method import (
    CREDIT_CARD,
    STATEMENT_RULES,
    infer_payment_method,
)
from statement_ledger.processing.payment_method import OTHER as OTHER_METHOD
from statement_ledger.utils.date_utils import month_key, parse_date
from statement_ledger.utils.decimal_utils import is_minor_units_token, minor_to_major, parse_amount
from statement_ledger.utils.logging_config import get_logger
from statement_ledger.utils.sanitize import collapse_whitespace

logger = get_logger(__name__)

DELIMITERS = [",", ";", "\t"]

# First header cells written by the supported exports
HEADER_FIRST_CELLS = {"data", "date", "titulo", "title"}

KNOWN_HEADERS = DATE_HEADERS | DESCRIPTION_HEADERS | VALUE_HEADERS | IDENTIFIER_HEADERS

REVERSAL_KEYWORD = "estorno"

# An invoice month that is mostly credits usually means the signs are inverted
INVOICE_INCOME_RATIO_ALERT = Decimal("0.7")


@dataclass(frozen=True)
class ColumnMapping:
    """Positions of the columns a row is read from."""

    date_col: int
    description_col: int
    amount_col: int
    identifier_col: Optional[int] = None

    @classmethod
    def from_header(cls, header: list[str]) -> Optional["ColumnMapping"]:
        """Map columns by header keyword.

        Returns:
            ColumnMapping, or None if date, description or value is missing.
        """
        normalized = [normalize_header(cell) for cell in header]

        def find(names: set[str]) -> Optional[int]:
            return next((i for i, cell in enumerate(normalized) if cell in names), None)

        date_col = find(DATE_HEADERS)
        description_col = find(DESCRIPTION_HEADERS)
        amount_col = find(VALUE_HEADERS)
        if date_col is None or description_col is None or amount_col is None:
            return None
        return cls(date_col, description_col, amount_col, find(IDENTIFIER_HEADERS))


# Data,Valor,Identificador,Descrição
STATEMENT_LAYOUT = ColumnMapping(date_col=0, description_col=3, amount_col=1, identifier_col=2)
# date,title,amount
INVOICE_LAYOUT = ColumnMapping(date_col=0, description_col=1, amount_col=2)

DEFAULT_LAYOUTS: dict[StatementFormat, ColumnMapping] = {
    StatementFormat.BANK_STATEMENT: STATEMENT_LAYOUT,
    StatementFormat.INVOICE: INVOICE_LAYOUT,
}


def detect_delimiter(lines: list[str]) -> str:
    """Detect the CSV delimiter from the first lines of a file.

    Args:
        lines: Non-blank lines of the file.

    Returns:
        Detected delimiter character.
    """
    # csv.Sniffer handles quoted fields correctly
    sample = "\n".join(lines[:10])
    try:
        return csv.Sniffer().sniff(sample, delimiters="".join(DELIMITERS)).delimiter
    except csv.Error:
        pass

    # Fallback to counting (less accurate with quoted fields)
    best_delimiter = ","
    best_score = 0.0
    for delimiter in DELIMITERS:
        counts = [line.count(delimiter) for line in lines[:10]]
        non_zero = [c for c in counts if c > 0]
        if not non_zero:
            continue
        average = sum(non_zero) / len(non_zero)
        if average > best_score and len(non_zero) > len(counts) / 2:
            best_score = average
            best_delimiter = delimiter
    return best_delimiter


def looks_like_header(row: list[str]) -> bool:
    """Check whether a row is a header line rather than data."""
    if not row:
        return False
    normalized = [normalize_header(cell) for cell in row]
    if normalized[0] in HEADER_FIRST_CELLS:
        return True
    return sum(1 for cell in normalized if cell in KNOWN_HEADERS) >= 2


def normalize_amount(raw_amount: str, statement_format: StatementFormat) -> tuple[Decimal, bool]:
    """Normalize an amount token for a given statement format.

    Integer tokens in a bank statement are cents and are divided by 100; every
    other format and every token with separators is already in reais.

    Args:
        raw_amount: The raw amount token.
        statement_format: Format the row comes from.

    Returns:
        Tuple of (absolute amount in reais, is_negative flag).

    Raises:
        ParseError: If the token is not a valid amount.
    """
    magnitude, is_negative = parse_amount(raw_amount)
    if statement_format == StatementFormat.BANK_STATEMENT and is_minor_units_token(raw_amount):
        magnitude = minor_to_major(magnitude)
    return magnitude, is_negative


def split_line(line: str, delimiter: str) -> list[str]:
    """Split one line into cells.

    Raises:
        ParseError: If the line is not valid CSV, e.g. a field over the csv
            module's field size limit.
    """
    try:
        return next(csv.reader([line], delimiter=delimiter), [])
    except csv.Error as e:
        raise ParseError(f"Malformed CSV line: {e}", field="row", raw_value=line[:80]) from e


def _cell(row: list[str], index: int, field_name: str) -> str:
    if index >= len(row) or not row[index].strip():
        raise ParseError(f"Missing {field_name}", field=field_name, raw_value=None)
    return row[index].strip()


class StatementParser:
    """Turns statement file text into candidate transactions.

    Rows are parsed independently: a malformed row is recorded in the audit
    recorder with its 1-based data row index and skipped, and the rest of the
    file is still parsed. In strict mode the first row error is raised.
    """

    def __init__(
        self,
        classifier: Optional[CategoryClassifier] = None,
        detector: Optional[FormatDetector] = None,
        strict: bool = False,
    ):
        """Initialize statement parser.

        Args:
            classifier: Category classifier (built-in rules if None).
            detector: Format detector used when no detection is passed in.
            strict: If True, raise ParseError on the first bad row.
        """
        self.classifier = classifier or CategoryClassifier()
        self.detector = detector or FormatDetector()
        self.strict = strict

    @classmethod
    def from_config(cls, config: Config) -> "StatementParser":
        """Build a parser from the loaded configuration."""
        return cls(
            classifier=CategoryClassifier(config.category_rules),
            detector=FormatDetector(config.detection),
            strict=config.strict,
        )

    def parse_file(
        self, statement_file: StatementFile, recorder: Optional[AuditRecorder] = None
    ) -> list[CandidateTransaction]:
        """Parse a decoded file handed over by the file-reading side."""
        return self.parse(
            statement_file.content,
            statement_file.file_name,
            recorder=recorder,
            mime_type=statement_file.mime_type,
        )

    def parse(
        self,
        content: str,
        file_name: str,
        detection: Optional[FormatDetection] = None,
        recorder: Optional[AuditRecorder] = None,
        mime_type: Optional[str] = None,
    ) -> list[CandidateTransaction]:
        """Parse statement text into candidate transactions.

        Args:
            content: Full UTF-8 decoded file text.
            file_name: Source file name.
            detection: Format classification; detected here if None.
            recorder: Audit recorder receiving counts and row errors.
            mime_type: Declared MIME type, used only for detection.

        Returns:
            Candidate transactions in file order.

        Raises:
            ParseError: In strict mode, for the first malformed row.
            FormatUnrecognizedError: If detection rejects the file.
        """
        if recorder is None:
            recorder = AuditRecorder()

        text = content.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
        lines = [line for line in text.split("\n") if line.strip()]

        if detection is None:
            detection = self.detector.detect(file_name, mime_type, lines[0] if lines else None)

        recorder.start_file(file_name, detection.format.value, detection.confident)
        if not detection.confident:
            recorder.record_warning(
                f"{file_name}: format guessed as {detection.format.value} "
                f"({detection.reason}), please confirm"
            )

        if not lines:
            logger.warning(f"{file_name} has no content")
            return []

        delimiter = detect_delimiter(lines)
        try:
            first_row = split_line(lines[0], delimiter)
        except ParseError:
            first_row = []

        header: Optional[list[str]] = first_row if looks_like_header(first_row) else None
        data_lines = lines[1:] if header is not None else lines

        mapping: Optional[ColumnMapping] = None
        if header is not None:
            mapping = ColumnMapping.from_header(header)
        if mapping is None:
            mapping = DEFAULT_LAYOUTS.get(detection.format)

        logger.info(
            f"Parsing {file_name} as {detection.format.value} "
            f"(delimiter={delimiter!r}, header={'yes' if header else 'no'})"
        )

        transactions: list[CandidateTransaction] = []
        skipped = 0
        for row_index, line in enumerate(data_lines, start=1):
            try:
                row = split_line(line, delimiter)
                if header is not None and row and row[0].strip().lower() == header[0].strip().lower():
                    logger.debug(f"Skipping repeated header at row {row_index} in {file_name}")
                    continue
                candidate = self._parse_row(row, row_index, file_name, detection.format, mapping)
            except ParseError as e:
                error = e.at_row(row_index, file_name)
                if self.strict:
                    raise error from e
                recorder.record_parse_error(error)
                logger.debug(f"Skipping row {row_index} in {file_name}: {error}")
                skipped += 1
                continue

            if candidate is None:
                recorder.record_excluded(file_name, ExclusionReason.ZERO_AMOUNT)
                skipped += 1
                logger.debug(f"Skipping row {row_index} in {file_name}: zero amount")
                continue

            transactions.append(candidate)

        recorder.record_included(file_name, len(transactions))

        if detection.format == StatementFormat.INVOICE:
            self._check_invoice_income_ratio(transactions, file_name, recorder)

        logger.info(
            f"Parsed {len(transactions)} transactions from {file_name} ({skipped} rows skipped)"
        )
        if skipped:
            logger.warning(f"{skipped} rows could not be parsed in {file_name} - use -v for details")
        return transactions

    def _parse_row(
        self,
        row: list[str],
        row_index: int,
        file_name: str,
        statement_format: StatementFormat,
        mapping: Optional[ColumnMapping],
    ) -> Optional[CandidateTransaction]:
        """Parse one data row.

        Returns:
            CandidateTransaction, or None for a zero-amount row.

        Raises:
            ParseError: If a required cell is missing or malformed.
        """
        if mapping is None:
            # Unknown layout: four or more columns read like a statement, fewer like an invoice
            mapping = STATEMENT_LAYOUT if len(row) >= 4 else INVOICE_LAYOUT

        transaction_date = parse_date(_cell(row, mapping.date_col, "date"))
        magnitude, is_negative = normalize_amount(
            _cell(row, mapping.amount_col, "amount"), statement_format
        )
        description = collapse_whitespace(_cell(row, mapping.description_col, "description"))

        if magnitude == 0:
            return None

        is_reversal = REVERSAL_KEYWORD in description.lower()
        if statement_format == StatementFormat.INVOICE:
            # Charges are positive on a card invoice; credits and refunds are money back
            transaction_type = (
                TransactionType.INCOME if is_negative or is_reversal else TransactionType.EXPENSE
            )
            payment_method = CREDIT_CARD
        else:
            transaction_type = (
                TransactionType.EXPENSE
                if is_negative and not is_reversal
                else TransactionType.INCOME
            )
            payment_method = infer_payment_method(
                description, default=OTHER_METHOD, rules=STATEMENT_RULES
            )

        return CandidateTransaction(
            date=transaction_date,
            description=description,
            category=self.classifier.classify(description, fallback=OTHER),
            payment_method=payment_method,
            amount=magnitude,
            type=transaction_type,
            include_in_totals=statement_format != StatementFormat.INVOICE,
            source=file_name,
            row_index=row_index,
            origin=statement_format,
        )

    def _check_invoice_income_ratio(
        self,
        transactions: list[CandidateTransaction],
        file_name: str,
        recorder: AuditRecorder,
    ) -> None:
        income: dict[str, Decimal] = defaultdict(Decimal)
        total: dict[str, Decimal] = defaultdict(Decimal)
        for txn in transactions:
            period = month_key(txn.date)
            total[period] += txn.amount
            if txn.type == TransactionType.INCOME:
                income[period] += txn.amount

        for period, period_total in sorted(total.items()):
            if period_total > 0 and income[period] / period_total > INVOICE_INCOME_RATIO_ALERT:
                message = (
                    f"{file_name}: {period} invoice is mostly credits "
                    f"({income[period]} of {period_total}), check the amount signs"
                )
                recorder.record_warning(message)
                logger.warning(message)


# (raw token, expected signed amount) read as bank-statement values
SELF_CHECK_VALUES: list[tuple[str, Decimal]] = [
    ("320556", Decimal("3205.56")),
    ("3.205,56", Decimal("3205.56")),
    ("3205.56", Decimal("3205.56")),
    ("R$ 3.205,56", Decimal("3205.56")),
    ("-294740", Decimal("-2947.40")),
    ("R$ -32,50", Decimal("-32.50")),
]

SELF_CHECK_DATES: list[tuple[str, str]] = [
    ("2025-07-15", "2025-07-15"),
    ("15/07/2025", "2025-07-15"),
    ("2025/7/5", "2025-07-05"),
    ("2025-7-05", "2025-07-05"),
]


def run_self_check() -> list[str]:
    """Check amount and date normalization against known cases.

    Returns:
        Descriptions of the failing cases (empty when all pass).
    """
    failures: list[str] = []

    for raw, expected in SELF_CHECK_VALUES:
        try:
            magnitude, is_negative = normalize_amount(raw, StatementFormat.BANK_STATEMENT)
            got = -magnitude if is_negative else magnitude
        except ParseError as e:
            failures.append(f"amount {raw!r}: {e}")
            continue
        if got != expected:
            failures.append(f"amount {raw!r} -> {got} (expected {expected})")

    for raw, expected_iso in SELF_CHECK_DATES:
        try:
            got_iso = parse_date(raw).isoformat()
        except ParseError as e:
            failures.append(f"date {raw!r}: {e}")
            continue
        if got_iso != expected_iso:
            failures.append(f"date {raw!r} -> {got_iso} (expected {expected_iso})")

    return failures
