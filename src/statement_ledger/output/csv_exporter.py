"""CSV export of the validated ledger and its monthly totals."""

import csv
import json
from decimal import Decimal
from pathlib import Path
from typing import Sequence

from statement_ledger.exceptions import ParseError
from statement_ledger.models.report import MonthlyTotals
from statement_ledger.models.transaction import (
    CandidateTransaction,
    TransactionStatus,
    TransactionType,
)
from statement_ledger.processing.audit import AuditRecorder
from statement_ledger.utils.date_utils import date_to_iso, parse_date
from statement_ledger.utils.logging_config import get_logger
from statement_ledger.utils.sanitize import FORMULA_CHARS as _FORMULA_PREFIXES
from statement_ledger.utils.sanitize import sanitize_for_csv

logger = get_logger(__name__)

LEDGER_HEADER = [
    "date", "description", "category", "payment_method", "amount",
    "type", "status", "include_in_totals", "source",
]

MONTHLY_HEADER = ["period", "income", "expense", "balance", "transactions", "corrected"]


class LedgerExporter:
    """Writes the ledger, the monthly totals and the audit summary.

    Text cells are sanitized against spreadsheet formula injection, since the
    files are meant to be opened in Google Sheets or Excel.
    """

    def export(self, path: Path, transactions: Sequence[CandidateTransaction]) -> Path:
        """Export validated transactions to a CSV file.

        Args:
            path: Output file path (parent directories are created).
            transactions: Validated transactions.

        Returns:
            Path to the created file.
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(LEDGER_HEADER)
            for txn in sorted(transactions, key=lambda t: (t.date, t.source, t.row_index or 0)):
                writer.writerow([
                    date_to_iso(txn.date),
                    sanitize_for_csv(txn.description),
                    sanitize_for_csv(txn.category),
                    sanitize_for_csv(txn.payment_method),
                    f"{txn.amount:.2f}",
                    txn.type.value,
                    txn.status.value,
                    "true" if txn.include_in_totals else "false",
                    sanitize_for_csv(txn.source),
                ])

        logger.info(f"Exported {len(transactions)} transactions to {path}")
        return path

    def export_monthly(self, path: Path, months: Sequence[MonthlyTotals]) -> Path:
        """Export monthly totals to a CSV file.

        Args:
            path: Output file path.
            months: Totals per month.

        Returns:
            Path to the created file.
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(MONTHLY_HEADER)
            for month in months:
                writer.writerow([
                    month.period,
                    f"{month.income:.2f}",
                    f"{month.expense:.2f}",
                    f"{month.balance:.2f}",
                    month.transaction_count,
                    "yes" if month.corrected else "",
                ])

        logger.info(f"Exported {len(months)} months to {path}")
        return path

    def export_audit(self, path: Path, recorder: AuditRecorder) -> Path:
        """Write the audit summary as JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(recorder.summary(), f, ensure_ascii=False, indent=2)
        logger.info(f"Wrote audit summary to {path}")
        return path


def load_ledger(path: Path) -> list[CandidateTransaction]:
    """Read a ledger CSV written by LedgerExporter.export.

    Used to skip records that an earlier run already stored.

    Args:
        path: Path to the ledger CSV.

    Returns:
        The stored transactions.

    Raises:
        ParseError: If a row carries an invalid date, amount or enum value.
    """
    transactions: list[CandidateTransaction] = []
    with open(path, newline="", encoding="utf-8") as f:
        for row_index, row in enumerate(csv.DictReader(f), start=1):
            try:
                transactions.append(
                    CandidateTransaction(
                        date=parse_date(row["date"]),
                        description=_unsanitize(row["description"]),
                        category=_unsanitize(row["category"]),
                        payment_method=_unsanitize(row["payment_method"]),
                        amount=Decimal(row["amount"]),
                        type=TransactionType(row["type"]),
                        status=TransactionStatus(row["status"]),
                        include_in_totals=row["include_in_totals"] == "true",
                        source=_unsanitize(row["source"]),
                        row_index=row_index,
                    )
                )
            except (KeyError, ValueError, ArithmeticError) as e:
                raise ParseError(
                    f"Invalid ledger row {row_index} in {path.name}: {e}",
                    row_index=row_index,
                    source=path.name,
                ) from e

    logger.info(f"Loaded {len(transactions)} stored transactions from {path}")
    return transactions


def _unsanitize(value: str) -> str:
    # Reverse the quote prefix added by sanitize_for_csv
    if value.startswith("'") and value[1:2] in _FORMULA_PREFIXES:
        return value[1:]
    return value
