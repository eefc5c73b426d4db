"""Transaction processing pipeline components."""

from statement_ledger.processing.audit import (
    AuditRecorder,
    ExclusionReason,
    FileAudit,
    RowError,
)
from statement_ledger.processing.categorizer import CategoryClassifier
from statement_ledger.processing.payment_method import infer_payment_method
from statement_ledger.processing.report_generator import (
    average_expense,
    average_match_pct,
    category_totals,
    monthly_totals,
    reconcile_statement_and_invoice,
    savings_rate,
)
from statement_ledger.processing.validator import (
    TransactionValidator,
    exclude_already_stored,
)

__all__ = [
    "AuditRecorder",
    "ExclusionReason",
    "FileAudit",
    "RowError",
    "CategoryClassifier",
    "infer_payment_method",
    "TransactionValidator",
    "exclude_already_stored",
    "monthly_totals",
    "savings_rate",
    "average_expense",
    "category_totals",
    "reconcile_statement_and_invoice",
    "average_match_pct",
]
