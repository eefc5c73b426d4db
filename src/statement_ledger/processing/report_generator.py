"""Monthly totals and summary figures for the validated ledger."""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from statement_ledger.models.report import ManualCorrection, MonthlyTotals, MonthReconciliation
from statement_ledger.models.transaction import CandidateTransaction, StatementFormat, TransactionType
from statement_ledger.processing.audit import AuditRecorder
from statement_ledger.processing.categorizer import CategoryClassifier
from statement_ledger.utils.date_utils import month_key
from statement_ledger.utils.decimal_utils import sum_amounts
from statement_ledger.utils.logging_config import get_logger

logger = get_logger(__name__)

# Statement and invoice expenses of a month further apart than this are reported
RECONCILIATION_ALERT_RATIO = Decimal("0.10")


def monthly_totals(
    transactions: Iterable[CandidateTransaction],
    corrections: Optional[Mapping[str, ManualCorrection]] = None,
) -> list[MonthlyTotals]:
    """Sum income and expense per month.

    Only records with ``include_in_totals`` contribute, so a card invoice does
    not double-count the statement that pays it. A correction replaces the
    computed figures of its period and only applies when the caller passes it.

    Args:
        transactions: Validated transactions.
        corrections: Manual overlay keyed by YYYY-MM.

    Returns:
        Totals per month, oldest first.
    """
    income: dict[str, Decimal] = defaultdict(Decimal)
    expense: dict[str, Decimal] = defaultdict(Decimal)
    counts: dict[str, int] = defaultdict(int)

    for txn in transactions:
        if not txn.include_in_totals:
            continue
        period = month_key(txn.date)
        counts[period] += 1
        if txn.type == TransactionType.INCOME:
            income[period] += txn.amount
        else:
            expense[period] += txn.amount

    corrections = corrections or {}
    periods = sorted(set(counts) | set(corrections))

    result: list[MonthlyTotals] = []
    for period in periods:
        correction = corrections.get(period)
        if correction is not None:
            logger.debug(f"Using manual correction for {period}: {correction.note or 'no note'}")
            result.append(
                MonthlyTotals(
                    period=period,
                    income=correction.income,
                    expense=correction.expense,
                    transaction_count=counts.get(period, 0),
                    corrected=True,
                )
            )
            continue

        result.append(
            MonthlyTotals(
                period=period,
                income=income[period],
                expense=expense[period],
                transaction_count=counts[period],
            )
        )

    return result


def savings_rate(income: Decimal, balance: Decimal) -> Decimal:
    """Share of income kept: max(balance, 0) / income, or 0 without income."""
    if income <= 0:
        return Decimal("0")
    return max(balance, Decimal("0")) / income


def average_expense(months: Sequence[MonthlyTotals]) -> Decimal:
    """Average expense over the months that have any expense."""
    with_expense = [m.expense for m in months if m.expense > 0]
    if not with_expense:
        return Decimal("0")
    return sum_amounts(with_expense) / len(with_expense)


def category_totals(
    transactions: Iterable[CandidateTransaction],
    classifier: CategoryClassifier,
    transaction_type: TransactionType = TransactionType.EXPENSE,
) -> dict[str, Decimal]:
    """Sum amounts per consolidated category for one direction.

    Args:
        transactions: Validated transactions.
        classifier: Classifier used to consolidate stored categories.
        transaction_type: Which direction to sum.

    Returns:
        Totals keyed by category, largest first.
    """
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for txn in transactions:
        if not txn.include_in_totals or txn.type != transaction_type:
            continue
        totals[classifier.consolidate(txn.category, txn.description)] += txn.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def reconcile_statement_and_invoice(
    transactions: Iterable[CandidateTransaction],
    recorder: Optional[AuditRecorder] = None,
) -> list[MonthReconciliation]:
    """Compare account statement and card invoice expenses month by month.

    Only months where both sources have expenses are compared. A month whose
    figures differ by more than RECONCILIATION_ALERT_RATIO of the statement
    expense is reported as an audit warning. Nothing is removed or changed.

    Args:
        transactions: Validated transactions.
        recorder: Audit recorder receiving the alerts.

    Returns:
        One entry per comparable month, oldest first.
    """
    statement: dict[str, Decimal] = defaultdict(Decimal)
    invoice: dict[str, Decimal] = defaultdict(Decimal)
    for txn in transactions:
        if txn.type != TransactionType.EXPENSE:
            continue
        if txn.origin == StatementFormat.BANK_STATEMENT:
            statement[month_key(txn.date)] += txn.amount
        elif txn.origin == StatementFormat.INVOICE:
            invoice[month_key(txn.date)] += txn.amount

    result: list[MonthReconciliation] = []
    for period in sorted(set(statement) & set(invoice)):
        month = MonthReconciliation(period, statement[period], invoice[period])
        result.append(month)
        if month.difference_ratio > RECONCILIATION_ALERT_RATIO:
            message = (
                f"{period}: statement and invoice expenses do not reconcile "
                f"({statement[period]} vs {invoice[period]}, {month.match_pct}% match)"
            )
            logger.warning(message)
            if recorder is not None:
                recorder.record_warning(message)

    return result


def average_match_pct(months: Sequence[MonthReconciliation]) -> Optional[Decimal]:
    """Mean match percentage over the compared months, or None if there are none."""
    if not months:
        return None
    return (sum_amounts(m.match_pct for m in months) / len(months)).quantize(Decimal("0.1"))
