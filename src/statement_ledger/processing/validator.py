"""Transaction validation and artifact-duplicate removal.

The validator only removes records. It never merges, sums or edits amounts,
and surviving records keep their relative input order.
"""

import re
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from statement_ledger.config import ValidationConfig
from statement_ledger.models.transaction import (
    CandidateTransaction,
    TransactionStatus,
    TransactionType,
)
from statement_ledger.processing.audit import AuditRecorder, ExclusionReason
from statement_ledger.utils.decimal_utils import CENTS, amounts_match
from statement_ledger.utils.logging_config import get_logger

logger = get_logger(__name__)

PIX_KEYWORD = "pix"

# Keywords up to this length ("ted", "doc", "pix") only match whole words;
# longer ones also match inflections ("transferências").
WHOLE_WORD_MAX_LENGTH = 3


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    alternatives = [
        rf"\b{re.escape(kw.lower())}\b" if len(kw) <= WHOLE_WORD_MAX_LENGTH else re.escape(kw.lower())
        for kw in keywords
        if kw
    ]
    if not alternatives:
        return re.compile(r"(?!)")
    return re.compile("|".join(alternatives), re.IGNORECASE)


class TransactionValidator:
    """Filters a batch of candidate transactions before persistence.

    Four passes run in order:

    1. Reversal pairs: a PIX expense followed by a refund ("estorno") of the
       same amount within the reversal window. Both halves are removed since
       their net effect is zero.
    2. Debit adjustments: an expense marked "ajuste" that repeats another
       expense of the same amount within the adjustment window. The
       adjustment is dropped and the original purchase kept.
    3. Non-completed records: a description containing a marker such as
       "cancelada" or "falha", or ``status == pending``.
    4. Transfer artifacts: an income with a transfer keyword that mirrors an
       expense on the same date for the same amount (within tolerance) with a
       transfer-flavored description. The income is dropped and the expense
       kept. Each expense absorbs at most one income.

    The artifact pass cannot tell a genuine same-day transfer of an equal
    amount from an artifact: in that case the income is dropped too. No
    counterparty data is available to tell them apart.
    """

    def __init__(self, config: Optional[ValidationConfig] = None):
        """Initialize validator.

        Args:
            config: Validation configuration (defaults if None).
        """
        self.config = config or ValidationConfig()
        self._markers = [marker.lower() for marker in self.config.non_completed_markers]
        self._transfer_pattern = _keyword_pattern(self.config.transfer_keywords)
        self._reversal_pattern = _keyword_pattern(self.config.reversal_keywords)
        self._adjustment_pattern = _keyword_pattern(self.config.adjustment_keywords)

    def validate(
        self,
        candidates: Sequence[CandidateTransaction],
        recorder: Optional[AuditRecorder] = None,
    ) -> list[CandidateTransaction]:
        """Validate a batch of candidates.

        Args:
            candidates: Categorized candidates, in input order.
            recorder: Audit recorder of the batch the candidates were counted in.

        Returns:
            Surviving candidates in their original relative order.
        """
        removed: dict[int, ExclusionReason] = {}

        self._find_reversal_pairs(candidates, removed)
        self._find_debit_adjustments(candidates, removed)
        self._find_non_completed(candidates, removed)
        self._find_transfer_artifacts(candidates, removed)

        if recorder is not None:
            for index, reason in removed.items():
                recorder.record_removed(candidates[index].source, reason)

        if removed:
            logger.info(
                f"Validator removed {len(removed)} of {len(candidates)} transactions"
            )

        return [txn for i, txn in enumerate(candidates) if i not in removed]

    def is_non_completed(self, txn: CandidateTransaction) -> bool:
        """Check whether a record describes an operation that did not settle."""
        if txn.status == TransactionStatus.PENDING:
            return True
        description = txn.description.lower()
        return any(marker in description for marker in self._markers)

    def is_transfer(self, txn: CandidateTransaction) -> bool:
        """Check whether a description is transfer-flavored."""
        return bool(self._transfer_pattern.search(txn.description))

    def _find_reversal_pairs(
        self, candidates: Sequence[CandidateTransaction], removed: dict[int, ExclusionReason]
    ) -> None:
        window_days = self.config.reversal_window_hours / 24
        for i, txn in enumerate(candidates):
            if i in removed or txn.type != TransactionType.EXPENSE:
                continue
            if PIX_KEYWORD not in txn.description.lower():
                continue

            for j in range(i + 1, len(candidates)):
                other = candidates[j]
                if j in removed or not self._reversal_pattern.search(other.description):
                    continue
                if not amounts_match(txn.amount, other.amount, self.config.amount_tolerance):
                    continue
                if abs((other.date - txn.date).days) > window_days:
                    continue

                removed[i] = ExclusionReason.REVERSAL_PAIR
                removed[j] = ExclusionReason.REVERSAL_PAIR
                logger.debug(f"Reversal pair: {txn!r} / {other!r}")
                break

    def _find_debit_adjustments(
        self, candidates: Sequence[CandidateTransaction], removed: dict[int, ExclusionReason]
    ) -> None:
        for i, adjustment in enumerate(candidates):
            if i in removed or adjustment.type != TransactionType.EXPENSE:
                continue
            if not self._adjustment_pattern.search(adjustment.description):
                continue

            for j, purchase in enumerate(candidates):
                if j == i or j in removed or purchase.type != TransactionType.EXPENSE:
                    continue
                if not amounts_match(adjustment.amount, purchase.amount, self.config.amount_tolerance):
                    continue
                if abs((purchase.date - adjustment.date).days) > self.config.adjustment_window_days:
                    continue

                removed[i] = ExclusionReason.DEBIT_ADJUSTMENT
                logger.debug(f"Debit adjustment: dropping {adjustment!r}, keeping {purchase!r}")
                break

    def _find_non_completed(
        self, candidates: Sequence[CandidateTransaction], removed: dict[int, ExclusionReason]
    ) -> None:
        for i, txn in enumerate(candidates):
            if i in removed:
                continue
            if txn.status == TransactionStatus.PENDING:
                removed[i] = ExclusionReason.PENDING
            elif self.is_non_completed(txn):
                removed[i] = ExclusionReason.NOT_COMPLETED

    def _find_transfer_artifacts(
        self, candidates: Sequence[CandidateTransaction], removed: dict[int, ExclusionReason]
    ) -> None:
        absorbed: set[int] = set()
        for i, income in enumerate(candidates):
            if i in removed or income.type != TransactionType.INCOME:
                continue
            if not self.is_transfer(income):
                continue

            for j, expense in enumerate(candidates):
                if j in removed or j in absorbed or expense.type != TransactionType.EXPENSE:
                    continue
                if expense.date != income.date:
                    continue
                if not amounts_match(income.amount, expense.amount, self.config.amount_tolerance):
                    continue
                if not self.is_transfer(expense):
                    continue

                removed[i] = ExclusionReason.TRANSFER_ARTIFACT
                absorbed.add(j)
                logger.debug(f"Transfer artifact: dropping {income!r}, keeping {expense!r}")
                break


def _same_record(
    candidate: CandidateTransaction, stored: CandidateTransaction, tolerance: Decimal
) -> bool:
    return (
        candidate.date == stored.date
        and candidate.description.strip() == stored.description.strip()
        and amounts_match(candidate.amount, stored.amount, tolerance)
        and candidate.type == stored.type
        and candidate.payment_method == stored.payment_method
    )


def exclude_already_stored(
    candidates: Sequence[CandidateTransaction],
    existing: Sequence[CandidateTransaction],
    recorder: Optional[AuditRecorder] = None,
    tolerance: Decimal = CENTS,
) -> list[CandidateTransaction]:
    """Drop candidates that the store already holds.

    A candidate equals a stored record when date, trimmed description, type
    and payment method are equal and the amounts match within tolerance.

    Args:
        candidates: Validated candidates about to be stored.
        existing: Records already in the store.
        recorder: Audit recorder of the batch.
        tolerance: Maximum amount difference.

    Returns:
        Candidates not yet stored, in input order.
    """
    fresh: list[CandidateTransaction] = []
    for candidate in candidates:
        if any(_same_record(candidate, stored, tolerance) for stored in existing):
            if recorder is not None:
                recorder.record_removed(candidate.source, ExclusionReason.ALREADY_STORED)
            continue
        fresh.append(candidate)

    duplicates = len(candidates) - len(fresh)
    if duplicates:
        logger.info(f"{duplicates} transactions already stored, {len(fresh)} new")
    return fresh
