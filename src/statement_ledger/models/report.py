"""Report data models for monthly aggregation."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ManualCorrection:
    """Caller-supplied totals that replace the computed ones for a period.

    Attributes:
        period: Month in YYYY-MM format.
        income: Corrected income total.
        expense: Corrected expense total.
        note: Free-text reason for the correction.
    """

    period: str
    income: Decimal
    expense: Decimal
    note: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ManualCorrection":
        """Create from a dictionary (e.g. one entry of corrections.yaml)."""
        return cls(
            period=str(data["period"]),
            income=Decimal(str(data["income"])),
            expense=Decimal(str(data["expense"])),
            note=str(data.get("note", "")),
        )


@dataclass(frozen=True)
class MonthlyTotals:
    """Income and expense totals for one month.

    Attributes:
        period: Month in YYYY-MM format.
        income: Sum of income amounts included in totals.
        expense: Sum of expense amounts included in totals.
        transaction_count: Number of records that contributed.
        corrected: True when the figures come from a ManualCorrection.
    """

    period: str
    income: Decimal
    expense: Decimal
    transaction_count: int = 0
    corrected: bool = False

    @property
    def balance(self) -> Decimal:
        """Income minus expense."""
        return self.income - self.expense



@dataclass(frozen=True)
class MonthReconciliation:
    """Account statement expenses against card invoice expenses for one month."""

    period: str
    statement_expense: Decimal
    invoice_expense: Decimal

    @property
    def difference_ratio(self) -> Decimal:
        """Absolute difference as a share of the statement expense."""
        return abs(self.statement_expense - self.invoice_expense) / self.statement_expense

    @property
    def match_pct(self) -> Decimal:
        """How closely the two sources agree, in percent (100 is a full match)."""
        return ((1 - self.difference_ratio) * 100).quantize(Decimal("0.1"))
