"""Transaction data models for the normalized ledger."""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from statement_ledger.exceptions import ParseError
from statement_ledger.utils.decimal_utils import quantize_cents


class TransactionType(Enum):
    """Direction of a transaction. The amount itself is never signed."""

    INCOME = "income"  # Money in
    EXPENSE = "expense"  # Money out


class TransactionStatus(Enum):
    """Settlement status of a transaction."""

    PAID = "paid"
    PENDING = "pending"


class StatementFormat(Enum):
    """Classification of a statement file by how it encodes amounts."""

    BANK_STATEMENT = "bank_statement"  # Account statement, amounts in cents
    INVOICE = "invoice"  # Credit-card invoice, amounts in reais
    GENERIC_CSV = "generic_csv"  # Unknown bank, amounts taken as reais


class OperationKind(Enum):
    """Kind of banking operation announced by a notification."""

    PURCHASE = "purchase"
    PIX_SENT = "pix_sent"
    PIX_RECEIVED = "pix_received"
    TRANSFER = "transfer"
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"

    @property
    def transaction_type(self) -> TransactionType:
        """Money direction implied by this operation kind."""
        if self in (OperationKind.PIX_RECEIVED, OperationKind.DEPOSIT):
            return TransactionType.INCOME
        return TransactionType.EXPENSE


@dataclass(frozen=True)
class CandidateTransaction:
    """Unpersisted transaction produced by a parser.

    Attributes:
        date: Calendar date of the operation.
        description: Trimmed, source-preserving description.
        category: Semantic category (never empty).
        payment_method: Settlement channel (PIX, Cartão Débito, ...).
        amount: Non-negative amount in reais, two decimal places.
        type: Direction of the money (income or expense).
        status: Settlement status.
        include_in_totals: False for invoice rows, which are kept for history
            but excluded from monthly aggregates.
        source: File name or source app the record came from.
        row_index: 1-based data row in the source file (None for notifications).
        origin: Format of the source file (None for notifications).
    """

    date: date
    description: str
    category: str
    payment_method: str
    amount: Decimal
    type: TransactionType
    status: TransactionStatus = TransactionStatus.PAID
    include_in_totals: bool = True
    source: str = ""
    row_index: Optional[int] = None
    origin: Optional[StatementFormat] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Amount must be non-negative, got {self.amount}")
        if not self.category or not self.category.strip():
            raise ValueError("Category must not be empty")
        object.__setattr__(self, "amount", quantize_cents(self.amount))

    @property
    def iso_date(self) -> str:
        """Date as YYYY-MM-DD."""
        return self.date.isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the persistence collaborator (no id)."""
        return {
            "date": self.iso_date,
            "description": self.description,
            "category": self.category,
            "paymentMethod": self.payment_method,
            "amount": str(self.amount),
            "type": self.type.value,
            "status": self.status.value,
            "includeInTotals": self.include_in_totals,
        }

    def __repr__(self) -> str:
        return (
            f"CandidateTransaction(date={self.iso_date}, "
            f"description={self.description[:30]!r}, "
            f"amount={self.amount}, type={self.type.value})"
        )


@dataclass(frozen=True)
class Transaction(CandidateTransaction):
    """Transaction after the store has assigned an identifier."""

    id: str = ""

    @classmethod
    def from_candidate(cls, candidate: CandidateTransaction, transaction_id: str) -> "Transaction":
        """Attach a store-assigned id to a validated candidate."""
        return cls(id=transaction_id, **asdict(candidate))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["id"] = self.id
        return data


@dataclass(frozen=True)
class Notification:
    """A bank app notification as delivered by the device.

    Attributes:
        title: Notification title.
        body: Notification text.
        source_app: Package name or app identifier of the sender.
        timestamp: Delivery time in epoch milliseconds (None means now).
    """

    title: str
    body: str
    source_app: str
    timestamp: Optional[int] = None

    @property
    def text(self) -> str:
        """Title and body joined for pattern matching."""
        return f"{self.title} {self.body}".strip()

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Notification":
        """Create from a delivery payload.

        Accepts ``packageName``, ``packageNameOrSourceApp``, ``sourceApp`` or
        ``source_app`` for the sender.

        Raises:
            ParseError: If the timestamp is not an integer.
        """
        source_app = ""
        for key in ("packageName", "packageNameOrSourceApp", "sourceApp", "source_app"):
            if data.get(key):
                source_app = str(data[key])
                break

        raw_timestamp = data.get("timestamp")
        timestamp: Optional[int] = None
        if raw_timestamp is not None:
            try:
                timestamp = int(raw_timestamp)  # type: ignore[call-overload]
            except (TypeError, ValueError) as e:
                raise ParseError(
                    f"Invalid notification timestamp '{raw_timestamp}'",
                    field="timestamp",
                    raw_value=str(raw_timestamp),
                    source=source_app or None,
                ) from e

        return cls(
            title=str(data.get("title") or ""),
            body=str(data.get("body") or ""),
            source_app=source_app,
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class StatementFile:
    """Decoded statement file handed over by the file-reading collaborator."""

    file_name: str
    content: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None

    @classmethod
    def read(cls, path: "Path | str", mime_type: Optional[str] = None) -> "StatementFile":
        """Read and UTF-8 decode a file from disk.

        Undecodable bytes are replaced. OSError propagates to the caller.

        Args:
            path: Path to the file.
            mime_type: Declared MIME type, if known.

        Returns:
            StatementFile with the decoded content.
        """
        file_path = Path(path)
        raw = file_path.read_bytes()
        content = raw.decode("utf-8-sig", errors="replace")
        return cls(
            file_name=file_path.name,
            content=content,
            mime_type=mime_type,
            size_bytes=len(raw),
        )
