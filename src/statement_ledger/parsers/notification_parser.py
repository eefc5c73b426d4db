"""Parser for bank app push notifications."""

from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from statement_ledger.config import DEFAULT_TIMEZONE, Config
from statement_ledger.exceptions import ParseError
from statement_ledger.models.category import OTHER, OTHER_INCOME
from statement_ledger.models.institution import TemplateRegistry, default_registry
from statement_ledger.models.transaction import (
    CandidateTransaction,
    Notification,
    TransactionStatus,
    TransactionType,
)
from statement_ledger.processing.audit import AuditRecorder, ExclusionReason
from statement_ledger.processing.categorizer import CategoryClassifier
from statement_ledger.processing.payment_method import infer_payment_method
from statement_ledger.utils.date_utils import date_from_epoch_millis
from statement_ledger.utils.decimal_utils import parse_amount
from statement_ledger.utils.logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_SOURCE = "unknown"


class NotificationParser:
    """Turns one bank notification into at most one candidate transaction.

    Notifications from unknown apps and texts no template recognizes produce
    no transaction. Neither is an error; both are counted in the audit
    recorder so the caller can tell the user the notification was not parsed.
    """

    def __init__(
        self,
        registry: Optional[TemplateRegistry] = None,
        classifier: Optional[CategoryClassifier] = None,
        timezone: Optional[tzinfo] = None,
    ):
        """Initialize notification parser.

        Args:
            registry: Institution templates (built-in Nubank/Bradesco if None).
            classifier: Category classifier (built-in rules if None).
            timezone: Zone the delivery date is taken in.
        """
        self.registry = registry if registry is not None else default_registry()
        self.classifier = classifier or CategoryClassifier()
        self.timezone = timezone or ZoneInfo(DEFAULT_TIMEZONE)

    @classmethod
    def from_config(cls, config: Config) -> "NotificationParser":
        """Build a parser from the loaded configuration."""
        return cls(
            registry=config.registry,
            classifier=CategoryClassifier(config.category_rules),
            timezone=config.notifications.tzinfo,
        )

    def parse(
        self, notification: Notification, recorder: Optional[AuditRecorder] = None
    ) -> Optional[CandidateTransaction]:
        """Parse a notification.

        Args:
            notification: The delivered notification.
            recorder: Audit recorder receiving the outcome.

        Returns:
            CandidateTransaction, or None when no institution or template matched,
            or when the amount or timestamp cannot be read.
        """
        if recorder is None:
            recorder = AuditRecorder()

        source = notification.source_app or UNKNOWN_SOURCE
        recorder.start_notification(source)

        institution = self.registry.resolve(notification.source_app)
        if institution is None:
            logger.debug(f"Ignoring notification from unknown app '{source}'")
            recorder.record_excluded(source, ExclusionReason.UNKNOWN_SOURCE_APP)
            return None

        text = notification.text
        match = institution.match(text)
        if match is None:
            logger.info(f"No {institution.display_name} template matched notification: {text[:80]!r}")
            recorder.record_excluded(source, ExclusionReason.NO_TEMPLATE_MATCH)
            return None

        try:
            amount, _ = parse_amount(match.amount_token)
        except ParseError as e:
            error = ParseError(str(e), field="amount", raw_value=match.amount_token, source=source)
            recorder.record_parse_error(error)
            logger.warning(f"Could not read amount of {institution.display_name} notification: {e}")
            return None

        if amount == 0:
            recorder.record_excluded(source, ExclusionReason.ZERO_AMOUNT)
            return None

        try:
            event_date = date_from_epoch_millis(notification.timestamp, self.timezone)
        except ParseError as e:
            error = ParseError(str(e), field="timestamp", raw_value=e.raw_value, source=source)
            recorder.record_parse_error(error)
            logger.warning(f"Could not read date of {institution.display_name} notification: {e}")
            return None

        transaction_type = match.kind.transaction_type
        fallback = OTHER_INCOME if transaction_type == TransactionType.INCOME else OTHER

        candidate = CandidateTransaction(
            date=event_date,
            description=match.description,
            category=self.classifier.classify(match.description, hint=match.kind, fallback=fallback),
            payment_method=infer_payment_method(
                text, kind=match.kind, default=institution.display_name
            ),
            amount=amount,
            type=transaction_type,
            status=TransactionStatus.PAID,
            include_in_totals=True,
            source=source,
        )
        recorder.record_included(source)
        logger.debug(
            f"{institution.display_name} {match.kind.value}: {candidate.description} {candidate.amount}"
        )
        return candidate
