"""Data models for candidate transactions, notifications, categories and reports."""

from statement_ledger.models.category import CategoryRule, MatchMode, default_category_rules
from statement_ledger.models.institution import (
    InstitutionTemplates,
    NotificationTemplate,
    TemplateMatch,
    TemplateRegistry,
    default_registry,
)
from statement_ledger.models.report import ManualCorrection, MonthlyTotals, MonthReconciliation
from statement_ledger.models.transaction import (
    CandidateTransaction,
    Notification,
    OperationKind,
    StatementFile,
    StatementFormat,
    Transaction,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "CandidateTransaction",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "StatementFormat",
    "OperationKind",
    "Notification",
    "StatementFile",
    "CategoryRule",
    "MatchMode",
    "default_category_rules",
    "ManualCorrection",
    "MonthlyTotals",
    "MonthReconciliation",
    "NotificationTemplate",
    "InstitutionTemplates",
    "TemplateMatch",
    "TemplateRegistry",
    "default_registry",
]
