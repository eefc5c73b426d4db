"""Keyword category classifier over an ordered rule table."""

from typing import Optional

from statement_ledger.models.category import OTHER, CategoryRule, default_category_rules
from statement_ledger.models.transaction import OperationKind
from statement_ledger.utils.logging_config import get_logger

logger = get_logger(__name__)

# Descriptions whose category is kept as assigned during consolidation
CONSOLIDATION_KEEP_KEYWORDS = ["pagamento", "transferência enviada", "transferencia enviada"]


class CategoryClassifier:
    """Assigns categories by walking an ordered list of keyword rules.

    The first matching rule wins, so rule order is significant. The classifier
    holds no mutable state: the same description, hint and fallback always
    give the same category regardless of call order.
    """

    def __init__(self, rules: Optional[list[CategoryRule]] = None):
        """Initialize classifier.

        Args:
            rules: Ordered rules; defaults to the built-in table.
        """
        self.rules = list(rules) if rules is not None else default_category_rules()

    def match(
        self, description: str, hint: Optional[OperationKind] = None
    ) -> Optional[CategoryRule]:
        """Return the first rule matching a description, or None."""
        for rule in self.rules:
            matched = rule.matches(description, hint)
            if matched is not None:
                logger.debug(f"'{description[:40]}' matched rule '{rule.id}' on '{matched}'")
                return rule
        return None

    def classify(
        self,
        description: str,
        hint: Optional[OperationKind] = None,
        fallback: str = OTHER,
    ) -> str:
        """Categorize a description.

        Args:
            description: Transaction description.
            hint: Operation kind, which enables kind-restricted rules.
            fallback: Category returned unchanged when no rule matches.

        Returns:
            The category of the first matching rule, or the fallback.
        """
        rule = self.match(description or "", hint)
        return rule.category if rule is not None else fallback

    def consolidate(self, category: str, description: str) -> str:
        """Merge a stored category into the rule vocabulary for reporting.

        Payments and sent transfers keep their category. Other records are
        re-mapped only when a rule matches; amounts are never touched.

        Args:
            category: Category currently assigned.
            description: Transaction description.

        Returns:
            The consolidated category.
        """
        description_lower = (description or "").lower()
        if any(keyword in description_lower for keyword in CONSOLIDATION_KEEP_KEYWORDS):
            return category
        return self.classify(description, fallback=category)
