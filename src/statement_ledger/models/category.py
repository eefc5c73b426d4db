"""Category vocabulary and keyword categorization rules."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from statement_ledger.models.transaction import OperationKind
from statement_ledger.utils.logging_config import get_logger

logger = get_logger(__name__)

# Maximum pattern length to prevent overly complex patterns
MAX_PATTERN_LENGTH = 500

# Patterns that can cause catastrophic backtracking (ReDoS)
DANGEROUS_PATTERN_SIGNATURES = [
    r"(\w+)+",
    r"(.*)*",
    r"(.+)+",
    r"(\s+)+",
]

# Group with a quantifier inside, followed by an outer quantifier: (a+)+, (a+){2,}
_NESTED_QUANTIFIER_PATTERN = re.compile(
    r"\([^)]*[+*][^)]*\)[+*]|"
    r"\([^)]*[+*][^)]*\)\{[0-9,]+\}"
)


def is_safe_pattern(pattern: str) -> tuple[bool, str]:
    """Check if a regex pattern is safe from ReDoS attacks.

    Args:
        pattern: Regex pattern string to validate.

    Returns:
        Tuple of (is_safe, reason if unsafe).
    """
    if len(pattern) > MAX_PATTERN_LENGTH:
        return False, f"Pattern exceeds {MAX_PATTERN_LENGTH} character limit"

    if _NESTED_QUANTIFIER_PATTERN.search(pattern):
        return False, "Pattern contains dangerous nested quantifier"

    for dangerous in DANGEROUS_PATTERN_SIGNATURES:
        if dangerous in pattern:
            return False, "Pattern contains known dangerous signature"

    return True, ""


# Fixed semantic vocabulary
FOOD = "Alimentação"
TRANSPORT = "Transporte"
HEALTH = "Saúde"
EDUCATION = "Educação"
TELECOM = "Telecomunicações"
INVESTMENTS = "Investimentos"
TRANSFER = "Transferência"
TRANSFER_RECEIVED = "Transferência Recebida"
TRANSFER_SENT = "Transferência Enviada"
SHOPPING = "Compras"
ENTERTAINMENT = "Entretenimento"
PAYMENTS = "Pagamentos"
SALARY = "Salário"
DEPOSIT = "Depósito"
WITHDRAWAL = "Saque"
OTHER = "Outros"
OTHER_INCOME = "Outros Recebimentos"


class MatchMode(Enum):
    """Matching mode for keywords in categorization rules."""

    SUBSTRING = "substring"  # Default: "vivo" matches "vivo fibra"
    WORD_BOUNDARY = "word"  # "ted" only matches as a whole word


@dataclass
class CategoryRule:
    """Ordered keyword rule for categorization.

    Keyword matching is case-insensitive. A rule with ``kinds`` only applies
    when the caller's operation-kind hint is one of them.

    Attributes:
        category: Category assigned when the rule matches.
        keywords: Keywords matched against the description.
        regex_patterns: Extra regex patterns matched against the description.
        kinds: Operation kinds the rule is restricted to (empty = any).
        match_mode: How keywords are matched (substring or word boundary).
        id: Optional identifier used in logs.
    """

    category: str
    keywords: list[str] = field(default_factory=list)
    regex_patterns: list[str] = field(default_factory=list)
    kinds: frozenset[OperationKind] = field(default_factory=frozenset)
    match_mode: MatchMode = MatchMode.SUBSTRING
    id: Optional[str] = None

    _compiled_patterns: list[re.Pattern[str]] = field(
        default_factory=list, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        """Lowercase keywords and compile regex patterns."""
        if not self.category or not self.category.strip():
            raise ValueError("Category rule needs a non-empty category")
        self.keywords = [kw.lower() for kw in self.keywords if kw]
        self.kinds = frozenset(self.kinds)
        if self.id is None:
            self.id = self.category

        self._compiled_patterns = []
        for pattern in self.regex_patterns:
            is_safe, reason = is_safe_pattern(pattern)
            if not is_safe:
                logger.warning(
                    f"Rejecting unsafe regex pattern '{pattern}' in rule '{self.id}': {reason}"
                )
                continue
            try:
                self._compiled_patterns.append(re.compile(pattern, re.IGNORECASE))
            except re.error as e:
                logger.warning(f"Invalid regex pattern '{pattern}' in rule '{self.id}': {e}")

        if not self.keywords and not self._compiled_patterns:
            logger.warning(f"Rule '{self.id}' has no usable keywords and will match nothing")

    def matches(self, description: str, hint: Optional[OperationKind] = None) -> Optional[str]:
        """Check a description against this rule.

        Args:
            description: Transaction description.
            hint: Operation kind of the transaction, when known.

        Returns:
            The keyword or pattern that matched, or None.
        """
        if self.kinds and hint not in self.kinds:
            return None

        description_lower = description.lower()
        for keyword in self.keywords:
            if self.match_mode == MatchMode.WORD_BOUNDARY:
                if re.search(r"\b" + re.escape(keyword) + r"\b", description_lower):
                    return keyword
            elif keyword in description_lower:
                return keyword

        for pattern in self._compiled_patterns:
            if pattern.search(description):
                return pattern.pattern

        return None

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "CategoryRule":
        """Create a CategoryRule from a dictionary (e.g., from YAML config).

        Args:
            data: Dictionary with ``category`` and ``keywords`` and optionally
                ``regex_patterns``, ``kinds``, ``match_mode`` and ``id``.

        Returns:
            A new CategoryRule instance.
        """
        match_mode = MatchMode.SUBSTRING
        if str(data.get("match_mode", "substring")).lower() == "word":
            match_mode = MatchMode.WORD_BOUNDARY

        kinds = frozenset(
            OperationKind(str(kind)) for kind in data.get("kinds", []) or []  # type: ignore[attr-defined]
        )

        return cls(
            category=str(data["category"]),
            keywords=[str(kw) for kw in data.get("keywords", []) or []],  # type: ignore[attr-defined]
            regex_patterns=[str(p) for p in data.get("regex_patterns", []) or []],  # type: ignore[attr-defined]
            kinds=kinds,
            match_mode=match_mode,
            id=str(data["id"]) if "id" in data else None,
        )

    def __repr__(self) -> str:
        return f"CategoryRule(id={self.id!r}, category={self.category!r})"


_INCOME_KINDS = [OperationKind.PIX_RECEIVED.value, OperationKind.DEPOSIT.value]

# Evaluated top to bottom, first match wins. Income-only rules come first so a
# received PIX is never filed as a plain transfer; education names come before
# the transport keywords.
DEFAULT_CATEGORY_RULES: list[dict[str, object]] = [
    {"id": "income_transfer", "category": TRANSFER_RECEIVED, "kinds": _INCOME_KINDS,
     "keywords": ["pix", "transferência", "transferencia"]},
    {"id": "income_salary", "category": SALARY, "kinds": _INCOME_KINDS,
     "keywords": ["salário", "salario"]},
    {"id": "income_deposit", "category": DEPOSIT, "kinds": _INCOME_KINDS,
     "keywords": ["depósito", "deposito"]},
    {"id": "education", "category": EDUCATION,
     "keywords": ["puc", "faculdade", "universidade", "mensalidade escolar", "escola"]},
    {"id": "transport", "category": TRANSPORT,
     "keywords": ["uber", "99app", "posto", "gasolina", "combustível",
                  "combustivel", "transporte"]},
    # Short words that also occur inside unrelated names ("Metropole", "Tripadvisor")
    {"id": "transport_words", "category": TRANSPORT, "match_mode": "word",
     "keywords": ["trip", "metrô", "metro"]},
    {"id": "health", "category": HEALTH,
     "keywords": ["farmácia", "farmacia", "drogaria", "academia", "wellhub", "gym",
                  "hospital", "clínica", "clinica"]},
    {"id": "telecom", "category": TELECOM,
     "keywords": ["vivo", "celular", "claro", "operadora"]},
    {"id": "investments", "category": INVESTMENTS,
     "keywords": ["rdb", "investimento", "aplicação", "aplicacao", "tesouro"]},
    {"id": "entertainment", "category": ENTERTAINMENT,
     "keywords": ["netflix", "spotify", "cinema", "disney", "prime video"]},
    {"id": "food", "category": FOOD,
     "keywords": ["supermercado", "mercado", "padaria", "restaurante", "lanchonete",
                  "pizza", "ifood", "café", "lanche", "pastel"]},
    {"id": "shopping", "category": SHOPPING,
     "keywords": ["shopping", "loja", "magazine", "aliexpress", "amazon", "compra"]},
    {"id": "transfer_received", "category": TRANSFER_RECEIVED,
     "keywords": ["pix recebido", "transferência recebida", "transferencia recebida"]},
    {"id": "transfer_sent", "category": TRANSFER_SENT,
     "keywords": ["pix enviado", "transferência enviada", "transferencia enviada"]},
    {"id": "payments", "category": PAYMENTS,
     "keywords": ["boleto", "pagamento", "fatura"]},
    {"id": "withdrawal", "category": WITHDRAWAL, "keywords": ["saque"]},
    {"id": "transfer", "category": TRANSFER,
     "keywords": ["pix", "transferência", "transferencia"]},
]


def default_category_rules() -> list[CategoryRule]:
    """Build the built-in ordered rule table."""
    return [CategoryRule.from_dict(data) for data in DEFAULT_CATEGORY_RULES]
