"""Institution notification templates and their registry.

Each institution owns an ordered list of templates, one per operation kind.
The first template that matches a notification wins, so more specific
patterns must come before general ones (e.g. "PIX Recebido" before a plain
transfer pattern).
"""

import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

from statement_ledger.models.category import is_safe_pattern
from statement_ledger.models.transaction import OperationKind
from statement_ledger.utils.logging_config import get_logger

logger = get_logger(__name__)

# Description synthesized per kind; {counterparty} is the captured name
DEFAULT_DESCRIPTIONS: dict[OperationKind, str] = {
    OperationKind.PURCHASE: "{counterparty}",
    OperationKind.PIX_SENT: "PIX para {counterparty}",
    OperationKind.PIX_RECEIVED: "PIX de {counterparty}",
    OperationKind.TRANSFER: "Transferência",
    OperationKind.WITHDRAWAL: "Saque",
    OperationKind.DEPOSIT: "Depósito",
}

# Used when a template declares {counterparty} but the text carries none
DEFAULT_COUNTERPARTIES: dict[OperationKind, str] = {
    OperationKind.PURCHASE: "Compra",
    OperationKind.PIX_SENT: "Destinatário",
    OperationKind.PIX_RECEIVED: "Remetente",
}


@dataclass
class TemplateMatch:
    """Values extracted from a notification by a template."""

    kind: OperationKind
    amount_token: str
    counterparty: Optional[str]
    description: str


@dataclass
class NotificationTemplate:
    """One operation kind's pattern for an institution.

    The pattern is matched case-insensitively against ``title + " " + body``
    and must define a named group ``amount``; a named group ``counterparty``
    is optional.

    Attributes:
        kind: Operation kind announced by a matching notification.
        pattern: Regular expression source.
        description: Format string for the synthesized description; defaults
            to the kind's standard wording.
    """

    kind: OperationKind
    pattern: str
    description: Optional[str] = None

    _compiled: Optional[re.Pattern[str]] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate and compile the pattern."""
        is_safe, reason = is_safe_pattern(self.pattern)
        if not is_safe:
            raise ValueError(f"Unsafe notification pattern for {self.kind.value}: {reason}")
        try:
            self._compiled = re.compile(self.pattern, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid notification pattern for {self.kind.value}: {e}") from e
        if "amount" not in self._compiled.groupindex:
            raise ValueError(f"Pattern for {self.kind.value} has no 'amount' group")
        if self.description is None:
            self.description = DEFAULT_DESCRIPTIONS[self.kind]

    def match(self, text: str) -> Optional[TemplateMatch]:
        """Try this template against a notification text.

        Args:
            text: Title and body joined by a space.

        Returns:
            Extracted values, or None when the pattern does not match.
        """
        assert self._compiled is not None
        found = self._compiled.search(text)
        if not found:
            return None

        groups = found.groupdict()
        counterparty = (groups.get("counterparty") or "").strip().rstrip(".").strip() or None
        amount_token = groups["amount"].rstrip(".,")

        name = counterparty or DEFAULT_COUNTERPARTIES.get(self.kind, "")
        assert self.description is not None
        return TemplateMatch(
            kind=self.kind,
            amount_token=amount_token,
            counterparty=counterparty,
            description=self.description.format(counterparty=name).strip(),
        )

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "NotificationTemplate":
        """Create from a dictionary (e.g., from YAML config)."""
        description = data.get("description")
        return cls(
            kind=OperationKind(str(data["kind"])),
            pattern=str(data["pattern"]),
            description=str(description) if description is not None else None,
        )


@dataclass
class InstitutionTemplates:
    """A bank and the notification templates its app sends.

    Attributes:
        id: Short identifier (e.g. "nubank").
        display_name: Name used as the payment method of last resort.
        app_identifiers: Substrings of the sender package name.
        templates: Ordered templates; the first match wins.
    """

    id: str
    display_name: str
    app_identifiers: list[str]
    templates: list[NotificationTemplate] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.app_identifiers = [ident.lower() for ident in self.app_identifiers if ident]
        if not self.app_identifiers:
            raise ValueError(f"Institution '{self.id}' needs at least one app identifier")

    def owns(self, source_app: str) -> bool:
        """Check whether a sender package belongs to this institution."""
        source = source_app.lower()
        return any(ident in source for ident in self.app_identifiers)

    def match(self, text: str) -> Optional[TemplateMatch]:
        """Return the first template match for a notification text."""
        for template in self.templates:
            result = template.match(text)
            if result is not None:
                return result
        return None

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "InstitutionTemplates":
        """Create from a dictionary (e.g., from YAML config)."""
        institution_id = str(data["id"])
        return cls(
            id=institution_id,
            display_name=str(data.get("display_name", institution_id)),
            app_identifiers=[str(i) for i in data.get("app_identifiers", []) or []],  # type: ignore[attr-defined]
            templates=[
                NotificationTemplate.from_dict(t)
                for t in data.get("templates", []) or []  # type: ignore[attr-defined]
            ],
        )


class TemplateRegistry:
    """Ordered mapping of institutions to their notification templates.

    Built at startup and handed to the notification parser, so a new bank
    is added by registering templates rather than by changing parser code.
    """

    def __init__(self, institutions: Optional[list[InstitutionTemplates]] = None):
        self._institutions: dict[str, InstitutionTemplates] = {}
        for institution in institutions or []:
            self.register(institution)

    def register(self, institution: InstitutionTemplates) -> None:
        """Add an institution, replacing any with the same id."""
        if institution.id in self._institutions:
            logger.debug(f"Replacing templates for institution '{institution.id}'")
        self._institutions[institution.id] = institution

    def resolve(self, source_app: str) -> Optional[InstitutionTemplates]:
        """Find the institution that sent a notification.

        Args:
            source_app: Package name or app identifier of the sender.

        Returns:
            The first registered institution owning the sender, or None.
        """
        if not source_app:
            return None
        for institution in self._institutions.values():
            if institution.owns(source_app):
                return institution
        return None

    def __len__(self) -> int:
        return len(self._institutions)

    def __iter__(self) -> Iterator[InstitutionTemplates]:
        return iter(self._institutions.values())

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "TemplateRegistry":
        """Create from the ``institutions`` list of institutions.yaml."""
        institution_list = data.get("institutions") or []
        if not isinstance(institution_list, list):
            raise ValueError(
                f"'institutions' must be a list, got {type(institution_list).__name__}"
            )
        return cls([InstitutionTemplates.from_dict(item) for item in institution_list])


_AMOUNT = r"R\$\s*(?P<amount>[0-9.,]+)"
_NAME_TO_END = r"(?P<counterparty>.+?)\s*$"

DEFAULT_INSTITUTIONS: list[dict[str, object]] = [
    {
        "id": "nubank",
        "display_name": "Nubank",
        "app_identifiers": ["nubank", "nu.production"],
        "templates": [
            {"kind": "purchase",
             "pattern": r"(?:Compra aprovada|Compra no crédito|Compra no débito).*?"
                        + _AMOUNT + r".*?\bem\s+" + _NAME_TO_END},
            {"kind": "pix_sent",
             "pattern": r"Você fez um Pix de " + _AMOUNT + r".*?\bpara\s+" + _NAME_TO_END},
            {"kind": "pix_received",
             "pattern": r"Você recebeu um Pix de " + _AMOUNT + r".*?\bde\s+" + _NAME_TO_END},
            {"kind": "transfer", "pattern": r"(?:TED|DOC) realizada de " + _AMOUNT},
            {"kind": "withdrawal", "pattern": r"Saque realizado de " + _AMOUNT},
            {"kind": "deposit", "pattern": r"Depósito de " + _AMOUNT},
        ],
    },
    {
        "id": "bradesco",
        "display_name": "Bradesco",
        "app_identifiers": ["bradesco"],
        "templates": [
            {"kind": "purchase",
             "pattern": r"Compra Cartão (?:Débito|Crédito) " + _AMOUNT + r"\s*-\s*" + _NAME_TO_END},
            {"kind": "pix_sent", "pattern": r"PIX Enviado " + _AMOUNT + r"\s*-\s*" + _NAME_TO_END},
            {"kind": "pix_received",
             "pattern": r"PIX Recebido " + _AMOUNT + r"\s*-\s*" + _NAME_TO_END},
            {"kind": "transfer", "pattern": r"Transferência Enviada " + _AMOUNT},
            {"kind": "withdrawal", "pattern": r"Saque Cartão " + _AMOUNT},
        ],
    },
]


def default_registry() -> TemplateRegistry:
    """Build the registry with the built-in Nubank and Bradesco templates."""
    return TemplateRegistry.from_dict({"institutions": DEFAULT_INSTITUTIONS})
