"""Payment method inference from operation kind and description keywords."""

import re
from dataclasses import dataclass
from typing import Optional

from statement_ledger.models.transaction import OperationKind

PIX = "PIX"
DEBIT_CARD = "Cartão Débito"
CREDIT_CARD = "Cartão Crédito"
TED_DOC = "TED/DOC"
WITHDRAWAL = "Saque"
DEPOSIT = "Depósito"
BANK_SLIP = "Boleto"
TRANSFER = "Transferência"
OTHER = "Outros"


@dataclass(frozen=True)
class PaymentMethodRule:
    """Assigns a payment method when its pattern occurs in the text."""

    pattern: re.Pattern[str]
    method: str


def _rule(pattern: str, method: str) -> PaymentMethodRule:
    return PaymentMethodRule(re.compile(pattern, re.IGNORECASE), method)


# Evaluated top to bottom, first match wins
PAYMENT_METHOD_RULES: list[PaymentMethodRule] = [
    _rule(r"pix", PIX),
    _rule(r"d[ée]bito", DEBIT_CARD),
    _rule(r"cr[ée]dito", CREDIT_CARD),
    _rule(r"\b(?:ted|doc)\b", TED_DOC),
    _rule(r"saque", WITHDRAWAL),
    _rule(r"dep[óo]sito", DEPOSIT),
    _rule(r"boleto", BANK_SLIP),
]

# Account statements also name plain transfers
STATEMENT_RULES: list[PaymentMethodRule] = PAYMENT_METHOD_RULES + [
    _rule(r"transfer[êe]ncia", TRANSFER),
]

KIND_METHODS: dict[OperationKind, str] = {
    OperationKind.PIX_SENT: PIX,
    OperationKind.PIX_RECEIVED: PIX,
    OperationKind.WITHDRAWAL: WITHDRAWAL,
    OperationKind.DEPOSIT: DEPOSIT,
}


def infer_payment_method(
    text: str,
    kind: Optional[OperationKind] = None,
    default: str = OTHER,
    rules: Optional[list[PaymentMethodRule]] = None,
) -> str:
    """Infer the settlement channel of a transaction.

    The operation kind wins when it implies a channel; otherwise the first
    keyword rule matching the text decides.

    Args:
        text: Description or full notification text.
        kind: Operation kind, when known.
        default: Returned when nothing matches (e.g. the bank's display name).
        rules: Rule table to use (defaults to PAYMENT_METHOD_RULES).

    Returns:
        The payment method.
    """
    if kind is not None and kind in KIND_METHODS:
        return KIND_METHODS[kind]

    for rule in rules if rules is not None else PAYMENT_METHOD_RULES:
        if rule.pattern.search(text):
            return rule.method
    return default
