"""
Document kinds.

Every kind shares the same storage shape (documents / items / details /
remarks); what differs is the display-id prefix and the set of lifecycle
statuses.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DocumentKind:
    name: str
    prefix: str
    statuses: tuple[str, ...]

    @property
    def initial_status(self) -> str:
        return self.statuses[0]


QUOTATION = DocumentKind("quotation", "QTN", ("draft", "pending", "accepted"))
INVOICE = DocumentKind("invoice", "INV", ("draft", "pending", "paid"))
EXPENSE = DocumentKind("expense", "EXP", ("draft", "final"))
PLANNING = DocumentKind("planning", "PLN", ("draft", "final"))
PARAGON = DocumentKind("paragon", "PRG", ("draft", "final"))
ERHA = DocumentKind("erha", "ERH", ("draft", "final"))

KINDS: dict[str, DocumentKind] = {
    k.name: k for k in (QUOTATION, INVOICE, EXPENSE, PLANNING, PARAGON, ERHA)
}

TICKET_KINDS = frozenset({PARAGON.name, ERHA.name})


class UnknownKindError(KeyError):
    pass


def get_kind(name: str) -> DocumentKind:
    try:
        return KINDS[name.lower()]
    except (KeyError, AttributeError):
        raise UnknownKindError(name)
