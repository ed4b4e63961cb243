"""
Validated input types for document writes.

Request bodies are parsed into these dataclasses at the API boundary, so the
reconciler only ever sees well-typed child records. Each child kind has its
own type, so a detail can never be handed to the remark path (or vice versa).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from .validation import (
    MAX_NAME_LENGTH,
    ValidationError,
    optional_id,
    to_bool,
    to_cents,
    to_date,
    to_datetime,
    to_decimal,
    to_text,
)


DOCUMENT_FIELDS = frozenset({"display_name", "status", "production_date", "notes", "items", "remarks"})
CONTROL_FIELDS = frozenset({"last_known_modified_at"})

# Matches the scale of item_details.quantity
QUANTITY_STEP = Decimal("0.01")


@dataclass
class DetailInput:
    description: str = ""
    unit_price_cents: int = 0
    quantity: Decimal = Decimal("0")
    id: int | None = None


@dataclass
class ItemInput:
    name: str = ""
    total_cents: int = 0
    details: list[DetailInput] = field(default_factory=list)
    id: int | None = None


@dataclass
class RemarkInput:
    text: str = ""
    completed: bool = False
    id: int | None = None


@dataclass
class DocumentInput:
    """
    Parsed create/update body.

    `items` / `remarks` set to None means "not supplied": the stored
    collection is left untouched. An empty list means "remove all".
    """
    display_name: str | None = None
    status: str | None = None
    production_date: date | None = None
    notes: str | None = None
    items: list[ItemInput] | None = None
    remarks: list[RemarkInput] | None = None
    last_known_modified_at: datetime | None = None
    provided: frozenset[str] = frozenset()


def _require_list(value: Any, field_name: str) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field_name} must be a list")
    return value


def _require_object(value: Any, field_name: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{field_name} must be an object")
    return value


def parse_detail(raw: Any, path: str) -> DetailInput:
    raw = _require_object(raw, path)
    quantity = to_decimal(raw.get("quantity"), f"{path}.quantity")
    if quantity < 0:
        raise ValidationError(f"{path}.quantity must be >= 0")
    if quantity.normalize().as_tuple().exponent < QUANTITY_STEP.as_tuple().exponent:
        raise ValidationError(f"{path}.quantity allows at most 2 decimal places")
    return DetailInput(
        id=optional_id(raw.get("id"), f"{path}.id"),
        description=to_text(raw.get("description"), f"{path}.description"),
        unit_price_cents=to_cents(raw.get("unit_price_cents"), f"{path}.unit_price_cents"),
        quantity=quantity,
    )


def parse_item(raw: Any, path: str) -> ItemInput:
    raw = _require_object(raw, path)
    details_raw = raw.get("details")
    details = []
    if details_raw is not None:
        details = [
            parse_detail(d, f"{path}.details[{i}]")
            for i, d in enumerate(_require_list(details_raw, f"{path}.details"))
        ]
    return ItemInput(
        id=optional_id(raw.get("id"), f"{path}.id"),
        name=to_text(raw.get("name"), f"{path}.name", max_length=MAX_NAME_LENGTH),
        total_cents=to_cents(raw.get("total_cents"), f"{path}.total_cents"),
        details=details,
    )


def parse_remark(raw: Any, path: str) -> RemarkInput:
    raw = _require_object(raw, path)
    return RemarkInput(
        id=optional_id(raw.get("id"), f"{path}.id"),
        text=to_text(raw.get("text"), f"{path}.text"),
        completed=to_bool(raw.get("completed"), f"{path}.completed"),
    )


def parse_document_input(payload: Any) -> DocumentInput:
    """
    Validate a JSON body for create / update.

    Unknown keys are rejected so typos never silently drop data.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = set(payload) - DOCUMENT_FIELDS - CONTROL_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    items = None
    if payload.get("items") is not None:
        items = [parse_item(it, f"items[{i}]") for i, it in enumerate(_require_list(payload["items"], "items"))]

    remarks = None
    if payload.get("remarks") is not None:
        remarks = [
            parse_remark(rm, f"remarks[{i}]") for i, rm in enumerate(_require_list(payload["remarks"], "remarks"))
        ]

    status = payload.get("status")
    if status is not None and not isinstance(status, str):
        raise ValidationError("status must be a string")

    display_name = None
    if "display_name" in payload:
        display_name = to_text(payload.get("display_name"), "display_name", max_length=MAX_NAME_LENGTH)

    notes = None
    if "notes" in payload and payload.get("notes") is not None:
        notes = to_text(payload.get("notes"), "notes")

    return DocumentInput(
        display_name=display_name,
        status=status.strip().lower() if status else None,
        production_date=to_date(payload.get("production_date"), "production_date"),
        notes=notes,
        items=items,
        remarks=remarks,
        last_known_modified_at=to_datetime(payload.get("last_known_modified_at"), "last_known_modified_at"),
        provided=frozenset(k for k in payload if k in DOCUMENT_FIELDS),
    )
