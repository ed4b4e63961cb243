# Overview: Create/update/delete-by-difference of a document's child collections.

"""
Nested Collection Reconciler

Applies an incoming ordered list of child records (items with nested details,
or remarks) to the rows already stored under a parent, inside the caller's
transaction:

1. Validate the whole incoming tree before writing anything. Duplicate ids in
   one list, or ids of rows that exist under a different parent, raise
   ReconciliationIntegrityError. Ids that do not exist at all are new rows.
2. Update rows whose id is already under this parent; create the rest.
   `order_index` is the position in the incoming list, so it is always
   contiguous from 0.
3. For items, reconcile each kept item's details (same algorithm, one level
   down) before any item is deleted.
4. Delete stored rows that are not in the keep set. Removing an item cascades
   to its details.

Unchanged rows are left alone; nothing is deleted and re-inserted wholesale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select

from ..models import DocumentItem, DocumentRemark, ItemDetail
from ..schemas import QUANTITY_STEP, DetailInput, ItemInput, RemarkInput
from .errors import ReconciliationIntegrityError

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    created: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def changed_membership(self) -> bool:
        return bool(self.created or self.deleted)


def stored_quantity(quantity: Decimal) -> Decimal:
    """Round to the precision item_details.quantity keeps."""
    return quantity.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def detail_amount_cents(unit_price_cents: int, quantity: Decimal) -> int:
    return int((Decimal(unit_price_cents) * quantity).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class NestedCollectionReconciler:
    def __init__(self, session):
        self.session = session
        self.stats = ReconcileStats()

    # ------------------------------------------------------------------
    # Validation (no writes)
    # ------------------------------------------------------------------

    def _check_ids(self, model, existing_ids: set[int], incoming, label: str) -> None:
        seen: set[int] = set()
        duplicates: set[int] = set()
        for data in incoming:
            if data.id is None:
                continue
            if data.id in seen:
                duplicates.add(data.id)
            seen.add(data.id)

        if duplicates:
            raise ReconciliationIntegrityError(
                f"Duplicate ids in {label}",
                details={"collection": label, "ids": sorted(duplicates)},
            )

        unknown = seen - existing_ids
        if unknown:
            foreign = self.session.execute(select(model.id).where(model.id.in_(unknown))).scalars().all()
            if foreign:
                raise ReconciliationIntegrityError(
                    f"{label} reference rows that belong to another parent",
                    details={"collection": label, "ids": sorted(foreign)},
                )

    def validate_items(self, existing_items: list[DocumentItem], incoming: list[ItemInput]) -> None:
        by_id = {row.id: row for row in existing_items}
        self._check_ids(DocumentItem, set(by_id), incoming, "items")
        for position, data in enumerate(incoming):
            row = by_id.get(data.id) if data.id is not None else None
            existing_detail_ids = {d.id for d in row.details} if row is not None else set()
            self._check_ids(ItemDetail, existing_detail_ids, data.details, f"items[{position}].details")

    def validate_remarks(self, existing_remarks: list[DocumentRemark], incoming: list[RemarkInput]) -> None:
        self._check_ids(DocumentRemark, {r.id for r in existing_remarks}, incoming, "remarks")

    # ------------------------------------------------------------------
    # Generic create/update pass
    # ------------------------------------------------------------------

    def _upsert(self, existing, incoming, new_row, assign) -> list:
        """Update matching rows and create the rest; returns rows in incoming order."""
        by_id = {row.id: row for row in existing}
        kept = []
        for position, data in enumerate(incoming):
            row = by_id.get(data.id) if data.id is not None else None
            if row is None:
                row = new_row()
                self.session.add(row)
                self.stats.created += 1
            else:
                self.stats.updated += 1
            assign(row, data, position)
            kept.append(row)
        return kept

    def _count_removed(self, existing, kept) -> int:
        kept_ids = {id(row) for row in kept}
        removed = sum(1 for row in existing if id(row) not in kept_ids)
        self.stats.deleted += removed
        return removed

    # ------------------------------------------------------------------
    # Items and details
    # ------------------------------------------------------------------

    def reconcile_details(self, item: DocumentItem, incoming: list[DetailInput]) -> list[ItemDetail]:
        existing = list(item.details)

        def assign(row: ItemDetail, data: DetailInput, position: int) -> None:
            row.description = data.description
            row.unit_price_cents = data.unit_price_cents
            quantity = stored_quantity(data.quantity)
            row.quantity = quantity
            row.amount_cents = detail_amount_cents(data.unit_price_cents, quantity)
            row.order_index = position

        kept = self._upsert(existing, incoming, lambda: ItemDetail(item_id=item.id), assign)
        self.session.flush()

        self._count_removed(existing, kept)
        # Rows dropped from the collection are orphans and get deleted on flush
        item.details = kept
        return kept

    def _apply_items(self, document, incoming: list[ItemInput]) -> list[DocumentItem]:
        existing = list(document.items)

        def assign(row: DocumentItem, data: ItemInput, position: int) -> None:
            row.name = data.name
            row.order_index = position

        kept = self._upsert(existing, incoming, lambda: DocumentItem(document_id=document.id), assign)
        # Flush creates/updates first so new items have ids for their details
        self.session.flush()

        for row, data in zip(kept, incoming):
            details = self.reconcile_details(row, data.details)
            if details:
                row.total_cents = sum(d.amount_cents for d in details)
            else:
                row.total_cents = data.total_cents

        removed = self._count_removed(existing, kept)
        document.items = kept
        self.session.flush()

        logger.debug(
            "Reconciled items for document %s: %d kept, %d removed",
            document.id, len(kept), removed,
        )
        return kept

    # ------------------------------------------------------------------
    # Remarks
    # ------------------------------------------------------------------

    def _apply_remarks(self, document, incoming: list[RemarkInput]) -> list[DocumentRemark]:
        existing = list(document.remarks)

        def assign(row: DocumentRemark, data: RemarkInput, position: int) -> None:
            row.text = data.text
            row.completed = data.completed
            row.order_index = position

        kept = self._upsert(existing, incoming, lambda: DocumentRemark(document_id=document.id), assign)
        self.session.flush()

        self._count_removed(existing, kept)
        document.remarks = kept
        self.session.flush()
        return kept

    # ------------------------------------------------------------------
    # Whole document
    # ------------------------------------------------------------------

    def reconcile(
        self,
        document,
        items: list[ItemInput] | None = None,
        remarks: list[RemarkInput] | None = None,
    ) -> tuple[list[DocumentItem], list[DocumentRemark]]:
        """
        Reconcile whichever collections were supplied (None = leave untouched).

        Both collections are validated before either is written. Returns the
        document's items and remarks as persisted, in order_index order.
        """
        if items is not None:
            self.validate_items(list(document.items), items)
        if remarks is not None:
            self.validate_remarks(list(document.remarks), remarks)

        applied_items = self._apply_items(document, items) if items is not None else list(document.items)
        applied_remarks = (
            self._apply_remarks(document, remarks) if remarks is not None else list(document.remarks)
        )
        return applied_items, applied_remarks
