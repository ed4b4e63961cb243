# Overview: Service-layer operations for documents; composes id issuing, naming, reconciliation, locking and cache invalidation.

"""
Document Service

================================================================================
PURPOSE: One transaction per write for every document kind
================================================================================

CREATE:
    issuer allocates display id -> resolver picks display name ->
    insert document + children -> commit -> invalidate caches

UPDATE:
    locked fresh read of the row -> optimistic lock check ->
    reconcile items/details/remarks -> update parent fields -> commit ->
    invalidate caches

RULES:
1. Everything up to and including commit is one transaction. Any failure
   rolls the whole write back; no partial child updates survive.
2. Cache invalidation happens after commit and never fails the write.
3. A create that collides on display_id is retried from scratch, at most
   `max_attempts` times, then fails with SequenceGenerationFailure.
4. Every successful update advances modified_at, even when only children
   changed, so the next stale client is caught.

WHY allocate first: the issuer may roll back the session when it falls back
from the counter to the scan strategy. Doing it before any other write in the
transaction means that rollback never discards work.
================================================================================
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..cache import NullCache
from ..kinds import EXPENSE, INVOICE, PLANNING, QUOTATION, TICKET_KINDS, DocumentKind, get_kind
from ..models import Document
from ..schemas import DocumentInput, ItemInput, RemarkInput, DetailInput
from ..time_utils import utcnow
from ..validation import ValidationError
from .cache_service import CacheInvalidationCoordinator
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    DocumentError,
    DocumentNotFound,
    InvalidStatusTransition,
    PartialUpdateFailure,
    SequenceGenerationFailure,
    StaleWriteConflict,
)
from .locking import OptimisticLockGuard
from .name_service import UniqueNameResolver
from .reconcile_service import NestedCollectionReconciler
from .sequence_service import (
    STRATEGY_COUNTER,
    DisplayIdCollision,
    SequenceIdIssuer,
    is_display_id_collision,
)

logger = logging.getLogger(__name__)

SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"
SORT_ORDERS = (SORT_NEWEST, SORT_OLDEST)

COPY_SUFFIX = " - Copy"


class DocumentService:
    def __init__(
        self,
        session,
        cache=None,
        *,
        sequence_strategy: str = STRATEGY_COUNTER,
        max_attempts: int = 3,
        name_suffix_limit: int | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.session = session
        self.issuer = SequenceIdIssuer(session, strategy=sequence_strategy)
        self.names = UniqueNameResolver(session, suffix_limit=name_suffix_limit)
        self.invalidator = CacheInvalidationCoordinator(cache if cache is not None else NullCache())
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _write(self, action: str, *, retryable: bool = False):
        """
        Commit on success; roll back and translate storage errors otherwise.

        With `retryable`, transient OperationalErrors (lock timeouts, "database
        is locked") are re-raised untranslated so run_with_retry can replay
        the whole unit of work.
        """
        try:
            yield
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            raise StaleWriteConflict() from exc
        except (DocumentError, ValidationError):
            self.session.rollback()
            raise
        except IntegrityError as exc:
            self.session.rollback()
            if is_display_id_collision(exc):
                raise DisplayIdCollision(str(exc.orig)) from exc
            logger.exception("Integrity error while trying to %s", action)
            raise PartialUpdateFailure(f"Failed to {action}") from exc
        except OperationalError as exc:
            self.session.rollback()
            if retryable:
                raise
            logger.exception("Database error while trying to %s", action)
            raise PartialUpdateFailure(f"Failed to {action}") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Database error while trying to %s", action)
            raise PartialUpdateFailure(f"Failed to {action}") from exc
        except Exception:
            self.session.rollback()
            raise

    def _with_create_retry(self, action: str, op, kind: str, year: int):
        """
        Run `op` in its own transaction, retrying when the display id collides.

        `op` must redo all of its work on every call; the previous attempt was
        rolled back. Between attempts the (kind, year) counter is moved past
        the highest stored display id, since the rolled-back increment would
        otherwise hand out the same number again.
        """
        def attempt_once():
            with self._write(action, retryable=True):
                return op()

        for attempt in range(1, self.max_attempts + 1):
            try:
                return run_with_retry(self.session, attempt_once)
            except DisplayIdCollision as exc:
                logger.warning(
                    "Display id collision while trying to %s (attempt %d/%d): %s",
                    action, attempt, self.max_attempts, exc,
                )
                self._resync_counter(kind, year)
            except OperationalError as exc:
                logger.exception("Database stayed busy while trying to %s", action)
                raise PartialUpdateFailure(f"Failed to {action}") from exc
        raise SequenceGenerationFailure(
            f"Could not allocate a unique display id after {self.max_attempts} attempts",
            details={"kind": kind, "year": year, "attempts": self.max_attempts},
        )

    def _resync_counter(self, kind: str, year: int) -> None:
        if self.issuer.strategy != STRATEGY_COUNTER:
            return
        try:
            self.issuer.resync(kind, year)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Could not resync sequence counter for %s %s: %s", kind, year, exc)

    def _invalidate(self, document: Document) -> None:
        self.invalidator.invalidate(document.kind, document.issued_year)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_document(self, kind: str, document_id: int, *, include_deleted: bool = True) -> Document:
        kind = get_kind(kind).name
        document = self.session.get(Document, document_id)
        if document is None or document.kind != kind:
            raise DocumentNotFound(f"{kind.capitalize()} {document_id} not found")
        if not include_deleted and not document.is_active:
            raise DocumentNotFound(f"{kind.capitalize()} {document_id} not found")
        return document

    def list_documents(
        self,
        kind: str,
        *,
        status: str | None = None,
        include_deleted: bool = False,
        sort: str = SORT_NEWEST,
        page: int = 1,
        page_size: int = 25,
    ) -> tuple[list[Document], int]:
        """One page of documents of `kind`, plus the total count of matching rows."""
        kind_def = get_kind(kind)
        if status is not None:
            self._validate_status(kind_def, status)
        if sort not in SORT_ORDERS:
            raise ValidationError(f"sort must be one of: {', '.join(SORT_ORDERS)}")
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be >= 1")

        query = self.session.query(Document).filter(Document.kind == kind_def.name)
        if status is not None:
            query = query.filter(Document.status == status)
        if not include_deleted:
            query = query.filter(Document.active_filter())

        total = query.count()

        if sort == SORT_NEWEST:
            query = query.order_by(Document.modified_at.desc(), Document.id.desc())
        else:
            query = query.order_by(Document.modified_at.asc(), Document.id.asc())

        rows = query.offset((page - 1) * page_size).limit(page_size).all()
        return rows, total

    def check_name_conflicts(self, kind: str, names: list[str]) -> dict:
        """Which names are already in use, plus the name a create would get for each."""
        conflicts = self.names.check_conflicts(kind, names)
        return {
            name: {
                "taken": taken,
                "suggested": self.names.resolve(kind, name) if taken else name,
            }
            for name, taken in conflicts.items()
        }

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_status(kind_def: DocumentKind, status: str) -> str:
        if status not in kind_def.statuses:
            raise ValidationError(
                f"Invalid status '{status}' for {kind_def.name}. "
                f"Must be one of: {', '.join(kind_def.statuses)}"
            )
        return status

    def _insert(
        self,
        kind_def: DocumentKind,
        data: DocumentInput,
        year: int,
        *,
        display_id: str | None = None,
        source_document_id: int | None = None,
    ) -> Document:
        if display_id is None:
            display_id = self.issuer.allocate(kind_def.name, year)
        name = self.names.resolve(kind_def.name, data.display_name or "")

        document = Document(
            kind=kind_def.name,
            display_id=display_id,
            issued_year=year,
            display_name=name,
            status=kind_def.initial_status,
            production_date=data.production_date,
            notes=data.notes,
            source_document_id=source_document_id,
        )
        self.session.add(document)
        self.session.flush()

        items, _ = NestedCollectionReconciler(self.session).reconcile(
            document,
            items=data.items or [],
            remarks=data.remarks or [],
        )
        document.total_cents = sum(item.total_cents for item in items)
        self.session.flush()

        logger.info("Created %s %s (id=%s)", kind_def.name, display_id, document.id)
        return document

    def create_document(
        self,
        kind: str,
        data: DocumentInput,
        *,
        year: int | None = None,
        source_document_id: int | None = None,
    ) -> Document:
        """
        Create a document with a fresh display id and a unique display name.

        New documents always start in the kind's initial status.
        """
        kind_def = get_kind(kind)
        if data.status is not None and data.status != kind_def.initial_status:
            raise ValidationError(f"New {kind_def.name} documents start as '{kind_def.initial_status}'")
        year = year or utcnow().year

        document = self._with_create_retry(
            f"create {kind_def.name}",
            lambda: self._insert(kind_def, data, year, source_document_id=source_document_id),
            kind_def.name,
            year,
        )
        self._invalidate(document)
        return document

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def _load_for_write(self, kind: str, document_id: int) -> Document:
        """Fresh, row-locked read of an active document inside the current transaction."""
        document = lock_for_update(
            self.session.query(Document).filter(Document.id == document_id, Document.kind == kind)
        ).first()
        if document is None:
            raise DocumentNotFound(f"{kind.capitalize()} {document_id} not found")
        if not document.is_active:
            raise InvalidStatusTransition(
                f"{kind.capitalize()} {document_id} is deleted; restore it before editing",
                details={"deleted_at": document.deleted_at.isoformat()},
            )
        return document

    def update_document(self, kind: str, document_id: int, data: DocumentInput) -> Document:
        """
        Apply a full or partial edit.

        Only fields present in the payload are touched; items / remarks set to
        None leave the stored collection alone.
        """
        kind_def = get_kind(kind)

        with self._write(f"update {kind_def.name} {document_id}"):
            document = self._load_for_write(kind_def.name, document_id)
            OptimisticLockGuard.check(data.last_known_modified_at, document.modified_at)

            if "status" in data.provided and data.status is not None:
                document.status = self._validate_status(kind_def, data.status)

            items, _ = NestedCollectionReconciler(self.session).reconcile(
                document, items=data.items, remarks=data.remarks,
            )
            if data.items is not None:
                document.total_cents = sum(item.total_cents for item in items)

            if "display_name" in data.provided:
                new_name = data.display_name or ""
                if new_name != document.display_name:
                    document.display_name = self.names.resolve(kind_def.name, new_name, exclude_id=document.id)
            if "production_date" in data.provided:
                document.production_date = data.production_date
            if "notes" in data.provided:
                document.notes = data.notes

            # Child-only edits still advance the parent's version
            flag_modified(document, "status")
            self.session.flush()

        self._invalidate(document)
        return document

    def set_status(self, kind: str, document_id: int, status: str, last_known_modified_at=None) -> Document:
        kind_def = get_kind(kind)
        with self._write(f"change status of {kind_def.name} {document_id}"):
            document = self._load_for_write(kind_def.name, document_id)
            OptimisticLockGuard.check(last_known_modified_at, document.modified_at)
            document.status = self._validate_status(kind_def, status)
            flag_modified(document, "status")
            self.session.flush()

        self._invalidate(document)
        return document

    # ------------------------------------------------------------------
    # Soft delete / restore
    # ------------------------------------------------------------------

    def soft_delete(self, kind: str, document_id: int, last_known_modified_at=None) -> Document:
        """Mark a document deleted. Deleting an already deleted document is a no-op."""
        kind = get_kind(kind).name
        with self._write(f"delete {kind} {document_id}"):
            document = lock_for_update(
                self.session.query(Document).filter(Document.id == document_id, Document.kind == kind)
            ).first()
            if document is None:
                raise DocumentNotFound(f"{kind.capitalize()} {document_id} not found")
            if document.is_active:
                OptimisticLockGuard.check(last_known_modified_at, document.modified_at)
                document.deleted_at = utcnow()
                self.session.flush()

        self._invalidate(document)
        return document

    def restore(self, kind: str, document_id: int) -> Document:
        """
        Bring a soft-deleted document back.

        The name is re-resolved: an active document may have taken it while
        this one was deleted.
        """
        kind = get_kind(kind).name
        with self._write(f"restore {kind} {document_id}"):
            document = lock_for_update(
                self.session.query(Document).filter(Document.id == document_id, Document.kind == kind)
            ).first()
            if document is None:
                raise DocumentNotFound(f"{kind.capitalize()} {document_id} not found")
            if not document.is_active:
                document.display_name = self.names.resolve(kind, document.display_name, exclude_id=document.id)
                document.deleted_at = None
                self.session.flush()

        self._invalidate(document)
        return document

    def purge(self, kind: str, document_id: int) -> None:
        """Hard-delete a soft-deleted document together with all of its children."""
        kind = get_kind(kind).name
        with self._write(f"purge {kind} {document_id}"):
            document = lock_for_update(
                self.session.query(Document).filter(Document.id == document_id, Document.kind == kind)
            ).first()
            if document is None:
                raise DocumentNotFound(f"{kind.capitalize()} {document_id} not found")
            if document.is_active:
                raise InvalidStatusTransition("Only deleted documents can be purged")
            year = document.issued_year
            # Documents copied from this one keep existing without the link
            self.session.query(Document).filter(Document.source_document_id == document.id).update(
                {Document.source_document_id: None}, synchronize_session=False,
            )
            self.session.delete(document)

        logger.info("Purged %s %s", kind, document_id)
        self.invalidator.invalidate(kind, year)

    # ------------------------------------------------------------------
    # Derived documents
    # ------------------------------------------------------------------

    @staticmethod
    def _children_of(document: Document) -> tuple[list[ItemInput], list[RemarkInput]]:
        """Child inputs without ids, so the target gets its own fresh rows."""
        items = [
            ItemInput(
                name=item.name,
                total_cents=item.total_cents,
                details=[
                    DetailInput(
                        description=d.description,
                        unit_price_cents=d.unit_price_cents,
                        quantity=d.quantity,
                    )
                    for d in item.details
                ],
            )
            for item in document.items
        ]
        remarks = [RemarkInput(text=r.text, completed=r.completed) for r in document.remarks]
        return items, remarks

    def copy(self, kind: str, document_id: int, *, year: int | None = None) -> Document:
        """Duplicate a document as a new draft with its own display id."""
        source = self.get_document(kind, document_id, include_deleted=False)
        items, remarks = self._children_of(source)
        data = DocumentInput(
            display_name=f"{source.display_name}{COPY_SUFFIX}",
            production_date=source.production_date,
            notes=source.notes,
            items=items,
            remarks=remarks,
        )
        return self.create_document(source.kind, data, year=year, source_document_id=source.id)

    def _derive_once(self, source: Document, target: DocumentKind, data: DocumentInput) -> tuple[Document, bool]:
        """
        Create a `target` document from `source` unless one already exists.

        Returns (document, created). The earliest active `target` document
        whose source_document_id points at `source` counts as already derived.
        """
        existing = (
            self.session.query(Document)
            .filter(
                Document.kind == target.name,
                Document.source_document_id == source.id,
                Document.active_filter(),
            )
            .order_by(Document.id.asc())
            .first()
        )
        if existing is not None:
            return existing, False

        derived = self.create_document(target.name, data, source_document_id=source.id)
        logger.info("Derived %s %s from %s", target.name, derived.display_id, source.display_id)
        return derived, True

    @staticmethod
    def _require_status(document: Document, status: str, action: str) -> None:
        if document.status != status:
            raise InvalidStatusTransition(
                f"Only {status} {document.kind} documents can {action}",
                details={"status": document.status},
            )

    def generate_invoice(self, quotation_id: int) -> tuple[Document, bool]:
        """
        Create the invoice for an accepted quotation.

        Returns (invoice, created). A quotation that already has an active
        invoice gets that invoice back instead of a second one.
        """
        quotation = self.get_document(QUOTATION.name, quotation_id, include_deleted=False)
        self._require_status(quotation, "accepted", "be invoiced")

        items, remarks = self._children_of(quotation)
        data = DocumentInput(
            display_name=quotation.display_name,
            production_date=quotation.production_date,
            notes=quotation.notes,
            items=items,
            remarks=remarks,
        )
        return self._derive_once(quotation, INVOICE, data)

    def generate_quotation(self, planning_id: int) -> tuple[Document, bool]:
        """
        Create the quotation for a final planning.

        Each planned item becomes a quotation item priced by a single detail
        row (its budget x 1), so the quotation can be itemized further.
        """
        planning = self.get_document(PLANNING.name, planning_id, include_deleted=False)
        self._require_status(planning, "final", "generate a quotation")

        items = [
            ItemInput(
                name=item.name,
                total_cents=item.total_cents,
                details=[DetailInput(unit_price_cents=item.total_cents, quantity=Decimal("1"))],
            )
            for item in planning.items
        ]
        data = DocumentInput(
            display_name=planning.display_name,
            production_date=planning.production_date,
            notes=planning.notes,
            items=items,
            remarks=[],
        )
        return self._derive_once(planning, QUOTATION, data)

    def create_expense(self, invoice_id: int) -> tuple[Document, bool]:
        """Open a draft expense for a paid invoice; an existing one is returned instead."""
        invoice = self.get_document(INVOICE.name, invoice_id, include_deleted=False)
        self._require_status(invoice, "paid", "open an expense")

        items, _ = self._children_of(invoice)
        data = DocumentInput(
            display_name=invoice.display_name,
            production_date=invoice.production_date,
            notes=invoice.notes,
            items=[replace(item, details=[]) for item in items],
            remarks=[],
        )
        return self._derive_once(invoice, EXPENSE, data)

    def finalize_ticket(self, kind: str, document_id: int, last_known_modified_at=None) -> tuple[Document, Document]:
        """
        Mark a ticket final and open a draft expense from its items.

        Both happen in one transaction; a failure leaves the ticket in draft.
        """
        kind_def = get_kind(kind)
        if kind_def.name not in TICKET_KINDS:
            raise InvalidStatusTransition(f"{kind_def.name} documents cannot be finalized as tickets")
        year = utcnow().year

        def op():
            display_id = self.issuer.allocate(EXPENSE.name, year)
            ticket = self._load_for_write(kind_def.name, document_id)
            OptimisticLockGuard.check(last_known_modified_at, ticket.modified_at)
            if ticket.status == "final":
                raise InvalidStatusTransition(f"{ticket.display_id} is already final")

            ticket.status = "final"
            flag_modified(ticket, "status")

            items, _ = self._children_of(ticket)
            data = DocumentInput(
                display_name=ticket.display_name,
                production_date=ticket.production_date,
                # Expense lines carry the ticket's item totals, not its price breakdown
                items=[replace(item, details=[]) for item in items],
                remarks=[],
            )
            expense = self._insert(EXPENSE, data, year, display_id=display_id, source_document_id=ticket.id)
            return ticket, expense

        ticket, expense = self._with_create_retry(
            f"finalize {kind_def.name} {document_id}", op, EXPENSE.name, year,
        )
        self._invalidate(ticket)
        self._invalidate(expense)
        return ticket, expense


