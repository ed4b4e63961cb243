from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from ..extensions import db
from backoffice.time_utils import next_version_timestamp, to_utc_z, to_version_token


@dataclass(frozen=True)
class Active:
    """Document is live: listed by default and counted for name uniqueness."""


@dataclass(frozen=True)
class Deleted:
    """Document was soft-deleted at `at`; restorable."""
    at: datetime


Lifecycle = Union[Active, Deleted]
ACTIVE = Active()


class Document(db.Model):
    """
    Top-level business document (quotation, invoice, expense, planning, tickets).

    WHY: All kinds share the same identity and child-collection shape, so they
    share one table discriminated by `kind`.

    VERSIONING:
    `modified_at` is both the "last changed" timestamp shown to users and the
    optimistic-lock version token. It is mapped as the SQLAlchemy version
    column, so every UPDATE of this row is issued as
    `... WHERE id = :id AND modified_at = :version_read` and a concurrent
    writer that committed first makes the flush fail with StaleDataError.
    Touching only child rows does not bump it; the document service always
    marks the parent dirty when it reconciles children.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("display_id", name="uq_documents_display_id"),
        # Name resolution looks up active rows of one kind by name
        db.Index("ix_documents_kind_deleted_name", "kind", "deleted_at", "display_name"),
        # Listings and dashboard aggregates are per kind and year
        db.Index("ix_documents_kind_year_status", "kind", "issued_year", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, index=True)

    # Human-readable business identifier (e.g., "QTN-2025-0007")
    display_id = db.Column(db.String(20), nullable=False)
    issued_year = db.Column(db.Integer, nullable=False)

    display_name = db.Column(db.String(255), nullable=False, default="")
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    production_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Document this one was copied or generated from
    source_document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    modified_at = db.Column(db.DateTime, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "DocumentItem",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentItem.order_index",
    )
    remarks = db.relationship(
        "DocumentRemark",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentRemark.order_index",
    )
    source_document = db.relationship("Document", remote_side=[id])

    __mapper_args__ = {
        "version_id_col": modified_at,
        "version_id_generator": next_version_timestamp,
    }

    @property
    def lifecycle(self) -> Lifecycle:
        if self.deleted_at is None:
            return ACTIVE
        return Deleted(at=self.deleted_at)

    @property
    def is_active(self) -> bool:
        return isinstance(self.lifecycle, Active)

    @classmethod
    def active_filter(cls):
        return cls.deleted_at.is_(None)

    def to_summary_dict(self) -> dict:
        lifecycle = self.lifecycle
        return {
            "id": self.id,
            "kind": self.kind,
            "display_id": self.display_id,
            "issued_year": self.issued_year,
            "display_name": self.display_name,
            "status": self.status,
            "production_date": self.production_date.isoformat() if self.production_date else None,
            "total_cents": self.total_cents,
            "source_document_id": self.source_document_id,
            "created_at": to_utc_z(self.created_at),
            "modified_at": to_version_token(self.modified_at),
            "lifecycle": "deleted" if isinstance(lifecycle, Deleted) else "active",
            "deleted_at": to_utc_z(lifecycle.at) if isinstance(lifecycle, Deleted) else None,
        }

    def to_dict(self) -> dict:
        data = self.to_summary_dict()
        data["notes"] = self.notes
        data["items"] = [item.to_dict() for item in self.items]
        data["remarks"] = [remark.to_dict() for remark in self.remarks]
        return data


class DocumentItem(db.Model):
    """Line item on a document; owns its detail rows."""
    __tablename__ = "document_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False, default="")
    order_index = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    document = db.relationship("Document", back_populates="items")
    details = db.relationship(
        "ItemDetail",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="ItemDetail.order_index",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "name": self.name,
            "order_index": self.order_index,
            "total_cents": self.total_cents,
            "details": [detail.to_dict() for detail in self.details],
        }


class ItemDetail(db.Model):
    """Priced detail row under an item (description x unit price x quantity)."""
    __tablename__ = "item_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer, db.ForeignKey("document_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description = db.Column(db.Text, nullable=False, default="")
    unit_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    order_index = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("DocumentItem", back_populates="details")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "amount_cents": self.amount_cents,
            "order_index": self.order_index,
        }


class DocumentRemark(db.Model):
    """Ordered checklist remark on a document."""
    __tablename__ = "document_remarks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    text = db.Column(db.Text, nullable=False, default="")
    completed = db.Column(db.Boolean, nullable=False, default=False)
    order_index = db.Column(db.Integer, nullable=False, default=0)

    document = db.relationship("Document", back_populates="remarks")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "text": self.text,
            "completed": self.completed,
            "order_index": self.order_index,
        }
