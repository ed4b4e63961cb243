"""Initial schema: documents, items, details, remarks and display-id counters

Revision ID: b1c2d3e4f5a6
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b1c2d3e4f5a6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("display_id", sa.String(length=20), nullable=False),
        sa.Column("issued_year", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("production_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("total_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("source_document_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("modified_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["source_document_id"], ["documents.id"]),
        sa.UniqueConstraint("display_id", name="uq_documents_display_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_documents_kind", "documents", ["kind"], unique=False)
    op.create_index("ix_documents_status", "documents", ["status"], unique=False)
    op.create_index("ix_documents_source_document_id", "documents", ["source_document_id"], unique=False)
    op.create_index("ix_documents_kind_deleted_name", "documents", ["kind", "deleted_at", "display_name"], unique=False)
    op.create_index("ix_documents_kind_year_status", "documents", ["kind", "issued_year", "status"], unique=False)

    op.create_table(
        "document_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_items_document_id", "document_items", ["document_id"], unique=False)

    op.create_table(
        "item_details",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("unit_price_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("quantity", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["item_id"], ["document_items.id"], ondelete="CASCADE"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_item_details_item_id", "item_details", ["item_id"], unique=False)

    op.create_table(
        "document_remarks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False, server_default=""),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_remarks_document_id", "document_remarks", ["document_id"], unique=False)

    # Display-id counters
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("prefix", sa.String(length=8), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("prefix", "year", name="uq_doc_sequences_prefix_year"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("document_sequences")

    op.drop_index("ix_document_remarks_document_id", table_name="document_remarks")
    op.drop_table("document_remarks")

    op.drop_index("ix_item_details_item_id", table_name="item_details")
    op.drop_table("item_details")

    op.drop_index("ix_document_items_document_id", table_name="document_items")
    op.drop_table("document_items")

    op.drop_index("ix_documents_kind_year_status", table_name="documents")
    op.drop_index("ix_documents_kind_deleted_name", table_name="documents")
    op.drop_index("ix_documents_source_document_id", table_name="documents")
    op.drop_index("ix_documents_status", table_name="documents")
    op.drop_index("ix_documents_kind", table_name="documents")
    op.drop_table("documents")
