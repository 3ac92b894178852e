"""Create the documents table.

Revision ID: 7c1e2d9a4b10
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "7c1e2d9a4b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "documents",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("collection", sa.String(), nullable=False),
    sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("created_at", sa.String(), nullable=False),
    sa.Column("updated_at", sa.String(), nullable=False),
    sa.PrimaryKeyConstraint("id", "collection"),
  )
  op.create_index(op.f("ix_documents_collection"), "documents", ["collection"], unique=False)
  op.create_index("ix_documents_collection_updated_at", "documents", ["collection", "updated_at"], unique=False)
  op.create_index("ix_documents_data_gin", "documents", ["data"], unique=False, postgresql_using="gin")


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_documents_data_gin", table_name="documents")
  op.drop_index("ix_documents_collection_updated_at", table_name="documents")
  op.drop_index(op.f("ix_documents_collection"), table_name="documents")
  op.drop_table("documents")
