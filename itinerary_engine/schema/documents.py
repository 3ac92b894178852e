from __future__ import annotations

from sqlalchemy import Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from itinerary_engine.core.database import Base


class DocumentRow(Base):
  """One document of any collection; fields live in the JSONB payload."""

  __tablename__ = "documents"
  __table_args__ = (Index("ix_documents_collection_updated_at", "collection", "updated_at"), Index("ix_documents_data_gin", "data", postgresql_using="gin"))

  id: Mapped[str] = mapped_column(String, primary_key=True)
  collection: Mapped[str] = mapped_column(String, primary_key=True, index=True)
  data: Mapped[dict] = mapped_column(JSONB, nullable=False)
  created_at: Mapped[str] = mapped_column(String, nullable=False)
  updated_at: Mapped[str] = mapped_column(String, nullable=False)
