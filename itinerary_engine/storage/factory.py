"""Document store selection based on settings."""

from __future__ import annotations

from itinerary_engine.config import Settings
from itinerary_engine.storage.documents import DocumentStore


def build_document_store(settings: Settings) -> DocumentStore:
  """Return the configured document store implementation."""
  provider = settings.document_store_provider
  if provider == "memory":
    from itinerary_engine.storage.memory import InMemoryDocumentStore

    return InMemoryDocumentStore()
  if provider == "postgres":
    from itinerary_engine.storage.postgres_documents import PostgresDocumentStore

    return PostgresDocumentStore()
  raise ValueError(f"Unsupported document store provider '{provider}'.")
