"""In-memory document store used for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping
from typing import Any

from itinerary_engine.storage.documents import ConflictError, Document, DocumentNotFoundError, DocumentStore, Where, new_document_id, next_timestamp, normalize_condition, now_iso, parse_sort, strip_reserved


def _compare(value: Any, operator: str, expected: Any) -> bool:
  if operator == "equals":
    return value == expected
  if operator == "not_equals":
    return value != expected
  if operator == "in":
    return value in expected
  if operator == "not_in":
    return value not in expected
  if operator == "exists":
    return (value is not None) == bool(expected)
  if value is None or expected is None:
    return False
  try:
    if operator == "less_than":
      return value < expected
    if operator == "less_than_equal":
      return value <= expected
    if operator == "greater_than":
      return value > expected
    if operator == "greater_than_equal":
      return value >= expected
  except TypeError:
    return False
  raise ValueError(f"Unsupported where operator: {operator}")


def matches(document: Mapping[str, Any], where: Where | None) -> bool:
  """Return True when a document satisfies every condition."""
  if not where:
    return True
  for field, condition in where.items():
    value = document.get(field)
    for operator, expected in normalize_condition(condition).items():
      if not _compare(value, operator, expected):
        return False
  return True


class InMemoryDocumentStore(DocumentStore):
  """Dictionary-backed store with the same semantics as the Postgres store."""

  def __init__(self) -> None:
    self._collections: dict[str, dict[str, Document]] = {}
    self._lock = asyncio.Lock()

  def _collection(self, name: str) -> dict[str, Document]:
    return self._collections.setdefault(name, {})

  async def find_by_id(self, collection: str, document_id: str) -> Document | None:
    document = self._collection(collection).get(document_id)
    return copy.deepcopy(document) if document is not None else None

  async def find(self, collection: str, *, where: Where | None = None, sort: str | None = None, limit: int | None = None) -> list[Document]:
    documents = [doc for doc in self._collection(collection).values() if matches(doc, where)]
    order = parse_sort(sort)
    if order is not None:
      field, descending = order
      present = [doc for doc in documents if doc.get(field) is not None]
      missing = [doc for doc in documents if doc.get(field) is None]
      present.sort(key=lambda doc: doc[field], reverse=descending)
      # Nulls sort last in both directions, matching Postgres NULLS LAST.
      documents = present + missing
    if limit is not None:
      documents = documents[:limit]
    return [copy.deepcopy(doc) for doc in documents]

  async def count(self, collection: str, *, where: Where | None = None) -> int:
    return sum(1 for doc in self._collection(collection).values() if matches(doc, where))

  async def create(self, collection: str, data: Mapping[str, Any]) -> Document:
    async with self._lock:
      timestamp = now_iso()
      document_id = str(data.get("id") or new_document_id())
      document = {**copy.deepcopy(strip_reserved(data)), "id": document_id, "createdAt": timestamp, "updatedAt": timestamp}
      self._collection(collection)[document_id] = document
      return copy.deepcopy(document)

  async def update(self, collection: str, document_id: str, data: Mapping[str, Any], *, expected_updated_at: str | None = None) -> Document:
    async with self._lock:
      current = self._collection(collection).get(document_id)
      if current is None:
        raise DocumentNotFoundError(collection, document_id)
      if expected_updated_at is not None and current.get("updatedAt") != expected_updated_at:
        raise ConflictError(collection, document_id, expected_updated_at, current.get("updatedAt"))
      current.update(copy.deepcopy(strip_reserved(data)))
      current["updatedAt"] = next_timestamp(current.get("updatedAt"))
      return copy.deepcopy(current)

  async def increment(self, collection: str, document_id: str, deltas: Mapping[str, int]) -> Document:
    async with self._lock:
      current = self._collection(collection).get(document_id)
      if current is None:
        raise DocumentNotFoundError(collection, document_id)
      for field, delta in deltas.items():
        current[field] = int(current.get(field) or 0) + int(delta)
      current["updatedAt"] = next_timestamp(current.get("updatedAt"))
      return copy.deepcopy(current)
