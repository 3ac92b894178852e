"""Document store contract shared by the Postgres and in-memory backends."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

Document = dict[str, Any]
Where = Mapping[str, Any]

OPERATORS = frozenset({"equals", "not_equals", "in", "not_in", "less_than", "less_than_equal", "greater_than", "greater_than_equal", "exists"})
RESERVED_FIELDS = frozenset({"id", "createdAt", "updatedAt"})


class DocumentNotFoundError(LookupError):
  """Raised when a document id does not exist in a collection."""

  def __init__(self, collection: str, document_id: str) -> None:
    super().__init__(f"{collection} document {document_id} not found")
    self.collection = collection
    self.document_id = document_id


class ConflictError(RuntimeError):
  """Raised when an optimistic update sees a different updatedAt than expected."""

  def __init__(self, collection: str, document_id: str, expected: str, actual: str | None) -> None:
    super().__init__(f"{collection} document {document_id} was modified concurrently (expected updatedAt {expected}, found {actual})")
    self.collection = collection
    self.document_id = document_id
    self.expected = expected
    self.actual = actual


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def format_timestamp(value: datetime) -> str:
  return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def now_iso() -> str:
  """Return a UTC timestamp with microseconds so successive writes order correctly."""
  return format_timestamp(datetime.now(UTC))


def next_timestamp(previous: str | None) -> str:
  """Return now, nudged forward so it always sorts after `previous`."""
  current = now_iso()
  previous_at = parse_timestamp(previous)
  if previous is None or previous_at is None or current > previous:
    return current
  return format_timestamp(previous_at + timedelta(microseconds=1))


def new_document_id() -> str:
  return uuid.uuid4().hex


def parse_timestamp(value: str | None) -> datetime | None:
  """Parse ISO timestamps written by the stores or by upstream services."""
  if not value:
    return None
  try:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
  except ValueError:
    return None
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=UTC)
  return parsed


def normalize_condition(condition: Any) -> dict[str, Any]:
  """Expand `{field: value}` shorthand into `{"equals": value}` and validate operators."""
  if not isinstance(condition, Mapping):
    return {"equals": condition}
  unknown = set(condition) - OPERATORS
  if unknown:
    raise ValueError(f"Unsupported where operator(s): {', '.join(sorted(unknown))}")
  return dict(condition)


def parse_sort(sort: str | None) -> tuple[str, bool] | None:
  """Return (field, descending) for a `field` / `-field` sort spec."""
  if not sort:
    return None
  if sort.startswith("-"):
    return sort[1:], True
  return sort, False


def strip_reserved(data: Mapping[str, Any]) -> dict[str, Any]:
  return {key: value for key, value in data.items() if key not in RESERVED_FIELDS}


class DocumentStore(Protocol):
  """Repository contract for schemaless collection documents."""

  async def find_by_id(self, collection: str, document_id: str) -> Document | None:
    """Fetch a document by identifier."""

  async def find(self, collection: str, *, where: Where | None = None, sort: str | None = None, limit: int | None = None) -> list[Document]:
    """Return documents matching every condition in `where`."""

  async def count(self, collection: str, *, where: Where | None = None) -> int:
    """Count documents matching `where`."""

  async def create(self, collection: str, data: Mapping[str, Any]) -> Document:
    """Insert a document, assigning id and timestamps."""

  async def update(self, collection: str, document_id: str, data: Mapping[str, Any], *, expected_updated_at: str | None = None) -> Document:
    """Merge top-level fields into a document.

    When `expected_updated_at` is given the write only applies if the stored
    `updatedAt` still matches; otherwise ConflictError is raised.
    """

  async def increment(self, collection: str, document_id: str, deltas: Mapping[str, int]) -> Document:
    """Atomically add deltas to numeric fields (missing fields count as 0)."""
