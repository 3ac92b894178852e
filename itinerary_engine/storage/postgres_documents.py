"""Postgres-backed document store using SQLAlchemy and JSONB payloads."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import BigInteger, ColumnElement, Numeric, Text, and_, cast, false, func, literal, not_, or_, select, true, update
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, array
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from itinerary_engine.core.database import get_session_factory
from itinerary_engine.schema.documents import DocumentRow
from itinerary_engine.storage.documents import ConflictError, Document, DocumentNotFoundError, DocumentStore, Where, new_document_id, next_timestamp, normalize_condition, now_iso, parse_sort, strip_reserved

_RESERVED_COLUMNS = {"id": DocumentRow.id, "createdAt": DocumentRow.created_at, "updatedAt": DocumentRow.updated_at}


def _row_to_document(row: Any) -> Document:
  return {**(row.data or {}), "id": row.id, "createdAt": row.created_at, "updatedAt": row.updated_at}


def _column_condition(column: Any, operator: str, expected: Any) -> ColumnElement[bool]:
  if operator == "equals":
    return column.is_(None) if expected is None else column == expected
  if operator == "not_equals":
    return column.isnot(None) if expected is None else column != expected
  if operator == "in":
    return column.in_(list(expected))
  if operator == "not_in":
    return column.not_in(list(expected))
  if operator == "exists":
    return column.isnot(None) if expected else column.is_(None)
  if operator == "less_than":
    return column < expected
  if operator == "less_than_equal":
    return column <= expected
  if operator == "greater_than":
    return column > expected
  if operator == "greater_than_equal":
    return column >= expected
  raise ValueError(f"Unsupported where operator: {operator}")


def _data_condition(field: str, operator: str, expected: Any) -> ColumnElement[bool]:
  text_value = DocumentRow.data[field].astext
  # Containment keeps JSON types intact (numbers, booleans, strings).
  if operator == "equals":
    return text_value.is_(None) if expected is None else DocumentRow.data.contains({field: expected})
  if operator == "not_equals":
    return text_value.isnot(None) if expected is None else not_(DocumentRow.data.contains({field: expected}))
  if operator == "in":
    values = list(expected)
    return or_(*(DocumentRow.data.contains({field: value}) for value in values)) if values else false()
  if operator == "not_in":
    values = list(expected)
    return and_(*(not_(DocumentRow.data.contains({field: value})) for value in values)) if values else true()
  if operator == "exists":
    return text_value.isnot(None) if expected else text_value.is_(None)

  # Range comparisons: numeric casts for numbers, lexical for ISO timestamps.
  is_number = isinstance(expected, int | float) and not isinstance(expected, bool)
  column = cast(text_value, Numeric) if is_number else text_value
  return _column_condition(column, operator, expected)


def build_conditions(collection: str, where: Where | None) -> list[ColumnElement[bool]]:
  """Translate a where mapping into SQLAlchemy conditions."""
  conditions: list[ColumnElement[bool]] = [DocumentRow.collection == collection]
  for field, condition in (where or {}).items():
    for operator, expected in normalize_condition(condition).items():
      if field in _RESERVED_COLUMNS:
        conditions.append(_column_condition(_RESERVED_COLUMNS[field], operator, expected))
      else:
        conditions.append(_data_condition(field, operator, expected))
  return conditions


class PostgresDocumentStore(DocumentStore):
  """Persist documents of every collection in one JSONB table."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def find_by_id(self, collection: str, document_id: str) -> Document | None:
    async with self._session_factory() as session:
      row = await session.get(DocumentRow, (document_id, collection))
      if row is None:
        return None
      return _row_to_document(row)

  async def find(self, collection: str, *, where: Where | None = None, sort: str | None = None, limit: int | None = None) -> list[Document]:
    stmt = select(DocumentRow).where(*build_conditions(collection, where))
    order = parse_sort(sort)
    if order is not None:
      field, descending = order
      key = _RESERVED_COLUMNS.get(field, DocumentRow.data[field])
      stmt = stmt.order_by(key.desc().nulls_last() if descending else key.asc().nulls_last())
    if limit is not None:
      stmt = stmt.limit(limit)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      return [_row_to_document(row) for row in result.scalars().all()]

  async def count(self, collection: str, *, where: Where | None = None) -> int:
    stmt = select(func.count()).select_from(DocumentRow).where(*build_conditions(collection, where))
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      return int(result.scalar_one())

  async def create(self, collection: str, data: Mapping[str, Any]) -> Document:
    timestamp = now_iso()
    row = DocumentRow(id=str(data.get("id") or new_document_id()), collection=collection, data=strip_reserved(data), created_at=timestamp, updated_at=timestamp)
    async with self._session_factory() as session:
      session.add(row)
      await session.commit()
      return _row_to_document(row)

  async def update(self, collection: str, document_id: str, data: Mapping[str, Any], *, expected_updated_at: str | None = None) -> Document:
    patch = strip_reserved(data)
    stmt = update(DocumentRow).where(DocumentRow.collection == collection, DocumentRow.id == document_id)
    # Optimistic concurrency: the row only changes if nobody wrote since it was read.
    if expected_updated_at is not None:
      stmt = stmt.where(DocumentRow.updated_at == expected_updated_at)
    merged = DocumentRow.data.op("||", return_type=JSONB)(literal(patch, JSONB))
    stmt = stmt.values(data=merged, updated_at=next_timestamp(expected_updated_at)).returning(DocumentRow.id, DocumentRow.data, DocumentRow.created_at, DocumentRow.updated_at)
    return await self._execute_write(collection, document_id, stmt, expected_updated_at)

  async def increment(self, collection: str, document_id: str, deltas: Mapping[str, int]) -> Document:
    expression: Any = DocumentRow.data
    # Every jsonb_set reads the pre-update row, so the whole increment is one atomic statement.
    for field, delta in deltas.items():
      current = func.coalesce(cast(DocumentRow.data[field].astext, BigInteger), 0)
      expression = func.jsonb_set(expression, cast(array([field]), ARRAY(Text)), func.to_jsonb(current + int(delta)), True, type_=JSONB)
    stmt = (
      update(DocumentRow)
      .where(DocumentRow.collection == collection, DocumentRow.id == document_id)
      .values(data=expression, updated_at=now_iso())
      .returning(DocumentRow.id, DocumentRow.data, DocumentRow.created_at, DocumentRow.updated_at)
    )
    return await self._execute_write(collection, document_id, stmt, None)

  async def _execute_write(self, collection: str, document_id: str, stmt: Any, expected_updated_at: str | None) -> Document:
    async with self._session_factory() as session:
      result = await session.execute(stmt.execution_options(synchronize_session=False))
      row = result.first()
      await session.commit()
      if row is not None:
        return _row_to_document(row)
      existing = await session.get(DocumentRow, (document_id, collection))
      if existing is None:
        raise DocumentNotFoundError(collection, document_id)
      raise ConflictError(collection, document_id, str(expected_updated_at), existing.updated_at)
