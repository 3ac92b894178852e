from __future__ import annotations

import pytest

from itinerary_engine.storage.documents import ConflictError, DocumentNotFoundError, normalize_condition, parse_sort


@pytest.mark.anyio
async def test_create_assigns_id_and_timestamps(store) -> None:
  document = await store.create("media", {"id": "media-lion-1", "createdAt": "x", "alt": "Lion"})

  assert document["id"] == "media-lion-1"
  assert document["createdAt"] == document["updatedAt"] != "x"
  assert document["alt"] == "Lion"


@pytest.mark.anyio
async def test_where_operators(store) -> None:
  for status, progress in (("pending", 0), ("processing", 40), ("completed", 100), ("running", 70)):
    await store.create("jobs", {"status": status, "progress": progress})

  assert await store.count("jobs", where={"status": {"in": ["processing", "running"]}}) == 2
  assert await store.count("jobs", where={"status": {"not_equals": "pending"}}) == 3
  assert await store.count("jobs", where={"progress": {"greater_than_equal": 70}}) == 2
  assert await store.count("jobs", where={"progress": {"less_than": 40}}) == 1
  assert await store.count("jobs", where={"status": "completed"}) == 1
  assert await store.count("jobs", where={"error": {"exists": False}}) == 4

  with pytest.raises(ValueError):
    await store.count("jobs", where={"status": {"like": "%pen%"}})


@pytest.mark.anyio
async def test_sort_puts_missing_values_last(store) -> None:
  await store.create("jobs", {"name": "a", "completedAt": "2026-01-02T00:00:00.000000Z"})
  await store.create("jobs", {"name": "b"})
  await store.create("jobs", {"name": "c", "completedAt": "2026-01-03T00:00:00.000000Z"})

  descending = await store.find("jobs", sort="-completedAt")
  ascending = await store.find("jobs", sort="completedAt", limit=2)

  assert [doc["name"] for doc in descending] == ["c", "a", "b"]
  assert [doc["name"] for doc in ascending] == ["a", "c"]


@pytest.mark.anyio
async def test_update_merges_and_advances_updated_at(store) -> None:
  created = await store.create("itineraries", {"title": "Draft", "nights": 7})

  first = await store.update("itineraries", created["id"], {"title": "Final"})
  second = await store.update("itineraries", created["id"], {"nights": 8})

  assert second["title"] == "Final"
  assert second["nights"] == 8
  assert created["updatedAt"] < first["updatedAt"] < second["updatedAt"]


@pytest.mark.anyio
async def test_stale_expected_updated_at_conflicts(store) -> None:
  created = await store.create("itineraries", {"title": "Draft"})
  await store.update("itineraries", created["id"], {"title": "Edited elsewhere"})

  with pytest.raises(ConflictError) as excinfo:
    await store.update("itineraries", created["id"], {"title": "Mine"}, expected_updated_at=created["updatedAt"])

  assert excinfo.value.expected == created["updatedAt"]
  assert (await store.find_by_id("itineraries", created["id"]))["title"] == "Edited elsewhere"


@pytest.mark.anyio
async def test_increment_and_missing_documents(store) -> None:
  created = await store.create("jobs", {"processedImages": 2})

  updated = await store.increment("jobs", created["id"], {"processedImages": 1, "failedImages": 1})

  assert (updated["processedImages"], updated["failedImages"]) == (3, 1)
  with pytest.raises(DocumentNotFoundError):
    await store.increment("jobs", "missing", {"processedImages": 1})
  with pytest.raises(DocumentNotFoundError):
    await store.update("jobs", "missing", {"status": "failed"})
  assert await store.find_by_id("jobs", "missing") is None


@pytest.mark.anyio
async def test_returned_documents_are_copies(store) -> None:
  created = await store.create("media", {"tags": ["safari"]})
  created["tags"].append("mutated")

  assert (await store.find_by_id("media", created["id"]))["tags"] == ["safari"]


def test_condition_and_sort_helpers() -> None:
  assert normalize_condition("pending") == {"equals": "pending"}
  assert parse_sort("-updatedAt") == ("updatedAt", True)
  assert parse_sort("createdAt") == ("createdAt", False)
  assert parse_sort(None) is None
