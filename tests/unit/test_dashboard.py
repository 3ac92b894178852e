from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest

from itinerary_engine.services.dashboard import CONTENT_PROJECTS_COLLECTION, EDITORIAL_DIRECTIVES_COLLECTION, BatchActionError, add_months, apply_batch_action, next_stage
from itinerary_engine.storage.documents import DocumentNotFoundError

NOW = datetime(2026, 8, 31, 9, 30, tzinfo=UTC)


async def _project(store, **fields) -> str:
  return (await store.create(CONTENT_PROJECTS_COLLECTION, fields))["id"]


@pytest.mark.parametrize(
  ("stage", "content_type", "expected"),
  [
    ("idea", "itinerary_cluster", "brief"),
    ("research", "authority", "draft"),
    ("review", "authority", "published"),
    ("idea", "destination_page", "draft"),
    ("draft", "property_page", "review"),
    ("published", "authority", None),
    ("rejected", "authority", None),
    (None, None, None),
  ],
)
def test_next_stage(stage, content_type, expected) -> None:
  assert next_stage(stage, content_type) == expected


def test_add_months_clamps_day() -> None:
  assert add_months(datetime(2026, 8, 31, tzinfo=UTC), 6) == datetime(2027, 2, 28, tzinfo=UTC)
  assert add_months(datetime(2026, 1, 15, tzinfo=UTC), 6) == datetime(2026, 7, 15, tzinfo=UTC)


@pytest.mark.anyio
async def test_advance_moves_each_project_one_stage(store) -> None:
  article = await _project(store, stage="review", contentType="authority")
  page = await _project(store, stage="idea", contentType="destination_page")
  done = await _project(store, stage="published", contentType="authority")

  result = await apply_batch_action(store, "advance", [article, page, done], now=NOW)

  assert result == {"success": True, "updated": 2}
  published = await store.find_by_id(CONTENT_PROJECTS_COLLECTION, article)
  assert published["stage"] == "published"
  assert published["publishedAt"] == "2026-08-31T09:30:00.000000Z"
  assert (await store.find_by_id(CONTENT_PROJECTS_COLLECTION, page))["stage"] == "draft"


@pytest.mark.anyio
async def test_reject_with_directive(store) -> None:
  project = await _project(store, stage="idea", contentType="authority")

  result = await apply_batch_action(store, "reject", [project], reason="No cruise content", create_directive=True, now=NOW)

  assert result["updated"] == 1
  rejected = await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project)
  assert (rejected["stage"], rejected["filterReason"]) == ("rejected", "No cruise content")
  [directive] = await store.find(EDITORIAL_DIRECTIVES_COLLECTION)
  assert directive["text"] == "No cruise content"
  assert directive["active"] is True
  assert directive["reviewAfter"] == "2027-02-28T09:30:00.000000Z"


@pytest.mark.anyio
async def test_reject_without_reason_uses_default_and_skips_directive(store) -> None:
  project = await _project(store, stage="draft", contentType="authority")

  await apply_batch_action(store, "reject", [project], create_directive=True, now=NOW)

  assert (await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project))["filterReason"] == "Rejected via dashboard"
  assert await store.count(EDITORIAL_DIRECTIVES_COLLECTION) == 0


@pytest.mark.anyio
async def test_retry_clears_processing_error(store) -> None:
  project = await _project(store, stage="draft", processingStatus="failed", processingError="timeout")

  await apply_batch_action(store, "retry", [project])

  stored = await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project)
  assert (stored["processingStatus"], stored["processingError"]) == ("idle", None)


@pytest.mark.anyio
@pytest.mark.parametrize(("action", "ids", "message"), [(None, ["p1"], "action and projectIds[] are required"), ("advance", [], "action and projectIds[] are required"), ("archive", ["p1"], "Unknown action: archive")])
async def test_invalid_requests(store, action, ids, message) -> None:
  with pytest.raises(BatchActionError, match=re.escape(message)):
    await apply_batch_action(store, action, ids)


@pytest.mark.anyio
async def test_unknown_project(store) -> None:
  with pytest.raises(DocumentNotFoundError):
    await apply_batch_action(store, "advance", ["missing"])


@pytest.mark.anyio
@pytest.mark.parametrize("action", ["advance", "reject", "retry"])
async def test_unknown_project_fails_the_batch_before_any_write(store, action) -> None:
  project = await _project(store, stage="idea", contentType="authority", processingStatus="failed")

  with pytest.raises(DocumentNotFoundError):
    await apply_batch_action(store, action, [project, "missing"], reason="Off brand", create_directive=True, now=NOW)

  stored = await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project)
  assert (stored["stage"], stored["processingStatus"]) == ("idea", "failed")
  assert await store.count(EDITORIAL_DIRECTIVES_COLLECTION) == 0
