from __future__ import annotations

import pytest

from itinerary_engine.notifications.contracts import NOTIFICATIONS_COLLECTION, NotificationEvent
from itinerary_engine.notifications.service import NotificationService
from itinerary_engine.storage.memory import InMemoryDocumentStore


class BrokenStore(InMemoryDocumentStore):
  async def create(self, collection, data):
    raise ConnectionError("database unavailable")


@pytest.mark.anyio
async def test_notifications_are_persisted_in_background(store) -> None:
  service = NotificationService(store)

  service.notify_job_completed("job-1", "it-9", "Serengeti Migration Safari")
  service.notify_images_processed("job-1", processed=8, failed=2)
  await service.drain()

  documents = await store.find(NOTIFICATIONS_COLLECTION, sort="createdAt")
  assert [doc["type"] for doc in documents] == ["success", "warning"]
  assert documents[0]["message"] == "Completed: Serengeti Migration Safari is ready for review"
  assert documents[0]["itinerary"] == "it-9"
  assert documents[0]["read"] is False
  assert documents[1]["message"] == "Image processing complete: 8 processed, 2 failed"


@pytest.mark.anyio
async def test_delivery_failure_never_reaches_the_caller() -> None:
  service = NotificationService(BrokenStore())

  service.notify_job_failed("job-1", "Scrape timed out")
  await service.drain()


@pytest.mark.anyio
async def test_disabled_service_drops_events(store) -> None:
  service = NotificationService(store, enabled=False)

  service.dispatch(NotificationEvent(type="info", message="Started processing: job-1", job_id="job-1"))
  await service.drain()

  assert await store.count(NOTIFICATIONS_COLLECTION) == 0


def test_dispatch_without_running_loop_is_dropped(store) -> None:
  NotificationService(store).notify_job_started("job-1", None)


def test_event_document_omits_empty_relations() -> None:
  assert NotificationEvent(type="info", message="hello").to_document() == {"type": "info", "message": "hello", "read": False}
