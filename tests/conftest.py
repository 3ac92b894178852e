"""Shared fixtures: in-memory storage, a jobs repository and an HTTP client over the app."""

from __future__ import annotations

import os

# Settings are cached per process, so the test environment must be in place before any import.
os.environ.setdefault("ITINERARY_DOCUMENT_STORE", "memory")
os.environ.setdefault("ITINERARY_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("SCRAPER_API_KEY", "scraper-test-key")
os.environ.setdefault("PAYLOAD_API_KEY", "payload-test-key")
os.environ.setdefault("ITINERARY_TASK_SECRET", "task-test-secret")
os.environ.setdefault("ITINERARY_NOTIFICATIONS_ENABLED", "true")
os.environ.pop("OPENROUTER_API_KEY", None)
os.environ.pop("ITINERARY_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from itinerary_engine.api.deps import get_image_pipeline, get_jobs_repo, get_notifier, get_store, get_task_enqueuer  # noqa: E402
from itinerary_engine.jobs.models import ImageStatusRecord  # noqa: E402
from itinerary_engine.jobs.pipeline import ImagePipeline  # noqa: E402
from itinerary_engine.jobs.progress import JobProgressTracker  # noqa: E402
from itinerary_engine.main import app  # noqa: E402
from itinerary_engine.notifications.service import NotificationService  # noqa: E402
from itinerary_engine.storage.jobs_repo import JobsRepository  # noqa: E402
from itinerary_engine.storage.memory import InMemoryDocumentStore  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def store() -> InMemoryDocumentStore:
  return InMemoryDocumentStore()


@pytest.fixture
def jobs_repo(store: InMemoryDocumentStore) -> JobsRepository:
  return JobsRepository(store)


@pytest.fixture
def notifier(store: InMemoryDocumentStore) -> NotificationService:
  return NotificationService(store)


class RecordingEnqueuer:
  """Task enqueuer double that remembers what was dispatched."""

  def __init__(self) -> None:
    self.calls: list[tuple[str, dict]] = []

  async def enqueue(self, job_id: str, payload: dict) -> None:
    self.calls.append((job_id, payload))


class StaticFetcher:
  """Image fetcher double returning fixed bytes, or raising for selected keys."""

  def __init__(self, failures: dict[str, Exception] | None = None) -> None:
    self.failures = failures or {}
    self.fetched: list[str] = []

  async def fetch(self, source_key: str) -> bytes:
    self.fetched.append(source_key)
    if source_key in self.failures:
      raise self.failures[source_key]
    return b"\xff\xd8\xff-image-" + source_key.encode()


@pytest.fixture
def make_job(jobs_repo: JobsRepository):
  """Factory fixture: `await make_job(source_keys=(...), **fields)` returns the new job id."""

  async def _make(*, source_keys: tuple[str, ...] = (), **fields: object) -> str:
    return await seed_job(jobs_repo, source_keys=source_keys, **fields)

  return _make


@pytest.fixture
def enqueuer() -> RecordingEnqueuer:
  return RecordingEnqueuer()


@pytest.fixture
def fetcher() -> StaticFetcher:
  return StaticFetcher()


async def seed_job(jobs_repo: JobsRepository, *, source_keys: tuple[str, ...] = (), **fields: object) -> str:
  """Create a job with one pending image status per source key."""
  job = await jobs_repo.create_job({"itineraryTitle": "Serengeti Migration Safari", "itrvlUrl": "https://itrvl.com/client/portal/abc/123", **fields})
  if source_keys:
    entries = (ImageStatusRecord(id="", job_id=job.id, source_key=source_key, property_name="Singita Grumeti", country="Tanzania", segment_type="stay", day_index=1) for source_key in source_keys)
    await JobProgressTracker(job_id=job.id, jobs_repo=jobs_repo).register_images(entries)
  return job.id


@pytest.fixture
async def async_client(store: InMemoryDocumentStore, jobs_repo: JobsRepository, notifier: NotificationService, enqueuer: RecordingEnqueuer, fetcher: StaticFetcher):
  app.dependency_overrides[get_store] = lambda: store
  app.dependency_overrides[get_jobs_repo] = lambda: jobs_repo
  app.dependency_overrides[get_notifier] = lambda: notifier
  app.dependency_overrides[get_task_enqueuer] = lambda: enqueuer
  app.dependency_overrides[get_image_pipeline] = lambda: ImagePipeline(jobs_repo=jobs_repo, store=store, fetcher=fetcher, inference_client=None, notifier=notifier)
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
  await notifier.drain()
