import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from itinerary_engine.ai.providers.openrouter import build_inference_client
from itinerary_engine.config import get_settings
from itinerary_engine.core.database import dispose_engine
from itinerary_engine.core.firebase import initialize_firebase
from itinerary_engine.core.logging import initialize_logging
from itinerary_engine.jobs.pipeline import HttpImageFetcher
from itinerary_engine.notifications.service import NotificationService
from itinerary_engine.services.tasks.factory import get_task_enqueuer
from itinerary_engine.storage.factory import build_document_store
from itinerary_engine.storage.jobs_repo import JobsRepository


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Wire logging, auth, storage and the labeling client onto app.state."""
  settings = get_settings()
  logger = logging.getLogger("itinerary_engine.core.lifespan")

  initialize_logging(settings)
  logger.info("Startup complete - logging verified.")
  initialize_firebase()

  store = build_document_store(settings)
  app.state.store = store
  app.state.jobs_repo = JobsRepository(store)
  app.state.notifier = NotificationService(store, enabled=settings.notifications_enabled)
  app.state.inference_client = build_inference_client(settings)
  app.state.image_fetcher = HttpImageFetcher(settings.image_source_base_url)
  app.state.task_enqueuer = get_task_enqueuer(settings)
  logger.info("Document store ready provider=%s", settings.document_store_provider)

  try:
    yield
  finally:
    # Let in-flight notifications land before the store goes away.
    await app.state.notifier.drain()
    if app.state.inference_client is not None:
      await app.state.inference_client.close()
    await app.state.image_fetcher.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")
