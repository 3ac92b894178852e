"""Shared FastAPI dependencies resolving the services wired in the lifespan."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from itinerary_engine.ai.providers.openrouter import OpenRouterClient
from itinerary_engine.config import Settings, get_settings
from itinerary_engine.jobs.pipeline import ImageFetcher, ImagePipeline
from itinerary_engine.notifications.service import NotificationService
from itinerary_engine.services.tasks.interface import TaskEnqueuer
from itinerary_engine.storage.documents import DocumentStore
from itinerary_engine.storage.jobs_repo import JobsRepository


def get_store(request: Request) -> DocumentStore:
  return request.app.state.store


def get_jobs_repo(request: Request) -> JobsRepository:
  return request.app.state.jobs_repo


def get_notifier(request: Request) -> NotificationService:
  return request.app.state.notifier


def get_task_enqueuer(request: Request) -> TaskEnqueuer:
  return request.app.state.task_enqueuer


def get_inference_client(request: Request) -> OpenRouterClient | None:
  return request.app.state.inference_client


def get_image_fetcher(request: Request) -> ImageFetcher:
  return request.app.state.image_fetcher


def get_image_pipeline(
  settings: Annotated[Settings, Depends(get_settings)],
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
  store: Annotated[DocumentStore, Depends(get_store)],
  fetcher: Annotated[ImageFetcher, Depends(get_image_fetcher)],
  inference_client: Annotated[OpenRouterClient | None, Depends(get_inference_client)],
  notifier: Annotated[NotificationService, Depends(get_notifier)],
) -> ImagePipeline:
  """Build a pipeline run bound to the shared clients."""
  return ImagePipeline(jobs_repo=jobs_repo, store=store, fetcher=fetcher, inference_client=inference_client, notifier=notifier, concurrency=settings.labeling_concurrency)
