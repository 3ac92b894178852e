"""Typed job and image-status persistence on top of a DocumentStore."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from itinerary_engine.jobs.models import IMAGE_STATUSES_COLLECTION, JOBS_COLLECTION, ImageStatusRecord, JobRecord
from itinerary_engine.storage.documents import DocumentStore, Where


class JobsRepository:
  """Repository for itinerary jobs and the image statuses they own."""

  def __init__(self, store: DocumentStore) -> None:
    self.store = store

  async def create_job(self, data: Mapping[str, Any]) -> JobRecord:
    document = {"status": "pending", "progress": 0, "totalImages": 0, "processedImages": 0, "skippedImages": 0, "failedImages": 0, "imagesLabeled": 0, **data}
    return JobRecord.from_document(await self.store.create(JOBS_COLLECTION, document))

  async def get_job(self, job_id: str) -> JobRecord | None:
    document = await self.store.find_by_id(JOBS_COLLECTION, job_id)
    return JobRecord.from_document(document) if document is not None else None

  async def update_job(self, job_id: str, fields: Mapping[str, Any], *, expected_updated_at: str | None = None) -> JobRecord:
    """Apply a partial update; only the given camelCase fields change."""
    document = await self.store.update(JOBS_COLLECTION, job_id, fields, expected_updated_at=expected_updated_at)
    return JobRecord.from_document(document)

  async def increment_counters(self, job_id: str, deltas: Mapping[str, int]) -> JobRecord:
    document = await self.store.increment(JOBS_COLLECTION, job_id, deltas)
    return JobRecord.from_document(document)

  async def find_jobs(self, *, where: Where | None = None, sort: str | None = None, limit: int | None = None) -> list[JobRecord]:
    documents = await self.store.find(JOBS_COLLECTION, where=where, sort=sort, limit=limit)
    return [JobRecord.from_document(document) for document in documents]

  async def count_jobs(self, *, where: Where | None = None) -> int:
    return await self.store.count(JOBS_COLLECTION, where=where)

  async def create_image_status(self, record: ImageStatusRecord) -> ImageStatusRecord:
    document = await self.store.create(IMAGE_STATUSES_COLLECTION, record.to_document())
    return ImageStatusRecord.from_document(document)

  async def list_image_statuses(self, job_id: str, *, status: str | None = None) -> list[ImageStatusRecord]:
    where: dict[str, Any] = {"job": {"equals": job_id}}
    if status is not None:
      where["status"] = {"equals": status}
    documents = await self.store.find(IMAGE_STATUSES_COLLECTION, where=where, sort="createdAt")
    return [ImageStatusRecord.from_document(document) for document in documents]

  async def get_image_status(self, status_id: str) -> ImageStatusRecord | None:
    document = await self.store.find_by_id(IMAGE_STATUSES_COLLECTION, status_id)
    return ImageStatusRecord.from_document(document) if document is not None else None

  async def update_image_status(self, status_id: str, fields: Mapping[str, Any], *, expected_updated_at: str | None = None) -> ImageStatusRecord:
    document = await self.store.update(IMAGE_STATUSES_COLLECTION, status_id, fields, expected_updated_at=expected_updated_at)
    return ImageStatusRecord.from_document(document)
