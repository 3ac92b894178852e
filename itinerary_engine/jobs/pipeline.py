"""Per-job image pipeline: fetch, label, store media and track progress."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from itinerary_engine.jobs.models import ImageStatusRecord, JobRecord
from itinerary_engine.jobs.progress import JobProgressTracker, JobStateError, error_message
from itinerary_engine.labeling.labeler import ImageLabels, LabelingContext, VisionClient, label_image
from itinerary_engine.notifications.service import NotificationService
from itinerary_engine.publishing.checklist import build_pipeline_checklist
from itinerary_engine.publishing.models import ITINERARIES_COLLECTION
from itinerary_engine.storage.documents import ConflictError, DocumentStore, now_iso
from itinerary_engine.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

MEDIA_COLLECTION = "media"
LABELING_PHASE = "labeling"


class ImageFetcher(Protocol):
  async def fetch(self, source_key: str) -> bytes: ...


class HttpImageFetcher:
  """Download source images from the media CDN."""

  def __init__(self, base_url: str, *, client: httpx.AsyncClient | None = None, timeout_seconds: float = 30.0) -> None:
    self._base_url = base_url.rstrip("/")
    self._client = client or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)

  def url_for(self, source_key: str) -> str:
    if source_key.startswith(("http://", "https://")):
      return source_key
    return f"{self._base_url}/{source_key.lstrip('/')}"

  async def fetch(self, source_key: str) -> bytes:
    response = await self._client.get(self.url_for(source_key))
    response.raise_for_status()
    return response.content

  async def aclose(self) -> None:
    await self._client.aclose()


def labeling_context(status: ImageStatusRecord) -> LabelingContext:
  return LabelingContext(property_name=status.property_name, country=status.country, segment_type=status.segment_type, segment_title=status.segment_title, day_index=status.day_index)


def media_document(status: ImageStatusRecord, labels: ImageLabels, job: JobRecord) -> dict[str, Any]:
  document = labels.to_document()
  document.update(
    {
      "alt": labels.alt_text,
      "originalS3Key": status.source_key,
      "sourceProperty": status.property_name,
      "sourceSegmentType": status.segment_type,
      "sourceSegmentTitle": status.segment_title or status.property_name,
      "sourceDayIndex": status.day_index,
      "labelingStatus": "complete",
      "processingStatus": "complete",
      "labeledAt": now_iso(),
      "sourceJob": job.id,
    }
  )
  # Scraped country is authoritative when the labeler could not place the image.
  if labels.country == "Unknown" and status.country:
    document["country"] = status.country
  return document


class ImagePipeline:
  """Runs the image phase of one job with bounded inference fan-out."""

  def __init__(self, *, jobs_repo: JobsRepository, store: DocumentStore, fetcher: ImageFetcher, inference_client: VisionClient | None, notifier: NotificationService | None = None, concurrency: int = 3) -> None:
    if concurrency < 1:
      raise ValueError("concurrency must be at least 1.")
    self._jobs_repo = jobs_repo
    self._store = store
    self._fetcher = fetcher
    self._inference_client = inference_client
    self._notifier = notifier
    self._concurrency = concurrency

  async def run(self, job_id: str) -> JobRecord:
    tracker = JobProgressTracker(job_id=job_id, jobs_repo=self._jobs_repo, notifier=self._notifier)
    job = await tracker.load()
    if job.status == "pending":
      job = await tracker.start()
    elif job.status != "processing":
      raise JobStateError(f"Job {job_id} is '{job.status}' and cannot be processed.")

    try:
      await tracker.start_phase(LABELING_PHASE)
      pending = await self._jobs_repo.list_image_statuses(job_id, status="pending")
      logger.info("Processing images job_id=%s pending=%d concurrency=%d", job_id, len(pending), self._concurrency)
      semaphore = asyncio.Semaphore(self._concurrency)
      results = await asyncio.gather(*(self._process(tracker, job, status, semaphore) for status in pending), return_exceptions=True)
      # Every image task has settled before the job is completed or failed.
      errors = [result for result in results if isinstance(result, BaseException)]
      if errors:
        raise errors[0]

      job = await tracker.load()
      if job.is_terminal:
        logger.info("Job ended while images were in flight job_id=%s status=%s", job_id, job.status)
        return job
      job = await tracker.complete_phase(LABELING_PHASE)
      await self._record_checklist(job)
      if self._notifier is not None:
        self._notifier.notify_images_processed(job_id, job.processed_images, job.failed_images)
      return await tracker.complete({"imagesLabeled": job.images_labeled}, itinerary_id=job.itinerary_id)
    except Exception as exc:
      logger.error("Image pipeline failed job_id=%s", job_id, exc_info=True)
      try:
        await tracker.fail(exc, phase=LABELING_PHASE)
      except JobStateError:
        logger.warning("Job %s already terminal; failure not recorded.", job_id)
      raise

  async def _process(self, tracker: JobProgressTracker, job: JobRecord, status: ImageStatusRecord, semaphore: asyncio.Semaphore) -> None:
    async with semaphore:
      # A job cancelled mid-run leaves its remaining images pending for a retry.
      if (await tracker.load()).is_terminal:
        return
      try:
        status = await tracker.mark_image_processing(status)
      except ConflictError:
        logger.info("Image already claimed by another worker source_key=%s", status.source_key)
        return

      try:
        await self._label_and_store(tracker, job, status)
      except JobStateError as exc:
        await self._release(tracker, status, exc)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Image processing failed source_key=%s error=%s", status.source_key, exc, exc_info=True)
        try:
          await tracker.record_image_result(status, "failed", error=error_message(exc))
        except JobStateError as state_exc:
          await self._release(tracker, status, state_exc)

  async def _label_and_store(self, tracker: JobProgressTracker, job: JobRecord, status: ImageStatusRecord) -> None:
    # Images already rehosted by an earlier run are not labeled twice.
    existing = await self._store.find(MEDIA_COLLECTION, where={"originalS3Key": status.source_key}, limit=1)
    if existing:
      await tracker.record_image_result(status, "skipped", media_id=existing[0]["id"])
      return

    try:
      image_bytes = await self._fetcher.fetch(status.source_key)
    except httpx.HTTPError as exc:
      logger.warning("Image fetch failed source_key=%s error=%s", status.source_key, exc)
      await tracker.record_image_result(status, "failed", error=f"Failed to fetch image: {exc}")
      return

    labels = await label_image(image_bytes, self._inference_client, labeling_context(status))
    media = await self._store.create(MEDIA_COLLECTION, media_document(status, labels, job))
    await tracker.record_image_result(status, "completed", media_id=media["id"], labeled=True)

  async def _release(self, tracker: JobProgressTracker, status: ImageStatusRecord, exc: JobStateError) -> None:
    """The result could not be counted; hand a still-claimed image back to pending."""
    current = await self._jobs_repo.get_image_status(status.id)
    if current is not None and current.status == "processing":
      await tracker.release_image(current)
    logger.info("Image result dropped source_key=%s: %s", status.source_key, exc)

  async def _record_checklist(self, job: JobRecord) -> None:
    """Stamp the image-derived checklist flags onto the job's itinerary, if it exists."""
    if job.itinerary_id is None:
      return
    itinerary = await self._store.find_by_id(ITINERARIES_COLLECTION, job.itinerary_id)
    if itinerary is None:
      logger.warning("Itinerary %s for job %s not found; checklist not updated.", job.itinerary_id, job.id)
      return
    flags = build_pipeline_checklist(job, itinerary, schema_generated=bool(itinerary.get("schema")))
    checklist = {**(itinerary.get("publishChecklist") or {}), **flags}
    await self._store.update(ITINERARIES_COLLECTION, job.itinerary_id, {"publishChecklist": checklist})
