"""Job lifecycle state machine and progress tracking."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Literal

from itinerary_engine.jobs.metrics import progress_percent
from itinerary_engine.jobs.models import COUNTER_FIELDS, ImageStatusRecord, JobRecord, JobStatus
from itinerary_engine.notifications.service import NotificationService
from itinerary_engine.storage.documents import format_timestamp, parse_timestamp
from itinerary_engine.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

ImageOutcome = Literal["completed", "failed", "skipped"]

_OUTCOME_COUNTERS: dict[str, str] = {"completed": "processedImages", "skipped": "skippedImages", "failed": "failedImages"}
_PROGRESS_FIELDS = frozenset({"currentPhase", "progress", *COUNTER_FIELDS})
CANCELLED_MESSAGE = "Cancelled by user"
RETRY_PHASE = "Queued (Retry)"


class JobStateError(RuntimeError):
  """Raised when a transition is not allowed from the job's current state."""


class JobNotFoundError(LookupError):
  """Raised when a job id does not exist."""


def error_message(error: Any) -> str:
  """Extract a message from a string or an error-like object."""
  if isinstance(error, str):
    return error
  message = getattr(error, "message", None)
  if isinstance(message, str) and message:
    return message
  text = str(error)
  return text or type(error).__name__


class JobProgressTracker:
  """Governs one job's transitions, counters and notifications."""

  def __init__(self, *, job_id: str, jobs_repo: JobsRepository, notifier: NotificationService | None = None, clock: Callable[[], datetime] | None = None) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._notifier = notifier
    self._clock = clock or (lambda: datetime.now(UTC))
    self._phase_started: dict[str, float] = {}

  @property
  def job_id(self) -> str:
    return self._job_id

  def _now(self) -> str:
    return format_timestamp(self._clock())

  async def load(self) -> JobRecord:
    job = await self._jobs_repo.get_job(self._job_id)
    if job is None:
      raise JobNotFoundError(f"Job {self._job_id} not found")
    return job

  def _require(self, job: JobRecord, allowed: Iterable[JobStatus], action: str) -> None:
    allowed_set = set(allowed)
    if job.status not in allowed_set:
      raise JobStateError(f"Cannot {action} job {job.id} in status '{job.status}' (expected {', '.join(sorted(allowed_set))}).")

  async def start(self) -> JobRecord:
    """pending -> processing."""
    job = await self.load()
    self._require(job, ("pending",), "start")
    record = await self._jobs_repo.update_job(self._job_id, {"status": "processing", "startedAt": self._now()}, expected_updated_at=job.updated_at)
    logger.info("Job started job_id=%s", self._job_id)
    if self._notifier is not None:
      self._notifier.notify_job_started(self._job_id, record.title)
    return record

  async def start_phase(self, phase: str) -> JobRecord:
    job = await self.load()
    self._require(job, ("processing",), "start a phase on")
    self._phase_started[phase] = time.monotonic()
    logger.info("Job phase started job_id=%s phase=%s", self._job_id, phase)
    return await self._jobs_repo.update_job(self._job_id, {"currentPhase": phase})

  async def complete_phase(self, phase: str) -> JobRecord:
    """Record when a phase finished and how long it took."""
    job = await self.load()
    self._require(job, ("processing",), "complete a phase on")
    started = self._phase_started.pop(phase, None)
    if started is not None:
      seconds = time.monotonic() - started
    else:
      started_at = parse_timestamp(job.started_at)
      seconds = (self._clock() - started_at).total_seconds() if started_at else 0.0
    phases = {**job.phases, phase: self._now()}
    timings = {**job.timings, phase: round(seconds, 3)}
    logger.info("Job phase completed job_id=%s phase=%s seconds=%.3f", self._job_id, phase, seconds)
    return await self._jobs_repo.update_job(self._job_id, {"phases": phases, "timings": timings})

  async def update_progress(self, payload: Mapping[str, Any]) -> JobRecord:
    """Merge partial progress without touching fields absent from the payload."""
    job = await self.load()
    if job.is_terminal:
      raise JobStateError(f"Cannot update progress of job {job.id} in terminal status '{job.status}'.")

    current = job.to_document()
    fields: dict[str, Any] = {}
    detail_updates: dict[str, Any] = {}
    for key, value in payload.items():
      if key in _PROGRESS_FIELDS:
        fields[key] = value
      else:
        detail_updates[key] = value

    # Counters only move forward while the job is live.
    for counter in COUNTER_FIELDS:
      if counter in fields and int(fields[counter]) < int(current[counter] or 0):
        raise JobStateError(f"Counter {counter} may not decrease ({current[counter]} -> {fields[counter]}).")

    merged = {counter: int(fields.get(counter, current[counter]) or 0) for counter in COUNTER_FIELDS}
    if merged["processedImages"] + merged["skippedImages"] + merged["failedImages"] > merged["totalImages"]:
      raise JobStateError(f"Image counters exceed totalImages for job {job.id}: {merged}.")

    if detail_updates:
      fields["progressDetail"] = {**job.detail, **detail_updates}
    if not fields:
      return job
    return await self._jobs_repo.update_job(self._job_id, fields, expected_updated_at=job.updated_at)

  async def register_images(self, entries: Iterable[ImageStatusRecord]) -> list[ImageStatusRecord]:
    """Create pending image statuses and grow totalImages to match."""
    job = await self.load()
    if job.is_terminal:
      raise JobStateError(f"Cannot register images on job {job.id} in terminal status '{job.status}'.")
    created = [await self._jobs_repo.create_image_status(entry) for entry in entries]
    if created:
      await self._jobs_repo.increment_counters(self._job_id, {"totalImages": len(created)})
    return created

  async def mark_image_processing(self, entry: ImageStatusRecord) -> ImageStatusRecord:
    if entry.status != "pending":
      raise JobStateError(f"Image {entry.source_key} is '{entry.status}', not pending.")
    return await self._jobs_repo.update_image_status(entry.id, {"status": "processing", "startedAt": self._now()}, expected_updated_at=entry.updated_at)

  async def release_image(self, entry: ImageStatusRecord) -> ImageStatusRecord:
    """processing -> pending without touching job counters."""
    if entry.status != "processing":
      raise JobStateError(f"Image {entry.source_key} is '{entry.status}', not processing.")
    return await self._jobs_repo.update_image_status(entry.id, {"status": "pending", "startedAt": None}, expected_updated_at=entry.updated_at)

  async def record_image_result(self, entry: ImageStatusRecord, outcome: ImageOutcome, *, media_id: str | None = None, error: str | None = None, labeled: bool = False) -> JobRecord:
    """Move one image to a terminal state exactly once, then bump the job counters atomically."""
    if outcome not in _OUTCOME_COUNTERS:
      raise ValueError(f"Unsupported image outcome '{outcome}'.")
    job = await self.load()
    if job.is_terminal:
      raise JobStateError(f"Cannot record image {entry.source_key} on job {job.id} in terminal status '{job.status}'.")
    current = await self._jobs_repo.get_image_status(entry.id)
    if current is None:
      raise JobStateError(f"Image status {entry.id} not found.")
    if current.is_terminal:
      raise JobStateError(f"Image {current.source_key} already finished as '{current.status}'.")

    # The optimistic lock makes a concurrent duplicate report fail instead of double counting.
    await self._jobs_repo.update_image_status(current.id, {"status": outcome, "mediaId": media_id, "error": error, "completedAt": self._now()}, expected_updated_at=current.updated_at)

    deltas = {_OUTCOME_COUNTERS[outcome]: 1}
    if labeled:
      deltas["imagesLabeled"] = 1
    job = await self._jobs_repo.increment_counters(self._job_id, deltas)
    return await self._jobs_repo.update_job(self._job_id, {"progress": progress_percent(job)})

  async def complete(self, result: Mapping[str, Any] | None = None, *, itinerary_id: str | None = None) -> JobRecord:
    """processing -> completed once every image has reached a terminal state."""
    job = await self.load()
    self._require(job, ("processing",), "complete")

    statuses = await self._jobs_repo.list_image_statuses(self._job_id)
    unfinished = [status.source_key for status in statuses if not status.is_terminal]
    if unfinished:
      raise JobStateError(f"Cannot complete job {job.id}; {len(unfinished)} image(s) still pending or processing.")
    if job.done_images != job.total_images:
      raise JobStateError(f"Cannot complete job {job.id}; counters account for {job.done_images} of {job.total_images} images.")

    now = self._clock()
    started_at = parse_timestamp(job.started_at)
    fields: dict[str, Any] = {
      "status": "completed",
      "currentPhase": "complete",
      "progress": 100,
      "completedAt": format_timestamp(now),
      "duration": round((now - started_at).total_seconds(), 3) if started_at else None,
      "progressDetail": {**job.detail, **(result or {}), "completed": True},
    }
    if itinerary_id is not None:
      fields["processedItinerary"] = itinerary_id
      fields["payloadId"] = itinerary_id
    record = await self._jobs_repo.update_job(self._job_id, fields, expected_updated_at=job.updated_at)
    logger.info("Job completed job_id=%s duration=%s", self._job_id, fields["duration"])
    if self._notifier is not None:
      self._notifier.notify_job_completed(self._job_id, record.itinerary_id, record.title)
    return record

  async def fail(self, error: Any, *, phase: str | None = None) -> JobRecord:
    """Any live state -> failed, recording a sticky message and phase."""
    job = await self.load()
    self._require(job, ("pending", "processing"), "fail")
    message = error_message(error)
    record = await self._mark_failed(job, message, phase)
    logger.error("Job failed job_id=%s phase=%s error=%s", self._job_id, record.error_phase, message)
    if self._notifier is not None:
      self._notifier.notify_job_failed(self._job_id, message)
    return record

  async def cancel(self) -> JobRecord:
    job = await self.load()
    self._require(job, ("pending", "processing"), "cancel")
    record = await self._mark_failed(job, CANCELLED_MESSAGE, None)
    logger.info("Job cancelled job_id=%s", self._job_id)
    if self._notifier is not None:
      self._notifier.notify_job_cancelled(self._job_id, record.title)
    return record

  async def _mark_failed(self, job: JobRecord, message: str, phase: str | None) -> JobRecord:
    now = self._now()
    fields = {"status": "failed", "errorMessage": message, "errorPhase": phase or job.current_phase, "completedAt": now, "failedAt": now}
    return await self._jobs_repo.update_job(self._job_id, fields)

  async def reset_for_retry(self) -> JobRecord:
    """failed -> pending, clearing the sticky error and every image outcome."""
    job = await self.load()
    self._require(job, ("failed",), "retry")
    statuses = await self._jobs_repo.list_image_statuses(self._job_id)
    for status in statuses:
      if status.status != "pending":
        await self._jobs_repo.update_image_status(status.id, {"status": "pending", "error": None, "mediaId": None, "startedAt": None, "completedAt": None})
    fields = {
      "status": "pending",
      "currentPhase": RETRY_PHASE,
      "progress": 0,
      "errorMessage": None,
      "errorPhase": None,
      "failedAt": None,
      "completedAt": None,
      "startedAt": None,
      "duration": None,
      "totalImages": len(statuses),
      "processedImages": 0,
      "skippedImages": 0,
      "failedImages": 0,
      "imagesLabeled": 0,
    }
    logger.info("Job reset for retry job_id=%s images=%d", self._job_id, len(statuses))
    return await self._jobs_repo.update_job(self._job_id, fields, expected_updated_at=job.updated_at)

  async def retry_failed_images(self) -> tuple[JobRecord, int]:
    """Re-queue only the failed images of a finished job."""
    job = await self.load()
    self._require(job, ("completed", "failed"), "retry failed images of")
    failed = await self._jobs_repo.list_image_statuses(self._job_id, status="failed")
    if not failed:
      raise JobStateError(f"Job {job.id} has no failed images to retry.")
    for status in failed:
      await self._jobs_repo.update_image_status(status.id, {"status": "pending", "error": None, "startedAt": None, "completedAt": None}, expected_updated_at=status.updated_at)
    fields = {"status": "processing", "failedImages": 0, "errorMessage": None, "errorPhase": None, "failedAt": None, "completedAt": None, "progress": 0}
    record = await self._jobs_repo.update_job(self._job_id, fields, expected_updated_at=job.updated_at)
    record = await self._jobs_repo.update_job(self._job_id, {"progress": progress_percent(record)})
    logger.info("Failed images re-queued job_id=%s count=%d", self._job_id, len(failed))
    return record, len(failed)
