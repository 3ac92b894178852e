"""Normalized job status projection for pollers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from itinerary_engine.jobs.metrics import estimate_time_remaining, extract_failed_items
from itinerary_engine.jobs.progress import JobNotFoundError
from itinerary_engine.storage.jobs_repo import JobsRepository


async def get_job_status(jobs_repo: JobsRepository, job_id: str, *, now: datetime | None = None) -> dict[str, Any]:
  """Project a job and its image statuses into the polling payload."""
  job = await jobs_repo.get_job(job_id)
  if job is None:
    raise JobNotFoundError(f"Job {job_id} not found")

  statuses = await jobs_repo.list_image_statuses(job_id)
  failed_items = extract_failed_items(statuses)

  projection: dict[str, Any] = {
    "jobId": job.id,
    "status": job.status,
    "progress": job.progress or 0,
    "currentPhase": job.current_phase,
    "images": {"total": job.total_images, "processed": job.processed_images, "skipped": job.skipped_images, "failed": job.failed_images, "labeled": job.images_labeled},
    "phases": job.phases,
    "timing": {"startedAt": job.started_at, "completedAt": job.completed_at, "duration": job.duration, "estimatedTimeRemaining": estimate_time_remaining(job, now), "phases": job.timings},
    "payloadId": job.itinerary_id,
    "error": job.error_message,
    "errorPhase": job.error_phase,
  }
  if failed_items:
    projection["failedItems"] = failed_items
  return projection
