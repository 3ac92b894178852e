"""Operator actions on import jobs: cancel, retry and retry-failed."""

from __future__ import annotations

import logging
from typing import Any, Literal, get_args

import httpx

from itinerary_engine.jobs.progress import JobProgressTracker, JobStateError
from itinerary_engine.notifications.service import NotificationService
from itinerary_engine.services.tasks.interface import TaskEnqueuer
from itinerary_engine.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

JobAction = Literal["cancel", "retry", "retry-failed"]
JOB_ACTIONS: tuple[str, ...] = get_args(JobAction)


class TaskDispatchError(RuntimeError):
  """Raised when a retry was recorded but the processing run could not be queued."""


async def _dispatch(enqueuer: TaskEnqueuer, job_id: str, payload: dict[str, Any]) -> None:
  try:
    await enqueuer.enqueue(job_id, payload)
  except (httpx.HTTPError, RuntimeError) as exc:
    logger.error("Failed to trigger processing job_id=%s: %s", job_id, exc)
    raise TaskDispatchError(f"Failed to trigger processing for job {job_id}") from exc


async def run_job_action(action: str, job_id: str, *, jobs_repo: JobsRepository, enqueuer: TaskEnqueuer, notifier: NotificationService | None = None) -> dict[str, Any]:
  """Apply an operator action and return the response body."""
  if action not in JOB_ACTIONS:
    raise JobStateError(f"Invalid action. Must be: {', '.join(JOB_ACTIONS)}")

  tracker = JobProgressTracker(job_id=job_id, jobs_repo=jobs_repo, notifier=notifier)

  if action == "cancel":
    await tracker.cancel()
    return {"success": True, "message": "Job cancelled", "jobId": job_id}

  if action == "retry":
    job = await tracker.reset_for_retry()
    await _dispatch(enqueuer, job_id, {"itineraryId": job.itinerary_id, "retry": True})
    return {"success": True, "message": "Job retry started", "jobId": job_id}

  job, count = await tracker.retry_failed_images()
  await _dispatch(enqueuer, job_id, {"itineraryId": job.itinerary_id, "retryFailed": True})
  return {"success": True, "message": f"Retrying {count} failed images", "jobId": job_id, "retryCount": count}
