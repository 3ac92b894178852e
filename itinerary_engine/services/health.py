"""Pipeline health summary for operators."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from itinerary_engine.jobs.models import JOBS_COLLECTION
from itinerary_engine.jobs.pipeline import MEDIA_COLLECTION
from itinerary_engine.storage.documents import DocumentStore, format_timestamp

STUCK_JOB_LIMIT = 10
RECENT_FAILURE_LIMIT = 5
FAILED_JOBS_WARNING_THRESHOLD = 3

# Legacy writers stored the active state as "running".
_PROCESSING = {"in": ["processing", "running"]}


def health_status(stuck_jobs: int, failed_jobs: int) -> str:
  if stuck_jobs == 0 and failed_jobs < FAILED_JOBS_WARNING_THRESHOLD:
    return "healthy"
  if stuck_jobs > 0:
    return "degraded"
  return "warning"


async def collect_health(store: DocumentStore, *, stuck_after: timedelta = timedelta(minutes=30), now: datetime | None = None) -> dict[str, Any]:
  """Aggregate job counts, stuck jobs, media counts and recent failures."""
  now = now or datetime.now(UTC)

  pending, processing, completed, failed = await asyncio.gather(
    store.count(JOBS_COLLECTION, where={"status": {"equals": "pending"}}),
    store.count(JOBS_COLLECTION, where={"status": _PROCESSING}),
    store.count(JOBS_COLLECTION, where={"status": {"equals": "completed"}}),
    store.count(JOBS_COLLECTION, where={"status": {"equals": "failed"}}),
  )

  last_completed = await store.find(JOBS_COLLECTION, where={"status": {"equals": "completed"}}, sort="-completedAt", limit=1)
  stuck = await store.find(JOBS_COLLECTION, where={"status": _PROCESSING, "startedAt": {"less_than": format_timestamp(now - stuck_after)}}, limit=STUCK_JOB_LIMIT)

  total_media, pending_labeling, completed_media = await asyncio.gather(
    store.count(MEDIA_COLLECTION),
    store.count(MEDIA_COLLECTION, where={"labelingStatus": {"equals": "pending"}}),
    store.count(MEDIA_COLLECTION, where={"processingStatus": {"equals": "complete"}}),
  )

  failures = await store.find(JOBS_COLLECTION, where={"status": {"equals": "failed"}}, sort="-failedAt", limit=RECENT_FAILURE_LIMIT)
  recent_errors = [{"jobId": job["id"], "error": job.get("errorMessage") or "Unknown error", "phase": job.get("errorPhase") or "unknown", "failedAt": job.get("failedAt")} for job in failures]

  report: dict[str, Any] = {
    "status": health_status(len(stuck), failed),
    "timestamp": format_timestamp(now),
    "jobs": {"pending": pending, "processing": processing, "completed": completed, "failed": failed},
    "lastSuccessfulScrape": last_completed[0].get("completedAt") if last_completed else None,
    "stuckJobs": [{"jobId": job["id"], "currentPhase": job.get("currentPhase"), "startedAt": job.get("startedAt"), "progress": job.get("progress")} for job in stuck],
    "media": {"total": total_media, "pendingLabeling": pending_labeling, "completed": completed_media},
  }
  if recent_errors:
    report["recentErrors"] = recent_errors
  return report
