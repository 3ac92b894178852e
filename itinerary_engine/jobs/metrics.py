"""Derived job metrics: time remaining, failed items and progress."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from itinerary_engine.jobs.models import ImageStatusRecord, JobRecord
from itinerary_engine.storage.documents import parse_timestamp

UNKNOWN_ERROR = "Unknown error"


def estimate_time_remaining(job: JobRecord, now: datetime | None = None) -> float | None:
  """Seconds left at the observed per-image rate, or None when there is no rate yet."""
  if job.status != "processing":
    return None
  started_at = parse_timestamp(job.started_at)
  done = job.done_images
  if started_at is None or done <= 0:
    return None

  now = now or datetime.now(UTC)
  elapsed = max((now - started_at).total_seconds(), 0.0)
  remaining = max(job.total_images - done, 0)
  return round(elapsed / done * remaining, 1)


def extract_failed_items(statuses: Iterable[ImageStatusRecord]) -> list[dict[str, Any]]:
  """Surface failed images with their source key and recorded error."""
  return [{"sourceKey": status.source_key, "error": status.error or UNKNOWN_ERROR} for status in statuses if status.status == "failed"]


def progress_percent(job: JobRecord) -> int:
  if job.total_images <= 0:
    return 0
  return min(round(job.done_images / job.total_images * 100), 100)
