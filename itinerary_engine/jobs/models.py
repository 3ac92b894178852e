"""Domain models for itinerary import jobs and their per-image statuses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed"]
ImageStatus = Literal["pending", "processing", "completed", "failed", "skipped"]

JOBS_COLLECTION = "itinerary-jobs"
IMAGE_STATUSES_COLLECTION = "image-statuses"

TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
TERMINAL_IMAGE_STATUSES: frozenset[str] = frozenset({"completed", "failed", "skipped"})
COUNTER_FIELDS = ("totalImages", "processedImages", "skippedImages", "failedImages", "imagesLabeled")

# Older pipeline writers persisted the active state as "running".
_STATUS_ALIASES = {"running": "processing", "complete": "completed"}


def normalize_job_status(raw: Any) -> JobStatus:
  value = _STATUS_ALIASES.get(str(raw or "pending"), str(raw or "pending"))
  if value not in {"pending", "processing", "completed", "failed"}:
    raise ValueError(f"Unknown job status '{raw}'.")
  return value  # type: ignore[return-value]


def normalize_image_status(raw: Any) -> ImageStatus:
  value = _STATUS_ALIASES.get(str(raw or "pending"), str(raw or "pending"))
  if value not in {"pending", "processing", "completed", "failed", "skipped"}:
    raise ValueError(f"Unknown image status '{raw}'.")
  return value  # type: ignore[return-value]


def _int(value: Any) -> int:
  try:
    return int(value or 0)
  except (TypeError, ValueError):
    return 0


def _relation_id(value: Any) -> str | None:
  """Relationships may be stored as an id or as a populated document."""
  if isinstance(value, dict):
    value = value.get("id")
  return str(value) if value not in (None, "") else None


@dataclass
class JobRecord:
  """Represents one itinerary import attempt."""

  id: str
  status: JobStatus
  created_at: str | None = None
  updated_at: str | None = None
  title: str | None = None
  source_url: str | None = None
  current_phase: str | None = None
  progress: float = 0
  total_images: int = 0
  processed_images: int = 0
  skipped_images: int = 0
  failed_images: int = 0
  images_labeled: int = 0
  started_at: str | None = None
  completed_at: str | None = None
  failed_at: str | None = None
  duration: float | None = None
  error_message: str | None = None
  error_phase: str | None = None
  itinerary_id: str | None = None
  phases: dict[str, str] = field(default_factory=dict)
  timings: dict[str, float] = field(default_factory=dict)
  detail: dict[str, Any] = field(default_factory=dict)

  @property
  def done_images(self) -> int:
    return self.processed_images + self.skipped_images + self.failed_images

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_JOB_STATUSES

  @classmethod
  def from_document(cls, doc: dict[str, Any]) -> JobRecord:
    return cls(
      id=str(doc["id"]),
      status=normalize_job_status(doc.get("status")),
      created_at=doc.get("createdAt"),
      updated_at=doc.get("updatedAt"),
      title=doc.get("itineraryTitle") or doc.get("title"),
      source_url=doc.get("itrvlUrl") or doc.get("sourceUrl"),
      current_phase=doc.get("currentPhase"),
      progress=float(doc.get("progress") or 0),
      total_images=_int(doc.get("totalImages")),
      processed_images=_int(doc.get("processedImages")),
      skipped_images=_int(doc.get("skippedImages")),
      failed_images=_int(doc.get("failedImages")),
      images_labeled=_int(doc.get("imagesLabeled")),
      started_at=doc.get("startedAt"),
      completed_at=doc.get("completedAt"),
      failed_at=doc.get("failedAt"),
      duration=doc.get("duration"),
      error_message=doc.get("errorMessage"),
      error_phase=doc.get("errorPhase"),
      itinerary_id=_relation_id(doc.get("processedItinerary") or doc.get("payloadId")),
      phases=dict(doc.get("phases") or {}),
      timings=dict(doc.get("timings") or {}),
      detail=dict(doc.get("progressDetail") or {}),
    )

  def to_document(self) -> dict[str, Any]:
    return {
      "status": self.status,
      "itineraryTitle": self.title,
      "itrvlUrl": self.source_url,
      "currentPhase": self.current_phase,
      "progress": self.progress,
      "totalImages": self.total_images,
      "processedImages": self.processed_images,
      "skippedImages": self.skipped_images,
      "failedImages": self.failed_images,
      "imagesLabeled": self.images_labeled,
      "startedAt": self.started_at,
      "completedAt": self.completed_at,
      "failedAt": self.failed_at,
      "duration": self.duration,
      "errorMessage": self.error_message,
      "errorPhase": self.error_phase,
      "processedItinerary": self.itinerary_id,
      "payloadId": self.itinerary_id,
      "phases": self.phases,
      "timings": self.timings,
      "progressDetail": self.detail,
    }


@dataclass
class ImageStatusRecord:
  """Lifecycle of one source image within a job."""

  id: str
  job_id: str
  source_key: str
  status: ImageStatus = "pending"
  updated_at: str | None = None
  media_id: str | None = None
  error: str | None = None
  started_at: str | None = None
  completed_at: str | None = None
  property_name: str | None = None
  segment_type: str | None = None
  segment_title: str | None = None
  day_index: int | None = None
  country: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_IMAGE_STATUSES

  @classmethod
  def from_document(cls, doc: dict[str, Any]) -> ImageStatusRecord:
    day_index = doc.get("dayIndex")
    return cls(
      id=str(doc["id"]),
      job_id=_relation_id(doc.get("job")) or "",
      source_key=str(doc.get("sourceS3Key") or doc.get("sourceKey") or ""),
      status=normalize_image_status(doc.get("status")),
      updated_at=doc.get("updatedAt"),
      media_id=_relation_id(doc.get("mediaId")),
      error=doc.get("error"),
      started_at=doc.get("startedAt"),
      completed_at=doc.get("completedAt"),
      property_name=doc.get("propertyName"),
      segment_type=doc.get("segmentType"),
      segment_title=doc.get("segmentTitle"),
      day_index=int(day_index) if day_index is not None else None,
      country=doc.get("country"),
    )

  def to_document(self) -> dict[str, Any]:
    return {
      "job": self.job_id,
      "sourceS3Key": self.source_key,
      "status": self.status,
      "mediaId": self.media_id,
      "error": self.error,
      "startedAt": self.started_at,
      "completedAt": self.completed_at,
      "propertyName": self.property_name,
      "segmentType": self.segment_type,
      "segmentTitle": self.segment_title,
      "dayIndex": self.day_index,
      "country": self.country,
    }
