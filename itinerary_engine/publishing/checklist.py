"""Derived publish checklist flags."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from itinerary_engine.jobs.models import JobRecord


def calculate_checklist(data: dict[str, Any], original: Mapping[str, Any] | None) -> dict[str, Any]:
  """Recompute `publishChecklist.tripTypesSelected` on the incoming write.

  Partial writes (a status-only publish, for example) omit fields, so the
  checklist and trip types fall back to the stored document.
  """
  original = original or {}
  checklist = data.get("publishChecklist")
  if not isinstance(checklist, dict):
    checklist = dict(original.get("publishChecklist") or {})
  else:
    checklist = dict(checklist)

  trip_types = data["tripTypes"] if data.get("tripTypes") is not None else original.get("tripTypes")
  checklist["tripTypesSelected"] = isinstance(trip_types, list) and len(trip_types) > 0
  data["publishChecklist"] = checklist
  return data


def build_pipeline_checklist(job: JobRecord, itinerary: Mapping[str, Any], *, schema_generated: bool) -> dict[str, bool]:
  """Checklist flags the import pipeline can vouch for once a job finishes."""
  return {
    "allImagesProcessed": job.processed_images + job.skipped_images >= job.total_images,
    "noFailedImages": job.failed_images == 0,
    "heroImageSelected": bool(itinerary.get("heroImage")),
    "contentEnhanced": False,
    "schemaGenerated": schema_generated,
    "metaFieldsFilled": bool(itinerary.get("metaTitle")) and bool(itinerary.get("metaDescription")),
  }
