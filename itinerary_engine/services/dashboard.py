"""Bulk stage actions for the content dashboard."""

from __future__ import annotations

import calendar
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from itinerary_engine.storage.documents import Document, DocumentNotFoundError, DocumentStore, format_timestamp

logger = logging.getLogger(__name__)

CONTENT_PROJECTS_COLLECTION = "content-projects"
EDITORIAL_DIRECTIVES_COLLECTION = "editorial-directives"
DEFAULT_REJECT_REASON = "Rejected via dashboard"
DIRECTIVE_REVIEW_MONTHS = 6

ARTICLE_ADVANCE: dict[str, str] = {"idea": "brief", "brief": "research", "research": "draft", "draft": "review", "review": "published"}
PAGE_ADVANCE: dict[str, str] = {"idea": "draft", "draft": "review", "review": "published"}
PAGE_TYPES = frozenset({"destination_page", "property_page"})
BATCH_ACTIONS = frozenset({"advance", "reject", "retry"})


class BatchActionError(ValueError):
  """Raised for malformed batch requests."""


def next_stage(stage: str | None, content_type: str | None) -> str | None:
  """Return the stage a project advances to, or None when it cannot advance."""
  transitions = PAGE_ADVANCE if content_type in PAGE_TYPES else ARTICLE_ADVANCE
  return transitions.get(stage or "")


def add_months(value: datetime, months: int) -> datetime:
  """Shift by calendar months, clamping the day to the target month's length."""
  month_index = value.month - 1 + months
  year = value.year + month_index // 12
  month = month_index % 12 + 1
  last_day = calendar.monthrange(year, month)[1]
  return value.replace(year=year, month=month, day=min(value.day, last_day))


async def _load_projects(store: DocumentStore, project_ids: Sequence[str]) -> dict[str, Document]:
  """Fetch every project up front so an unknown id fails the batch before any write."""
  projects: dict[str, Document] = {}
  for project_id in project_ids:
    project = await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project_id)
    if project is None:
      raise DocumentNotFoundError(CONTENT_PROJECTS_COLLECTION, project_id)
    projects[project_id] = project
  return projects


async def _advance(store: DocumentStore, projects: dict[str, Document], now: datetime) -> int:
  updated = 0
  for project_id, project in projects.items():
    stage = next_stage(project.get("stage"), project.get("contentType"))
    if stage is None:
      continue
    fields: dict[str, Any] = {"stage": stage}
    if stage == "published":
      fields["publishedAt"] = format_timestamp(now)
    await store.update(CONTENT_PROJECTS_COLLECTION, project_id, fields)
    updated += 1
  return updated


async def _reject(store: DocumentStore, projects: dict[str, Document], reason: str | None, create_directive: bool, now: datetime) -> int:
  for project_id in projects:
    await store.update(CONTENT_PROJECTS_COLLECTION, project_id, {"stage": "rejected", "filterReason": reason or DEFAULT_REJECT_REASON})
  if create_directive and reason:
    review_after = add_months(now, DIRECTIVE_REVIEW_MONTHS)
    await store.create(EDITORIAL_DIRECTIVES_COLLECTION, {"text": reason, "active": True, "reviewAfter": format_timestamp(review_after), "filterCount30d": 0})
    logger.info("Editorial directive created from rejection reason")
  return len(projects)


async def _retry(store: DocumentStore, projects: dict[str, Document]) -> int:
  for project_id in projects:
    await store.update(CONTENT_PROJECTS_COLLECTION, project_id, {"processingStatus": "idle", "processingError": None})
  return len(projects)


async def apply_batch_action(store: DocumentStore, action: str | None, project_ids: Sequence[str] | None, *, reason: str | None = None, create_directive: bool = False, now: datetime | None = None) -> dict[str, Any]:
  """Apply advance/reject/retry to every project id and report how many changed."""
  if not action or not project_ids:
    raise BatchActionError("action and projectIds[] are required")
  if action not in BATCH_ACTIONS:
    raise BatchActionError(f"Unknown action: {action}")
  now = now or datetime.now(UTC)
  projects = await _load_projects(store, list(dict.fromkeys(project_ids)))

  if action == "advance":
    updated = await _advance(store, projects, now)
  elif action == "reject":
    updated = await _reject(store, projects, reason, create_directive, now)
  else:
    updated = await _retry(store, projects)

  logger.info("Dashboard batch action=%s requested=%d updated=%d", action, len(project_ids), updated)
  return {"success": True, "updated": updated}
