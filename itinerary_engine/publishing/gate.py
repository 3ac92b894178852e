"""Publish gate: every reviewable field and checklist flag must be true to publish."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal, assert_never

from itinerary_engine.publishing.models import PUBLISHED, ActivitySegment, Day, Itinerary, OtherSegment, Segment, StaySegment, TransferSegment, parse_itinerary

Operation = Literal["create", "update"]

DEFAULT_BLOCKER_LIMIT = 5

# Checklist flags in report order with their blocker text.
CHECKLIST_BLOCKERS: tuple[tuple[str, str], ...] = (
  ("allImagesProcessed", "Not all images processed"),
  ("noFailedImages", "Some images failed processing"),
  ("schemaGenerated", "Schema not generated"),
  ("tripTypesSelected", "No trip types selected"),
)


class PublishBlockedError(ValueError):
  """Raised when a write tries to publish an itinerary that is not fully reviewed."""

  def __init__(self, blockers: list[str], *, limit: int = DEFAULT_BLOCKER_LIMIT) -> None:
    super().__init__(f"Cannot publish: {format_blockers(blockers, limit=limit)}. Review all content before publishing.")
    self.blockers = blockers


def _segment_blockers(day_number: int, position: int, segment: Segment) -> list[str]:
  blockers: list[str] = []
  match segment:
    case StaySegment():
      if not segment.description_reviewed:
        blockers.append(f"Day {day_number} stay {position} description not reviewed")
      if not segment.accommodation_name_reviewed:
        blockers.append(f"Day {day_number} stay {position} name not reviewed")
      if not segment.inclusions_reviewed:
        blockers.append(f"Day {day_number} stay {position} inclusions not reviewed")
    case ActivitySegment() | TransferSegment():
      kind = "activity" if isinstance(segment, ActivitySegment) else "transfer"
      if not segment.description_reviewed:
        blockers.append(f"Day {day_number} {kind} {position} description not reviewed")
      if not segment.title_reviewed:
        blockers.append(f"Day {day_number} {kind} {position} title not reviewed")
    case OtherSegment():
      if not segment.description_reviewed:
        blockers.append(f"Day {day_number} {segment.label} {position} description not reviewed")
    case _:
      assert_never(segment)
  return blockers


def _day_blockers(index: int, day: Day) -> list[str]:
  day_number = day.day_number or index + 1
  blockers: list[str] = []
  if not day.title_reviewed:
    blockers.append(f"Day {day_number} title not reviewed")
  for position, segment in enumerate(day.segments or [], start=1):
    blockers.extend(_segment_blockers(day_number, position, segment))
  return blockers


def collect_blockers(itinerary: Itinerary) -> list[str]:
  """Return every unmet review requirement, in document order."""
  blockers: list[str] = []

  # Core fields
  if not itinerary.title_reviewed:
    blockers.append("Title not reviewed")
  if not itinerary.meta_title_reviewed:
    blockers.append("Meta title not reviewed")
  if not itinerary.meta_description_reviewed:
    blockers.append("Meta description not reviewed")
  if not itinerary.hero_image_reviewed:
    blockers.append("Hero image not reviewed")
  if not itinerary.why_kiuli_reviewed:
    blockers.append("Why Kiuli not reviewed")

  if itinerary.overview is not None and not itinerary.overview.summary_reviewed:
    blockers.append("Overview summary not reviewed")
  if itinerary.investment_level is not None and not itinerary.investment_level.includes_reviewed:
    blockers.append("Investment includes not reviewed")

  for index, day in enumerate(itinerary.days or []):
    blockers.extend(_day_blockers(index, day))

  for number, faq in enumerate(itinerary.faq_items or [], start=1):
    if not faq.question_reviewed:
      blockers.append(f"FAQ {number} question not reviewed")
    if not faq.answer_reviewed:
      blockers.append(f"FAQ {number} answer not reviewed")

  checklist = itinerary.publish_checklist or {}
  for flag, message in CHECKLIST_BLOCKERS:
    if not checklist.get(flag):
      blockers.append(message)

  return blockers


def format_blockers(blockers: list[str], *, limit: int = DEFAULT_BLOCKER_LIMIT) -> str:
  """Join blockers for display, keeping the first `limit` and counting the rest."""
  if len(blockers) <= limit:
    return ", ".join(blockers)
  return ", ".join(blockers[:limit]) + f", ...and {len(blockers) - limit} more"


def is_publish_transition(data: Mapping[str, Any], original: Mapping[str, Any] | None, operation: Operation) -> bool:
  """True when this write moves the document into the published state."""
  if data.get("_status") != PUBLISHED:
    return False
  if operation == "create" or original is None:
    return True
  return original.get("_status") != PUBLISHED


def validate_publish(data: Mapping[str, Any], original: Mapping[str, Any] | None, operation: Operation, *, limit: int = DEFAULT_BLOCKER_LIMIT) -> None:
  """Reject the whole write when it publishes an incompletely reviewed itinerary.

  `data` is the document as it would be stored after the write.
  """
  if not is_publish_transition(data, original, operation):
    return
  blockers = collect_blockers(parse_itinerary(data))
  if blockers:
    raise PublishBlockedError(blockers, limit=limit)
