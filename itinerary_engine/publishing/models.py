"""Typed view of an itinerary document for review checks."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import msgspec

ITINERARIES_COLLECTION = "itineraries"
PUBLISHED = "published"
SEGMENT_TYPES = frozenset({"stay", "activity", "transfer"})
# Unlisted segment kinds are decoded under this tag and keep their name in `label`.
OTHER_SEGMENT_TAG = "_other"


class InvalidItineraryError(ValueError):
  """Raised when a document cannot be read as an itinerary."""


class Overview(msgspec.Struct, rename="camel"):
  summary: Any = None
  summary_reviewed: bool | None = None
  countries: list[Any] | None = None
  nights: int | None = None


class InvestmentLevel(msgspec.Struct, rename="camel"):
  from_price: float | None = None
  currency: str | None = None
  includes: Any = None
  includes_reviewed: bool | None = None


class StaySegment(msgspec.Struct, tag="stay", tag_field="blockType", rename="camel"):
  accommodation_name: str | None = None
  accommodation_name_reviewed: bool | None = None
  description: Any = None
  description_reviewed: bool | None = None
  inclusions: Any = None
  inclusions_reviewed: bool | None = None
  nights: int | None = None


class ActivitySegment(msgspec.Struct, tag="activity", tag_field="blockType", rename="camel"):
  title: str | None = None
  title_reviewed: bool | None = None
  description: Any = None
  description_reviewed: bool | None = None


class TransferSegment(msgspec.Struct, tag="transfer", tag_field="blockType", rename="camel"):
  title: str | None = None
  title_reviewed: bool | None = None
  description: Any = None
  description_reviewed: bool | None = None


class OtherSegment(msgspec.Struct, tag=OTHER_SEGMENT_TAG, tag_field="blockType", rename="camel"):
  """Any segment whose blockType is missing or not one of the known kinds."""

  label: str = "segment"
  description: Any = None
  description_reviewed: bool | None = None


Segment = StaySegment | ActivitySegment | TransferSegment | OtherSegment


class Day(msgspec.Struct, rename="camel"):
  day_number: int | None = None
  title: str | None = None
  title_reviewed: bool | None = None
  segments: list[Segment] | None = None


class FaqItem(msgspec.Struct, rename="camel"):
  question: str | None = None
  question_reviewed: bool | None = None
  answer: Any = None
  answer_reviewed: bool | None = None


class Itinerary(msgspec.Struct, rename="camel"):
  status: str | None = msgspec.field(default=None, name="_status")
  title: str | None = None
  title_reviewed: bool | None = None
  meta_title: str | None = None
  meta_title_reviewed: bool | None = None
  meta_description: str | None = None
  meta_description_reviewed: bool | None = None
  hero_image: Any = None
  hero_image_reviewed: bool | None = None
  why_kiuli: Any = None
  why_kiuli_reviewed: bool | None = None
  overview: Overview | None = None
  investment_level: InvestmentLevel | None = None
  days: list[Day] | None = None
  faq_items: list[FaqItem] | None = None
  trip_types: list[Any] | None = None
  publish_checklist: dict[str, bool | None] | None = None


def _tag_segment(segment: Any) -> Any:
  if not isinstance(segment, Mapping) or segment.get("blockType") in SEGMENT_TYPES:
    return segment
  return {**segment, "blockType": OTHER_SEGMENT_TAG, "label": str(segment.get("blockType") or "segment")}


def _tag_unlisted_segments(data: Mapping[str, Any]) -> dict[str, Any]:
  document = dict(data)
  days = document.get("days")
  if not isinstance(days, list):
    return document
  document["days"] = [{**day, "segments": [_tag_segment(segment) for segment in day["segments"]]} if isinstance(day, Mapping) and isinstance(day.get("segments"), list) else day for day in days]
  return document


def parse_itinerary(data: Mapping[str, Any]) -> Itinerary:
  """Convert a raw document into an Itinerary; unlisted segment kinds become OtherSegment."""
  try:
    return msgspec.convert(_tag_unlisted_segments(data), type=Itinerary, strict=False)
  except msgspec.ValidationError as exc:
    raise InvalidItineraryError(f"Invalid itinerary document: {exc}") from exc
