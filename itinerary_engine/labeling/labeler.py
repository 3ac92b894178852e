"""Vision-model image labeling with deterministic fallbacks."""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from itinerary_engine.ai.json_parser import extract_json_object
from itinerary_engine.labeling.vocabulary import COUNTRIES, UNKNOWN_COUNTRY, normalize_country, normalize_image_type, normalize_quality

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "Unknown"
DEFAULT_ALT_TEXT = "Safari travel image"
DEFAULT_TAGS = ("safari", "travel", "africa")
FALLBACK_TAGS = ("safari", "travel")

LABELING_PROMPT = f"""Analyze this safari/travel image. Respond with ONLY valid JSON, no explanation:

{{
  "location": "Specific place name or region",
  "country": "{"|".join(COUNTRIES)}|Unknown",
  "imageType": "wildlife|landscape|accommodation|activity|people|food|aerial|detail",
  "animals": ["list", "of", "animals", "or empty array"],
  "tags": ["5-8", "searchable", "keywords"],
  "altText": "Descriptive alt text for accessibility, 10-20 words",
  "isHero": true or false,
  "quality": "high|medium|low"
}}"""


class VisionClient(Protocol):
  async def analyze_image(self, image_base64: str, prompt: str) -> str: ...


@dataclass(frozen=True)
class LabelingContext:
  """Ground truth about where an image appeared in the scraped itinerary."""

  property_name: str | None = None
  country: str | None = None
  segment_type: str | None = None
  segment_title: str | None = None
  day_index: int | None = None

  def prompt_suffix(self) -> str:
    lines = []
    if self.property_name:
      lines.append(f"Property: {self.property_name}")
    if self.country:
      lines.append(f"Country: {self.country}")
    if self.segment_type:
      lines.append(f"Segment type: {self.segment_type}")
    if self.segment_title:
      lines.append(f"Segment title: {self.segment_title}")
    if self.day_index is not None:
      lines.append(f"Day: {self.day_index}")
    if not lines:
      return ""
    return "\n\nKnown context for this image (use it when the image itself is ambiguous):\n" + "\n".join(lines)


@dataclass(frozen=True)
class ImageLabels:
  """Normalized descriptive labels for a single image."""

  location: str = DEFAULT_LOCATION
  country: str = UNKNOWN_COUNTRY
  image_type: str = "landscape"
  animals: tuple[str, ...] = ()
  tags: tuple[str, ...] = field(default=DEFAULT_TAGS)
  alt_text: str = DEFAULT_ALT_TEXT
  is_hero: bool = False
  quality: str = "medium"

  def to_document(self) -> dict[str, Any]:
    return {
      "location": self.location,
      "country": self.country,
      "imageType": self.image_type,
      "animals": list(self.animals),
      "tags": list(self.tags),
      "altText": self.alt_text,
      "isHero": self.is_hero,
      "quality": self.quality,
    }


def default_labels() -> ImageLabels:
  """Return the fixed record used whenever labeling cannot run or fails."""
  return ImageLabels()


def _string_list(value: Any, fallback: tuple[str, ...]) -> tuple[str, ...]:
  if not isinstance(value, list):
    return fallback
  return tuple(str(item).strip() for item in value if isinstance(item, str | int | float) and str(item).strip())


def _text(value: Any, fallback: str) -> str:
  if isinstance(value, str) and value.strip():
    return value.strip()
  return fallback


def labels_from_payload(payload: dict[str, Any], context: LabelingContext | None = None) -> ImageLabels:
  """Normalize a parsed model payload into an ImageLabels record."""
  country = normalize_country(payload.get("country"))
  # Scraped context is ground truth when the model could not place the image.
  if country == UNKNOWN_COUNTRY and context is not None:
    country = normalize_country(context.country)

  return ImageLabels(
    location=_text(payload.get("location"), DEFAULT_LOCATION),
    country=country,
    image_type=normalize_image_type(payload.get("imageType")),
    animals=_string_list(payload.get("animals"), ()),
    tags=_string_list(payload.get("tags"), FALLBACK_TAGS),
    alt_text=_text(payload.get("altText"), DEFAULT_ALT_TEXT),
    is_hero=bool(payload.get("isHero")),
    quality=normalize_quality(payload.get("quality")),
  )


async def label_image(image_bytes: bytes, client: VisionClient | None, context: LabelingContext | None = None) -> ImageLabels:
  """Label one image; never raises.

  With no client configured the default labels are returned without a network
  call. Inference or parse failures also collapse to the defaults.
  """
  if client is None:
    return default_labels()

  prompt = LABELING_PROMPT + (context.prompt_suffix() if context else "")
  try:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    reply = await client.analyze_image(encoded, prompt)
    payload = extract_json_object(reply)
    return labels_from_payload(payload, context)
  except asyncio.CancelledError:
    raise
  except Exception as exc:  # noqa: BLE001
    logger.warning("Image labeling failed; using default labels. error_type=%s error=%s", type(exc).__name__, exc)
    return default_labels()
