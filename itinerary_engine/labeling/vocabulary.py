"""Closed vocabularies for image labels and their normalizers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Final

COUNTRIES: Final[tuple[str, ...]] = ("Tanzania", "Kenya", "Botswana", "Rwanda", "South Africa", "Zimbabwe", "Zambia", "Namibia", "Uganda")
IMAGE_TYPES: Final[tuple[str, ...]] = ("wildlife", "landscape", "accommodation", "activity", "people", "food", "aerial", "detail")
QUALITIES: Final[tuple[str, ...]] = ("high", "medium", "low")

UNKNOWN_COUNTRY: Final[str] = "Unknown"
DEFAULT_IMAGE_TYPE: Final[str] = "landscape"
DEFAULT_QUALITY: Final[str] = "medium"


def normalize_choice(value: Any, vocabulary: Sequence[str], fallback: str) -> str:
  """Match value case-insensitively against vocabulary, returning canonical casing."""
  if not isinstance(value, str):
    return fallback
  needle = value.strip().lower()
  if not needle:
    return fallback
  for candidate in vocabulary:
    if candidate.lower() == needle:
      return candidate
  return fallback


def normalize_country(value: Any) -> str:
  return normalize_choice(value, COUNTRIES, UNKNOWN_COUNTRY)


def normalize_image_type(value: Any) -> str:
  return normalize_choice(value, IMAGE_TYPES, DEFAULT_IMAGE_TYPE)


def normalize_quality(value: Any) -> str:
  return normalize_choice(value, QUALITIES, DEFAULT_QUALITY)
