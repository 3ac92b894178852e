from __future__ import annotations

import pytest

from itinerary_engine.labeling.labeler import LabelingContext, default_labels, label_image, labels_from_payload
from itinerary_engine.labeling.vocabulary import COUNTRIES, IMAGE_TYPES, QUALITIES, normalize_country, normalize_image_type, normalize_quality

DEFAULT_SHAPE = {
  "location": "Unknown",
  "country": "Unknown",
  "imageType": "landscape",
  "animals": [],
  "tags": ["safari", "travel", "africa"],
  "altText": "Safari travel image",
  "isHero": False,
  "quality": "medium",
}


class ScriptedVision:
  """Vision client double returning a canned reply or raising."""

  def __init__(self, reply: object = None, error: Exception | None = None) -> None:
    self.reply = reply
    self.error = error
    self.prompts: list[str] = []

  async def analyze_image(self, image_base64: str, prompt: str) -> str:
    self.prompts.append(prompt)
    if self.error is not None:
      raise self.error
    return self.reply  # type: ignore[return-value]


def test_default_labels_shape() -> None:
  assert default_labels().to_document() == DEFAULT_SHAPE


@pytest.mark.anyio
async def test_no_client_returns_defaults_without_calling_out() -> None:
  assert (await label_image(b"jpeg", None)).to_document() == DEFAULT_SHAPE


@pytest.mark.anyio
@pytest.mark.parametrize(
  "reply",
  [
    "",
    "I cannot analyze this image.",
    "```json\n{not valid json\n```",
    "[1, 2, 3]",
    "{\"location\": ",
    None,
  ],
)
async def test_malformed_output_collapses_to_defaults(reply: object) -> None:
  labels = await label_image(b"jpeg", ScriptedVision(reply=reply))
  assert labels.to_document() == DEFAULT_SHAPE


@pytest.mark.anyio
async def test_inference_failure_collapses_to_defaults() -> None:
  labels = await label_image(b"jpeg", ScriptedVision(error=RuntimeError("upstream 503")))
  assert labels.to_document() == DEFAULT_SHAPE


@pytest.mark.anyio
async def test_fenced_reply_is_parsed_and_normalized() -> None:
  reply = """Here you go:
```json
{"location": "Serengeti", "country": "tanzania", "imageType": "WILDLIFE", "animals": ["lion"], "tags": ["big cats", "savannah"], "altText": "A lion resting in golden grass", "isHero": true, "quality": "HIGH"}
```"""
  labels = await label_image(b"jpeg", ScriptedVision(reply=reply))

  assert labels.location == "Serengeti"
  assert labels.country == "Tanzania"
  assert labels.image_type == "wildlife"
  assert labels.animals == ("lion",)
  assert labels.is_hero is True
  assert labels.quality == "high"


@pytest.mark.anyio
async def test_first_balanced_object_is_used_without_fence() -> None:
  reply = 'Sure! {"location": "Okavango {Delta}", "country": "Botswana", "imageType": "aerial"} hope that helps'
  labels = await label_image(b"jpeg", ScriptedVision(reply=reply))

  assert labels.location == "Okavango {Delta}"
  assert labels.country == "Botswana"
  assert labels.image_type == "aerial"


@pytest.mark.anyio
async def test_context_is_added_to_prompt_and_fills_unknown_country() -> None:
  client = ScriptedVision(reply='{"country": "Atlantis", "imageType": "accommodation"}')
  context = LabelingContext(property_name="Angama Mara", country="Kenya", segment_type="stay", day_index=3)

  labels = await label_image(b"jpeg", client, context)

  assert labels.country == "Kenya"
  assert "Property: Angama Mara" in client.prompts[0]
  assert "Day: 3" in client.prompts[0]


def test_partial_payload_uses_field_fallbacks() -> None:
  labels = labels_from_payload({"imageType": "food"})
  assert labels.image_type == "food"
  assert labels.tags == ("safari", "travel")
  assert labels.animals == ()
  assert labels.alt_text == "Safari travel image"


@pytest.mark.parametrize("value", COUNTRIES)
def test_country_normalization_is_case_insensitive(value: str) -> None:
  assert normalize_country(value.upper()) == value
  assert normalize_country(value.lower()) == value
  assert normalize_country(f"  {value.swapcase()} ") == value


@pytest.mark.parametrize("value", IMAGE_TYPES)
def test_image_type_normalization_is_case_insensitive(value: str) -> None:
  assert normalize_image_type(value.upper()) == value
  assert normalize_image_type(value.title()) == value


@pytest.mark.parametrize("value", QUALITIES)
def test_quality_normalization_is_case_insensitive(value: str) -> None:
  assert normalize_quality(value.upper()) == value


@pytest.mark.parametrize("value", ["Mars", "", None, 42, "portrait"])
def test_unsupported_values_fall_back(value: object) -> None:
  assert normalize_country(value) == "Unknown"
  assert normalize_image_type(value) == "landscape"
  assert normalize_quality(value) == "medium"
