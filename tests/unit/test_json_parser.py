import json

import pytest

from itinerary_engine.ai.json_parser import extract_json_object, parse_json_with_fallback


def test_fenced_block_wins_over_earlier_braces() -> None:
  raw = 'Example {"a": 0}\n```json\n{"a": 1}\n```'
  assert extract_json_object(raw) == {"a": 1}


def test_balanced_object_inside_prose() -> None:
  raw = 'Result: {"text": "a } inside a string", "nested": {"b": 2}} done'
  assert extract_json_object(raw) == {"text": "a } inside a string", "nested": {"b": 2}}


def test_trailing_commas_are_tolerated() -> None:
  assert parse_json_with_fallback('{"tags": ["a", "b",],}') == {"tags": ["a", "b"]}


def test_no_object_raises_decode_error() -> None:
  with pytest.raises(json.JSONDecodeError):
    extract_json_object("no json here")
  with pytest.raises(json.JSONDecodeError):
    extract_json_object("[1, 2]")
