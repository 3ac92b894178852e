"""Lenient JSON parsing helpers for LLM outputs."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def extract_json_object(raw: str) -> dict[str, Any]:
  """Return the JSON object embedded in a model reply.

  Looks for a fenced code block first, then the first balanced ``{...}`` span,
  then the raw text itself. Raises ``json.JSONDecodeError`` when none parse to
  an object.
  """
  candidates: list[str] = []

  # Prefer fenced blocks because models often wrap JSON in markdown.
  fenced = _FENCED_BLOCK_RE.search(raw)
  if fenced:
    candidates.append(fenced.group(1).strip())

  # Fall back to the first balanced object anywhere in the reply.
  block = _extract_object_block(raw)
  if block is not None:
    candidates.append(block)

  candidates.append(raw.strip())

  last_error: json.JSONDecodeError | None = None
  for candidate in candidates:
    try:
      parsed = parse_json_with_fallback(candidate)
    except json.JSONDecodeError as exc:
      last_error = exc
      continue
    if isinstance(parsed, dict):
      return parsed

  if last_error is not None:
    raise last_error
  raise json.JSONDecodeError("No JSON object found in model output", raw, 0)


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON with minimal recovery to keep LLM retries low."""
  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return json.loads(raw)
  except json.JSONDecodeError:
    pass

  # Strip trailing commas that commonly appear in LLM output.
  return json.loads(_strip_trailing_commas(raw))


def _extract_object_block(raw: str) -> str | None:
  """Locate the first balanced JSON object for recovery parsing."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  # Scan the text for a balanced payload while honoring string escapes.
  for index, char in enumerate(raw):
    if start_index is None:
      if char == "{":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
      continue

    if char == "{":
      depth += 1
      continue

    if char == "}":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None


def _strip_trailing_commas(raw: str) -> str:
  """Remove trailing commas before closing brackets for lenient parsing."""
  return _TRAILING_COMMA_RE.sub(r"\1", raw)
