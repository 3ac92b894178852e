"""OpenRouter chat-completions client with rate-limit aware retries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import openai
from openai import AsyncOpenAI

from itinerary_engine.config import DEFAULT_TEXT_MODEL, DEFAULT_VISION_MODEL, Settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
TEXT_MAX_TOKENS = 2000
VISION_MAX_TOKENS = 500

SleepFn = Callable[[float], Awaitable[Any]]


class InferenceConfigurationError(ValueError):
  """Raised when the inference client is missing required configuration."""


class InferenceError(RuntimeError):
  """Raised when the provider rejects a request with a non-retryable status."""

  def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.body = body


class MaxRetriesExceededError(InferenceError):
  """Raised when transient failures exhaust the attempt ceiling."""


def parse_retry_after(raw: str | None) -> float:
  """Return the retry-after hint in seconds, or 0 when absent or not numeric."""
  if not raw:
    return 0.0
  try:
    value = float(raw.strip())
  except ValueError:
    return 0.0
  return max(value, 0.0)


def rate_limit_delay_ms(attempt: int, base_delay_ms: int, retry_after_seconds: float = 0.0) -> float:
  """Exponential backoff for 429s, never shorter than the server's hint."""
  return max(retry_after_seconds * 1000, base_delay_ms * (2 ** (attempt - 1)))


def network_delay_ms(attempt: int, base_delay_ms: int) -> float:
  """Linear backoff for connection failures."""
  return base_delay_ms * attempt


def _response_body(exc: openai.APIStatusError) -> str:
  try:
    return exc.response.text
  except Exception:  # noqa: BLE001
    return str(exc.body or exc.message)


class OpenRouterClient:
  """Single choke point for outbound text and vision completions."""

  def __init__(
    self,
    api_key: str | None,
    *,
    base_url: str = DEFAULT_BASE_URL,
    max_attempts: int = 5,
    base_delay_ms: int = 3000,
    text_model: str = DEFAULT_TEXT_MODEL,
    vision_model: str = DEFAULT_VISION_MODEL,
    http_referer: str | None = None,
    title: str | None = None,
    client: AsyncOpenAI | None = None,
    sleep: SleepFn = asyncio.sleep,
  ) -> None:
    if not api_key or not api_key.strip():
      raise InferenceConfigurationError("OPENROUTER_API_KEY is required to call the inference service.")
    if max_attempts < 1:
      raise InferenceConfigurationError("max_attempts must be at least 1.")

    self.max_attempts = max_attempts
    self.base_delay_ms = base_delay_ms
    self.text_model = text_model
    self.vision_model = vision_model
    self._sleep = sleep

    # OpenRouter uses the OpenAI-compatible API; we add optional attribution headers.
    default_headers: dict[str, str] = {}
    if http_referer:
      default_headers["HTTP-Referer"] = http_referer
    if title:
      default_headers["X-Title"] = title

    # The SDK's own retries are disabled so backoff policy lives in one place.
    self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, default_headers=default_headers or None, max_retries=0)

  async def complete(self, payload: dict[str, Any]) -> str:
    """Send a chat completion and return the first message's text content."""
    last_error: Exception | None = None

    for attempt in range(1, self.max_attempts + 1):
      is_last = attempt == self.max_attempts
      try:
        response = await self._client.chat.completions.create(**payload)
      except openai.RateLimitError as exc:
        last_error = exc
        retry_after = parse_retry_after(exc.response.headers.get("retry-after"))
        delay_ms = rate_limit_delay_ms(attempt, self.base_delay_ms, retry_after)
        logger.warning("OpenRouter rate limited model=%s attempt=%d/%d delay_ms=%.0f", payload.get("model"), attempt, self.max_attempts, delay_ms)
        if not is_last:
          await self._sleep(delay_ms / 1000)
        continue
      except openai.APIStatusError as exc:
        body = _response_body(exc)
        raise InferenceError(f"OpenRouter error {exc.status_code}: {body}", status_code=exc.status_code, body=body) from exc
      except openai.APIConnectionError as exc:
        last_error = exc
        delay_ms = network_delay_ms(attempt, self.base_delay_ms)
        logger.warning("OpenRouter request failed model=%s attempt=%d/%d delay_ms=%.0f error=%s", payload.get("model"), attempt, self.max_attempts, delay_ms, exc)
        if not is_last:
          await self._sleep(delay_ms / 1000)
        continue

      if not response.choices:
        return ""
      return response.choices[0].message.content or ""

    raise MaxRetriesExceededError(f"OpenRouter: max retries exceeded after {self.max_attempts} attempts") from last_error

  async def complete_text(self, prompt: str, *, max_tokens: int = TEXT_MAX_TOKENS) -> str:
    """Text completion using the configured text model."""
    return await self.complete({"model": self.text_model, "messages": [{"role": "user", "content": prompt}], "max_tokens": max_tokens})

  async def analyze_image(self, image_base64: str, prompt: str, *, media_type: str = "image/jpeg", max_tokens: int = VISION_MAX_TOKENS) -> str:
    """Vision analysis of a base64 encoded image using the configured vision model."""
    content = [{"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{image_base64}"}}, {"type": "text", "text": prompt}]
    return await self.complete({"model": self.vision_model, "messages": [{"role": "user", "content": content}], "max_tokens": max_tokens})

  async def close(self) -> None:
    await self._client.close()


def build_inference_client(settings: Settings) -> OpenRouterClient | None:
  """Return a configured client, or None when no API key is available."""
  if not settings.openrouter_api_key:
    logger.warning("OPENROUTER_API_KEY not set; image labeling will use default labels.")
    return None

  return OpenRouterClient(
    settings.openrouter_api_key,
    base_url=settings.openrouter_base_url,
    max_attempts=settings.inference_max_attempts,
    base_delay_ms=settings.inference_base_delay_ms,
    text_model=settings.text_model,
    vision_model=settings.vision_model,
    http_referer=settings.openrouter_http_referer,
    title=settings.openrouter_title,
  )
