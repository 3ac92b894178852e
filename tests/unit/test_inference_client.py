from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from itinerary_engine.ai.providers.openrouter import (
  InferenceConfigurationError,
  InferenceError,
  MaxRetriesExceededError,
  OpenRouterClient,
  build_inference_client,
  network_delay_ms,
  parse_retry_after,
  rate_limit_delay_ms,
)
from itinerary_engine.config import get_settings

_URL = "https://openrouter.ai/api/v1/chat/completions"


def _request() -> httpx.Request:
  return httpx.Request("POST", _URL)


def _rate_limited(retry_after: str | None = None) -> openai.RateLimitError:
  headers = {"retry-after": retry_after} if retry_after is not None else {}
  response = httpx.Response(429, headers=headers, text="rate limited", request=_request())
  return openai.RateLimitError("rate limited", response=response, body=None)


def _status_error(status_code: int, text: str) -> openai.APIStatusError:
  response = httpx.Response(status_code, text=text, request=_request())
  return openai.APIStatusError(text, response=response, body=None)


def _completion(content: str | None) -> SimpleNamespace:
  return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(side_effect: list, *, max_attempts: int = 5, base_delay_ms: int = 3000) -> tuple[OpenRouterClient, AsyncMock, list[float]]:
  sleeps: list[float] = []

  async def _sleep(seconds: float) -> None:
    sleeps.append(seconds)

  sdk = MagicMock()
  sdk.chat.completions.create = AsyncMock(side_effect=side_effect)
  client = OpenRouterClient("test-key", client=sdk, sleep=_sleep, max_attempts=max_attempts, base_delay_ms=base_delay_ms)
  return client, sdk.chat.completions.create, sleeps


def test_missing_api_key_is_fatal() -> None:
  with pytest.raises(InferenceConfigurationError):
    OpenRouterClient(None)
  with pytest.raises(InferenceConfigurationError):
    OpenRouterClient("   ")


def test_build_inference_client_without_key_returns_none() -> None:
  # The test environment never configures OPENROUTER_API_KEY.
  assert build_inference_client(get_settings()) is None


def test_delay_helpers() -> None:
  assert rate_limit_delay_ms(1, 3000) == 3000
  assert rate_limit_delay_ms(3, 3000) == 12000
  # The server hint wins when it is longer than the exponential step.
  assert rate_limit_delay_ms(1, 3000, retry_after_seconds=10) == 10000
  assert rate_limit_delay_ms(4, 3000, retry_after_seconds=10) == 24000
  assert network_delay_ms(1, 3000) == 3000
  assert network_delay_ms(3, 3000) == 9000
  assert parse_retry_after("7") == 7.0
  assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0
  assert parse_retry_after(None) == 0.0


@pytest.mark.anyio
async def test_success_returns_first_message_content() -> None:
  client, create, sleeps = _client([_completion("hello")])

  assert await client.complete_text("Say hello") == "hello"

  assert create.await_count == 1
  assert sleeps == []
  kwargs = create.await_args.kwargs
  assert kwargs["model"] == client.text_model
  assert kwargs["max_tokens"] == 2000


@pytest.mark.anyio
async def test_analyze_image_sends_data_url_and_prompt() -> None:
  client, create, _ = _client([_completion("{}")])

  await client.analyze_image("QUJD", "Describe")

  kwargs = create.await_args.kwargs
  assert kwargs["model"] == client.vision_model
  assert kwargs["max_tokens"] == 500
  content = kwargs["messages"][0]["content"]
  assert content[0] == {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,QUJD"}}
  assert content[1] == {"type": "text", "text": "Describe"}


@pytest.mark.anyio
async def test_rate_limit_then_success() -> None:
  client, create, sleeps = _client([_rate_limited(), _rate_limited(), _completion("ok")])

  assert await client.complete_text("x") == "ok"

  assert create.await_count == 3
  assert sleeps == [3.0, 6.0]


@pytest.mark.anyio
async def test_repeated_rate_limits_back_off_monotonically_and_stop_at_ceiling() -> None:
  client, create, sleeps = _client([_rate_limited() for _ in range(10)])

  with pytest.raises(MaxRetriesExceededError):
    await client.complete_text("x")

  # Exactly max_attempts network calls, no sleep after the final one.
  assert create.await_count == 5
  assert len(sleeps) == 4
  assert all(later >= earlier for earlier, later in zip(sleeps, sleeps[1:], strict=False))


@pytest.mark.anyio
async def test_retry_after_header_sets_the_floor() -> None:
  client, _, sleeps = _client([_rate_limited("20"), _completion("ok")])

  await client.complete_text("x")

  assert sleeps == [20.0]


@pytest.mark.anyio
async def test_non_rate_limit_status_fails_immediately_with_status_and_body() -> None:
  client, create, sleeps = _client([_status_error(400, "bad model id")])

  with pytest.raises(InferenceError) as excinfo:
    await client.complete_text("x")

  assert not isinstance(excinfo.value, MaxRetriesExceededError)
  assert excinfo.value.status_code == 400
  assert "400" in str(excinfo.value)
  assert "bad model id" in str(excinfo.value)
  assert create.await_count == 1
  assert sleeps == []


@pytest.mark.anyio
async def test_network_errors_retry_with_linear_backoff() -> None:
  error = openai.APIConnectionError(request=_request())
  client, create, sleeps = _client([error, error, _completion("recovered")], base_delay_ms=1000)

  assert await client.complete_text("x") == "recovered"

  assert create.await_count == 3
  assert sleeps == [1.0, 2.0]


@pytest.mark.anyio
async def test_network_errors_exhaust_attempts() -> None:
  error = openai.APIConnectionError(request=_request())
  client, create, _ = _client([error] * 3, max_attempts=3)

  with pytest.raises(MaxRetriesExceededError) as excinfo:
    await client.complete_text("x")

  assert create.await_count == 3
  assert isinstance(excinfo.value.__cause__, openai.APIConnectionError)
