import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from itinerary_engine.config import get_settings
from itinerary_engine.core.json import DecimalJSONResponse
from itinerary_engine.jobs.progress import JobNotFoundError, JobStateError
from itinerary_engine.publishing.gate import PublishBlockedError
from itinerary_engine.publishing.models import InvalidItineraryError
from itinerary_engine.services.dashboard import BatchActionError
from itinerary_engine.storage.documents import ConflictError, DocumentNotFoundError

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None, **extra: Any) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"detail": detail, **extra}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an HTTPException detail payload safe for logs."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in {"input", "body", "payload", "content"}}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  """Global exception handler to catch unhandled errors."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return DecimalJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> DecimalJSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return DecimalJSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> DecimalJSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  settings = get_settings()
  request_id = _request_id(request)
  # Do not expose `exc.detail` to callers on 5xx.
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)


async def publish_blocked_exception_handler(request: Request, exc: PublishBlockedError) -> DecimalJSONResponse:
  """Reject the write with the truncated blocker summary and the full list."""
  request_id = _request_id(request)
  logger.info("Publish blocked request_id=%s path=%s blockers=%d", request_id, request.url.path, len(exc.blockers))
  return DecimalJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(str(exc), request_id=request_id, blockers=exc.blockers))


async def bad_request_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  """Map client-correctable domain errors (invalid state, malformed documents) to 400."""
  request_id = _request_id(request)
  logger.warning("Bad request request_id=%s path=%s error_type=%s error=%s", request_id, request.url.path, type(exc).__name__, exc)
  return DecimalJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_payload(str(exc), request_id=request_id))


async def not_found_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  request_id = _request_id(request)
  return DecimalJSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_payload(str(exc), request_id=request_id))


async def conflict_exception_handler(request: Request, exc: ConflictError) -> DecimalJSONResponse:
  """Report a stale `expectedUpdatedAt` along with the current version."""
  request_id = _request_id(request)
  logger.info("Write conflict request_id=%s path=%s expected=%s actual=%s", request_id, request.url.path, exc.expected, exc.actual)
  return DecimalJSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload(str(exc), request_id=request_id, currentUpdatedAt=exc.actual))


EXCEPTION_HANDLERS: tuple[tuple[type[Exception], Any], ...] = (
  (Exception, global_exception_handler),
  (HTTPException, http_exception_handler),
  (RequestValidationError, request_validation_exception_handler),
  (PublishBlockedError, publish_blocked_exception_handler),
  (InvalidItineraryError, bad_request_exception_handler),
  (JobStateError, bad_request_exception_handler),
  (BatchActionError, bad_request_exception_handler),
  (JobNotFoundError, not_found_exception_handler),
  (DocumentNotFoundError, not_found_exception_handler),
  (ConflictError, conflict_exception_handler),
)
