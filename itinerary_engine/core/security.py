from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from fastapi import Cookie, Depends, Header, HTTPException, status
from starlette.concurrency import run_in_threadpool

from itinerary_engine.config import Settings, get_settings
from itinerary_engine.core.firebase import verify_id_token

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "
_API_KEY_PREFIX = "users API-Key "


@dataclass(frozen=True)
class Principal:
  """Who is calling: an automation key holder or a signed-in editor."""

  kind: Literal["api_key", "session"]
  subject: str
  claims: dict[str, Any] | None = None


def _unauthorized(detail: str = "Unauthorized: Invalid or missing credentials") -> HTTPException:
  return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _secret_matches(candidate: str, *secrets_: str | None) -> bool:
  """Constant-time comparison against every configured secret."""
  matched = False
  for secret in secrets_:
    if secret and secrets.compare_digest(candidate.encode(), secret.encode()):
      matched = True
  return matched


def api_key_principal(authorization: str | None, settings: Settings) -> Principal | None:
  """Accept `Bearer <scraper or payload key>` or `users API-Key <payload key>`."""
  if not authorization:
    return None
  if authorization.startswith(_BEARER_PREFIX):
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if token and _secret_matches(token, settings.scraper_api_key, settings.payload_api_key):
      return Principal(kind="api_key", subject="automation")
  if authorization.startswith(_API_KEY_PREFIX):
    token = authorization[len(_API_KEY_PREFIX) :].strip()
    if token and _secret_matches(token, settings.payload_api_key):
      return Principal(kind="api_key", subject="payload")
  return None


async def session_principal(authorization: str | None, session_cookie: str | None) -> Principal | None:
  """Verify an editor session from a bearer ID token or the `session` cookie."""
  candidates: list[str] = []
  if authorization and authorization.startswith(_BEARER_PREFIX):
    candidates.append(authorization[len(_BEARER_PREFIX) :].strip())
  if session_cookie:
    candidates.append(session_cookie)

  for id_token in candidates:
    if not id_token:
      continue
    decoded_claims = await run_in_threadpool(verify_id_token, id_token)
    if decoded_claims and decoded_claims.get("uid"):
      return Principal(kind="session", subject=str(decoded_claims["uid"]), claims=decoded_claims)
  return None


async def require_pipeline_access(settings: Annotated[Settings, Depends(get_settings)], authorization: Annotated[str | None, Header()] = None, session: Annotated[str | None, Cookie()] = None) -> Principal:
  """Allow automation API keys or an editor session."""
  principal = api_key_principal(authorization, settings)
  if principal is None:
    principal = await session_principal(authorization, session)
  if principal is None:
    logger.warning("Rejected pipeline request without valid credentials")
    raise _unauthorized()
  return principal


async def require_session(authorization: Annotated[str | None, Header()] = None, session: Annotated[str | None, Cookie()] = None) -> Principal:
  """Allow signed-in editors only."""
  principal = await session_principal(authorization, session)
  if principal is None:
    raise _unauthorized("Unauthorized")
  return principal


async def require_task_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: Annotated[str | None, Header()] = None, x_itinerary_task_secret: Annotated[str | None, Header()] = None) -> None:
  """Guard internal task endpoints with the shared task secret (deny-by-default)."""
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest((x_itinerary_task_secret or "").encode(), settings.task_secret.encode())
  bearer_valid = secrets.compare_digest((authorization or "").encode(), f"{_BEARER_PREFIX}{settings.task_secret}".encode())
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
