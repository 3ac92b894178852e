import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from itinerary_engine.api.deps import get_store
from itinerary_engine.api.models import split_itinerary_body
from itinerary_engine.config import Settings, get_settings
from itinerary_engine.core.security import Principal, require_session
from itinerary_engine.services.itineraries import save_itinerary
from itinerary_engine.storage.documents import Document, DocumentStore

router = APIRouter()
logger = logging.getLogger("itinerary_engine.api.routes.itineraries")


def _split(body: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
  try:
    return split_itinerary_body(body)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_itinerary(
  body: Annotated[dict[str, Any], Body()],
  store: Annotated[DocumentStore, Depends(get_store)],
  settings: Annotated[Settings, Depends(get_settings)],
  principal: Annotated[Principal, Depends(require_session)],
) -> Document:
  """Create an itinerary; publishing on create must pass the gate."""
  data, _expected = _split(body)
  logger.info("Itinerary create by=%s", principal.subject)
  return await save_itinerary(store, data, blocker_limit=settings.publish_blocker_limit)


@router.patch("/{itinerary_id}")
async def update_itinerary(
  itinerary_id: str,
  body: Annotated[dict[str, Any], Body()],
  store: Annotated[DocumentStore, Depends(get_store)],
  settings: Annotated[Settings, Depends(get_settings)],
  principal: Annotated[Principal, Depends(require_session)],
) -> Document:
  """Merge fields into an itinerary; `expectedUpdatedAt` enables optimistic locking."""
  data, expected = _split(body)
  logger.info("Itinerary update id=%s by=%s", itinerary_id, principal.subject)
  return await save_itinerary(store, data, itinerary_id=itinerary_id, expected_updated_at=expected, blocker_limit=settings.publish_blocker_limit)
