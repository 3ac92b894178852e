"""Itinerary writes guarded by the checklist pre-step and the publish gate."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from itinerary_engine.publishing.checklist import calculate_checklist
from itinerary_engine.publishing.gate import DEFAULT_BLOCKER_LIMIT, validate_publish
from itinerary_engine.publishing.models import ITINERARIES_COLLECTION
from itinerary_engine.storage.documents import Document, DocumentNotFoundError, DocumentStore, strip_reserved

logger = logging.getLogger(__name__)


async def save_itinerary(store: DocumentStore, data: Mapping[str, Any], *, itinerary_id: str | None = None, expected_updated_at: str | None = None, blocker_limit: int = DEFAULT_BLOCKER_LIMIT) -> Document:
  """Create or update an itinerary; a blocked publish writes nothing."""
  incoming = strip_reserved(data)

  if itinerary_id is None:
    calculate_checklist(incoming, None)
    validate_publish(incoming, None, "create", limit=blocker_limit)
    document = await store.create(ITINERARIES_COLLECTION, incoming)
    logger.info("Itinerary created id=%s status=%s", document["id"], document.get("_status"))
    return document

  original = await store.find_by_id(ITINERARIES_COLLECTION, itinerary_id)
  if original is None:
    raise DocumentNotFoundError(ITINERARIES_COLLECTION, itinerary_id)

  calculate_checklist(incoming, original)
  # The gate judges the document as it will look after the merge.
  validate_publish({**strip_reserved(original), **incoming}, original, "update", limit=blocker_limit)
  document = await store.update(ITINERARIES_COLLECTION, itinerary_id, incoming, expected_updated_at=expected_updated_at)
  logger.info("Itinerary updated id=%s status=%s", itinerary_id, document.get("_status"))
  return document
