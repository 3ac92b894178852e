import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from itinerary_engine.api.deps import get_store
from itinerary_engine.api.models import DashboardBatchRequest, DashboardBatchResponse
from itinerary_engine.core.security import require_session
from itinerary_engine.services.dashboard import apply_batch_action
from itinerary_engine.storage.documents import DocumentStore

router = APIRouter(dependencies=[Depends(require_session)])
logger = logging.getLogger("itinerary_engine.api.routes.dashboard")


@router.post("/dashboard/batch", response_model=DashboardBatchResponse)
async def dashboard_batch(payload: DashboardBatchRequest, store: Annotated[DocumentStore, Depends(get_store)]) -> dict:
  """Advance, reject or reset many content projects at once."""
  project_ids = [str(project_id) for project_id in payload.project_ids]
  return await apply_batch_action(store, payload.action, project_ids, reason=payload.reason, create_directive=payload.create_directive)
