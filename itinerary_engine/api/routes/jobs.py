import logging
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from itinerary_engine.api.deps import get_jobs_repo, get_notifier, get_store, get_task_enqueuer
from itinerary_engine.api.models import JobControlRequest, JobControlResponse
from itinerary_engine.config import Settings, get_settings
from itinerary_engine.core.json import DecimalJSONResponse
from itinerary_engine.core.security import require_pipeline_access
from itinerary_engine.notifications.service import NotificationService
from itinerary_engine.services.health import collect_health
from itinerary_engine.services.job_control import run_job_action
from itinerary_engine.services.job_status import get_job_status
from itinerary_engine.services.tasks.interface import TaskEnqueuer
from itinerary_engine.storage.documents import DocumentStore, now_iso
from itinerary_engine.storage.jobs_repo import JobsRepository

router = APIRouter(dependencies=[Depends(require_pipeline_access)])
logger = logging.getLogger("itinerary_engine.api.routes.jobs")


@router.get("/job-status/{job_id}")
async def job_status(job_id: str, jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)]) -> dict:
  """Return the normalized progress projection for one import job."""
  return await get_job_status(jobs_repo, job_id)


@router.get("/scraper-health", response_model=None)
async def scraper_health(store: Annotated[DocumentStore, Depends(get_store)], settings: Annotated[Settings, Depends(get_settings)]) -> dict | JSONResponse:
  """Summarize queue depth, stuck jobs, media labeling and recent failures."""
  try:
    return await collect_health(store, stuck_after=timedelta(minutes=settings.stuck_job_threshold_minutes))
  except Exception as exc:  # noqa: BLE001
    logger.error("Health check failed: %s", exc, exc_info=True)
    return DecimalJSONResponse(status_code=500, content={"status": "error", "success": False, "error": "Failed to fetch health status", "details": str(exc), "timestamp": now_iso()})


@router.post("/job-control/{job_id}", response_model=JobControlResponse, response_model_exclude_none=True)
async def job_control(
  job_id: str,
  payload: JobControlRequest,
  jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repo)],
  enqueuer: Annotated[TaskEnqueuer, Depends(get_task_enqueuer)],
  notifier: Annotated[NotificationService, Depends(get_notifier)],
) -> dict:
  """Cancel a live job, retry a failed one, or re-queue its failed images."""
  logger.info("Job control action=%s job_id=%s", payload.action, job_id)
  return await run_job_action(payload.action or "", job_id, jobs_repo=jobs_repo, enqueuer=enqueuer, notifier=notifier)
