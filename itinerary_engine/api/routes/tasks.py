from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, status

from itinerary_engine.api.deps import get_image_pipeline
from itinerary_engine.api.models import ProcessImagesTask
from itinerary_engine.core.security import require_task_secret
from itinerary_engine.jobs.pipeline import ImagePipeline

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


async def run_image_pipeline(pipeline: ImagePipeline, job_id: str) -> None:
  """Background entry point; the pipeline records its own failures on the job."""
  try:
    await pipeline.run(job_id)
  except Exception as exc:  # noqa: BLE001
    logger.error("Image pipeline task failed job_id=%s: %s", job_id, exc)


@router.post("/process-images", status_code=status.HTTP_202_ACCEPTED)
async def process_images_task(payload: ProcessImagesTask, background_tasks: BackgroundTasks, pipeline: Annotated[ImagePipeline, Depends(get_image_pipeline)]) -> dict[str, str]:
  """Accept the task quickly and label the job's pending images in the background."""
  logger.info("Received image task for job %s", payload.job_id)
  background_tasks.add_task(run_image_pipeline, pipeline, payload.job_id)
  return {"status": "accepted"}
