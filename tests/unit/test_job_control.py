from __future__ import annotations

import httpx
import pytest

from itinerary_engine.jobs.progress import JobNotFoundError, JobProgressTracker, JobStateError
from itinerary_engine.services.job_control import TaskDispatchError, run_job_action


class FailingEnqueuer:
  async def enqueue(self, job_id: str, payload: dict) -> None:
    raise httpx.ConnectError("task endpoint unreachable")


async def _finished_job(jobs_repo, make_job, *, failures: int) -> str:
  keys = tuple(f"img-{index}.jpg" for index in range(3))
  job_id = await make_job(source_keys=keys, processedItinerary="it-7")
  tracker = JobProgressTracker(job_id=job_id, jobs_repo=jobs_repo)
  await tracker.start()
  for index, status in enumerate(await jobs_repo.list_image_statuses(job_id)):
    claimed = await tracker.mark_image_processing(status)
    await tracker.record_image_result(claimed, "failed" if index < failures else "completed", error="HTTP 503" if index < failures else None)
  await tracker.complete()
  return job_id


@pytest.mark.anyio
async def test_cancel(jobs_repo, make_job, enqueuer) -> None:
  job_id = await make_job(status="processing")

  result = await run_job_action("cancel", job_id, jobs_repo=jobs_repo, enqueuer=enqueuer)

  assert result == {"success": True, "message": "Job cancelled", "jobId": job_id}
  assert (await jobs_repo.get_job(job_id)).error_message == "Cancelled by user"
  assert enqueuer.calls == []


@pytest.mark.anyio
async def test_retry_resets_and_dispatches(jobs_repo, make_job, enqueuer) -> None:
  job_id = await make_job(status="failed", processedItinerary="it-7", errorMessage="boom")

  result = await run_job_action("retry", job_id, jobs_repo=jobs_repo, enqueuer=enqueuer)

  assert result["message"] == "Job retry started"
  assert enqueuer.calls == [(job_id, {"itineraryId": "it-7", "retry": True})]
  assert (await jobs_repo.get_job(job_id)).status == "pending"


@pytest.mark.anyio
async def test_retry_failed_reports_count(jobs_repo, make_job, enqueuer) -> None:
  job_id = await _finished_job(jobs_repo, make_job, failures=2)

  result = await run_job_action("retry-failed", job_id, jobs_repo=jobs_repo, enqueuer=enqueuer)

  assert result == {"success": True, "message": "Retrying 2 failed images", "jobId": job_id, "retryCount": 2}
  assert enqueuer.calls == [(job_id, {"itineraryId": "it-7", "retryFailed": True})]


@pytest.mark.anyio
async def test_retry_failed_without_failures(jobs_repo, make_job, enqueuer) -> None:
  job_id = await _finished_job(jobs_repo, make_job, failures=0)

  with pytest.raises(JobStateError):
    await run_job_action("retry-failed", job_id, jobs_repo=jobs_repo, enqueuer=enqueuer)


@pytest.mark.anyio
async def test_invalid_action_and_unknown_job(jobs_repo, enqueuer) -> None:
  with pytest.raises(JobStateError, match="Invalid action. Must be: cancel, retry, retry-failed"):
    await run_job_action("pause", "job-1", jobs_repo=jobs_repo, enqueuer=enqueuer)
  with pytest.raises(JobNotFoundError):
    await run_job_action("cancel", "missing", jobs_repo=jobs_repo, enqueuer=enqueuer)


@pytest.mark.anyio
async def test_dispatch_failure_is_reported(jobs_repo, make_job) -> None:
  job_id = await make_job(status="failed")

  with pytest.raises(TaskDispatchError) as excinfo:
    await run_job_action("retry", job_id, jobs_repo=jobs_repo, enqueuer=FailingEnqueuer())

  assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
