from __future__ import annotations

import pytest

SCRAPER_AUTH = {"Authorization": "Bearer scraper-test-key"}
TASK_AUTH = {"Authorization": "Bearer task-test-secret"}


@pytest.mark.anyio
@pytest.mark.parametrize("headers", [{}, SCRAPER_AUTH, {"x-itinerary-task-secret": "wrong"}])
async def test_task_endpoint_requires_task_secret(async_client, make_job, headers) -> None:
  job_id = await make_job()

  response = await async_client.post("/internal/tasks/process-images", json={"job_id": job_id}, headers=headers)

  assert response.status_code == 403


@pytest.mark.anyio
async def test_task_endpoint_runs_pipeline(async_client, jobs_repo, make_job, fetcher) -> None:
  job_id = await make_job(source_keys=("a.jpg", "b.jpg"))

  response = await async_client.post("/internal/tasks/process-images", json={"job_id": job_id, "itineraryId": "it-1"}, headers=TASK_AUTH)

  assert response.status_code == 202
  assert response.json() == {"status": "accepted"}
  job = await jobs_repo.get_job(job_id)
  assert job.status == "completed"
  assert sorted(fetcher.fetched) == ["a.jpg", "b.jpg"]


@pytest.mark.anyio
async def test_task_secret_header_is_accepted(async_client, make_job) -> None:
  job_id = await make_job()

  response = await async_client.post("/internal/tasks/process-images", json={"job_id": job_id}, headers={"x-itinerary-task-secret": "task-test-secret"})

  assert response.status_code == 202
