from __future__ import annotations

import pytest

from itinerary_engine.services.dashboard import CONTENT_PROJECTS_COLLECTION

SESSION = {"Authorization": "Bearer editor-id-token"}


@pytest.fixture(autouse=True)
def editor_session(monkeypatch) -> None:
  monkeypatch.setattr("itinerary_engine.core.security.verify_id_token", lambda token: {"uid": "editor-1"} if token == "editor-id-token" else None)


@pytest.mark.anyio
async def test_batch_advance(async_client, store) -> None:
  project = await store.create(CONTENT_PROJECTS_COLLECTION, {"stage": "idea", "contentType": "authority"})

  response = await async_client.post("/api/content/dashboard/batch", json={"action": "advance", "projectIds": [project["id"]]}, headers=SESSION)

  assert response.status_code == 200
  assert response.json() == {"success": True, "updated": 1}
  assert (await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project["id"]))["stage"] == "brief"


@pytest.mark.anyio
async def test_session_cookie_is_accepted(async_client, store) -> None:
  project = await store.create(CONTENT_PROJECTS_COLLECTION, {"stage": "draft"})
  async_client.cookies.set("session", "editor-id-token")

  response = await async_client.post("/api/content/dashboard/batch", json={"action": "reject", "projectIds": [project["id"]], "reason": "Off brand"})

  assert response.status_code == 200
  assert (await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project["id"]))["filterReason"] == "Off brand"


@pytest.mark.anyio
async def test_batch_requires_session(async_client) -> None:
  response = await async_client.post("/api/content/dashboard/batch", json={"action": "advance", "projectIds": ["p1"]}, headers={"Authorization": "Bearer scraper-test-key"})

  assert response.status_code == 401


@pytest.mark.anyio
@pytest.mark.parametrize(("payload", "detail"), [({"action": "advance", "projectIds": []}, "action and projectIds[] are required"), ({"action": "archive", "projectIds": ["p1"]}, "Unknown action: archive")])
async def test_batch_rejects_bad_requests(async_client, payload, detail) -> None:
  response = await async_client.post("/api/content/dashboard/batch", json=payload, headers=SESSION)

  assert response.status_code == 400
  assert response.json()["detail"] == detail


@pytest.mark.anyio
async def test_batch_with_unknown_project_is_not_found(async_client, store) -> None:
  project = await store.create(CONTENT_PROJECTS_COLLECTION, {"stage": "idea"})

  response = await async_client.post("/api/content/dashboard/batch", json={"action": "advance", "projectIds": [project["id"], "missing"]}, headers=SESSION)

  assert response.status_code == 404
  assert response.json()["detail"] == "content-projects document missing not found"
  assert (await store.find_by_id(CONTENT_PROJECTS_COLLECTION, project["id"]))["stage"] == "idea"
