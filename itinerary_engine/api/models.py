from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class JobControlRequest(BaseModel):
  """Operator action on an import job."""

  action: StrictStr | None = Field(default=None, description="One of cancel, retry, retry-failed.")


class JobControlResponse(BaseModel):
  success: bool
  message: str
  jobId: str
  retryCount: int | None = None


class DashboardBatchRequest(BaseModel):
  """Bulk stage change for content projects."""

  action: StrictStr | None = Field(default=None, description="One of advance, reject, retry.")
  project_ids: list[StrictStr | StrictInt] = Field(default_factory=list, alias="projectIds")
  reason: StrictStr | None = None
  create_directive: bool = Field(default=False, alias="createDirective")
  model_config = ConfigDict(populate_by_name=True)


class DashboardBatchResponse(BaseModel):
  success: bool
  updated: int


class ProcessImagesTask(BaseModel):
  job_id: StrictStr = Field(min_length=1)
  model_config = ConfigDict(extra="ignore")


def split_itinerary_body(body: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
  """Separate the optimistic-lock token from the document fields."""
  data = dict(body)
  expected = data.pop("expectedUpdatedAt", None)
  if expected is not None and not isinstance(expected, str):
    raise ValueError("expectedUpdatedAt must be a string timestamp.")
  return data, expected
