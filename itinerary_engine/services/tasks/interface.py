from __future__ import annotations

from typing import Protocol


class TaskEnqueuer(Protocol):
  """Interface for enqueuing background image-processing runs."""

  async def enqueue(self, job_id: str, payload: dict) -> None:
    """Enqueue a job for processing."""
    ...
