from __future__ import annotations

from itinerary_engine.config import Settings
from itinerary_engine.services.tasks.interface import TaskEnqueuer
from itinerary_engine.services.tasks.local import LocalHttpEnqueuer


def get_task_enqueuer(settings: Settings) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  return LocalHttpEnqueuer(settings)
