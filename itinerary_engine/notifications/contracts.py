"""Contracts for pipeline notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

NotificationType = Literal["info", "success", "warning", "error"]

NOTIFICATIONS_COLLECTION = "notifications"


@dataclass(frozen=True)
class NotificationEvent:
  """A single admin-facing notification about a job."""

  type: NotificationType
  message: str
  job_id: str | None = None
  itinerary_id: str | None = None

  def to_document(self) -> dict[str, Any]:
    data: dict[str, Any] = {"type": self.type, "message": self.message, "read": False}
    if self.job_id:
      data["job"] = self.job_id
    if self.itinerary_id:
      data["itinerary"] = self.itinerary_id
    return data


class Notifier(Protocol):
  """Best-effort notification dispatch; implementations must never raise."""

  def dispatch(self, event: NotificationEvent) -> None:
    """Schedule delivery of a notification without waiting for it."""
