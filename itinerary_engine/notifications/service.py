"""Notification dispatch for pipeline lifecycle events."""

from __future__ import annotations

import asyncio
import logging

from itinerary_engine.notifications.contracts import NOTIFICATIONS_COLLECTION, NotificationEvent, Notifier
from itinerary_engine.storage.documents import DocumentStore

logger = logging.getLogger(__name__)


class NotificationService(Notifier):
  """Persists notifications in the background so callers never wait or fail on them."""

  def __init__(self, store: DocumentStore, *, enabled: bool = True) -> None:
    self._store = store
    self._enabled = enabled
    self._pending: set[asyncio.Task[None]] = set()

  def dispatch(self, event: NotificationEvent) -> None:
    """Schedule delivery as a detached task with its own error boundary."""
    if not self._enabled:
      return
    delivery = self._deliver(event)
    try:
      task = asyncio.create_task(delivery)
    except RuntimeError as exc:
      # No running loop (sync caller); drop rather than fail the pipeline.
      delivery.close()
      logger.error("Notification dropped; no running event loop: %s", exc)
      return
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)
    task.add_done_callback(self._log_task_error)

  async def _deliver(self, event: NotificationEvent) -> None:
    try:
      await self._store.create(NOTIFICATIONS_COLLECTION, event.to_document())
      logger.info("Notification created type=%s job_id=%s message=%s", event.type, event.job_id, event.message)
    except Exception as exc:  # noqa: BLE001
      logger.error("Notification delivery failed type=%s job_id=%s error=%s", event.type, event.job_id, exc, exc_info=True)

  @staticmethod
  def _log_task_error(task: asyncio.Task[None]) -> None:
    """Log background task exceptions to avoid silent delivery failures."""
    if task.cancelled():
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Background notification task failed: %s", exc, exc_info=exc)

  async def drain(self) -> None:
    """Wait for outstanding deliveries (shutdown and tests)."""
    if self._pending:
      await asyncio.gather(*list(self._pending), return_exceptions=True)

  def notify_job_started(self, job_id: str, title: str | None) -> None:
    self.dispatch(NotificationEvent(type="info", message=f"Started processing: {title or job_id}", job_id=job_id))

  def notify_job_completed(self, job_id: str, itinerary_id: str | None, title: str | None) -> None:
    self.dispatch(NotificationEvent(type="success", message=f"Completed: {title or job_id} is ready for review", job_id=job_id, itinerary_id=itinerary_id))

  def notify_job_failed(self, job_id: str, error: str) -> None:
    self.dispatch(NotificationEvent(type="error", message=f"Failed: {error}", job_id=job_id))

  def notify_images_processed(self, job_id: str, processed: int, failed: int) -> None:
    if failed > 0:
      event = NotificationEvent(type="warning", message=f"Image processing complete: {processed} processed, {failed} failed", job_id=job_id)
    else:
      event = NotificationEvent(type="success", message=f"Image processing complete: {processed} images processed", job_id=job_id)
    self.dispatch(event)

  def notify_job_cancelled(self, job_id: str, title: str | None) -> None:
    self.dispatch(NotificationEvent(type="warning", message=f"Job cancelled: {title or job_id}", job_id=job_id))
