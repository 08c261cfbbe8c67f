"""
workflow_services.notifier -- Notifier implementations.

Responsibility:
    Concrete ``Notifier`` sinks for ``RequestNotification`` events.  The
    workflow service calls ``emit`` only after a change has committed; a
    notifier may drop, delay or fail to deliver without affecting that
    change.

    LoggingNotifier   -- writes each notification as a structured log line.
    ThreadedNotifier  -- hands each notification to a delegate on a worker
                         thread so ``emit`` never blocks the caller.
    RecordingNotifier -- keeps notifications in memory (tests, dry runs).
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from workflow_kernel.domain.notification import Notifier, RequestNotification
from workflow_kernel.logging_config import get_logger

logger = get_logger("services.notifier")


class LoggingNotifier:
    """Emit notifications as ``request_notification`` log records."""

    def emit(self, notification: RequestNotification) -> None:
        logger.info(
            "request_notification",
            extra={
                "notification_type": notification.notification_type.value,
                "notified_request_id": str(notification.request_id),
                "request_number": notification.request_number,
                "notified_actor_id": str(notification.actor_id),
                "status": notification.status.value if notification.status else None,
                "occurred_at": notification.occurred_at.isoformat(),
            },
        )


class ThreadedNotifier:
    """Fire-and-forget wrapper that delivers through ``delegate`` off-thread.

    Delivery failures are logged from the worker thread; they are never
    reported back to the caller of ``emit``.
    """

    def __init__(
        self,
        delegate: Notifier,
        executor: Executor | None = None,
        max_workers: int = 2,
    ):
        self._delegate = delegate
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="workflow-notify",
        )

    def emit(self, notification: RequestNotification) -> None:
        future = self._executor.submit(self._delegate.emit, notification)
        future.add_done_callback(
            lambda f: self._log_failure(f, notification),
        )

    @staticmethod
    def _log_failure(future: Future, notification: RequestNotification) -> None:
        exc = future.exception()
        if exc is None:
            return
        logger.warning(
            "notification_failed",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={
                "notification_type": notification.notification_type.value,
                "notified_request_id": str(notification.request_id),
            },
        )

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


class RecordingNotifier:
    """Collects notifications in memory, in emission order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._notifications: list[RequestNotification] = []

    def emit(self, notification: RequestNotification) -> None:
        with self._lock:
            self._notifications.append(notification)

    @property
    def notifications(self) -> tuple[RequestNotification, ...]:
        with self._lock:
            return tuple(self._notifications)

    def types(self) -> list[str]:
        return [n.notification_type.value for n in self.notifications]

    def clear(self) -> None:
        with self._lock:
            self._notifications.clear()
