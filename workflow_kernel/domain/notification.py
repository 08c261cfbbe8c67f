"""
Notification domain types (``workflow_kernel.domain.notification``).

The workflow emits a ``RequestNotification`` after every committed change.
Delivery (chat bot, queue, webhook, log) belongs to whatever ``Notifier``
is plugged in; a notifier failure never affects the committed change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Protocol
from uuid import UUID

from workflow_kernel.domain.request import RequestStatus


class NotificationType(str, Enum):
    REQUEST_CREATED = "request_created"
    STATUS_CHANGED = "status_changed"
    APPROVAL_STEP_ADVANCED = "approval_step_advanced"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_CANCELLED = "request_cancelled"
    REQUEST_COMPLETED = "request_completed"
    INFO_REQUESTED = "info_requested"
    REQUEST_UPDATED = "request_updated"
    COMMENT_ADDED = "comment_added"


@dataclass(frozen=True)
class RequestNotification:
    """Event handed to the Notifier after a successful commit."""

    request_id: UUID
    notification_type: NotificationType
    actor_id: UUID
    occurred_at: datetime
    request_number: str = ""
    status: RequestStatus | None = None
    details: Mapping[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    """Best-effort, asynchronous notification sink."""

    def emit(self, notification: RequestNotification) -> None:
        ...
