"""
Pure domain layer.

Immutable value objects and protocols with NO dependencies on the ORM,
the database or I/O.  Time enters only through an injected ``Clock``.
"""

from workflow_kernel.domain.capabilities import (
    Capability,
    CapabilityProvider,
    StaticCapabilityTable,
)
from workflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workflow_kernel.domain.notification import (
    NotificationType,
    Notifier,
    RequestNotification,
)
from workflow_kernel.domain.request import (
    REASON_REQUIRED_EVENTS,
    REQUEST_TRANSITIONS,
    TERMINAL_STATUSES,
    Actor,
    ApprovalLevel,
    AuditAction,
    AuditEntry,
    Comment,
    Decision,
    Priority,
    Request,
    RequestPage,
    RequestQuery,
    RequestStatus,
    RequestType,
    WorkflowEvent,
    allowed_events,
    is_legal,
    required_steps,
)

__all__ = [
    "Actor",
    "ApprovalLevel",
    "AuditAction",
    "AuditEntry",
    "Capability",
    "CapabilityProvider",
    "Clock",
    "Comment",
    "Decision",
    "DeterministicClock",
    "NotificationType",
    "Notifier",
    "Priority",
    "REASON_REQUIRED_EVENTS",
    "REQUEST_TRANSITIONS",
    "Request",
    "RequestNotification",
    "RequestPage",
    "RequestQuery",
    "RequestStatus",
    "RequestType",
    "StaticCapabilityTable",
    "SystemClock",
    "TERMINAL_STATUSES",
    "WorkflowEvent",
    "allowed_events",
    "is_legal",
    "required_steps",
]
