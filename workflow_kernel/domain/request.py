"""
Request domain types (``workflow_kernel.domain.request``).

Responsibility
--------------
Pure value objects for the request lifecycle: status/event enums, the
transition table, and the frozen ``Request``, ``Comment`` and ``AuditEntry``
records exchanged between the engines, the repository and callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``REQUEST_TRANSITIONS`` lists the only legal ``(status, event)`` pairs and
  the statuses each may produce.  Terminal statuses have no outgoing events.
* ``required_steps`` is the single mapping from approval level to step
  count (none=0, chief_accountant=1, executive=2).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID


# =========================================================================
# Enumerations
# =========================================================================


class RequestType(str, Enum):
    """Kinds of accounting request routed through the workflow."""

    RECONCILIATION = "reconciliation"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


class RequestStatus(str, Enum):
    """Request lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    NEEDS_INFO = "needs_info"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    """Request priority. Affects SLA duration only."""

    NORMAL = "normal"
    URGENT = "urgent"


class ApprovalLevel(str, Enum):
    """Approval track derived from a payment amount."""

    NONE = "none"
    CHIEF_ACCOUNTANT = "chief_accountant"
    EXECUTIVE = "executive"


class WorkflowEvent(str, Enum):
    """Events that move a request between statuses."""

    START_PROCESSING = "start_processing"
    CANCEL = "cancel"
    REQUEST_INFO = "request_info"
    REJECT = "reject"
    COMPLETE = "complete"
    SEND_FOR_APPROVAL = "send_for_approval"
    RESUME = "resume"
    APPROVE = "approve"


class Decision(str, Enum):
    """Approver decisions recorded in approval audit entries."""

    APPROVE = "approve"
    REJECT = "reject"


class AuditAction(str, Enum):
    """Kinds of audit entry appended to a request's audit stream."""

    CREATED = "created"
    TRANSITIONED = "transitioned"
    UPDATED = "updated"


# =========================================================================
# Transition table
# =========================================================================


REQUEST_TRANSITIONS: dict[tuple[RequestStatus, WorkflowEvent], frozenset[RequestStatus]] = {
    (RequestStatus.PENDING, WorkflowEvent.START_PROCESSING): frozenset({
        RequestStatus.IN_PROGRESS,
    }),
    (RequestStatus.PENDING, WorkflowEvent.CANCEL): frozenset({
        RequestStatus.CANCELLED,
    }),
    (RequestStatus.IN_PROGRESS, WorkflowEvent.REQUEST_INFO): frozenset({
        RequestStatus.NEEDS_INFO,
    }),
    (RequestStatus.IN_PROGRESS, WorkflowEvent.REJECT): frozenset({
        RequestStatus.REJECTED,
    }),
    (RequestStatus.IN_PROGRESS, WorkflowEvent.COMPLETE): frozenset({
        RequestStatus.COMPLETED,
    }),
    (RequestStatus.IN_PROGRESS, WorkflowEvent.SEND_FOR_APPROVAL): frozenset({
        RequestStatus.PENDING_APPROVAL,
    }),
    (RequestStatus.NEEDS_INFO, WorkflowEvent.RESUME): frozenset({
        RequestStatus.IN_PROGRESS,
    }),
    # Intermediate steps stay in pending_approval; the last step approves.
    (RequestStatus.PENDING_APPROVAL, WorkflowEvent.APPROVE): frozenset({
        RequestStatus.PENDING_APPROVAL,
        RequestStatus.APPROVED,
    }),
    (RequestStatus.PENDING_APPROVAL, WorkflowEvent.REJECT): frozenset({
        RequestStatus.REJECTED,
    }),
    (RequestStatus.APPROVED, WorkflowEvent.COMPLETE): frozenset({
        RequestStatus.COMPLETED,
    }),
}

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.COMPLETED,
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
})

REASON_REQUIRED_EVENTS: frozenset[WorkflowEvent] = frozenset({
    WorkflowEvent.CANCEL,
    WorkflowEvent.REJECT,
})

_REQUIRED_STEPS: dict[ApprovalLevel, int] = {
    ApprovalLevel.NONE: 0,
    ApprovalLevel.CHIEF_ACCOUNTANT: 1,
    ApprovalLevel.EXECUTIVE: 2,
}


def required_steps(level: ApprovalLevel) -> int:
    """Number of sequential approval steps for an approval level."""
    return _REQUIRED_STEPS[level]


def allowed_events(status: RequestStatus) -> frozenset[WorkflowEvent]:
    """Events that are legal from ``status`` (empty for terminal statuses)."""
    return frozenset(event for (src, event) in REQUEST_TRANSITIONS if src == status)


def is_legal(status: RequestStatus, event: WorkflowEvent) -> bool:
    return (status, event) in REQUEST_TRANSITIONS


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller: identity plus role."""

    actor_id: UUID
    role: str


@dataclass(frozen=True)
class Comment:
    """A free-text note attached to a request. Immutable once created."""

    comment_id: UUID
    request_id: UUID
    author_id: UUID
    content: str
    is_internal: bool
    created_at: datetime


@dataclass(frozen=True)
class Request:
    """Immutable snapshot of a request.

    ``amount`` is present iff ``request_type`` is payment.
    ``approval_level`` is derived once at creation and never re-derived.
    ``current_approval_step`` is only meaningful in pending_approval.
    """

    request_id: UUID
    request_number: str
    request_type: RequestType
    status: RequestStatus
    priority: Priority
    requester_id: UUID
    created_at: datetime
    updated_at: datetime
    title: str = ""
    amount: Decimal | None = None
    approval_level: ApprovalLevel = ApprovalLevel.NONE
    current_approval_step: int = 1
    assignee_id: UUID | None = None
    sla_deadline: datetime | None = None
    rejection_reason: str | None = None
    cancellation_reason: str | None = None
    resolution_notes: str | None = None
    completed_at: datetime | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    comments: tuple[Comment, ...] = ()

    @property
    def required_steps(self) -> int:
        return required_steps(self.approval_level)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def requires_approval(self) -> bool:
        return self.approval_level != ApprovalLevel.NONE


@dataclass(frozen=True)
class AuditEntry:
    """One immutable entry in a request's audit stream.

    Approval decisions carry ``step`` and ``decision``.  ``seq`` is 1-based
    and gap-free per request; ``entry_hash`` chains to ``prev_hash``.
    """

    entry_id: UUID
    request_id: UUID
    seq: int
    action: AuditAction
    actor_id: UUID
    occurred_at: datetime
    event: WorkflowEvent | None = None
    from_status: RequestStatus | None = None
    to_status: RequestStatus | None = None
    step: int | None = None
    decision: Decision | None = None
    comments: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)
    prev_hash: str | None = None
    entry_hash: str = ""


# =========================================================================
# Query types
# =========================================================================


SORTABLE_FIELDS: frozenset[str] = frozenset({
    "created_at",
    "updated_at",
    "sla_deadline",
    "amount",
    "priority",
})

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class RequestQuery:
    """Filters for listing requests.

    ``requester_id`` is forced to the caller's id by the workflow service
    when the caller may not view all requests.
    """

    status: RequestStatus | None = None
    request_type: RequestType | None = None
    priority: Priority | None = None
    assignee_id: UUID | None = None
    requester_id: UUID | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    search: str | None = None
    sort_by: str = "created_at"
    descending: bool = True
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0


@dataclass(frozen=True)
class RequestPage:
    """One page of listed requests (comments are not loaded)."""

    items: tuple[Request, ...]
    total: int
    limit: int
    offset: int
