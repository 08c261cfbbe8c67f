"""
Module: workflow_engines.sla
Responsibility:
    SLA Clock -- computes a request's resolution deadline and classifies the
    time left as ok / warning / breached.

Architecture position:
    Engines -- pure functions of their arguments.  ``now`` is always passed
    in; nothing here reads a clock, so classification is safe to call
    repeatedly for display.

Invariants enforced:
    - Durations are looked up by (request type, priority) from configuration.
    - Terminal requests (and requests without a deadline) classify as
      ``none``.  SLA breach is advisory and never changes a request.
    - Business-day durations skip Saturdays and Sundays and preserve the
      time of day.

Failure modes:
    - KeyError if the policy has no duration for (request type, priority).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Mapping

from workflow_kernel.domain.request import (
    TERMINAL_STATUSES,
    Priority,
    Request,
    RequestStatus,
    RequestType,
)


class SlaStatus(str, Enum):
    NONE = "none"
    OK = "ok"
    WARNING = "warning"
    BREACHED = "breached"


@dataclass(frozen=True)
class SlaPolicy:
    """SLA durations and warning threshold.

    ``durations`` values are business days when ``business_days_only`` is
    set, calendar days otherwise.  ``warning_fraction`` is the share of the
    total window (0 < f < 1) below which remaining time counts as warning.
    """

    durations: Mapping[tuple[RequestType, Priority], int]
    warning_fraction: float = 0.2
    business_days_only: bool = True


@dataclass(frozen=True)
class SlaReading:
    status: SlaStatus
    deadline: datetime | None
    remaining: timedelta | None


def add_business_days(start: datetime, days: int) -> datetime:
    """Advance ``start`` by ``days`` weekdays, keeping the time of day."""
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def compute_deadline(
    created_at: datetime,
    request_type: RequestType,
    priority: Priority,
    policy: SlaPolicy,
) -> datetime:
    """Deadline for a request created at ``created_at``."""
    days = policy.durations[(request_type, priority)]
    if policy.business_days_only:
        return add_business_days(created_at, days)
    return created_at + timedelta(days=days)


def classify(
    deadline: datetime | None,
    status: RequestStatus,
    now: datetime,
    *,
    created_at: datetime,
    warning_fraction: float,
) -> SlaStatus:
    """Classify remaining time against the SLA window ``[created_at, deadline]``."""
    if deadline is None or status in TERMINAL_STATUSES:
        return SlaStatus.NONE
    if now > deadline:
        return SlaStatus.BREACHED
    remaining = deadline - now
    total = deadline - created_at
    if remaining < total * warning_fraction:
        return SlaStatus.WARNING
    return SlaStatus.OK


def read_sla(request: Request, now: datetime, policy: SlaPolicy) -> SlaReading:
    """Classification plus remaining time for a request snapshot."""
    status = classify(
        request.sla_deadline,
        request.status,
        now,
        created_at=request.created_at,
        warning_fraction=policy.warning_fraction,
    )
    remaining = None
    if status != SlaStatus.NONE and request.sla_deadline is not None:
        remaining = request.sla_deadline - now
    return SlaReading(status=status, deadline=request.sla_deadline, remaining=remaining)
