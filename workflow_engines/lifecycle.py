"""
Module: workflow_engines.lifecycle
Responsibility:
    Request State Machine -- validates a lifecycle event against the current
    request snapshot and the acting actor, and produces the next snapshot.
    Also validates new requests and owner edits.

Architecture position:
    Engines -- pure.  Takes a frozen ``Request``, returns a new frozen
    ``Request``.  Persistence, retries, audit appends and notifications are
    the workflow service's job (workflow_services.request_workflow).

Invariants enforced:
    - Only ``REQUEST_TRANSITIONS`` pairs are legal; terminal statuses accept
      no event.
    - Checks run in a fixed order: legality, approval-step pinning,
      authorization, guards, reason.  The first failure is raised and the
      input snapshot is never modified.
    - A request with approval level none never enters pending_approval; a
      request that needs approval only completes from approved.
    - Approval steps advance one at a time and never exceed the level's
      step count.
    - rejection_reason / cancellation_reason are set exactly once, by the
      transition that produces rejected / cancelled.

Failure modes:
    - InvalidTransitionError (and ApprovalRequiredError,
      NoApprovalRequiredError, StaleApprovalStepError).
    - PermissionDeniedError.
    - ValidationError for missing reasons and malformed new requests.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from workflow_engines.permission_gate import PermissionGate, required_capability_for_step
from workflow_kernel.domain.capabilities import Capability
from workflow_kernel.domain.request import (
    REASON_REQUIRED_EVENTS,
    Actor,
    Decision,
    Priority,
    Request,
    RequestStatus,
    RequestType,
    WorkflowEvent,
    is_legal,
)
from workflow_kernel.exceptions import (
    ApprovalRequiredError,
    InvalidTransitionError,
    NoApprovalRequiredError,
    PermissionDeniedError,
    StaleApprovalStepError,
    ValidationError,
)

UPDATE_EVENT = "update"

EDITABLE_FIELDS: frozenset[str] = frozenset({"priority", "metadata"})

_TITLE_TEMPLATES: dict[RequestType, tuple[str, str]] = {
    RequestType.PAYMENT: ("Payment to {}", "recipient_name"),
    RequestType.RECONCILIATION: ("Reconciliation with {}", "tenant_name"),
    RequestType.CONFIRMATION: ("Confirmation for {}", "client_name"),
}


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of a successfully applied event."""

    request: Request
    event: WorkflowEvent
    from_status: RequestStatus
    to_status: RequestStatus
    step: int | None = None
    decision: Decision | None = None
    comments: str | None = None

    @property
    def step_advanced(self) -> bool:
        return (
            self.event == WorkflowEvent.APPROVE
            and self.to_status == RequestStatus.PENDING_APPROVAL
        )


# =========================================================================
# Transitions
# =========================================================================


def apply_event(
    request: Request,
    event: WorkflowEvent,
    actor: Actor,
    gate: PermissionGate,
    now: datetime,
    *,
    reason: str | None = None,
    notes: str | None = None,
    expected_step: int | None = None,
    assign_to_self: bool = False,
) -> TransitionOutcome:
    """Apply ``event`` to ``request`` on behalf of ``actor``.

    Args:
        request: Current snapshot.
        event: Lifecycle event to apply.
        actor: Acting identity and role.
        gate: Capability checks.
        now: Timestamp for ``updated_at`` (and ``completed_at``).
        reason: Mandatory for cancel and reject.
        notes: Optional free text (approval comments, completion notes).
        expected_step: Approval step the caller observed; approve/reject at
            pending_approval fail with StaleApprovalStepError if the request
            is no longer at that step.
        assign_to_self: On start_processing, take over an assigned request.

    Returns:
        TransitionOutcome carrying the new snapshot.
    """
    request_id = str(request.request_id)
    status = request.status

    if not is_legal(status, event):
        raise InvalidTransitionError(request_id, status.value, event.value)

    at_approval = status == RequestStatus.PENDING_APPROVAL
    if at_approval and expected_step is not None and expected_step != request.current_approval_step:
        raise StaleApprovalStepError(
            request_id,
            status.value,
            event.value,
            expected_step=expected_step,
            current_step=request.current_approval_step,
        )

    _authorize(request, event, actor, gate)

    if (
        event == WorkflowEvent.COMPLETE
        and status == RequestStatus.IN_PROGRESS
        and request.requires_approval
    ):
        raise ApprovalRequiredError(
            request_id, status.value, event.value, request.approval_level.value,
        )
    if event == WorkflowEvent.SEND_FOR_APPROVAL and not request.requires_approval:
        raise NoApprovalRequiredError(request_id, status.value, event.value)

    clean_reason = reason.strip() if reason else ""
    if event in REASON_REQUIRED_EVENTS and not clean_reason:
        raise ValidationError(f"A reason is required to {event.value}", field="reason")

    changes: dict[str, Any] = {"updated_at": now}
    step: int | None = None
    decision: Decision | None = None
    comments = notes.strip() if notes and notes.strip() else None

    if event == WorkflowEvent.START_PROCESSING:
        changes["status"] = RequestStatus.IN_PROGRESS
        if request.assignee_id is None or assign_to_self:
            changes["assignee_id"] = actor.actor_id
    elif event == WorkflowEvent.CANCEL:
        changes["status"] = RequestStatus.CANCELLED
        changes["cancellation_reason"] = clean_reason
        comments = clean_reason
    elif event == WorkflowEvent.REQUEST_INFO:
        changes["status"] = RequestStatus.NEEDS_INFO
    elif event == WorkflowEvent.RESUME:
        changes["status"] = RequestStatus.IN_PROGRESS
    elif event == WorkflowEvent.SEND_FOR_APPROVAL:
        changes["status"] = RequestStatus.PENDING_APPROVAL
        changes["current_approval_step"] = 1
    elif event == WorkflowEvent.COMPLETE:
        changes["status"] = RequestStatus.COMPLETED
        changes["completed_at"] = now
        changes["resolution_notes"] = comments
    elif event == WorkflowEvent.REJECT:
        changes["status"] = RequestStatus.REJECTED
        changes["rejection_reason"] = clean_reason
        comments = clean_reason
        if at_approval:
            step = request.current_approval_step
            decision = Decision.REJECT
    elif event == WorkflowEvent.APPROVE:
        step = request.current_approval_step
        decision = Decision.APPROVE
        if step < request.required_steps:
            changes["status"] = RequestStatus.PENDING_APPROVAL
            changes["current_approval_step"] = step + 1
        else:
            changes["status"] = RequestStatus.APPROVED

    updated = replace(request, **changes)
    return TransitionOutcome(
        request=updated,
        event=event,
        from_status=status,
        to_status=updated.status,
        step=step,
        decision=decision,
        comments=comments,
    )


def _authorize(request: Request, event: WorkflowEvent, actor: Actor, gate: PermissionGate) -> None:
    request_id = str(request.request_id)

    if event == WorkflowEvent.CANCEL:
        if actor.actor_id != request.requester_id:
            raise PermissionDeniedError(
                str(actor.actor_id), "cancel a request they did not create", request_id=request_id,
            )
        if not gate.has(actor.role, Capability.CANCEL_OWN):
            raise PermissionDeniedError(
                str(actor.actor_id),
                "cancel requests",
                required_capability=Capability.CANCEL_OWN.value,
                request_id=request_id,
            )
        return

    if request.status == RequestStatus.PENDING_APPROVAL:
        step = request.current_approval_step
        if not gate.can_approve_at_step(actor.role, request.approval_level, step):
            capability = required_capability_for_step(request.approval_level, step)
            raise PermissionDeniedError(
                str(actor.actor_id),
                f"{event.value} at approval step {step}",
                required_capability=capability.value if capability else None,
                request_id=request_id,
            )
        return

    if not gate.can_process(actor.role):
        raise PermissionDeniedError(
            str(actor.actor_id),
            event.value,
            required_capability=Capability.PROCESS.value,
            request_id=request_id,
        )


# =========================================================================
# Creation and owner edits
# =========================================================================


def parse_amount(value: Any) -> Decimal | None:
    """Coerce a caller-supplied amount to Decimal. Floats are rejected."""
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError("amount must be a Decimal, integer or numeric string", field="amount")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"amount is not a number: {value!r}", field="amount") from None


def validate_new_request(
    request_type: RequestType,
    priority: Priority,
    amount: Decimal | None,
    metadata: Mapping[str, Any],
    required_metadata: Mapping[RequestType, tuple[str, ...]],
) -> None:
    """Collect every problem with a new request and raise them together.

    Raises:
        ValidationError: amount missing/negative for a payment, amount given
            for a non-payment type, or required metadata keys missing.
    """
    errors: list[str] = []
    if request_type == RequestType.PAYMENT:
        if amount is None:
            errors.append("amount is required for payment requests")
        elif not amount.is_finite() or amount < 0:
            errors.append("amount must be a non-negative number")
    elif amount is not None:
        errors.append(f"amount is only allowed for payment requests, not {request_type.value}")

    errors.extend(_missing_metadata(request_type, metadata, required_metadata))

    if errors:
        raise ValidationError(errors)


def _missing_metadata(
    request_type: RequestType,
    metadata: Mapping[str, Any],
    required_metadata: Mapping[RequestType, tuple[str, ...]],
) -> list[str]:
    errors = []
    for key in required_metadata.get(request_type, ()):
        value = metadata.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"{key} is required for {request_type.value} requests")
    return errors


def _metadata_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"{type(obj).__name__} values are not supported")


def normalize_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Any]:
    """JSON-native copy of caller metadata.

    Dates and datetimes become ISO strings; Decimals and UUIDs become strings.

    Raises:
        ValidationError: A value has no JSON form (sets, arbitrary objects).
    """
    if not metadata:
        return {}
    try:
        return json.loads(json.dumps(dict(metadata), default=_metadata_default, allow_nan=False))
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"metadata must be JSON-serializable: {exc}", field="metadata",
        ) from None


def derive_title(request_type: RequestType, metadata: Mapping[str, Any]) -> str:
    """Display title; an explicit ``title`` in metadata wins."""
    explicit = metadata.get("title")
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()[:300]
    template, key = _TITLE_TEMPLATES[request_type]
    subject = metadata.get(key)
    if subject:
        return template.format(subject)[:300]
    return request_type.value.capitalize()


def apply_owner_update(
    request: Request,
    actor: Actor,
    gate: PermissionGate,
    now: datetime,
    changes: Mapping[str, Any],
    *,
    required_metadata: Mapping[RequestType, tuple[str, ...]] | None = None,
) -> tuple[Request, tuple[str, ...]]:
    """Apply a requester's edit to a pending request.

    Only ``priority`` and ``metadata`` are editable; ``metadata`` is merged
    key by key and the merged result must still carry the type's required
    keys.  The caller recomputes the SLA deadline when priority changes.

    Returns:
        The updated snapshot and the names of fields that actually changed.
    """
    request_id = str(request.request_id)

    if request.status != RequestStatus.PENDING:
        raise InvalidTransitionError(
            request_id, request.status.value, UPDATE_EVENT,
            reason="requests can only be edited while pending",
        )
    if actor.actor_id != request.requester_id:
        raise PermissionDeniedError(
            str(actor.actor_id), "edit a request they did not create", request_id=request_id,
        )
    if not gate.has(actor.role, Capability.EDIT_OWN):
        raise PermissionDeniedError(
            str(actor.actor_id),
            "edit requests",
            required_capability=Capability.EDIT_OWN.value,
            request_id=request_id,
        )

    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            [f"{name} cannot be edited" for name in unknown], field=unknown[0],
        )

    updates: dict[str, Any] = {}
    if "priority" in changes and changes["priority"] is not None:
        try:
            priority = Priority(changes["priority"])
        except ValueError:
            raise ValidationError(
                f"Unknown priority {changes['priority']!r}", field="priority",
            ) from None
        if priority != request.priority:
            updates["priority"] = priority
    if "metadata" in changes and changes["metadata"]:
        merged = {**request.metadata, **normalize_metadata(changes["metadata"])}
        missing = _missing_metadata(request.request_type, merged, required_metadata or {})
        if missing:
            raise ValidationError(missing, field="metadata")
        if merged != dict(request.metadata):
            updates["metadata"] = merged
            updates["title"] = derive_title(request.request_type, merged)

    changed = tuple(sorted(k for k in updates if k != "title"))
    if not updates:
        return request, ()
    return replace(request, updated_at=now, **updates), changed
