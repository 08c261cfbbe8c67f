"""
workflow_services.request_workflow -- Request workflow orchestration.

Responsibility:
    Runs every request operation as one load-check-mutate-save transaction:
    load the snapshot and its version, let the pure lifecycle engine decide,
    save guarded by the version, append the chained audit entry, commit,
    and only then hand a notification to the Notifier.

Architecture position:
    Services layer.  May import from workflow_engines/ (pure engines),
    workflow_kernel/ (domain, services) and workflow_config/ (bridges).
    Contains no transition rules of its own; those live in
    ``workflow_engines.lifecycle``.

Invariants enforced:
    - A losing optimistic save raises ConcurrencyConflictError inside the
      transaction, which rolls it back.  The operation is retried once
      against a fresh load; a second conflict reaches the caller.
    - Approve / reject-at-approval pin the approval step seen on the first
      attempt, so a retry after another approver moved the request fails
      with StaleApprovalStepError or InvalidTransitionError.
    - One audit entry per committed change, chained to the previous entry.
    - Notifications are emitted after commit; notifier failures are logged
      and never raised.
    - Reads of a request the actor may not see raise RequestNotFoundError.

Failure modes:
    - ValidationError, InvalidTransitionError (and subclasses),
      PermissionDeniedError, RequestNotFoundError, ConcurrencyConflictError.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Mapping, TypeVar
from uuid import UUID, uuid4

from workflow_config.bridges import (
    build_capability_table,
    build_sla_policy,
    build_thresholds,
)
from workflow_config.schema import WorkflowConfig
from workflow_engines.audit_chain import chain_entry, verify_audit_chain
from workflow_engines.lifecycle import (
    apply_event,
    apply_owner_update,
    derive_title,
    normalize_metadata,
    parse_amount,
    validate_new_request,
)
from workflow_engines.permission_gate import PermissionGate
from workflow_engines.sla import SlaPolicy, SlaReading, compute_deadline, read_sla
from workflow_engines.thresholds import ApprovalThresholds, resolve_approval
from workflow_engines.visibility import can_view_request, filter_for_actor
from workflow_kernel.domain.capabilities import Capability, CapabilityProvider
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.notification import (
    NotificationType,
    Notifier,
    RequestNotification,
)
from workflow_kernel.domain.request import (
    Actor,
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
)
from workflow_kernel.exceptions import (
    AuditChainBrokenError,
    ConcurrencyConflictError,
    InvalidTransitionError,
    PermissionDeniedError,
    RequestNotFoundError,
    ValidationError,
)
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.services.request_repository import RepositoryScope, RequestRepository
from workflow_services.notifier import LoggingNotifier

logger = get_logger("services.request_workflow")

T = TypeVar("T")

MAX_ATTEMPTS = 2

_EVENT_NOTIFICATIONS: dict[WorkflowEvent, NotificationType] = {
    WorkflowEvent.START_PROCESSING: NotificationType.STATUS_CHANGED,
    WorkflowEvent.RESUME: NotificationType.STATUS_CHANGED,
    WorkflowEvent.SEND_FOR_APPROVAL: NotificationType.STATUS_CHANGED,
    WorkflowEvent.REQUEST_INFO: NotificationType.INFO_REQUESTED,
    WorkflowEvent.APPROVE: NotificationType.REQUEST_APPROVED,
    WorkflowEvent.REJECT: NotificationType.REQUEST_REJECTED,
    WorkflowEvent.CANCEL: NotificationType.REQUEST_CANCELLED,
    WorkflowEvent.COMPLETE: NotificationType.REQUEST_COMPLETED,
}


@dataclass(frozen=True)
class _Change:
    """A decided mutation, ready to be saved and audited."""

    request: Request
    action: AuditAction
    notification_type: NotificationType
    event: WorkflowEvent | None = None
    from_status: RequestStatus | None = None
    step: int | None = None
    decision: Decision | None = None
    comments: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)


def _coerce(enum_type: type[T], value: Any, field_name: str) -> T:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        raise ValidationError(
            f"Unknown {field_name} {value!r}", field=field_name,
        ) from None


class RequestWorkflowService:
    """Transactional entry points for the request lifecycle.

    Args:
        scope: Opens one repository transaction per call.
        capabilities: Role -> capability lookup for the Permission Gate.
        thresholds: Approval band edges.
        sla_policy: SLA durations and warning fraction.
        required_metadata: Metadata keys required per request type.
        request_number_prefix: Prefix of generated request numbers.
        notifier: Receives notifications after commit.
        clock: Time source.
    """

    def __init__(
        self,
        scope: RepositoryScope,
        capabilities: CapabilityProvider,
        thresholds: ApprovalThresholds,
        sla_policy: SlaPolicy,
        required_metadata: Mapping[RequestType, tuple[str, ...]] | None = None,
        request_number_prefix: str = "ACC",
        notifier: Notifier | None = None,
        clock: Clock | None = None,
    ):
        self._scope = scope
        self._gate = PermissionGate(capabilities)
        self._thresholds = thresholds
        self._sla_policy = sla_policy
        self._required_metadata = dict(required_metadata or {})
        self._prefix = request_number_prefix
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or SystemClock()

    @classmethod
    def from_config(
        cls,
        scope: RepositoryScope,
        config: WorkflowConfig,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        capabilities: CapabilityProvider | None = None,
    ) -> RequestWorkflowService:
        """Build a service from a loaded configuration set.

        ``capabilities`` overrides the configured role table (e.g. an
        external permission system).
        """
        return cls(
            scope,
            capabilities or build_capability_table(config),
            build_thresholds(config),
            build_sla_policy(config),
            required_metadata=config.required_metadata,
            request_number_prefix=config.request_number_prefix,
            notifier=notifier,
            clock=clock,
        )

    @property
    def gate(self) -> PermissionGate:
        return self._gate

    # =====================================================================
    # Creation
    # =====================================================================

    def create_request(
        self,
        actor: Actor,
        request_type: RequestType | str,
        *,
        amount: Any = None,
        priority: Priority | str = Priority.NORMAL,
        metadata: Mapping[str, Any] | None = None,
    ) -> Request:
        """Create a pending request.

        Raises:
            PermissionDeniedError: Actor lacks ``create``.
            ValidationError: Bad type, priority, amount or metadata.
        """
        with LogContext.bind(actor_id=str(actor.actor_id), event="create"):
            if not self._gate.has(actor.role, Capability.CREATE):
                raise PermissionDeniedError(
                    str(actor.actor_id),
                    "create requests",
                    required_capability=Capability.CREATE.value,
                )

            request_type = _coerce(RequestType, request_type, "request_type")
            priority = _coerce(Priority, priority, "priority")
            parsed_amount = parse_amount(amount)
            clean_metadata = normalize_metadata(metadata)
            validate_new_request(
                request_type, priority, parsed_amount, clean_metadata, self._required_metadata,
            )
            requirement = resolve_approval(request_type, parsed_amount, self._thresholds)

            def create() -> Request:
                now = self._clock.now()
                with self._scope() as repo:
                    request = Request(
                        request_id=uuid4(),
                        request_number=repo.next_request_number(self._prefix, now.year),
                        request_type=request_type,
                        status=RequestStatus.PENDING,
                        priority=priority,
                        requester_id=actor.actor_id,
                        created_at=now,
                        updated_at=now,
                        title=derive_title(request_type, clean_metadata),
                        amount=parsed_amount,
                        approval_level=requirement.approval_level,
                        sla_deadline=compute_deadline(
                            now, request_type, priority, self._sla_policy,
                        ),
                        metadata=clean_metadata,
                    )
                    repo.insert(request)
                    self._append_audit(
                        repo,
                        request,
                        actor,
                        now,
                        action=AuditAction.CREATED,
                        to_status=request.status,
                        details={
                            "request_number": request.request_number,
                            "request_type": request_type.value,
                            "priority": priority.value,
                            "approval_level": requirement.approval_level.value,
                            "amount": str(parsed_amount) if parsed_amount is not None else None,
                        },
                    )
                return request

            request = self._with_retry("create", str(actor.actor_id), create)

            logger.info(
                "request_created",
                extra={
                    "created_request_id": str(request.request_id),
                    "request_number": request.request_number,
                    "request_type": request.request_type.value,
                    "approval_level": request.approval_level.value,
                    "required_steps": request.required_steps,
                },
            )
            self._notify(request, NotificationType.REQUEST_CREATED, actor, request.created_at)
            return request

    # =====================================================================
    # Transitions
    # =====================================================================

    def change_status(
        self,
        request_id: UUID,
        actor: Actor,
        event: WorkflowEvent | str,
        *,
        reason: str | None = None,
        notes: str | None = None,
        assign_to_self: bool = False,
    ) -> Request:
        """Generic transition entry point; accepts every WorkflowEvent."""
        event = _coerce(WorkflowEvent, event, "event")
        return self._transition(
            request_id,
            actor,
            event,
            reason=reason,
            notes=notes,
            assign_to_self=assign_to_self,
        )

    def approve(self, request_id: UUID, actor: Actor, comments: str | None = None) -> Request:
        """Approve the current approval step."""
        return self._transition(request_id, actor, WorkflowEvent.APPROVE, notes=comments)

    def reject_approval(self, request_id: UUID, actor: Actor, reason: str) -> Request:
        """Reject a request awaiting approval at the current step."""
        return self._transition(
            request_id,
            actor,
            WorkflowEvent.REJECT,
            reason=reason,
            required_status=RequestStatus.PENDING_APPROVAL,
        )

    def cancel(self, request_id: UUID, actor: Actor, reason: str) -> Request:
        """Cancel a pending request; requester only."""
        return self._transition(request_id, actor, WorkflowEvent.CANCEL, reason=reason)

    def _transition(
        self,
        request_id: UUID,
        actor: Actor,
        event: WorkflowEvent,
        *,
        reason: str | None = None,
        notes: str | None = None,
        assign_to_self: bool = False,
        required_status: RequestStatus | None = None,
    ) -> Request:
        pinned: dict[str, int] = {}

        def decide(request: Request, now: datetime) -> _Change:
            self._require_visible(request, actor)
            if required_status is not None and request.status != required_status:
                raise InvalidTransitionError(
                    str(request.request_id),
                    request.status.value,
                    event.value,
                    reason=f"request is not {required_status.value}",
                )
            if request.status == RequestStatus.PENDING_APPROVAL:
                pinned.setdefault("step", request.current_approval_step)
            outcome = apply_event(
                request,
                event,
                actor,
                self._gate,
                now,
                reason=reason,
                notes=notes,
                expected_step=pinned.get("step"),
                assign_to_self=assign_to_self,
            )
            notification_type = _EVENT_NOTIFICATIONS[event]
            if outcome.step_advanced:
                notification_type = NotificationType.APPROVAL_STEP_ADVANCED
            details: dict[str, Any] = {}
            if outcome.request.assignee_id != request.assignee_id:
                details["assignee_id"] = str(outcome.request.assignee_id)
            if outcome.step_advanced:
                details["next_step"] = outcome.request.current_approval_step
            return _Change(
                request=outcome.request,
                action=AuditAction.TRANSITIONED,
                notification_type=notification_type,
                event=event,
                from_status=outcome.from_status,
                step=outcome.step,
                decision=outcome.decision,
                comments=outcome.comments,
                details=details,
            )

        with LogContext.bind(
            request_id=str(request_id), actor_id=str(actor.actor_id), event=event.value,
        ):
            request, change = self._with_retry(
                event.value, str(request_id), lambda: self._mutate(request_id, actor, decide),
            )
            if change is not None:
                logger.info(
                    "request_transitioned",
                    extra={
                        "from_status": change.from_status.value if change.from_status else None,
                        "to_status": request.status.value,
                        "approval_step": request.current_approval_step,
                    },
                )
                if change.notification_type == NotificationType.APPROVAL_STEP_ADVANCED:
                    logger.info(
                        "approval_step_advanced",
                        extra={
                            "approved_step": change.step,
                            "approval_step": request.current_approval_step,
                            "required_steps": request.required_steps,
                        },
                    )
                self._notify(request, change.notification_type, actor, request.updated_at, change)
            return filter_for_actor(request, actor, self._gate)

    # =====================================================================
    # Owner edits
    # =====================================================================

    def update_request(self, request_id: UUID, actor: Actor, **changes: Any) -> Request:
        """Requester edit of a pending request (``priority``, ``metadata``).

        A priority change recomputes the SLA deadline from ``created_at``.
        An edit that changes nothing writes nothing.
        """

        def decide(request: Request, now: datetime) -> _Change | None:
            self._require_visible(request, actor)
            updated, changed = apply_owner_update(
                request, actor, self._gate, now, changes,
                required_metadata=self._required_metadata,
            )
            if not changed:
                return None
            if "priority" in changed:
                updated = replace(
                    updated,
                    sla_deadline=compute_deadline(
                        updated.created_at, updated.request_type, updated.priority, self._sla_policy,
                    ),
                )
            return _Change(
                request=updated,
                action=AuditAction.UPDATED,
                notification_type=NotificationType.REQUEST_UPDATED,
                details={"changed_fields": list(changed)},
            )

        with LogContext.bind(
            request_id=str(request_id), actor_id=str(actor.actor_id), event="update",
        ):
            request, change = self._with_retry(
                "update", str(request_id), lambda: self._mutate(request_id, actor, decide),
            )
            if change is not None:
                logger.info(
                    "request_updated",
                    extra={"changed_fields": list(change.details["changed_fields"])},
                )
                self._notify(request, change.notification_type, actor, request.updated_at, change)
            return filter_for_actor(request, actor, self._gate)

    # =====================================================================
    # Comments
    # =====================================================================

    def add_comment(
        self,
        request_id: UUID,
        actor: Actor,
        content: str,
        is_internal: bool = False,
    ) -> Comment:
        """Append a comment.  Never bumps the request version.

        ``is_internal`` from an actor without ``process`` is stored as a
        public comment.
        """
        text = content.strip() if content else ""
        if not text:
            raise ValidationError("Comment content must not be empty", field="content")

        with LogContext.bind(
            request_id=str(request_id), actor_id=str(actor.actor_id), event="add_comment",
        ):
            internal = is_internal
            if internal and not self._gate.can_process(actor.role):
                logger.info("internal_comment_downgraded", extra={"role": actor.role})
                internal = False

            now = self._clock.now()
            with self._scope() as repo:
                request, _version = repo.load(request_id)
                self._require_visible(request, actor)
                comment = Comment(
                    comment_id=uuid4(),
                    request_id=request.request_id,
                    author_id=actor.actor_id,
                    content=text,
                    is_internal=internal,
                    created_at=now,
                )
                repo.append_comment(comment)

            logger.info(
                "comment_added",
                extra={"comment_id": str(comment.comment_id), "is_internal": internal},
            )
            self._notify(
                request,
                NotificationType.COMMENT_ADDED,
                actor,
                now,
                details={"comment_id": str(comment.comment_id), "is_internal": internal},
            )
            return comment

    # =====================================================================
    # Reads
    # =====================================================================

    def get_request(self, request_id: UUID, actor: Actor) -> Request:
        """Load a request with comments filtered for ``actor``."""
        with self._scope() as repo:
            request, _version = repo.load(request_id)
        self._require_visible(request, actor)
        return filter_for_actor(request, actor, self._gate)

    def list_requests(self, actor: Actor, query: RequestQuery | None = None) -> RequestPage:
        """One page of requests.  Without ``view_all`` only own requests are listed."""
        if not self._gate.has(actor.role, Capability.VIEW):
            raise PermissionDeniedError(
                str(actor.actor_id), "list requests", required_capability=Capability.VIEW.value,
            )
        query = query or RequestQuery()
        if not self._gate.can_view_all(actor.role):
            query = replace(query, requester_id=actor.actor_id)
        with self._scope() as repo:
            return repo.list_requests(query)

    def list_audit_trail(self, request_id: UUID, actor: Actor) -> tuple[AuditEntry, ...]:
        """Audit entries of a request, ordered by ``seq``."""
        with self._scope() as repo:
            request, _version = repo.load(request_id)
            self._require_visible(request, actor)
            return repo.audit_trail(request_id)

    def verify_audit_trail(self, request_id: UUID, actor: Actor) -> int:
        """Verify the audit hash chain; returns the number of entries checked.

        Raises:
            AuditChainBrokenError: The stored chain does not verify.
        """
        entries = self.list_audit_trail(request_id, actor)
        try:
            verify_audit_chain(entries)
        except AuditChainBrokenError:
            logger.error(
                "audit_chain_broken",
                exc_info=True,
                extra={"checked_request_id": str(request_id)},
            )
            raise
        return len(entries)

    def get_sla_status(self, request_id: UUID, actor: Actor) -> SlaReading:
        """Advisory SLA classification as of now; never mutates."""
        request = self.get_request(request_id, actor)
        return read_sla(request, self._clock.now(), self._sla_policy)

    # =====================================================================
    # Internals
    # =====================================================================

    def _require_visible(self, request: Request, actor: Actor) -> None:
        if not can_view_request(request, actor, self._gate):
            raise RequestNotFoundError(str(request.request_id))

    def _mutate(
        self,
        request_id: UUID,
        actor: Actor,
        decide: Callable[[Request, datetime], _Change | None],
    ) -> tuple[Request, _Change | None]:
        """One load-decide-save-audit transaction."""
        with self._scope() as repo:
            request, version = repo.load(request_id)
            now = self._clock.now()
            change = decide(request, now)
            if change is None:
                return request, None
            if not repo.save_if_version(change.request, version):
                raise ConcurrencyConflictError("Request", str(request_id), version)
            self._append_audit(
                repo,
                change.request,
                actor,
                now,
                action=change.action,
                event=change.event,
                from_status=change.from_status,
                to_status=change.request.status,
                step=change.step,
                decision=change.decision,
                comments=change.comments,
                details=change.details,
            )
            return change.request, change

    def _with_retry(self, operation: str, entity_id: str, attempt: Callable[[], T]) -> T:
        for attempt_number in range(1, MAX_ATTEMPTS + 1):
            try:
                return attempt()
            except ConcurrencyConflictError:
                if attempt_number == MAX_ATTEMPTS:
                    logger.warning(
                        "request_transition_conflict",
                        extra={"operation": operation, "entity_id": entity_id},
                    )
                    raise
                logger.info(
                    "request_transition_conflict_retry",
                    extra={"operation": operation, "entity_id": entity_id},
                )
        raise AssertionError("unreachable")

    def _append_audit(
        self,
        repo: RequestRepository,
        request: Request,
        actor: Actor,
        now: datetime,
        *,
        action: AuditAction,
        **fields: Any,
    ) -> AuditEntry:
        draft = AuditEntry(
            entry_id=uuid4(),
            request_id=request.request_id,
            seq=0,
            action=action,
            actor_id=actor.actor_id,
            occurred_at=now,
            **fields,
        )
        entry = chain_entry(draft, repo.last_audit_entry(request.request_id))
        repo.append_audit(entry)
        return entry

    def _notify(
        self,
        request: Request,
        notification_type: NotificationType,
        actor: Actor,
        occurred_at: datetime,
        change: _Change | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = dict(details or {})
        if change is not None:
            if change.event is not None:
                payload["event"] = change.event.value
            if change.from_status is not None:
                payload["from_status"] = change.from_status.value
            if change.step is not None:
                payload["step"] = change.step
            payload.update(change.details)
        notification = RequestNotification(
            request_id=request.request_id,
            notification_type=notification_type,
            actor_id=actor.actor_id,
            occurred_at=occurred_at,
            request_number=request.request_number,
            status=request.status,
            details=payload,
        )
        try:
            self._notifier.emit(notification)
        except Exception:
            logger.warning(
                "notification_failed",
                exc_info=True,
                extra={"notification_type": notification_type.value},
            )
