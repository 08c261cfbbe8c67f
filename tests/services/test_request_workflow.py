"""
Tests for RequestWorkflowService against a real database.

Tests cover:
- CreateRequest: validation, approval level, request numbers, SLA deadline
- Scenario A: single-step approval of a mid-band payment
- Scenario B: two-step executive approval, step-2 permission check
- Scenario C: non-payment request completes without approval
- Cancellation window (ownership and the cancel_own capability),
  reject-at-approval, terminal idempotence
- Failed operations leave the stored request and audit trail unchanged
- Notifications after commit; notifier failures never reach the caller
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from workflow_kernel.domain.capabilities import Capability, StaticCapabilityTable
from workflow_kernel.domain.notification import NotificationType
from workflow_kernel.domain.request import (
    Actor,
    ApprovalLevel,
    AuditAction,
    Decision,
    Priority,
    RequestStatus,
    RequestType,
    WorkflowEvent,
)
from workflow_kernel.exceptions import (
    ApprovalRequiredError,
    InvalidTransitionError,
    NoApprovalRequiredError,
    PermissionDeniedError,
    RequestNotFoundError,
    ValidationError,
)
from workflow_services.request_workflow import RequestWorkflowService


# =========================================================================
# CreateRequest
# =========================================================================


class TestCreateRequest:

    def test_mid_band_payment(self, create_payment, requester, clock):
        request = create_payment("3000000")
        assert request.status == RequestStatus.PENDING
        assert request.approval_level == ApprovalLevel.CHIEF_ACCOUNTANT
        assert request.required_steps == 1
        assert request.requester_id == requester.actor_id
        assert request.title == "Payment to Tashkent Supplies LLC"
        assert request.created_at == clock.now()
        assert request.sla_deadline == clock.now() + timedelta(days=3)

    def test_urgent_deadline(self, create_payment, clock):
        request = create_payment("100", priority="urgent")
        assert request.priority == Priority.URGENT
        assert request.sla_deadline == clock.now() + timedelta(days=1)

    def test_request_numbers_increase(self, create_payment, workflow, requester):
        first = create_payment("100")
        second = create_payment("200")
        third = workflow.create_request(
            requester, "confirmation", metadata={"client_name": "Uzum Market"},
        )
        assert first.request_number == "ACC-2026-000001"
        assert second.request_number == "ACC-2026-000002"
        assert third.request_number == "ACC-2026-000003"

    def test_numbers_restart_each_year(self, create_payment, clock):
        create_payment("100")
        clock.set_time(clock.now().replace(year=2027, month=1, day=4))
        assert create_payment("100").request_number == "ACC-2027-000001"

    def test_persisted(self, create_payment, workflow, requester):
        created = create_payment("15000000")
        loaded = workflow.get_request(created.request_id, requester)
        assert loaded.amount == Decimal("15000000")
        assert loaded.approval_level == ApprovalLevel.EXECUTIVE
        assert loaded.metadata == {"recipient_name": "Tashkent Supplies LLC"}
        assert loaded.comments == ()

    def test_missing_amount(self, workflow, requester):
        with pytest.raises(ValidationError):
            workflow.create_request(
                requester, RequestType.PAYMENT, metadata={"recipient_name": "A"},
            )

    def test_negative_amount(self, create_payment):
        with pytest.raises(ValidationError):
            create_payment("-5")

    def test_float_amount_rejected(self, workflow, requester):
        with pytest.raises(ValidationError):
            workflow.create_request(
                requester, "payment", amount=3000000.0, metadata={"recipient_name": "A"},
            )

    def test_unknown_type(self, workflow, requester):
        with pytest.raises(ValidationError) as exc_info:
            workflow.create_request(requester, "invoice")
        assert exc_info.value.field == "request_type"

    def test_unknown_priority(self, workflow, requester):
        with pytest.raises(ValidationError):
            workflow.create_request(
                requester, "reconciliation", priority="asap", metadata={"tenant_name": "A"},
            )

    def test_requires_create_capability(self, workflow, processor):
        with pytest.raises(PermissionDeniedError):
            workflow.create_request(
                processor, "reconciliation", metadata={"tenant_name": "Korzinka"},
            )

    def test_created_audit_entry(self, create_payment, workflow, requester):
        request = create_payment("3000000")
        (entry,) = workflow.list_audit_trail(request.request_id, requester)
        assert entry.action == AuditAction.CREATED
        assert entry.seq == 1
        assert entry.to_status == RequestStatus.PENDING
        assert entry.details["approval_level"] == "chief_accountant"
        assert entry.details["amount"] == "3000000"


# =========================================================================
# Approval scenarios
# =========================================================================


class TestScenarioA:
    """3,000,000 payment: chief_accountant level, one step."""

    def test_single_step_approval(
        self, create_payment, workflow, processor, chief_accountant, notifier,
    ):
        request = create_payment("3000000")
        started = workflow.change_status(request.request_id, processor, "start_processing")
        assert started.status == RequestStatus.IN_PROGRESS
        assert started.assignee_id == processor.actor_id

        sent = workflow.change_status(request.request_id, processor, "send_for_approval")
        assert sent.status == RequestStatus.PENDING_APPROVAL
        assert sent.current_approval_step == 1

        approved = workflow.approve(request.request_id, chief_accountant, "looks right")
        assert approved.status == RequestStatus.APPROVED

        completed = workflow.change_status(
            request.request_id, processor, "complete", notes="paid via bank",
        )
        assert completed.status == RequestStatus.COMPLETED
        assert completed.resolution_notes == "paid via bank"
        assert completed.completed_at is not None

        assert notifier.types() == [
            "request_created",
            "status_changed",
            "status_changed",
            "request_approved",
            "request_completed",
        ]

    def test_approval_audit_entry(self, create_payment, workflow, to_approval, chief_accountant):
        request = create_payment("3000000")
        to_approval(request)
        workflow.approve(request.request_id, chief_accountant, "looks right")
        entry = workflow.list_audit_trail(request.request_id, chief_accountant)[-1]
        assert entry.event == WorkflowEvent.APPROVE
        assert entry.step == 1
        assert entry.decision == Decision.APPROVE
        assert entry.actor_id == chief_accountant.actor_id
        assert entry.comments == "looks right"
        assert entry.from_status == RequestStatus.PENDING_APPROVAL
        assert entry.to_status == RequestStatus.APPROVED


class TestScenarioB:
    """15,000,000 payment: executive level, two steps."""

    def test_two_step_approval(
        self, create_payment, workflow, to_approval, chief_accountant,
        second_chief_accountant, executive, notifier,
    ):
        request = create_payment("15000000")
        assert request.approval_level == ApprovalLevel.EXECUTIVE
        assert to_approval(request).current_approval_step == 1

        with pytest.raises(PermissionDeniedError):
            workflow.approve(request.request_id, executive)

        step_two = workflow.approve(request.request_id, chief_accountant)
        assert step_two.status == RequestStatus.PENDING_APPROVAL
        assert step_two.current_approval_step == 2

        with pytest.raises(PermissionDeniedError) as exc_info:
            workflow.approve(request.request_id, second_chief_accountant)
        assert exc_info.value.required_capability == "accounting_requests:approve_high"

        approved = workflow.approve(request.request_id, executive)
        assert approved.status == RequestStatus.APPROVED
        assert approved.current_approval_step == 2

        assert NotificationType.APPROVAL_STEP_ADVANCED in [
            n.notification_type for n in notifier.notifications
        ]
        decisions = [
            (e.step, e.decision, e.actor_id)
            for e in workflow.list_audit_trail(request.request_id, executive)
            if e.decision is not None
        ]
        assert decisions == [
            (1, Decision.APPROVE, chief_accountant.actor_id),
            (2, Decision.APPROVE, executive.actor_id),
        ]

    def test_executive_rejects_at_step_two(
        self, create_payment, workflow, to_approval, chief_accountant, executive,
    ):
        request = create_payment("15000000")
        to_approval(request)
        workflow.approve(request.request_id, chief_accountant)
        rejected = workflow.reject_approval(request.request_id, executive, "budget frozen")
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.rejection_reason == "budget frozen"
        entry = workflow.list_audit_trail(request.request_id, executive)[-1]
        assert (entry.step, entry.decision) == (2, Decision.REJECT)


class TestScenarioC:

    def test_reconciliation_completes_directly(self, workflow, requester, processor):
        request = workflow.create_request(
            requester, "reconciliation", metadata={"tenant_name": "Korzinka"},
        )
        assert request.approval_level == ApprovalLevel.NONE
        workflow.change_status(request.request_id, processor, "start_processing")
        with pytest.raises(NoApprovalRequiredError):
            workflow.change_status(request.request_id, processor, "send_for_approval")
        done = workflow.change_status(request.request_id, processor, "complete")
        assert done.status == RequestStatus.COMPLETED

    def test_small_payment_completes_directly(self, create_payment, workflow, processor):
        request = create_payment("1999999")
        workflow.change_status(request.request_id, processor, "start_processing")
        done = workflow.change_status(request.request_id, processor, "complete")
        assert done.status == RequestStatus.COMPLETED


# =========================================================================
# Guards through the service
# =========================================================================


class TestGuardsAndFailures:

    def test_no_approval_bypass(self, create_payment, workflow, processor):
        request = create_payment("3000000")
        workflow.change_status(request.request_id, processor, "start_processing")
        with pytest.raises(ApprovalRequiredError):
            workflow.change_status(request.request_id, processor, "complete")

    def test_failed_transition_changes_nothing(
        self, create_payment, workflow, processor, requester, notifier,
    ):
        request = create_payment("3000000")
        workflow.change_status(request.request_id, processor, "start_processing")
        before = workflow.get_request(request.request_id, processor)
        trail_before = workflow.list_audit_trail(request.request_id, processor)
        notified = len(notifier.notifications)

        with pytest.raises(ApprovalRequiredError):
            workflow.change_status(request.request_id, processor, "complete")
        with pytest.raises(PermissionDeniedError):
            workflow.change_status(request.request_id, requester, "request_info")

        assert workflow.get_request(request.request_id, processor) == before
        assert workflow.list_audit_trail(request.request_id, processor) == trail_before
        assert len(notifier.notifications) == notified

    def test_approve_outside_approval(self, create_payment, workflow, chief_accountant):
        request = create_payment("3000000")
        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow.approve(request.request_id, chief_accountant)
        assert exc_info.value.current_status == "pending"
        assert exc_info.value.event == "approve"

    def test_reject_approval_only_at_approval(self, create_payment, workflow, processor):
        request = create_payment("3000000")
        workflow.change_status(request.request_id, processor, "start_processing")
        with pytest.raises(InvalidTransitionError):
            workflow.reject_approval(request.request_id, processor, "nope")

    def test_reject_in_progress_via_change_status(self, create_payment, workflow, processor):
        request = create_payment("3000000")
        workflow.change_status(request.request_id, processor, "start_processing")
        rejected = workflow.change_status(
            request.request_id, processor, "reject", reason="wrong supplier",
        )
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.rejection_reason == "wrong supplier"

    def test_unknown_event(self, create_payment, workflow, processor):
        request = create_payment("100")
        with pytest.raises(ValidationError):
            workflow.change_status(request.request_id, processor, "escalate")

    def test_unknown_request(self, workflow, processor):
        with pytest.raises(RequestNotFoundError):
            workflow.change_status(uuid4(), processor, "start_processing")


class TestCancellationWindow:

    def test_requester_cancels_pending(self, create_payment, workflow, requester, notifier):
        request = create_payment("100")
        cancelled = workflow.cancel(request.request_id, requester, "created by mistake")
        assert cancelled.status == RequestStatus.CANCELLED
        assert cancelled.cancellation_reason == "created by mistake"
        assert notifier.types()[-1] == "request_cancelled"

    def test_cancel_via_change_status(self, create_payment, workflow, requester):
        request = create_payment("100")
        cancelled = workflow.change_status(
            request.request_id, requester, "cancel", reason="duplicate",
        )
        assert cancelled.status == RequestStatus.CANCELLED

    def test_processor_cannot_cancel(self, create_payment, workflow, processor):
        request = create_payment("100")
        with pytest.raises(PermissionDeniedError):
            workflow.cancel(request.request_id, processor, "not mine")

    def test_other_requester_sees_not_found(self, create_payment, workflow, other_requester):
        request = create_payment("100")
        with pytest.raises(RequestNotFoundError):
            workflow.cancel(request.request_id, other_requester, "not mine")

    def test_owner_without_cancel_own_is_denied(self, repository_scope, config, clock, notifier):
        table = StaticCapabilityTable({
            "clerk": [Capability.VIEW, Capability.CREATE, Capability.EDIT_OWN],
        })
        workflow = RequestWorkflowService.from_config(
            repository_scope, config, notifier=notifier, clock=clock, capabilities=table,
        )
        clerk = Actor(actor_id=uuid4(), role="clerk")
        request = workflow.create_request(
            clerk, "payment", amount=Decimal("100"),
            metadata={"recipient_name": "Artel"},
        )
        with pytest.raises(PermissionDeniedError) as exc_info:
            workflow.cancel(request.request_id, clerk, "changed my mind")
        assert exc_info.value.required_capability == Capability.CANCEL_OWN.value

        stored = workflow.get_request(request.request_id, clerk)
        assert stored.status == RequestStatus.PENDING
        assert stored.cancellation_reason is None
        assert len(workflow.list_audit_trail(request.request_id, clerk)) == 1
        assert notifier.types() == ["request_created"]

    def test_cannot_cancel_after_start(self, create_payment, workflow, requester, processor):
        request = create_payment("100")
        workflow.change_status(request.request_id, processor, "start_processing")
        with pytest.raises(InvalidTransitionError):
            workflow.cancel(request.request_id, requester, "too late")

    def test_reason_required(self, create_payment, workflow, requester):
        request = create_payment("100")
        with pytest.raises(ValidationError):
            workflow.cancel(request.request_id, requester, "   ")


class TestTerminalIdempotence:

    @pytest.mark.parametrize("event", list(WorkflowEvent))
    def test_cancelled_accepts_nothing(
        self, create_payment, workflow, requester, processor, event,
    ):
        request = create_payment("100")
        workflow.cancel(request.request_id, requester, "mistake")
        actor = requester if event == WorkflowEvent.CANCEL else processor
        with pytest.raises(InvalidTransitionError):
            workflow.change_status(request.request_id, actor, event, reason="again")


# =========================================================================
# Notifications
# =========================================================================


class _ExplodingNotifier:
    def emit(self, notification):
        raise RuntimeError("chat bot is down")


class TestNotifications:

    def test_payload(self, create_payment, workflow, processor, notifier):
        request = create_payment("3000000")
        workflow.change_status(request.request_id, processor, "start_processing")
        notification = notifier.notifications[-1]
        assert notification.request_id == request.request_id
        assert notification.actor_id == processor.actor_id
        assert notification.request_number == request.request_number
        assert notification.status == RequestStatus.IN_PROGRESS
        assert notification.details["event"] == "start_processing"
        assert notification.details["from_status"] == "pending"

    def test_notifier_failure_never_fails_transition(
        self, repository_scope, config, clock, requester, processor, captured_logs,
    ):
        workflow = RequestWorkflowService.from_config(
            repository_scope, config, notifier=_ExplodingNotifier(), clock=clock,
        )
        request = workflow.create_request(
            requester, "reconciliation", metadata={"tenant_name": "Korzinka"},
        )
        started = workflow.change_status(request.request_id, processor, "start_processing")
        assert started.status == RequestStatus.IN_PROGRESS
        assert workflow.get_request(request.request_id, processor).status == (
            RequestStatus.IN_PROGRESS
        )
        failures = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert len(failures) == 2
        assert failures[0]["exc_type"] == "RuntimeError"

    def test_custom_capability_provider(self, repository_scope, config, clock):
        class OnlyCreators:
            def has_capability(self, role, capability):
                return capability.value.endswith(":create")

        workflow = RequestWorkflowService.from_config(
            repository_scope, config, clock=clock, capabilities=OnlyCreators(),
        )
        actor = Actor(actor_id=uuid4(), role="anything")
        request = workflow.create_request(
            actor, "confirmation", metadata={"client_name": "Uzum"},
        )
        with pytest.raises(PermissionDeniedError):
            workflow.change_status(request.request_id, actor, "start_processing")
