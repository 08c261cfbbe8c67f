"""
Property-based tests for the request state machine.

Random event sequences, issued by random roles, are driven through the pure
lifecycle engine.  Whatever the sequence, the properties below must hold.

Properties:
- Every applied transition is in the transition table
- Approval steps advance one at a time and never exceed the level's count
- approved is only reached after one approval per required step
- A request with approval level none never enters pending_approval
- A request that needs approval only completes from approved
- Terminal requests reject every event and stay unchanged
- Approval level is monotone in the amount
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from workflow_config import get_active_config
from workflow_config.bridges import build_capability_table, build_thresholds
from workflow_engines.lifecycle import apply_event
from workflow_engines.permission_gate import PermissionGate
from workflow_engines.thresholds import resolve_approval
from workflow_kernel.domain.request import (
    REQUEST_TRANSITIONS,
    Actor,
    ApprovalLevel,
    Decision,
    Priority,
    Request,
    RequestStatus,
    RequestType,
    WorkflowEvent,
)
from workflow_kernel.exceptions import WorkflowKernelError

pytestmark = pytest.mark.slow

# The autouse log-context fixture is function scoped and reset per test.
_LOG_FIXTURES = [HealthCheck.function_scoped_fixture]

_CONFIG = get_active_config()
_GATE = PermissionGate(build_capability_table(_CONFIG))
_THRESHOLDS = build_thresholds(_CONFIG)

_START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
_OWNER = Actor(actor_id=uuid4(), role="employee")
_ROLES = ("employee", "accountant", "chief_accountant", "general_manager", "reports_manager")

_LEVEL_ORDER = {
    ApprovalLevel.NONE: 0,
    ApprovalLevel.CHIEF_ACCOUNTANT: 1,
    ApprovalLevel.EXECUTIVE: 2,
}

# An attempt is (event, role, reuse_owner, reason); owner attempts act as
# the requester so cancellation can succeed.
attempts = st.lists(
    st.tuples(
        st.sampled_from(list(WorkflowEvent)),
        st.sampled_from(_ROLES),
        st.booleans(),
        st.sampled_from([None, "", "not needed", "  duplicate  "]),
    ),
    max_size=25,
)


def _fresh(level: ApprovalLevel) -> Request:
    return Request(
        request_id=uuid4(),
        request_number="ACC-2026-000001",
        request_type=RequestType.PAYMENT,
        status=RequestStatus.PENDING,
        priority=Priority.NORMAL,
        requester_id=_OWNER.actor_id,
        created_at=_START,
        updated_at=_START,
        amount=Decimal("1"),
        approval_level=level,
    )


def _drive(request: Request, sequence):
    """Apply every attempt; yield (before, outcome) for the ones that succeed."""
    now = _START
    for event, role, as_owner, reason in sequence:
        now += timedelta(minutes=5)
        actor = _OWNER if as_owner else Actor(actor_id=uuid4(), role=role)
        try:
            outcome = apply_event(request, event, actor, _GATE, now, reason=reason)
        except WorkflowKernelError:
            continue
        yield request, outcome
        request = outcome.request


class TestStateMachineProperties:

    @settings(max_examples=300, deadline=None, suppress_health_check=_LOG_FIXTURES)
    @given(level=st.sampled_from(list(ApprovalLevel)), sequence=attempts)
    def test_transitions_follow_the_table(self, level, sequence):
        for before, outcome in _drive(_fresh(level), sequence):
            targets = REQUEST_TRANSITIONS[(before.status, outcome.event)]
            assert outcome.to_status in targets
            assert outcome.from_status == before.status

    @settings(max_examples=300, deadline=None, suppress_health_check=_LOG_FIXTURES)
    @given(level=st.sampled_from(list(ApprovalLevel)), sequence=attempts)
    def test_approval_steps_are_sequential(self, level, sequence):
        approvals: list[int] = []
        for before, outcome in _drive(_fresh(level), sequence):
            after = outcome.request
            if after.status == RequestStatus.PENDING_APPROVAL:
                assert 1 <= after.current_approval_step <= after.required_steps
                if before.status == RequestStatus.PENDING_APPROVAL:
                    assert after.current_approval_step == before.current_approval_step + 1
                else:
                    assert after.current_approval_step == 1
            if outcome.decision == Decision.APPROVE:
                approvals.append(outcome.step)
            if after.status == RequestStatus.APPROVED:
                assert approvals == list(range(1, after.required_steps + 1))

    @settings(max_examples=300, deadline=None, suppress_health_check=_LOG_FIXTURES)
    @given(level=st.sampled_from(list(ApprovalLevel)), sequence=attempts)
    def test_no_approval_bypass(self, level, sequence):
        for before, outcome in _drive(_fresh(level), sequence):
            if level == ApprovalLevel.NONE:
                assert outcome.to_status not in (
                    RequestStatus.PENDING_APPROVAL, RequestStatus.APPROVED,
                )
            elif outcome.to_status == RequestStatus.COMPLETED:
                assert before.status == RequestStatus.APPROVED

    @settings(max_examples=300, deadline=None, suppress_health_check=_LOG_FIXTURES)
    @given(level=st.sampled_from(list(ApprovalLevel)), sequence=attempts)
    def test_reasons_are_set_once(self, level, sequence):
        for before, outcome in _drive(_fresh(level), sequence):
            after = outcome.request
            if outcome.to_status == RequestStatus.CANCELLED:
                assert before.cancellation_reason is None
                assert after.cancellation_reason
                assert after.cancellation_reason == after.cancellation_reason.strip()
            elif outcome.to_status == RequestStatus.REJECTED:
                assert before.rejection_reason is None
                assert after.rejection_reason
            else:
                assert after.cancellation_reason is None
                assert after.rejection_reason is None

    @settings(max_examples=200, deadline=None, suppress_health_check=_LOG_FIXTURES)
    @given(
        level=st.sampled_from(list(ApprovalLevel)),
        sequence=attempts,
        extra=st.tuples(
            st.sampled_from(list(WorkflowEvent)),
            st.sampled_from(_ROLES),
            st.booleans(),
            st.sampled_from([None, "late change"]),
        ),
    )
    def test_terminal_requests_accept_nothing(self, level, sequence, extra):
        request = _fresh(level)
        for _before, outcome in _drive(request, sequence):
            request = outcome.request
        if not request.is_terminal:
            return
        assert list(_drive(request, [extra])) == []


class TestThresholdProperties:

    @settings(max_examples=300, deadline=None, suppress_health_check=_LOG_FIXTURES)
    @given(
        a=st.decimals(min_value=0, max_value=10**9, places=2),
        b=st.decimals(min_value=0, max_value=10**9, places=2),
    )
    def test_level_is_monotone_in_amount(self, a, b):
        low, high = sorted((a, b))
        low_level = resolve_approval(RequestType.PAYMENT, low, _THRESHOLDS).approval_level
        high_level = resolve_approval(RequestType.PAYMENT, high, _THRESHOLDS).approval_level
        assert _LEVEL_ORDER[low_level] <= _LEVEL_ORDER[high_level]

    @settings(suppress_health_check=_LOG_FIXTURES)
    @given(request_type=st.sampled_from([RequestType.RECONCILIATION, RequestType.CONFIRMATION]))
    def test_non_payment_types_need_no_approval(self, request_type):
        requirement = resolve_approval(request_type, None, _THRESHOLDS)
        assert requirement.approval_level == ApprovalLevel.NONE
        assert requirement.required_steps == 0
