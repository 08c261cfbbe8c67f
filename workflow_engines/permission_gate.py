"""
Module: workflow_engines.permission_gate
Responsibility:
    Permission Gate -- decides whether a role may act at an approval step,
    and answers the generic capability checks (process, view all) the state
    machine needs.  Only capabilities are checked; role names never appear
    here.

Architecture position:
    Engines -- pure.  The role -> capability table is injected as a
    ``CapabilityProvider`` so tests can supply arbitrary capability sets.

Step table:

    approval level     | step | required capability
    -------------------|------|--------------------
    chief_accountant   |  1   | approve_standard
    executive          |  1   | approve_standard
    executive          |  2   | approve_high
    anything else      |  -   | (never allowed)
"""

from __future__ import annotations

from workflow_kernel.domain.capabilities import Capability, CapabilityProvider
from workflow_kernel.domain.request import ApprovalLevel

_STEP_CAPABILITIES: dict[tuple[ApprovalLevel, int], Capability] = {
    (ApprovalLevel.CHIEF_ACCOUNTANT, 1): Capability.APPROVE_STANDARD,
    (ApprovalLevel.EXECUTIVE, 1): Capability.APPROVE_STANDARD,
    (ApprovalLevel.EXECUTIVE, 2): Capability.APPROVE_HIGH,
}


def required_capability_for_step(level: ApprovalLevel, step: int) -> Capability | None:
    """Capability needed to approve ``step`` of ``level``; None if no such step."""
    return _STEP_CAPABILITIES.get((level, step))


class PermissionGate:
    """Capability checks consulted by the request state machine."""

    def __init__(self, capabilities: CapabilityProvider):
        self._capabilities = capabilities

    def has(self, role: str, capability: Capability) -> bool:
        return self._capabilities.has_capability(role, capability)

    def can_approve_at_step(self, role: str, level: ApprovalLevel, step: int) -> bool:
        capability = required_capability_for_step(level, step)
        if capability is None:
            return False
        return self._capabilities.has_capability(role, capability)

    def can_process(self, role: str) -> bool:
        return self._capabilities.has_capability(role, Capability.PROCESS)

    def can_view_all(self, role: str) -> bool:
        return self._capabilities.has_capability(role, Capability.VIEW_ALL)
