"""
Module: workflow_engines
Responsibility:
    Re-exports the pure workflow engines: Threshold Resolver, Permission
    Gate, SLA Clock, Request State Machine, comment visibility and the audit
    hash chain.

Architecture position:
    Engines -- pure decision layer, zero I/O.  May import workflow_kernel
    domain types, exceptions and utils.  MUST NOT import workflow_services.

Invariants enforced:
    - Engines never read a clock; ``now`` is always a parameter.
    - Amounts are Decimal; floats are rejected at the boundary.
    - Identical inputs always produce identical outputs.
"""

from workflow_engines.audit_chain import chain_entry, compute_entry_hash, verify_audit_chain
from workflow_engines.lifecycle import (
    TransitionOutcome,
    apply_event,
    apply_owner_update,
    derive_title,
    parse_amount,
    validate_new_request,
)
from workflow_engines.permission_gate import PermissionGate, required_capability_for_step
from workflow_engines.sla import (
    SlaPolicy,
    SlaReading,
    SlaStatus,
    add_business_days,
    classify,
    compute_deadline,
    read_sla,
)
from workflow_engines.thresholds import (
    ApprovalRequirement,
    ApprovalThresholds,
    resolve_approval,
)
from workflow_engines.visibility import can_view_request, filter_for_actor, visible_comments

__all__ = [
    "ApprovalRequirement",
    "ApprovalThresholds",
    "PermissionGate",
    "SlaPolicy",
    "SlaReading",
    "SlaStatus",
    "TransitionOutcome",
    "add_business_days",
    "apply_event",
    "apply_owner_update",
    "can_view_request",
    "chain_entry",
    "classify",
    "compute_deadline",
    "compute_entry_hash",
    "derive_title",
    "filter_for_actor",
    "parse_amount",
    "read_sla",
    "required_capability_for_step",
    "resolve_approval",
    "validate_new_request",
    "verify_audit_chain",
    "visible_comments",
]
