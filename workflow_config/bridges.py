"""
Config -> Engine Bridges.

Functions that convert a ``WorkflowConfig`` into the inputs the engines and
the workflow service take.  They live in workflow_config (the producer)
because the kernel and engines must NEVER import workflow_config.

Usage:
    from workflow_config.bridges import build_capability_table, build_sla_policy

    config = get_active_config()
    capabilities = build_capability_table(config)
    policy = build_sla_policy(config)
"""

from __future__ import annotations

from workflow_config.schema import WorkflowConfig
from workflow_engines.sla import SlaPolicy
from workflow_engines.thresholds import ApprovalThresholds
from workflow_kernel.domain.capabilities import StaticCapabilityTable


def build_thresholds(config: WorkflowConfig) -> ApprovalThresholds:
    t = config.thresholds
    return ApprovalThresholds(low=t.low, high=t.high, currency=t.currency)


def build_sla_policy(config: WorkflowConfig) -> SlaPolicy:
    return SlaPolicy(
        durations=dict(config.sla.durations),
        warning_fraction=config.sla.warning_fraction,
        business_days_only=config.sla.business_days_only,
    )


def build_capability_table(config: WorkflowConfig) -> StaticCapabilityTable:
    return StaticCapabilityTable(config.role_capabilities)
