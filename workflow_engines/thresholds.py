"""
Module: workflow_engines.thresholds
Responsibility:
    Threshold Resolver -- maps (request type, amount) to the approval level
    and number of sequential approval steps a request needs.

Architecture position:
    Engines -- pure function, zero I/O.  Thresholds are passed in from
    configuration, never hard-coded here.

Invariants enforced:
    - Band boundaries are inclusive on the upper band:
        amount <  low           -> none, 0 steps
        low  <= amount <  high  -> chief_accountant, 1 step
        amount >= high          -> executive, 2 steps
    - Non-payment request types never need approval.

Failure modes:
    - ValueError if a payment amount is missing or negative (callers
      validate first; this guards the engine contract).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from workflow_kernel.domain.request import ApprovalLevel, RequestType, required_steps


@dataclass(frozen=True)
class ApprovalThresholds:
    """Monetary band edges. ``low < high``."""

    low: Decimal
    high: Decimal
    currency: str = "UZS"


@dataclass(frozen=True)
class ApprovalRequirement:
    approval_level: ApprovalLevel
    required_steps: int


NO_APPROVAL = ApprovalRequirement(ApprovalLevel.NONE, 0)


def resolve_approval(
    request_type: RequestType,
    amount: Decimal | None,
    thresholds: ApprovalThresholds,
) -> ApprovalRequirement:
    """Resolve the approval track for a request.

    Args:
        request_type: Type of the request.
        amount: Payment amount (``None`` for non-payment types).
        thresholds: Configured band edges.

    Returns:
        ApprovalRequirement with the derived level and its step count.
    """
    if request_type != RequestType.PAYMENT:
        return NO_APPROVAL
    if amount is None or amount < 0:
        raise ValueError(f"Payment amount must be a non-negative Decimal, got {amount!r}")

    if amount < thresholds.low:
        return NO_APPROVAL
    if amount < thresholds.high:
        level = ApprovalLevel.CHIEF_ACCOUNTANT
    else:
        level = ApprovalLevel.EXECUTIVE
    return ApprovalRequirement(level, required_steps(level))
