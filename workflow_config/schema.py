"""
Configuration Schema (``workflow_config.schema``).

Frozen dataclasses describing one workflow configuration set.  Produced by
``workflow_config.loader`` and checked by ``workflow_config.validator``;
nothing here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from workflow_kernel.domain.request import Priority, RequestType


@dataclass(frozen=True)
class ThresholdConfig:
    """Approval band edges in ``currency``."""

    low: Decimal
    high: Decimal
    currency: str = "UZS"


@dataclass(frozen=True)
class SlaConfig:
    """SLA durations keyed by (request type, priority), in days."""

    durations: dict[tuple[RequestType, Priority], int]
    warning_fraction: float = 0.2
    business_days_only: bool = True


@dataclass(frozen=True)
class WorkflowConfig:
    """One complete, validated workflow configuration set."""

    config_id: str
    version: int
    thresholds: ThresholdConfig
    sla: SlaConfig
    role_capabilities: dict[str, tuple[str, ...]]
    required_metadata: dict[RequestType, tuple[str, ...]] = field(default_factory=dict)
    request_number_prefix: str = "ACC"
    checksum: str = ""
