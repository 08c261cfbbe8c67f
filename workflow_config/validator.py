"""
Configuration Validator (``workflow_config.validator``).

Checks a parsed ``WorkflowConfig`` before it is handed to the workflow:

* ``0 <= low < high`` for approval thresholds.
* Every (request type, priority) pair has a positive duration.
* ``0 < warning_fraction < 1``.
* Every capability string in the role table is a known ``Capability``.
* Every role table entry and required-metadata list is non-empty text.

Errors block activation; warnings are informational.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from workflow_config.schema import WorkflowConfig
from workflow_kernel.domain.capabilities import Capability
from workflow_kernel.domain.request import Priority, RequestType

_KNOWN_CAPABILITIES = frozenset(c.value for c in Capability)


@dataclass
class ConfigValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: WorkflowConfig) -> ConfigValidationResult:
    """Run every validation rule and collect the results."""
    result = ConfigValidationResult()
    _validate_thresholds(config, result)
    _validate_sla(config, result)
    _validate_role_capabilities(config, result)
    _validate_required_metadata(config, result)
    return result


def _validate_thresholds(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    t = config.thresholds
    if t.low < 0:
        result.add_error(f"approval_thresholds.low must not be negative (got {t.low})")
    if t.low >= t.high:
        result.add_error(
            f"approval_thresholds.low ({t.low}) must be below approval_thresholds.high ({t.high})"
        )


def _validate_sla(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    for request_type in RequestType:
        for priority in Priority:
            days = config.sla.durations.get((request_type, priority))
            if days is None:
                result.add_error(
                    f"sla.durations is missing {request_type.value}/{priority.value}"
                )
            elif not isinstance(days, int) or days <= 0:
                result.add_error(
                    f"sla.durations.{request_type.value}.{priority.value} must be a "
                    f"positive integer (got {days!r})"
                )
    if not 0 < config.sla.warning_fraction < 1:
        result.add_error(
            f"sla.warning_fraction must be between 0 and 1 (got {config.sla.warning_fraction})"
        )


def _validate_role_capabilities(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    if not config.role_capabilities:
        result.add_warning("role_capabilities is empty; no actor can act on requests")
    for role, caps in config.role_capabilities.items():
        for cap in caps:
            if cap not in _KNOWN_CAPABILITIES:
                result.add_error(f"role '{role}' references unknown capability '{cap}'")


def _validate_required_metadata(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    for request_type, keys in config.required_metadata.items():
        for key in keys:
            if not isinstance(key, str) or not key.strip():
                result.add_error(
                    f"required_metadata.{request_type.value} contains an empty key"
                )
