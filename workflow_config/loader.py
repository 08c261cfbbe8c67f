"""
Configuration Loader (``workflow_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``workflow_config.schema`` dataclasses.  Runtime callers go through
``workflow_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown request type / priority  -> ``ValueError`` from the enum.

``compute_checksum`` gives a deterministic SHA-256 over the raw document so
the active configuration can be matched to a version-controlled baseline.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from workflow_config.schema import SlaConfig, ThresholdConfig, WorkflowConfig
from workflow_kernel.domain.request import Priority, RequestType


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def parse_thresholds(data: dict[str, Any]) -> ThresholdConfig:
    return ThresholdConfig(
        low=Decimal(str(data["low"])),
        high=Decimal(str(data["high"])),
        currency=data.get("currency", "UZS"),
    )


def parse_sla(data: dict[str, Any]) -> SlaConfig:
    durations: dict[tuple[RequestType, Priority], int] = {}
    for type_name, by_priority in data["durations"].items():
        for priority_name, days in by_priority.items():
            durations[(RequestType(type_name), Priority(priority_name))] = days
    return SlaConfig(
        durations=durations,
        warning_fraction=float(data.get("warning_fraction", 0.2)),
        business_days_only=bool(data.get("business_days_only", True)),
    )


def parse_config(data: dict[str, Any]) -> WorkflowConfig:
    """Parse a raw configuration document into a ``WorkflowConfig``."""
    return WorkflowConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        thresholds=parse_thresholds(data["approval_thresholds"]),
        sla=parse_sla(data["sla"]),
        role_capabilities={
            role: tuple(caps or ())
            for role, caps in data.get("role_capabilities", {}).items()
        },
        required_metadata={
            RequestType(type_name): tuple(keys or ())
            for type_name, keys in data.get("required_metadata", {}).items()
        },
        request_number_prefix=data.get("request_number_prefix", "ACC"),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> WorkflowConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
