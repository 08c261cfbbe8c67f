"""
workflow_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Approval thresholds, SLA durations, the role
    -> capability table, required metadata and the request number prefix
    all come from a named YAML set under ``workflow_config/sets/``.

Architecture position:
    Configuration -- sits above ``workflow_kernel`` and ``workflow_engines``
    and below ``workflow_services``.  The kernel and engines never import
    from this package; ``workflow_config.bridges`` translates a loaded
    configuration into engine inputs.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ConfigurationError`` -- the set failed validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``WORKFLOW_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each workflow decision to the exact configuration that
    governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from workflow_config.loader import load_config_file
from workflow_config.schema import WorkflowConfig
from workflow_config.validator import validate_configuration
from workflow_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("workflow_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_name: str = "default",
    config_dir: Path | None = None,
) -> WorkflowConfig:
    """Load, validate and return the named configuration set.

    Args:
        config_name: File stem of the set (``default`` -> ``default.yaml``).
        config_dir: Override path to configuration sets directory.
            Defaults to workflow_config/sets/.

    Returns:
        WorkflowConfig that has passed validation.

    Raises:
        FileNotFoundError: If no set with that name exists.
        ConfigurationError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{config_name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"No configuration set '{config_name}' in {sets_dir}")

    config = load_config_file(path)

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})
    if not validation.is_valid:
        raise ConfigurationError(validation.errors)

    _logger.info(
        "WORKFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "WORKFLOW_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "role_count": len(config.role_capabilities),
            "sla_rule_count": len(config.sla.durations),
        },
    )
    return config


__all__ = ["WorkflowConfig", "get_active_config"]
