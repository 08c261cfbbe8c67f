"""
Capability domain types (``workflow_kernel.domain.capabilities``).

Capabilities are the atomic permissions the workflow checks.  Roles are
opaque strings that only the role -> capability table knows about; workflow
logic never branches on a role name.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping, Protocol


class Capability(str, Enum):
    """Atomic accounting-request permissions."""

    VIEW = "accounting_requests:view"
    VIEW_ALL = "accounting_requests:view_all"
    CREATE = "accounting_requests:create"
    EDIT_OWN = "accounting_requests:edit_own"
    CANCEL_OWN = "accounting_requests:cancel_own"
    PROCESS = "accounting_requests:process"
    APPROVE_STANDARD = "accounting_requests:approve_standard"
    APPROVE_HIGH = "accounting_requests:approve_high"


class CapabilityProvider(Protocol):
    """Identity/permission collaborator consulted for every capability check."""

    def has_capability(self, role: str, capability: Capability) -> bool:
        ...


class StaticCapabilityTable:
    """Role -> capability lookup backed by static configuration data.

    Unknown roles hold no capabilities.
    """

    def __init__(self, role_capabilities: Mapping[str, Iterable[Capability | str]]):
        self._table: dict[str, frozenset[Capability]] = {
            role: frozenset(Capability(c) for c in caps)
            for role, caps in role_capabilities.items()
        }

    def has_capability(self, role: str, capability: Capability) -> bool:
        return capability in self._table.get(role, frozenset())

    def capabilities_for(self, role: str) -> frozenset[Capability]:
        return self._table.get(role, frozenset())

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(sorted(self._table))
