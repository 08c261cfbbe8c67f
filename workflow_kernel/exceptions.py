"""
Typed Exception Hierarchy for the Workflow Kernel.

Every failure the workflow can report to a caller is a typed exception with
a machine-readable ``code`` and structured attributes.  Callers catch by
type and render from attributes, never by parsing messages:

    try:
        service.approve(request_id, actor)
    except InvalidTransitionError as e:
        api_response(code=e.code, status=e.current_status, event=e.event)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkflowKernelError (base)
    |
    +-- ValidationError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |       +-- ApprovalRequiredError
    |       +-- NoApprovalRequiredError
    |       +-- StaleApprovalStepError
    |
    +-- AuthorizationError
    |   +-- PermissionDeniedError
    |
    +-- RequestError
    |   +-- RequestNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|-----------------------------------------------------
VALIDATION_ERROR        | Malformed or missing input (amount, reason, content)
INVALID_TRANSITION      | Event not legal from the request's current status
APPROVAL_REQUIRED       | complete attempted on a request that needs approval
NO_APPROVAL_REQUIRED    | send_for_approval on a request with level "none"
STALE_APPROVAL_STEP     | Approval pinned to a step the request has left
PERMISSION_DENIED       | Actor lacks the capability or ownership required
REQUEST_NOT_FOUND       | Unknown (or not visible) request id
CONCURRENCY_CONFLICT    | Versioned save lost a race
IMMUTABILITY_VIOLATION  | Attempt to modify a comment or audit entry
AUDIT_CHAIN_BROKEN      | Audit hash chain verification failed
CONFIGURATION_ERROR     | Workflow configuration failed validation
"""


class WorkflowKernelError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "WORKFLOW_KERNEL_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(WorkflowKernelError):
    """Malformed or missing required input. Never retried automatically."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, errors: list[str] | tuple[str, ...] | str, field: str | None = None):
        if isinstance(errors, str):
            errors = (errors,)
        self.errors = tuple(errors)
        self.field = field
        super().__init__("Validation failed: " + "; ".join(self.errors))


# =============================================================================
# Transitions
# =============================================================================


class TransitionError(WorkflowKernelError):
    """Base for lifecycle transition errors."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """The requested event is not legal from the request's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        request_id: str,
        current_status: str,
        event: str,
        reason: str | None = None,
    ):
        self.request_id = request_id
        self.current_status = current_status
        self.event = event
        self.reason = reason
        message = (
            f"Cannot apply '{event}' to request {request_id} "
            f"in status '{current_status}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ApprovalRequiredError(InvalidTransitionError):
    """A request that needs approval cannot complete outside the approval branch."""

    code: str = "APPROVAL_REQUIRED"

    def __init__(self, request_id: str, current_status: str, event: str, approval_level: str):
        self.approval_level = approval_level
        super().__init__(
            request_id,
            current_status,
            event,
            reason=f"approval level '{approval_level}' requires approval first",
        )


class NoApprovalRequiredError(InvalidTransitionError):
    """A request with approval level none can never enter pending_approval."""

    code: str = "NO_APPROVAL_REQUIRED"

    def __init__(self, request_id: str, current_status: str, event: str):
        super().__init__(
            request_id,
            current_status,
            event,
            reason="request does not require approval",
        )


class StaleApprovalStepError(InvalidTransitionError):
    """An approval decision targeted a step the request has already left."""

    code: str = "STALE_APPROVAL_STEP"

    def __init__(
        self,
        request_id: str,
        current_status: str,
        event: str,
        expected_step: int,
        current_step: int,
    ):
        self.expected_step = expected_step
        self.current_step = current_step
        super().__init__(
            request_id,
            current_status,
            event,
            reason=f"expected step {expected_step}, request is at step {current_step}",
        )


# =============================================================================
# Authorization
# =============================================================================


class AuthorizationError(WorkflowKernelError):
    """Base for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """Actor lacks the capability or ownership required for the action."""

    code: str = "PERMISSION_DENIED"

    def __init__(
        self,
        actor_id: str,
        action: str,
        required_capability: str | None = None,
        request_id: str | None = None,
    ):
        self.actor_id = actor_id
        self.action = action
        self.required_capability = required_capability
        self.request_id = request_id
        if required_capability:
            message = (
                f"Actor {actor_id} may not {action}: "
                f"requires capability '{required_capability}'"
            )
        else:
            message = f"Actor {actor_id} may not {action}"
        super().__init__(message)


# =============================================================================
# Requests
# =============================================================================


class RequestError(WorkflowKernelError):
    """Base for request lookup errors."""

    code: str = "REQUEST_ERROR"


class RequestNotFoundError(RequestError):
    """Unknown request id."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request not found: {request_id}")


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyError(WorkflowKernelError):
    """Base for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Optimistic save lost a race against another writer."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently "
            f"(expected version {expected_version})"
        )


# =============================================================================
# Immutability
# =============================================================================


class ImmutabilityError(WorkflowKernelError):
    """Base for immutability errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# =============================================================================
# Audit
# =============================================================================


class AuditError(WorkflowKernelError):
    """Base for audit errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed for a request."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(
        self,
        request_id: str,
        entry_id: str,
        expected_hash: str | None,
        actual_hash: str | None,
    ):
        self.request_id = request_id
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken for request {request_id} at entry {entry_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(WorkflowKernelError):
    """Workflow configuration failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, errors: list[str] | tuple[str, ...]):
        self.errors = tuple(errors)
        super().__init__(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )
