"""
workflow_services.api -- Protocol-agnostic request API facade.

Responsibility:
    Wraps ``RequestWorkflowService`` so that every operation returns an
    ``ApiResponse`` with an HTTP-style status instead of raising.  Kernel
    errors are rendered from their ``code`` and typed attributes; anything
    that is not a ``WorkflowKernelError`` propagates unchanged.

Status mapping:

    exception                                   | status
    --------------------------------------------|-------
    ValidationError                             | 400
    PermissionDeniedError                       | 403
    RequestNotFoundError                        | 404
    InvalidTransitionError (and subclasses)     | 409
    ConcurrencyConflictError                    | 409
    ImmutabilityViolationError                  | 500
    AuditChainBrokenError                       | 500
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping
from uuid import UUID

from workflow_kernel.domain.request import Actor, RequestQuery
from workflow_kernel.exceptions import (
    AuditChainBrokenError,
    ConcurrencyConflictError,
    ImmutabilityViolationError,
    InvalidTransitionError,
    PermissionDeniedError,
    RequestNotFoundError,
    ValidationError,
    WorkflowKernelError,
)
from workflow_kernel.logging_config import get_logger
from workflow_services.request_workflow import RequestWorkflowService

logger = get_logger("services.api")

_STATUS_BY_ERROR: tuple[tuple[type[WorkflowKernelError], int], ...] = (
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (RequestNotFoundError, 404),
    (InvalidTransitionError, 409),
    (ConcurrencyConflictError, 409),
    (ImmutabilityViolationError, 500),
    (AuditChainBrokenError, 500),
)


@dataclass(frozen=True)
class ApiError:
    code: str
    message: str
    context: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiResponse:
    status: int
    data: Any = None
    error: ApiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def status_for(exc: WorkflowKernelError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def error_from_exception(exc: WorkflowKernelError) -> ApiError:
    """Render a kernel error; structured attributes become string context."""
    context: dict[str, Any] = {}
    for key, value in vars(exc).items():
        if key.startswith("_") or value is None:
            continue
        if isinstance(value, (tuple, list)):
            context[key] = [str(v) for v in value]
        else:
            context[key] = str(value)
    return ApiError(code=exc.code, message=str(exc), context=context)


class RequestApi:
    """Facade over ``RequestWorkflowService`` returning ``ApiResponse``."""

    def __init__(self, service: RequestWorkflowService):
        self._service = service

    def _call(self, operation: str, fn: Callable[[], Any], success_status: int = 200) -> ApiResponse:
        try:
            return ApiResponse(status=success_status, data=fn())
        except WorkflowKernelError as exc:
            status = status_for(exc)
            log = logger.error if status >= 500 else logger.info
            log(
                "api_request_failed",
                extra={"operation": operation, "status": status, "error_code": exc.code},
            )
            return ApiResponse(status=status, error=error_from_exception(exc))

    def create_request(
        self,
        actor: Actor,
        request_type: str,
        amount: Any = None,
        priority: str = "normal",
        metadata: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        return self._call(
            "create_request",
            lambda: self._service.create_request(
                actor, request_type, amount=amount, priority=priority, metadata=metadata,
            ),
            success_status=201,
        )

    def change_status(
        self,
        request_id: UUID,
        actor: Actor,
        event: str,
        payload: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        payload = payload or {}
        return self._call(
            "change_status",
            lambda: self._service.change_status(
                request_id,
                actor,
                event,
                reason=payload.get("reason"),
                notes=payload.get("notes"),
                assign_to_self=bool(payload.get("assign_to_self", False)),
            ),
        )

    def approve(self, request_id: UUID, actor: Actor, comments: str | None = None) -> ApiResponse:
        return self._call("approve", lambda: self._service.approve(request_id, actor, comments))

    def reject_approval(self, request_id: UUID, actor: Actor, reason: str) -> ApiResponse:
        return self._call(
            "reject_approval", lambda: self._service.reject_approval(request_id, actor, reason),
        )

    def cancel(self, request_id: UUID, actor: Actor, reason: str) -> ApiResponse:
        return self._call("cancel", lambda: self._service.cancel(request_id, actor, reason))

    def update_request(self, request_id: UUID, actor: Actor, **changes: Any) -> ApiResponse:
        return self._call(
            "update_request", lambda: self._service.update_request(request_id, actor, **changes),
        )

    def add_comment(
        self, request_id: UUID, actor: Actor, content: str, is_internal: bool = False,
    ) -> ApiResponse:
        return self._call(
            "add_comment",
            lambda: self._service.add_comment(request_id, actor, content, is_internal),
        )

    def get_request(self, request_id: UUID, actor: Actor) -> ApiResponse:
        return self._call("get_request", lambda: self._service.get_request(request_id, actor))

    def list_requests(self, actor: Actor, query: RequestQuery | None = None) -> ApiResponse:
        return self._call("list_requests", lambda: self._service.list_requests(actor, query))

    def list_audit_trail(self, request_id: UUID, actor: Actor) -> ApiResponse:
        return self._call(
            "list_audit_trail", lambda: self._service.list_audit_trail(request_id, actor),
        )

    def verify_audit_trail(self, request_id: UUID, actor: Actor) -> ApiResponse:
        return self._call(
            "verify_audit_trail", lambda: self._service.verify_audit_trail(request_id, actor),
        )

    def get_sla_status(self, request_id: UUID, actor: Actor) -> ApiResponse:
        def read() -> dict[str, Any]:
            reading = self._service.get_sla_status(request_id, actor)
            return {
                "status": reading.status.value,
                "deadline": reading.deadline.isoformat() if reading.deadline else None,
                "remaining_seconds": (
                    int(reading.remaining.total_seconds())
                    if reading.remaining is not None else None
                ),
            }

        return self._call("get_sla_status", read)
