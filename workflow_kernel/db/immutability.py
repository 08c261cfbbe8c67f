"""
ORM-Level Immutability Enforcement.

Comments and audit entries are append-only, and requests are never
physically deleted (cancellation and rejection are statuses, not
deletions).  SQLAlchemy fires ``before_update``/``before_delete`` mapper
events before any SQL is sent; the listeners registered here raise
ImmutabilityViolationError so the flush aborts and nothing is written:

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------

Entity            | Rule
------------------|--------------------------------------
CommentModel      | No UPDATE, no DELETE
AuditEntryModel   | No UPDATE, no DELETE
RequestModel      | No DELETE (status updates go through the
                  | versioned save in services/request_repository.py)

Usage
-----
    from workflow_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to tamper with rows (to prove the audit chain detects it)
call ``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event

from workflow_kernel.exceptions import ImmutabilityViolationError
from workflow_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_comment_update(mapper, connection, target):
    raise _blocked("Comment", target.id, "UPDATE", "Comments are immutable and cannot be modified")


def _check_comment_delete(mapper, connection, target):
    raise _blocked("Comment", target.id, "DELETE", "Comments cannot be deleted")


def _check_audit_entry_update(mapper, connection, target):
    raise _blocked("AuditEntry", target.id, "UPDATE", "Audit entries are immutable and cannot be modified")


def _check_audit_entry_delete(mapper, connection, target):
    raise _blocked("AuditEntry", target.id, "DELETE", "Audit entries cannot be deleted")


def _check_request_delete(mapper, connection, target):
    raise _blocked(
        "Request",
        target.id,
        "DELETE",
        "Requests are never deleted; cancel or reject them instead",
    )


def _listeners():
    from workflow_kernel.models.audit_entry import AuditEntryModel
    from workflow_kernel.models.request import CommentModel, RequestModel

    return (
        (CommentModel, "before_update", _check_comment_update),
        (CommentModel, "before_delete", _check_comment_delete),
        (AuditEntryModel, "before_update", _check_audit_entry_update),
        (AuditEntryModel, "before_delete", _check_audit_entry_delete),
        (RequestModel, "before_delete", _check_request_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability enforcement listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """Remove immutability listeners. FOR TESTS ONLY."""
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
