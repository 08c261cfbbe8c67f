"""
Module: workflow_engines.visibility
Responsibility:
    Read-path visibility rules.  A request is visible to its requester and to
    actors holding ``view_all``.  Internal comments are visible only to
    actors holding ``process``, even when the reader is the requester.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from workflow_engines.permission_gate import PermissionGate
from workflow_kernel.domain.request import Actor, Comment, Request


def can_view_request(request: Request, actor: Actor, gate: PermissionGate) -> bool:
    return actor.actor_id == request.requester_id or gate.can_view_all(actor.role)


def visible_comments(
    comments: Iterable[Comment], actor: Actor, gate: PermissionGate,
) -> tuple[Comment, ...]:
    if gate.can_process(actor.role):
        return tuple(comments)
    return tuple(c for c in comments if not c.is_internal)


def filter_for_actor(request: Request, actor: Actor, gate: PermissionGate) -> Request:
    """Snapshot with internal comments removed where the actor may not see them."""
    comments = visible_comments(request.comments, actor, gate)
    if len(comments) == len(request.comments):
        return request
    return replace(request, comments=comments)
