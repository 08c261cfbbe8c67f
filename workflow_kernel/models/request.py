"""
Module: workflow_kernel.models.request
Responsibility: ORM persistence for requests and their comments.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for DTO conversion only).

Invariants enforced:
    - Status, type, priority and approval level values are limited by
      CHECK constraints.
    - amount IS NOT NULL iff request_type = 'payment'.
    - current_approval_step >= 1.
    - ``version`` starts at 1 and is bumped by every versioned save
      (see services/request_repository.py).  It is never updated through
      the ORM unit of work.
    - Comments are insert-only (db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate request_number.
    - ImmutabilityViolationError on comment UPDATE/DELETE or request DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from workflow_kernel.domain.request import Comment, Request


class RequestModel(Base):
    """Persistent request row. Never physically deleted."""

    __tablename__ = "workflow_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'needs_info', 'pending_approval', "
            "'approved', 'completed', 'rejected', 'cancelled')",
            name="ck_workflow_requests_valid_status",
        ),
        CheckConstraint(
            "request_type IN ('reconciliation', 'payment', 'confirmation')",
            name="ck_workflow_requests_valid_type",
        ),
        CheckConstraint(
            "priority IN ('normal', 'urgent')",
            name="ck_workflow_requests_valid_priority",
        ),
        CheckConstraint(
            "approval_level IN ('none', 'chief_accountant', 'executive')",
            name="ck_workflow_requests_valid_approval_level",
        ),
        CheckConstraint(
            "(request_type = 'payment' AND amount IS NOT NULL) "
            "OR (request_type <> 'payment' AND amount IS NULL)",
            name="ck_workflow_requests_amount_iff_payment",
        ),
        CheckConstraint(
            "current_approval_step >= 1",
            name="ck_workflow_requests_step_positive",
        ),
        Index("ix_workflow_requests_status_created", "status", "created_at"),
        Index("ix_workflow_requests_requester", "requester_id", "created_at"),
        Index("ix_workflow_requests_assignee", "assignee_id"),
    )

    request_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    request_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="normal")
    title: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    approval_level: Mapped[str] = mapped_column(String(32), nullable=False, default="none")
    current_approval_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assignee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    sla_deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    request_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<Request {self.request_number} {self.request_type} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self, comments: tuple[Comment, ...] = ()) -> Request:
        """Convert ORM model to frozen domain DTO."""
        from workflow_kernel.domain.request import (
            ApprovalLevel,
            Priority,
            Request as RequestDTO,
            RequestStatus,
            RequestType,
        )

        return RequestDTO(
            request_id=self.id,
            request_number=self.request_number,
            request_type=RequestType(self.request_type),
            status=RequestStatus(self.status),
            priority=Priority(self.priority),
            requester_id=self.requester_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            title=self.title,
            amount=self.amount,
            approval_level=ApprovalLevel(self.approval_level),
            current_approval_step=self.current_approval_step,
            assignee_id=self.assignee_id,
            sla_deadline=self.sla_deadline,
            rejection_reason=self.rejection_reason,
            cancellation_reason=self.cancellation_reason,
            resolution_notes=self.resolution_notes,
            completed_at=self.completed_at,
            metadata=dict(self.request_metadata or {}),
            comments=comments,
        )

    @classmethod
    def from_dto(cls, dto: Request) -> RequestModel:
        """Create a new ORM row (version 1) from a domain DTO."""
        return cls(id=dto.request_id, version=1, **mutable_columns(dto))


def mutable_columns(dto: Request) -> dict[str, Any]:
    """Column values a versioned save writes, keyed by attribute name."""
    return {
        "request_number": dto.request_number,
        "request_type": dto.request_type.value,
        "status": dto.status.value,
        "priority": dto.priority.value,
        "title": dto.title,
        "amount": dto.amount,
        "approval_level": dto.approval_level.value,
        "current_approval_step": dto.current_approval_step,
        "requester_id": dto.requester_id,
        "assignee_id": dto.assignee_id,
        "sla_deadline": dto.sla_deadline,
        "rejection_reason": dto.rejection_reason,
        "cancellation_reason": dto.cancellation_reason,
        "resolution_notes": dto.resolution_notes,
        "completed_at": dto.completed_at,
        "request_metadata": dict(dto.metadata),
        "created_at": dto.created_at,
        "updated_at": dto.updated_at,
    }


class CommentModel(Base):
    """Persistent comment. Append-only."""

    __tablename__ = "request_comments"

    __table_args__ = (
        Index("ix_request_comments_request_created", "request_id", "created_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_requests.id"),
        nullable=False,
    )
    author_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Comment {self.id} request={self.request_id} internal={self.is_internal}>"

    def to_dto(self) -> Comment:
        from workflow_kernel.domain.request import Comment as CommentDTO

        return CommentDTO(
            comment_id=self.id,
            request_id=self.request_id,
            author_id=self.author_id,
            content=self.content,
            is_internal=self.is_internal,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: Comment) -> CommentModel:
        return cls(
            id=dto.comment_id,
            request_id=dto.request_id,
            author_id=dto.author_id,
            content=dto.content,
            is_internal=dto.is_internal,
            created_at=dto.created_at,
        )
