"""
Module: workflow_kernel.models.audit_entry
Responsibility: ORM persistence for the per-request audit stream.

Architecture position: Kernel > Models.  May import from db/base.py.

Invariants enforced:
    - UNIQUE(request_id, seq): one entry per position in a request's stream.
    - Insert-only: UPDATE/DELETE raise ImmutabilityViolationError
      (db/immutability.py).
    - entry_hash chains to prev_hash (verified by workflow_engines.audit_chain).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from workflow_kernel.domain.request import AuditEntry


class AuditEntryModel(Base):
    """Persistent audit entry. Append-only."""

    __tablename__ = "request_audit_entries"

    __table_args__ = (
        UniqueConstraint("request_id", "seq", name="uq_request_audit_entries_seq"),
        Index("ix_request_audit_entries_actor", "actor_id", "occurred_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_requests.id"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    event: Mapped[str | None] = mapped_column(String(32), nullable=True)
    from_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    step: Mapped[int | None] = mapped_column(Integer, nullable=True)
    decision: Mapped[str | None] = mapped_column(String(16), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AuditEntry {self.request_id}#{self.seq} {self.action} "
            f"{self.from_status}->{self.to_status}>"
        )

    def to_dto(self) -> AuditEntry:
        """Convert ORM model to frozen domain DTO."""
        from workflow_kernel.domain.request import (
            AuditAction,
            AuditEntry as AuditEntryDTO,
            Decision,
            RequestStatus,
            WorkflowEvent,
        )

        return AuditEntryDTO(
            entry_id=self.id,
            request_id=self.request_id,
            seq=self.seq,
            action=AuditAction(self.action),
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            event=WorkflowEvent(self.event) if self.event else None,
            from_status=RequestStatus(self.from_status) if self.from_status else None,
            to_status=RequestStatus(self.to_status) if self.to_status else None,
            step=self.step,
            decision=Decision(self.decision) if self.decision else None,
            comments=self.comments,
            details=dict(self.details or {}),
            prev_hash=self.prev_hash,
            entry_hash=self.entry_hash,
        )

    @classmethod
    def from_dto(cls, dto: AuditEntry) -> AuditEntryModel:
        return cls(
            id=dto.entry_id,
            request_id=dto.request_id,
            seq=dto.seq,
            action=dto.action.value,
            actor_id=dto.actor_id,
            occurred_at=dto.occurred_at,
            event=dto.event.value if dto.event else None,
            from_status=dto.from_status.value if dto.from_status else None,
            to_status=dto.to_status.value if dto.to_status else None,
            step=dto.step,
            decision=dto.decision.value if dto.decision else None,
            comments=dto.comments,
            details=dict(dto.details),
            prev_hash=dto.prev_hash,
            entry_hash=dto.entry_hash,
        )
