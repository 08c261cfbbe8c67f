"""
Module: workflow_kernel.selectors.request_selector
Responsibility: Filtered, paginated listing of requests and ordered reads of
    a request's comment and audit streams.
"""

from uuid import UUID

from sqlalchemy import Select, func, or_, select

from workflow_kernel.domain.request import (
    MAX_PAGE_SIZE,
    SORTABLE_FIELDS,
    AuditEntry,
    Comment,
    RequestPage,
    RequestQuery,
)
from workflow_kernel.exceptions import ValidationError
from workflow_kernel.models.audit_entry import AuditEntryModel
from workflow_kernel.models.request import CommentModel, RequestModel
from workflow_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector):
    """Read-side queries over requests, comments and audit entries."""

    def list_requests(self, query: RequestQuery) -> RequestPage:
        """Return one page of requests matching ``query``.

        Raises:
            ValidationError: Unknown sort field or out-of-range paging.
        """
        if query.sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Unsupported sort field '{query.sort_by}'", field="sort_by",
            )
        if not 1 <= query.limit <= MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit",
            )
        if query.offset < 0:
            raise ValidationError("offset must not be negative", field="offset")

        stmt = self._filtered(query)
        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        sort_col = getattr(RequestModel, query.sort_by)
        order = sort_col.desc() if query.descending else sort_col.asc()
        rows = self.session.execute(
            stmt.order_by(order, RequestModel.created_at.desc(), RequestModel.id)
            .limit(query.limit)
            .offset(query.offset)
        ).scalars().all()

        return RequestPage(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            limit=query.limit,
            offset=query.offset,
        )

    def _filtered(self, query: RequestQuery) -> Select:
        stmt = select(RequestModel)
        if query.status is not None:
            stmt = stmt.where(RequestModel.status == query.status.value)
        if query.request_type is not None:
            stmt = stmt.where(RequestModel.request_type == query.request_type.value)
        if query.priority is not None:
            stmt = stmt.where(RequestModel.priority == query.priority.value)
        if query.assignee_id is not None:
            stmt = stmt.where(RequestModel.assignee_id == query.assignee_id)
        if query.requester_id is not None:
            stmt = stmt.where(RequestModel.requester_id == query.requester_id)
        if query.created_from is not None:
            stmt = stmt.where(RequestModel.created_at >= query.created_from)
        if query.created_to is not None:
            stmt = stmt.where(RequestModel.created_at <= query.created_to)
        if query.search and query.search.strip():
            term = query.search.strip().lower()
            stmt = stmt.where(
                or_(
                    func.lower(RequestModel.request_number).contains(term, autoescape=True),
                    func.lower(RequestModel.title).contains(term, autoescape=True),
                )
            )
        return stmt

    def comments_for(self, request_id: UUID) -> tuple[Comment, ...]:
        """All comments on a request in creation order."""
        rows = self.session.execute(
            select(CommentModel)
            .where(CommentModel.request_id == request_id)
            .order_by(CommentModel.created_at, CommentModel.id)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def audit_trail(self, request_id: UUID) -> tuple[AuditEntry, ...]:
        """All audit entries of a request in stream order."""
        rows = self.session.execute(
            select(AuditEntryModel)
            .where(AuditEntryModel.request_id == request_id)
            .order_by(AuditEntryModel.seq)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def last_audit_entry(self, request_id: UUID) -> AuditEntry | None:
        row = self.session.execute(
            select(AuditEntryModel)
            .where(AuditEntryModel.request_id == request_id)
            .order_by(AuditEntryModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None
