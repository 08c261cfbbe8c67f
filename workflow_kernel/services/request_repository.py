"""
workflow_kernel.services.request_repository -- Request persistence contract.

Responsibility:
    Defines the ``RequestRepository`` protocol the workflow service is written
    against, and its SQLAlchemy implementation.  A ``RepositoryScope`` opens
    one transaction per logical operation and yields a repository bound to
    it; the scope commits on success and rolls back on any exception.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/.

Invariants enforced:
    - Optimistic concurrency: ``save_if_version`` is one UPDATE guarded by
      ``version = :expected`` that bumps the version.  Zero affected rows
      means another writer won; the method returns False and writes
      nothing.
    - Comments and audit entries are insert-only.
    - Requests are never deleted.

Failure modes:
    - RequestNotFoundError from ``load`` for an unknown id.
    - IntegrityError propagates for constraint violations (duplicate
      request number, duplicate audit seq).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import ContextManager, Iterator, Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from workflow_kernel.db.engine import session_scope
from workflow_kernel.domain.request import (
    AuditEntry,
    Comment,
    Request,
    RequestPage,
    RequestQuery,
)
from workflow_kernel.exceptions import RequestNotFoundError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.audit_entry import AuditEntryModel
from workflow_kernel.models.request import CommentModel, RequestModel, mutable_columns
from workflow_kernel.selectors.request_selector import RequestSelector
from workflow_kernel.services.sequence_service import SequenceService

logger = get_logger("services.request_repository")


class RequestRepository(Protocol):
    """Persistence operations the workflow service depends on."""

    def load(self, request_id: UUID) -> tuple[Request, int]:
        """Load a request with its comments, plus its current version."""
        ...

    def insert(self, request: Request) -> int:
        """Persist a new request and return its initial version."""
        ...

    def save_if_version(self, request: Request, expected_version: int) -> bool:
        """Write ``request`` only if the stored version is ``expected_version``."""
        ...

    def append_comment(self, comment: Comment) -> None:
        ...

    def append_audit(self, entry: AuditEntry) -> None:
        ...

    def last_audit_entry(self, request_id: UUID) -> AuditEntry | None:
        ...

    def audit_trail(self, request_id: UUID) -> tuple[AuditEntry, ...]:
        ...

    def list_requests(self, query: RequestQuery) -> RequestPage:
        ...

    def next_request_number(self, prefix: str, year: int) -> str:
        ...


class RepositoryScope(Protocol):
    """Opens one transactional unit of work per call."""

    def __call__(self) -> ContextManager[RequestRepository]:
        ...


class SqlAlchemyRequestRepository:
    """RequestRepository over a caller-owned SQLAlchemy session.

    Never commits; the enclosing scope owns the transaction.
    """

    def __init__(self, session: Session):
        self._session = session
        self._selector = RequestSelector(session)

    def load(self, request_id: UUID) -> tuple[Request, int]:
        model = self._session.execute(
            select(RequestModel)
            .where(RequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(str(request_id))
        comments = self._selector.comments_for(request_id)
        return model.to_dto(comments=comments), model.version

    def insert(self, request: Request) -> int:
        model = RequestModel.from_dto(request)
        self._session.add(model)
        self._session.flush()
        logger.debug(
            "request_inserted",
            extra={"request_id": str(request.request_id), "request_number": request.request_number},
        )
        return model.version

    def save_if_version(self, request: Request, expected_version: int) -> bool:
        result = self._session.execute(
            update(RequestModel)
            .where(
                RequestModel.id == request.request_id,
                RequestModel.version == expected_version,
            )
            .values(version=expected_version + 1, **mutable_columns(request))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "request_version_conflict",
                extra={
                    "request_id": str(request.request_id),
                    "expected_version": expected_version,
                },
            )
            return False
        return True

    def append_comment(self, comment: Comment) -> None:
        self._session.add(CommentModel.from_dto(comment))
        self._session.flush()

    def append_audit(self, entry: AuditEntry) -> None:
        self._session.add(AuditEntryModel.from_dto(entry))
        self._session.flush()

    def last_audit_entry(self, request_id: UUID) -> AuditEntry | None:
        return self._selector.last_audit_entry(request_id)

    def audit_trail(self, request_id: UUID) -> tuple[AuditEntry, ...]:
        return self._selector.audit_trail(request_id)

    def list_requests(self, query: RequestQuery) -> RequestPage:
        return self._selector.list_requests(query)

    def next_request_number(self, prefix: str, year: int) -> str:
        return SequenceService(self._session).next_request_number(prefix, year)


class SqlAlchemyRepositoryScope:
    """RepositoryScope that opens one session (and transaction) per call."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def __call__(self) -> Iterator[SqlAlchemyRequestRepository]:
        with session_scope(self._session_factory) as session:
            yield SqlAlchemyRequestRepository(session)
