"""
ORM models.

Importing this package registers every workflow table on ``Base.metadata``.
"""

from workflow_kernel.models.audit_entry import AuditEntryModel
from workflow_kernel.models.request import CommentModel, RequestModel
from workflow_kernel.models.sequence import SequenceCounter

__all__ = [
    "AuditEntryModel",
    "CommentModel",
    "RequestModel",
    "SequenceCounter",
]
