"""
workflow_services -- transactional orchestration over the pure engines.

``RequestWorkflowService`` is the entry point for every request operation;
``RequestApi`` wraps it with status-coded responses.
"""

from workflow_services.api import ApiError, ApiResponse, RequestApi
from workflow_services.notifier import LoggingNotifier, RecordingNotifier, ThreadedNotifier
from workflow_services.request_workflow import RequestWorkflowService

__all__ = [
    "ApiError",
    "ApiResponse",
    "LoggingNotifier",
    "RecordingNotifier",
    "RequestApi",
    "RequestWorkflowService",
    "ThreadedNotifier",
]
