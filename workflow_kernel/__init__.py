"""
Workflow Kernel

The persistence and domain core of the request approval workflow:
- Typed request lifecycle value objects
- Optimistic concurrency on every status mutation
- Append-only comment and audit streams
- Hash-chained audit trail per request
"""

__version__ = "0.1.0"
