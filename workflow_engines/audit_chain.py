"""
Module: workflow_engines.audit_chain
Responsibility:
    Hash chain over a request's audit stream.  Each entry's hash covers its
    own fields and the previous entry's hash, so any edit, deletion or
    reordering of stored entries is detectable.

Architecture position:
    Engines -- pure.  Uses workflow_kernel.utils.hashing for the canonical
    serialization.

Invariants enforced:
    - ``seq`` starts at 1 and has no gaps.
    - ``prev_hash`` of entry n equals ``entry_hash`` of entry n-1 (None for
      the first entry).
    - ``entry_hash`` equals the recomputed hash of the entry.

Failure modes:
    - AuditChainBrokenError on the first entry that violates any of the above.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Sequence

from workflow_kernel.domain.request import AuditEntry
from workflow_kernel.exceptions import AuditChainBrokenError
from workflow_kernel.utils.hashing import hash_payload


def _hash_fields(entry: AuditEntry) -> dict[str, Any]:
    return {
        "entry_id": entry.entry_id,
        "request_id": entry.request_id,
        "seq": entry.seq,
        "action": entry.action,
        "actor_id": entry.actor_id,
        "occurred_at": entry.occurred_at,
        "event": entry.event,
        "from_status": entry.from_status,
        "to_status": entry.to_status,
        "step": entry.step,
        "decision": entry.decision,
        "comments": entry.comments,
        "details": dict(entry.details),
        "prev_hash": entry.prev_hash,
    }


def compute_entry_hash(entry: AuditEntry) -> str:
    return hash_payload(_hash_fields(entry))


def chain_entry(draft: AuditEntry, previous: AuditEntry | None) -> AuditEntry:
    """Position ``draft`` after ``previous`` and seal it with its hash."""
    positioned = replace(
        draft,
        seq=1 if previous is None else previous.seq + 1,
        prev_hash=None if previous is None else previous.entry_hash,
    )
    return replace(positioned, entry_hash=compute_entry_hash(positioned))


def verify_audit_chain(entries: Sequence[AuditEntry]) -> None:
    """Verify a request's audit stream, ordered by ``seq``.

    Raises:
        AuditChainBrokenError: On the first broken link.
    """
    previous: AuditEntry | None = None
    for entry in entries:
        request_id = str(entry.request_id)
        expected_seq = 1 if previous is None else previous.seq + 1
        if entry.seq != expected_seq:
            raise AuditChainBrokenError(
                request_id, str(entry.entry_id), f"seq {expected_seq}", f"seq {entry.seq}",
            )
        expected_prev = None if previous is None else previous.entry_hash
        if entry.prev_hash != expected_prev:
            raise AuditChainBrokenError(
                request_id, str(entry.entry_id), expected_prev, entry.prev_hash,
            )
        recomputed = compute_entry_hash(entry)
        if recomputed != entry.entry_hash:
            raise AuditChainBrokenError(
                request_id, str(entry.entry_id), recomputed, entry.entry_hash,
            )
        previous = entry
