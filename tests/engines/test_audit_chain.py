"""
Tests for the audit hash chain.

Tests cover:
- chain_entry positions entries (seq, prev_hash) and seals them
- verify_audit_chain accepts an intact chain
- Tampering, reordering, gaps and relinking are detected
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from workflow_engines.audit_chain import chain_entry, compute_entry_hash, verify_audit_chain
from workflow_kernel.domain.request import (
    AuditAction,
    AuditEntry,
    Decision,
    RequestStatus,
    WorkflowEvent,
)
from workflow_kernel.exceptions import AuditChainBrokenError

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _draft(request_id, actor_id, minutes: int, action=AuditAction.TRANSITIONED, **fields) -> AuditEntry:
    return AuditEntry(
        entry_id=uuid4(),
        request_id=request_id,
        seq=0,
        action=action,
        actor_id=actor_id,
        occurred_at=T0 + timedelta(minutes=minutes),
        **fields,
    )


@pytest.fixture
def chain():
    request_id, actor_id = uuid4(), uuid4()
    drafts = [
        _draft(request_id, actor_id, 0, action=AuditAction.CREATED,
               to_status=RequestStatus.PENDING, details={"request_number": "ACC-2026-000001"}),
        _draft(request_id, actor_id, 5, event=WorkflowEvent.START_PROCESSING,
               from_status=RequestStatus.PENDING, to_status=RequestStatus.IN_PROGRESS),
        _draft(request_id, actor_id, 9, event=WorkflowEvent.SEND_FOR_APPROVAL,
               from_status=RequestStatus.IN_PROGRESS, to_status=RequestStatus.PENDING_APPROVAL),
        _draft(request_id, actor_id, 30, event=WorkflowEvent.APPROVE,
               from_status=RequestStatus.PENDING_APPROVAL, to_status=RequestStatus.APPROVED,
               step=1, decision=Decision.APPROVE, comments="fine"),
    ]
    entries = []
    previous = None
    for draft in drafts:
        previous = chain_entry(draft, previous)
        entries.append(previous)
    return entries


class TestChainEntry:

    def test_positions(self, chain):
        assert [e.seq for e in chain] == [1, 2, 3, 4]
        assert chain[0].prev_hash is None
        for earlier, later in zip(chain, chain[1:]):
            assert later.prev_hash == earlier.entry_hash

    def test_hash_is_sealed(self, chain):
        for entry in chain:
            assert len(entry.entry_hash) == 64
            assert compute_entry_hash(entry) == entry.entry_hash

    def test_hash_is_deterministic(self, chain):
        assert compute_entry_hash(chain[2]) == compute_entry_hash(replace(chain[2]))


class TestVerify:

    def test_intact_chain(self, chain):
        verify_audit_chain(chain)

    def test_empty_chain(self):
        verify_audit_chain([])

    def test_tampered_comments(self, chain):
        chain[3] = replace(chain[3], comments="rubber stamped")
        with pytest.raises(AuditChainBrokenError) as exc_info:
            verify_audit_chain(chain)
        assert exc_info.value.entry_id == str(chain[3].entry_id)

    def test_tampered_decision(self, chain):
        chain[3] = replace(chain[3], decision=Decision.REJECT)
        with pytest.raises(AuditChainBrokenError):
            verify_audit_chain(chain)

    def test_deleted_entry(self, chain):
        del chain[1]
        with pytest.raises(AuditChainBrokenError):
            verify_audit_chain(chain)

    def test_reordered_entries(self, chain):
        chain[1], chain[2] = chain[2], chain[1]
        with pytest.raises(AuditChainBrokenError):
            verify_audit_chain(chain)

    def test_resealed_entry_breaks_link(self, chain):
        forged = replace(chain[1], comments="forged")
        chain[1] = replace(forged, entry_hash=compute_entry_hash(forged))
        with pytest.raises(AuditChainBrokenError):
            verify_audit_chain(chain)
