"""
Tests for IdempotencyStore — SQLite (kind, key) → payload records.

Covers:
- get on an unknown key returns None
- put then get returns the payload
- keys are scoped by kind
- identical re-put is a no-op, conflicting re-put raises
- records survive reopening a file-backed store
- list_kind filters by key prefix (batch resume)
"""

from pathlib import Path

import pytest

from tokenops.errors import IdempotencyConflictError
from tokenops.idempotency import IdempotencyStore, OperationKind

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> IdempotencyStore:
    return IdempotencyStore(":memory:")


PAYLOAD = {"txHash": "A" * 64, "amount": "1000", "currency": "SBR"}


class TestGetPut:
    def test_unknown_key_is_none(self, store: IdempotencyStore) -> None:
        assert store.get(OperationKind.ISSUE, "issue-001") is None
        assert not store.exists(OperationKind.ISSUE, "issue-001")

    def test_put_then_get(self, store: IdempotencyStore) -> None:
        store.put(OperationKind.ISSUE, "issue-001", PAYLOAD)
        assert store.get(OperationKind.ISSUE, "issue-001") == PAYLOAD
        assert store.exists(OperationKind.ISSUE, "issue-001")

    def test_record_carries_digest_and_timestamp(self, store: IdempotencyStore) -> None:
        record = store.put(OperationKind.ISSUE, "issue-001", PAYLOAD)
        assert record.payload_digest.startswith("sha256:")
        assert record.recorded_at.endswith("+00:00")
        assert store.get_record(OperationKind.ISSUE, "issue-001") == record

    def test_keys_scoped_by_kind(self, store: IdempotencyStore) -> None:
        store.put(OperationKind.MINT, "k1", {"nftokenId": "X"})
        assert store.get(OperationKind.BURN, "k1") is None
        store.put(OperationKind.BURN, "k1", {"nftokenId": "Y"})
        assert store.get(OperationKind.MINT, "k1") == {"nftokenId": "X"}
        assert store.count() == 2

    def test_empty_key_rejected(self, store: IdempotencyStore) -> None:
        with pytest.raises(ValueError):
            store.put(OperationKind.MINT, "", PAYLOAD)


class TestAppendOnly:
    def test_identical_reput_is_noop(self, store: IdempotencyStore) -> None:
        first = store.put(OperationKind.ISSUE, "issue-001", PAYLOAD, recorded_at="2026-01-01T00:00:00+00:00")
        again = store.put(OperationKind.ISSUE, "issue-001", dict(reversed(list(PAYLOAD.items()))))
        assert again.recorded_at == first.recorded_at
        assert store.count() == 1

    def test_conflicting_reput_raises(self, store: IdempotencyStore) -> None:
        store.put(OperationKind.ISSUE, "issue-001", PAYLOAD)
        with pytest.raises(IdempotencyConflictError) as exc_info:
            store.put(OperationKind.ISSUE, "issue-001", {**PAYLOAD, "amount": "2"})
        assert exc_info.value.key == "issue-001"
        assert store.get(OperationKind.ISSUE, "issue-001") == PAYLOAD


class TestDurability:
    def test_survives_reopen(self, tmp_path: Path) -> None:
        db = tmp_path / "nested" / "idempotency.db"
        IdempotencyStore(db).put(OperationKind.MINT, "batch-1", {"nftokenId": "N1"})

        reopened = IdempotencyStore(db)
        assert reopened.get(OperationKind.MINT, "batch-1") == {"nftokenId": "N1"}


class TestListKind:
    def test_prefix_filter(self, store: IdempotencyStore) -> None:
        store.put(OperationKind.MINT, "b1-1", {"n": 1}, recorded_at="2026-01-01T00:00:01+00:00")
        store.put(OperationKind.MINT, "b1-2", {"n": 2}, recorded_at="2026-01-01T00:00:02+00:00")
        store.put(OperationKind.MINT, "b2-1", {"n": 3})
        store.put(OperationKind.BURN, "b1-3", {"n": 4})

        keys = [r.key for r in store.list_kind(OperationKind.MINT, prefix="b1-")]
        assert keys == ["b1-1", "b1-2"]
        assert len(store.list_kind(OperationKind.MINT)) == 3
