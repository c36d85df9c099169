"""
Idempotency store — durable (kind, key) → result payload mapping.

Backed by SQLite. One row per successfully confirmed keyed operation.

Invariants:
    - Append-only: a record is written once and never mutated or deleted.
    - Keys are scoped by operation kind: ("mint", "k1") and ("burn", "k1")
      are unrelated.
    - Re-putting an identical payload is a no-op; re-putting a different
      payload raises IdempotencyConflictError.
    - Payloads are stored as canonical JSON, so a replayed payload is
      byte-identical to the one originally returned.

get-then-put is not atomic across callers. Two concurrent requests with
the same key can both miss the lookup and both reach the network; the
primary key only guarantees that one payload wins.

Calls are synchronous sqlite3 and block the event loop for the duration
of one local read or write. The orchestrator calls them directly from
its coroutines.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

from tokenops.errors import IdempotencyConflictError
from tokenops.logs import get_logger

log = get_logger(__name__)


def canonical_json(obj: Any) -> str:
    """Sorted keys, no whitespace, UTF-8; NaN and Infinity rejected."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def content_digest(payload_json: str) -> str:
    return "sha256:" + hashlib.sha256(payload_json.encode("utf-8")).hexdigest()


class OperationKind(StrEnum):
    """Scopes for idempotency keys."""

    MINT = "mint"
    OFFER_CREATE = "offer_create"
    OFFER_ACCEPT = "offer_accept"
    OFFER_CANCEL = "offer_cancel"
    BURN = "burn"
    ISSUE = "issue"
    DISTRIBUTE = "distribute"
    TRUST_SET = "trust_set"
    ACCOUNT_SET = "account_set"


_SCHEMA = """\
CREATE TABLE IF NOT EXISTS idempotency_records (
    kind TEXT NOT NULL,
    key TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    payload_digest TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    PRIMARY KEY (kind, key)
);

CREATE INDEX IF NOT EXISTS idx_idempotency_recorded_at
ON idempotency_records(recorded_at);
"""


def _now_utc() -> str:
    """RFC3339 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


@dataclass(frozen=True)
class IdempotencyRecord:
    """A persisted result.

    Attributes:
        kind: Operation kind the key is scoped to.
        key: Caller-supplied idempotency key.
        payload: The result payload returned on first success.
        payload_digest: "sha256:..." digest of the canonical payload.
        recorded_at: RFC3339 UTC timestamp of the write.
    """

    kind: str
    key: str
    payload: dict[str, Any]
    payload_digest: str
    recorded_at: str


class IdempotencyStore:
    """SQLite-backed idempotency records.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.

    Example:
        store = IdempotencyStore("data/idempotency.db")
        if (hit := store.get("mint", "k1")) is not None:
            return hit
        ...
        store.put("mint", "k1", {"nftokenId": "...", "txHash": "..."})
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        self._is_memory = self._db_path == ":memory:"

        if self._is_memory:
            self._persistent_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._persistent_conn.row_factory = sqlite3.Row
        else:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._persistent_conn = None

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection with proper settings."""
        if self._persistent_conn is not None:
            return self._persistent_conn

        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a database transaction."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if self._persistent_conn is None:
                conn.close()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._transaction() as conn:
            conn.executescript(_SCHEMA)

    # -----------------------------------------------------------------
    # Record operations
    # -----------------------------------------------------------------

    def get(self, kind: str, key: str) -> dict[str, Any] | None:
        """Return the stored payload for (kind, key), or None."""
        record = self.get_record(kind, key)
        return None if record is None else record.payload

    def get_record(self, kind: str, key: str) -> IdempotencyRecord | None:
        """Return the full record for (kind, key), or None."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT kind, key, payload_json, payload_digest, recorded_at
                FROM idempotency_records
                WHERE kind = ? AND key = ?
                """,
                (str(kind), key),
            ).fetchone()

        if row is None:
            return None

        return IdempotencyRecord(
            kind=row["kind"],
            key=row["key"],
            payload=json.loads(row["payload_json"]),
            payload_digest=row["payload_digest"],
            recorded_at=row["recorded_at"],
        )

    def put(
        self,
        kind: str,
        key: str,
        payload: dict[str, Any],
        *,
        recorded_at: str | None = None,
    ) -> IdempotencyRecord:
        """Record the result of a confirmed operation.

        Args:
            kind: Operation kind.
            key: Caller-supplied idempotency key (non-empty).
            payload: JSON-serializable result payload.
            recorded_at: RFC3339 timestamp. Defaults to now.

        Returns:
            The stored record (the existing one if the payload matched).

        Raises:
            ValueError: If key is empty.
            IdempotencyConflictError: If (kind, key) already holds a
                different payload.
        """
        if not key:
            raise ValueError("idempotency key must be non-empty")

        payload_json = canonical_json(payload)
        digest = content_digest(payload_json)
        stamp = recorded_at if recorded_at is not None else _now_utc()

        with self._transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO idempotency_records
                    (kind, key, payload_json, payload_digest, recorded_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (str(kind), key, payload_json, digest, stamp),
                )
            except sqlite3.IntegrityError:
                row = conn.execute(
                    """
                    SELECT payload_digest, recorded_at FROM idempotency_records
                    WHERE kind = ? AND key = ?
                    """,
                    (str(kind), key),
                ).fetchone()
                if row["payload_digest"] != digest:
                    raise IdempotencyConflictError(str(kind), key) from None
                stamp = row["recorded_at"]
            else:
                log.info("idempotency_record_written", kind=str(kind), key=key)

        return IdempotencyRecord(
            kind=str(kind),
            key=key,
            payload=json.loads(payload_json),
            payload_digest=digest,
            recorded_at=stamp,
        )

    def exists(self, kind: str, key: str) -> bool:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT 1 FROM idempotency_records WHERE kind = ? AND key = ?",
                (str(kind), key),
            ).fetchone()
        return row is not None

    def list_kind(self, kind: str, *, prefix: str = "") -> list[IdempotencyRecord]:
        """Records of one kind whose key starts with prefix, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT kind, key, payload_json, payload_digest, recorded_at
                FROM idempotency_records
                WHERE kind = ? AND substr(key, 1, ?) = ?
                ORDER BY recorded_at, key
                """,
                (str(kind), len(prefix), prefix),
            ).fetchall()

        return [
            IdempotencyRecord(
                kind=row["kind"],
                key=row["key"],
                payload=json.loads(row["payload_json"]),
                payload_digest=row["payload_digest"],
                recorded_at=row["recorded_at"],
            )
            for row in rows
        ]

    def count(self) -> int:
        """Return total number of stored records."""
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) FROM idempotency_records").fetchone()
        return row[0] if row else 0
