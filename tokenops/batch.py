"""
Batch processor — N homogeneous intents on one signing account, in order.

Each item i (1-based) runs through the orchestrator with idempotency key
``{batch_id}-{i}``. Items are strictly sequential: the next item starts
only after the previous one resolved, because all items share one
account and its sequence numbers.

Per item:
    - success → record the artifact, emit ``itemSucceeded``, go on.
    - retryable failure (validation timeout, engine rejection, internal
      error) → retry the same item with the same key, up to
      ``max_attempts`` attempts in total. After a validation timeout,
      wait ``timeout_cooldown`` seconds, then check whether the timed-out
      transaction validated late before submitting again. A late
      validation ends the item with its result, success or failure; only
      a still-unvalidated transaction is submitted again.
    - anything else, or retries exhausted → emit ``itemFailed`` and halt.
      Remaining items are not attempted.

A halted batch is resumed by running it again with the same batch id:
items already recorded replay from the idempotency store without
touching the network.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from tokenops.errors import ErrorCode, Failure, OperationResult
from tokenops.logs import get_logger
from tokenops.orchestrator import SubmissionOrchestrator, SubmissionRequest

log = get_logger(__name__)

MAX_BATCH_SIZE = 200

RETRYABLE_CODES = frozenset(
    {
        ErrorCode.VALIDATION_TIMEOUT,
        ErrorCode.ENGINE_REJECTED,
        ErrorCode.INTERNAL,
    }
)


class BatchEventType(StrEnum):
    PROGRESS = "progress"
    ITEM_SUCCEEDED = "itemSucceeded"
    ITEM_FAILED = "itemFailed"
    BATCH_COMPLETE = "batchComplete"


@dataclass(frozen=True)
class BatchEvent:
    """One state transition of a batch, streamed to the observer."""

    type: BatchEventType
    batch_id: str
    total: int
    processed: int
    index: int | None = None
    attempt: int | None = None
    artifact: str | None = None
    tx_hash: str | None = None
    error: Failure | None = None
    replayed: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": str(self.type),
            "batchId": self.batch_id,
            "total": self.total,
            "processed": self.processed,
        }
        if self.index is not None:
            out["index"] = self.index
        if self.attempt is not None:
            out["attempt"] = self.attempt
        if self.artifact is not None:
            out["artifact"] = self.artifact
        if self.tx_hash is not None:
            out["txHash"] = self.tx_hash
        if self.error is not None:
            out["error"] = self.error.to_dict()
        if self.replayed:
            out["replayed"] = True
        return out


@dataclass(frozen=True)
class BatchFailure:
    nft_index: int
    error: Failure
    attempts: int

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "nftIndex": self.nft_index,
            "error": str(self.error.code),
            "detail": self.error.detail,
            "attempts": self.attempts,
        }
        if self.error.tx_hash is not None:
            out["txHash"] = self.error.tx_hash
        return out


@dataclass(frozen=True)
class BatchResult:
    batch_id: str
    requested: int
    processed: int
    artifacts: tuple[str, ...] = ()
    tx_hashes: tuple[str, ...] = ()
    failures: tuple[BatchFailure, ...] = ()

    @property
    def completed(self) -> bool:
        return self.processed == self.requested and not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "success": self.completed,
            "totalProcessed": self.processed,
            "totalRequested": self.requested,
            "nftokenIds": list(self.artifacts),
            "txHashes": list(self.tx_hashes),
            "errors": [f.to_dict() for f in self.failures],
        }


Observer = Callable[[BatchEvent], Awaitable[None] | None]
ItemFactory = Callable[[int, str], SubmissionRequest]


def item_key(batch_id: str, index: int) -> str:
    return f"{batch_id}-{index}"


class BatchProcessor:
    """Sequential, fail-fast batch runner.

    Args:
        orchestrator: Runs each item.
        max_attempts: Attempts per item, first one included.
        timeout_cooldown: Seconds to wait after a validation timeout
            before the next attempt.
        artifact_field: Payload field holding the item's artifact.
        sleep: Injectable sleep coroutine.
    """

    def __init__(
        self,
        orchestrator: SubmissionOrchestrator,
        *,
        max_attempts: int = 3,
        timeout_cooldown: float = 30.0,
        artifact_field: str = "nftokenId",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._orchestrator = orchestrator
        self._max_attempts = max_attempts
        self._timeout_cooldown = timeout_cooldown
        self._artifact_field = artifact_field
        self._sleep = sleep

    async def run(
        self,
        batch_id: str,
        count: int,
        make_request: ItemFactory,
        observer: Observer | None = None,
    ) -> BatchResult:
        """Process items 1..count in order.

        Args:
            batch_id: Batch identifier; item keys derive from it.
            count: Number of items (1..MAX_BATCH_SIZE).
            make_request: Builds the request for (index, item key).
            observer: Optional sync or async callback receiving events.

        Raises:
            ValueError: If batch_id is empty or count is out of range.
        """
        if not batch_id:
            raise ValueError("batch_id must be non-empty")
        if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= MAX_BATCH_SIZE:
            raise ValueError(f"count must be between 1 and {MAX_BATCH_SIZE}")

        processed = 0
        artifacts: list[str] = []
        tx_hashes: list[str] = []

        async def emit(event: BatchEvent) -> None:
            if observer is None:
                return
            result = observer(event)
            if inspect.isawaitable(result):
                await result

        log.info("batch_started", batch_id=batch_id, count=count)

        for index in range(1, count + 1):
            request = make_request(index, item_key(batch_id, index))
            result, attempts = await self._run_item(
                batch_id, index, count, processed, request, emit
            )

            if result.ok:
                assert result.data is not None
                processed += 1
                artifact = result.data.get(self._artifact_field)
                tx_hash = result.data.get("txHash")
                if artifact is not None:
                    artifacts.append(artifact)
                if tx_hash is not None:
                    tx_hashes.append(tx_hash)
                await emit(
                    BatchEvent(
                        type=BatchEventType.ITEM_SUCCEEDED,
                        batch_id=batch_id,
                        total=count,
                        processed=processed,
                        index=index,
                        attempt=attempts,
                        artifact=artifact,
                        tx_hash=tx_hash,
                        replayed=result.replayed,
                    )
                )
                continue

            assert result.error is not None
            failure = BatchFailure(nft_index=index, error=result.error, attempts=attempts)
            log.warning(
                "batch_halted",
                batch_id=batch_id,
                index=index,
                attempts=attempts,
                code=str(result.error.code),
            )
            await emit(
                BatchEvent(
                    type=BatchEventType.ITEM_FAILED,
                    batch_id=batch_id,
                    total=count,
                    processed=processed,
                    index=index,
                    attempt=attempts,
                    tx_hash=result.error.tx_hash,
                    error=result.error,
                )
            )
            return BatchResult(
                batch_id=batch_id,
                requested=count,
                processed=processed,
                artifacts=tuple(artifacts),
                tx_hashes=tuple(tx_hashes),
                failures=(failure,),
            )

        log.info("batch_complete", batch_id=batch_id, count=count)
        await emit(
            BatchEvent(
                type=BatchEventType.BATCH_COMPLETE,
                batch_id=batch_id,
                total=count,
                processed=processed,
            )
        )
        return BatchResult(
            batch_id=batch_id,
            requested=count,
            processed=processed,
            artifacts=tuple(artifacts),
            tx_hashes=tuple(tx_hashes),
        )

    async def _run_item(
        self,
        batch_id: str,
        index: int,
        total: int,
        processed: int,
        request: SubmissionRequest,
        emit: Callable[[BatchEvent], Awaitable[None]],
    ) -> tuple[OperationResult, int]:
        """Run one item with bounded retry. Returns (result, attempts used)."""
        result: OperationResult | None = None

        for attempt in range(1, self._max_attempts + 1):
            if result is not None and result.error is not None and result.error.transient:
                await self._sleep(self._timeout_cooldown)
                if result.error.tx_hash is not None:
                    late = await self._orchestrator.reconcile(request, result.error.tx_hash)
                    if late is not None:
                        # The earlier transaction reached a ledger; never resubmit it.
                        log.info(
                            "batch_item_validated_late",
                            batch_id=batch_id,
                            index=index,
                            ok=late.ok,
                        )
                        return late, attempt - 1

            await emit(
                BatchEvent(
                    type=BatchEventType.PROGRESS,
                    batch_id=batch_id,
                    total=total,
                    processed=processed,
                    index=index,
                    attempt=attempt,
                )
            )
            result = await self._orchestrator.run(request)
            if result.ok:
                return result, attempt

            assert result.error is not None
            if result.error.code not in RETRYABLE_CODES:
                return result, attempt

            log.info(
                "batch_item_attempt_failed",
                batch_id=batch_id,
                index=index,
                attempt=attempt,
                code=str(result.error.code),
            )

        assert result is not None
        return result, self._max_attempts
