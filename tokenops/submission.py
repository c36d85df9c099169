"""
Submission strategies — drive one signed transaction to a definitive outcome.

Two strategies, selected once per network at construction time:

    fire-and-poll (test networks):
        submit once; a non-provisional engine result is terminal
        (Unresolved: submission rejected); otherwise poll ``tx`` every
        ``poll_interval`` seconds, up to ``max_polls`` times. No
        validation within the bound → Unresolved: validation timeout.

    submit-and-wait (production):
        one call that submits and follows the transaction until the
        network reports it validated or expired. The returned metadata
        is authoritative.

Both return the same ``SubmissionOutcome`` shape:
    - VALIDATED_SUCCESS (tesSUCCESS in a validated ledger, with metadata)
    - VALIDATED_FAILURE (any other result in a validated ledger)
    - UNRESOLVED with reason SUBMISSION_REJECTED or VALIDATION_TIMEOUT

Per-account serialization (``AccountLocks``) lives here too: one account
never has two submissions in flight, since the ledger hands out strictly
increasing sequence numbers per account.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any, Protocol

from tokenops.config import SubmissionMode
from tokenops.errors import (
    ErrorCode,
    Failure,
    engine_failure,
    is_provisional_success,
    is_success,
)
from tokenops.ledger.client import LedgerClient, TxStatusResult
from tokenops.ledger.metadata import TransactionMeta
from tokenops.ledger.signer import SignResult
from tokenops.logs import get_logger

log = get_logger(__name__)

BATCH_MAX_POLLS = 30


class OutcomeStatus(StrEnum):
    VALIDATED_SUCCESS = "VALIDATED_SUCCESS"
    VALIDATED_FAILURE = "VALIDATED_FAILURE"
    UNRESOLVED = "UNRESOLVED"


class UnresolvedReason(StrEnum):
    SUBMISSION_REJECTED = "SUBMISSION_REJECTED"
    VALIDATION_TIMEOUT = "VALIDATION_TIMEOUT"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Resolution of one submitted transaction.

    Attributes:
        status: Validated success, validated failure, or unresolved.
        tx_hash: Transaction reference (None only if the server never
            computed one).
        engine_result: Final result when validated, preliminary result
            when the submission was rejected.
        ledger_index: Validating ledger sequence.
        ledger_hash: Validating ledger hash.
        meta: Typed metadata of a validated transaction.
        reason: Why the outcome is unresolved.
        detail: Human-readable detail.
    """

    status: OutcomeStatus
    tx_hash: str | None
    engine_result: str | None = None
    ledger_index: int | None = None
    ledger_hash: str | None = None
    meta: TransactionMeta | None = None
    reason: UnresolvedReason | None = None
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.VALIDATED_SUCCESS

    @classmethod
    def from_validated(cls, status: TxStatusResult) -> SubmissionOutcome:
        outcome = (
            OutcomeStatus.VALIDATED_SUCCESS
            if is_success(status.engine_result)
            else OutcomeStatus.VALIDATED_FAILURE
        )
        return cls(
            status=outcome,
            tx_hash=status.tx_hash,
            engine_result=status.engine_result,
            ledger_index=status.ledger_index,
            ledger_hash=status.ledger_hash,
            meta=status.meta,
            detail=status.detail,
        )

    @classmethod
    def rejected(
        cls,
        tx_hash: str | None,
        engine_result: str | None,
        detail: str | None = None,
    ) -> SubmissionOutcome:
        return cls(
            status=OutcomeStatus.UNRESOLVED,
            tx_hash=tx_hash,
            engine_result=engine_result,
            reason=UnresolvedReason.SUBMISSION_REJECTED,
            detail=detail,
        )

    @classmethod
    def timed_out(cls, tx_hash: str | None, detail: str | None = None) -> SubmissionOutcome:
        return cls(
            status=OutcomeStatus.UNRESOLVED,
            tx_hash=tx_hash,
            reason=UnresolvedReason.VALIDATION_TIMEOUT,
            detail=detail or "transaction was not validated in time",
        )

    def to_failure(self) -> Failure:
        """Map a non-success outcome onto the failure taxonomy."""
        if self.succeeded:
            raise ValueError("a successful outcome is not a failure")
        if self.reason == UnresolvedReason.VALIDATION_TIMEOUT:
            return Failure(
                code=ErrorCode.VALIDATION_TIMEOUT,
                detail=self.detail or "transaction was not validated in time",
                tx_hash=self.tx_hash,
            )
        return engine_failure(self.engine_result, self.detail, self.tx_hash)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": str(self.status), "txHash": self.tx_hash}
        if self.engine_result is not None:
            out["engineResult"] = self.engine_result
        if self.ledger_index is not None:
            out["ledgerIndex"] = self.ledger_index
        if self.ledger_hash is not None:
            out["ledgerHash"] = self.ledger_hash
        if self.reason is not None:
            out["reason"] = str(self.reason)
        return out


# =========================================================================
# Strategies
# =========================================================================


class SubmissionStrategy(Protocol):
    """Submits a signed transaction and resolves it to an outcome."""

    @property
    def name(self) -> str:
        ...

    async def resolve(self, client: LedgerClient, signed: SignResult) -> SubmissionOutcome:
        ...

    def for_batch(self) -> SubmissionStrategy:
        """Variant used for batch items (longer validation window)."""
        ...


@dataclass(frozen=True)
class FireAndPoll:
    """Submit once, then poll ``tx`` at a fixed interval.

    Args:
        poll_interval: Seconds between polls.
        max_polls: Polls before giving up with VALIDATION_TIMEOUT.
        sleep: Injectable sleep coroutine.
    """

    poll_interval: float = 1.0
    max_polls: int = 10
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @property
    def name(self) -> str:
        return str(SubmissionMode.FIRE_AND_POLL)

    def for_batch(self) -> FireAndPoll:
        return replace(self, max_polls=BATCH_MAX_POLLS)

    async def resolve(self, client: LedgerClient, signed: SignResult) -> SubmissionOutcome:
        submitted = await client.submit(signed.signed_tx_blob_hex)
        tx_hash = submitted.tx_hash or signed.tx_hash

        if not is_provisional_success(submitted.engine_result):
            log.info(
                "submission_rejected",
                tx_hash=tx_hash,
                engine_result=submitted.engine_result,
                detail=submitted.detail,
            )
            return SubmissionOutcome.rejected(tx_hash, submitted.engine_result, submitted.detail)

        for attempt in range(1, self.max_polls + 1):
            await self.sleep(self.poll_interval)
            try:
                status = await client.get_tx(tx_hash)
            except Exception as exc:
                # A failed poll counts against the bound; the next one may succeed.
                log.warning("validation_poll_failed", tx_hash=tx_hash, attempt=attempt, error=str(exc))
                continue
            log.debug("validation_poll", tx_hash=tx_hash, attempt=attempt, validated=status.validated)
            if status.validated:
                return SubmissionOutcome.from_validated(status)

        return SubmissionOutcome.timed_out(
            tx_hash,
            f"not validated after {self.max_polls} polls",
        )


@dataclass(frozen=True)
class SubmitAndWait:
    """Let the client submit and follow the transaction in one call."""

    @property
    def name(self) -> str:
        return str(SubmissionMode.SUBMIT_AND_WAIT)

    def for_batch(self) -> SubmitAndWait:
        return self

    async def resolve(self, client: LedgerClient, signed: SignResult) -> SubmissionOutcome:
        result = await client.submit_and_wait(
            signed.signed_tx_blob_hex,
            signed.tx_hash,
            signed.last_ledger_sequence,
        )
        tx_hash = result.submit.tx_hash or signed.tx_hash

        if result.status is None:
            log.info(
                "submission_rejected",
                tx_hash=tx_hash,
                engine_result=result.submit.engine_result,
                detail=result.submit.detail,
            )
            return SubmissionOutcome.rejected(
                tx_hash,
                result.submit.engine_result,
                result.submit.detail,
            )

        if result.status.validated:
            return SubmissionOutcome.from_validated(result.status)

        detail = (
            "LastLedgerSequence passed without validation"
            if result.expired
            else "network did not report a validated outcome"
        )
        return SubmissionOutcome.timed_out(tx_hash, detail)


def strategy_for(
    mode: SubmissionMode,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> SubmissionStrategy:
    if mode == SubmissionMode.FIRE_AND_POLL:
        return FireAndPoll(sleep=sleep)
    if mode == SubmissionMode.SUBMIT_AND_WAIT:
        return SubmitAndWait()
    raise ValueError(f"unknown submission mode: {mode}")


# =========================================================================
# Per-account serialization
# =========================================================================


class AccountLocks:
    """One asyncio.Lock per signing account.

    Holding an account's lock covers autofill (sequence assignment),
    signing, submission and resolution, so at most one transaction per
    account is in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, account: str) -> asyncio.Lock:
        existing = self._locks.get(account)
        if existing is None:
            existing = self._locks[account] = asyncio.Lock()
        return existing

    def locked(self, account: str) -> bool:
        lock = self._locks.get(account)
        return lock is not None and lock.locked()
