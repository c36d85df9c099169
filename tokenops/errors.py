"""
Failure taxonomy — machine-readable codes plus human-readable detail.

Expected failures are values, not exceptions: every upward operation
returns an ``OperationResult`` whose ``error`` is a ``Failure``. Only
programming errors and unexpected transport faults raise.

XRPL engine result prefixes:
    - tes: success (tesSUCCESS)
    - tec: claimed cost — included in a ledger but "failed"
    - tef: local failure — not forwarded
    - tem: malformed — will never succeed
    - ter: retry — may still apply (terQUEUED is provisional success)

Reference:
    https://xrpl.org/docs/references/protocol/transactions/transaction-results
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Failure categories surfaced to callers."""

    # input validation
    INVALID_INPUT = "INVALID_INPUT"

    # preconditions
    INSUFFICIENT_RESERVE = "INSUFFICIENT_RESERVE"
    MISSING_TRUST_LINE = "MISSING_TRUST_LINE"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INSUFFICIENT_ASSET_BALANCE = "INSUFFICIENT_ASSET_BALANCE"
    NFT_NOT_FOUND = "NFT_NOT_FOUND"
    MISSING_ACCOUNTS = "MISSING_ACCOUNTS"

    # network / engine
    ENGINE_REJECTED = "ENGINE_REJECTED"

    # timing
    VALIDATION_TIMEOUT = "VALIDATION_TIMEOUT"

    # extraction
    ARTIFACT_NOT_FOUND = "ARTIFACT_NOT_FOUND"

    INTERNAL = "INTERNAL"


PRECONDITION_CODES = frozenset(
    {
        ErrorCode.INSUFFICIENT_RESERVE,
        ErrorCode.MISSING_TRUST_LINE,
        ErrorCode.NOT_AUTHORIZED,
        ErrorCode.INSUFFICIENT_ASSET_BALANCE,
        ErrorCode.NFT_NOT_FOUND,
        ErrorCode.MISSING_ACCOUNTS,
    }
)


@dataclass(frozen=True)
class Failure:
    """A tagged failure.

    Attributes:
        code: Machine-readable category.
        detail: Human-readable explanation.
        tx_hash: Transaction reference when the network saw a transaction
            (always set for VALIDATION_TIMEOUT and ARTIFACT_NOT_FOUND).
        engine_result: Engine result code when the network classified it.
    """

    code: ErrorCode
    detail: str
    tx_hash: str | None = None
    engine_result: str | None = None

    @property
    def transient(self) -> bool:
        """Only a validation timeout may resolve by itself."""
        return self.code == ErrorCode.VALIDATION_TIMEOUT

    @property
    def precondition(self) -> bool:
        return self.code in PRECONDITION_CODES

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": str(self.code), "detail": self.detail}
        if self.tx_hash is not None:
            out["txHash"] = self.tx_hash
        if self.engine_result is not None:
            out["engineResult"] = self.engine_result
        return out


@dataclass(frozen=True)
class OperationResult:
    """What every upward operation returns.

    ``data`` is set on success and ``error`` on failure. A halted batch
    carries both: the failure and the partial summary. ``replayed`` is True
    when the payload came from the idempotency store and nothing was
    submitted.
    """

    ok: bool
    data: dict[str, Any] | None = None
    error: Failure | None = None
    replayed: bool = False

    @classmethod
    def success(cls, data: dict[str, Any], *, replayed: bool = False) -> OperationResult:
        return cls(ok=True, data=data, replayed=replayed)

    @classmethod
    def failure(cls, error: Failure) -> OperationResult:
        return cls(ok=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "data": self.data, "replayed": self.replayed}
        assert self.error is not None
        out: dict[str, Any] = {"ok": False, "error": self.error.to_dict()}
        if self.data is not None:
            out["data"] = self.data
        return out


# =========================================================================
# Exceptions
# =========================================================================


class LedgerRequestError(Exception):
    """A ledger lookup returned a server-level error.

    Attributes:
        error: The rippled error token (e.g. "lgrNotFound").
        detail: The server's error message, if any.
    """

    def __init__(self, error: str, detail: str | None = None) -> None:
        self.error = error
        self.detail = detail
        super().__init__(f"{error}: {detail}" if detail else error)


class IdempotencyConflictError(Exception):
    """A (kind, key) pair already holds a different payload."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"idempotency record {kind}/{key} already exists with a different payload")


class MissingAccountError(Exception):
    """A role account is absent from the account book."""


# =========================================================================
# Engine result classification
# =========================================================================

_SUCCESS = "tesSUCCESS"
_PROVISIONAL = frozenset({"tesSUCCESS", "terQUEUED"})
_REJECT_PREFIXES = ("tec", "tef", "tem", "ter", "tel")


def is_success(engine_result: str | None) -> bool:
    return engine_result == _SUCCESS


def is_provisional_success(engine_result: str | None) -> bool:
    """True when a submit-time engine result may still validate."""
    return engine_result in _PROVISIONAL


def classify_engine_result(engine_result: str | None) -> ErrorCode | None:
    """Map an XRPL engine result code to an ErrorCode.

    Args:
        engine_result: XRPL engine result string (e.g. "tesSUCCESS",
            "temBAD_FEE"). None means the engine never responded.

    Returns:
        None for tesSUCCESS, ENGINE_REJECTED for any known failure
        prefix, INTERNAL when the engine never responded or the code
        is unrecognized.
    """
    if engine_result is None:
        return ErrorCode.INTERNAL
    if engine_result == _SUCCESS:
        return None
    if engine_result.startswith(_REJECT_PREFIXES):
        return ErrorCode.ENGINE_REJECTED
    return ErrorCode.INTERNAL


def engine_failure(
    engine_result: str | None,
    detail: str | None = None,
    tx_hash: str | None = None,
) -> Failure:
    code = classify_engine_result(engine_result) or ErrorCode.INTERNAL
    message = detail or f"transaction failed with {engine_result or 'no engine result'}"
    return Failure(code=code, detail=message, tx_hash=tx_hash, engine_result=engine_result)
