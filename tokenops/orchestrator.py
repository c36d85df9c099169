"""
Submission orchestrator — one intent, exactly once per idempotency key.

State machine per request (key K optional):

    1. Lookup     — K already recorded for this kind → return the stored
                    payload. Nothing touches the network.
    2. Preflight  — funding guard for the signing account(s); trust-line
                    presence and, when the issuer requires it, issuer
                    authorization for each asset holder; operation-specific
                    checks. A preflight failure is returned and NOT recorded.
    3. Submit     — under the signing account's lock: autofill, sign, and
                    resolve with the network's submission strategy.
    4. Extract    — on validated success, pull the intent's artifact (token
                    id, offer id) out of the metadata. A missing artifact is
                    ARTIFACT_NOT_FOUND and carries the tx hash.
    5. Commit     — only with K and only after 4 succeeded: write the payload
                    to the idempotency store, then return it.

A crash between 3 and 5 leaves a realized mutation without a record; a
retry with the same K may submit again. ``reconcile`` lets a caller that
still holds the earlier tx hash check it before re-submitting.

Unexpected exceptions during a run (transport faults, malformed responses)
become Failure(INTERNAL). Task cancellation propagates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from tokenops.authorization import AuthorizationGuard, find_trust_line
from tokenops.errors import ErrorCode, Failure, OperationResult
from tokenops.funding import FundingGuard
from tokenops.idempotency import IdempotencyStore, OperationKind
from tokenops.intents import TransactionIntent, TrustSet
from tokenops.ledger.client import LedgerClient
from tokenops.ledger.metadata import extract_artifact
from tokenops.ledger.signer import Signer
from tokenops.logs import get_logger
from tokenops.submission import (
    AccountLocks,
    SubmissionOutcome,
    SubmissionStrategy,
    SubmitAndWait,
)

log = get_logger(__name__)

Check = Callable[[], Awaitable[Failure | None]]
PayloadBuilder = Callable[[SubmissionOutcome, str | None], dict[str, Any]]


@dataclass(frozen=True)
class SubmissionRequest:
    """Everything the orchestrator needs for one intent.

    Attributes:
        kind: Operation kind (scopes the idempotency key).
        intent: The mutation to perform.
        build_payload: Builds the success payload from the outcome and the
            extracted artifact (None for variants without one).
        idempotency_key: Optional caller-supplied key.
        fund_accounts: Accounts the funding guard must pass. Defaults to
            the signing account.
        asset_holders: Accounts that must hold a trust line to the issuer
            (and be authorized, when the issuer requires it).
        checks: Additional preflight checks; the first failure wins.
        batch: Use the strategy's batch variant (longer polling window).
        timeout: Caller deadline in seconds for submit + resolve.
    """

    kind: OperationKind
    intent: TransactionIntent
    build_payload: PayloadBuilder
    idempotency_key: str | None = None
    fund_accounts: tuple[str, ...] | None = None
    asset_holders: tuple[str, ...] = ()
    checks: tuple[Check, ...] = ()
    batch: bool = False
    timeout: float | None = None


class SubmissionOrchestrator:
    """Runs SubmissionRequests against one ledger.

    Args:
        client: Ledger client.
        store: Idempotency store.
        signers: Signing account address → Signer.
        funding: Funding guard.
        strategy: Submission strategy for this network.
        issuer: Issuer address of the fungible asset, None when the book
            has no issuer (requests with asset holders then fail).
        currency: Currency code of the fungible asset.
        requires_auth: Returns whether the issuer requires authorization.
            Evaluated per request, so flag changes apply immediately.
        managed_addresses: Holders the issuer may authorize.
        min_reserve: Minimum XRP balance for every signing account.
        source_tag: Source tag for issuer authorization transactions.
        locks: Per-account locks; share one instance between every
            orchestrator that signs for the same accounts.
    """

    def __init__(
        self,
        client: LedgerClient,
        store: IdempotencyStore,
        signers: Mapping[str, Signer],
        funding: FundingGuard,
        *,
        strategy: SubmissionStrategy,
        issuer: str | None,
        currency: str,
        requires_auth: Callable[[], bool],
        managed_addresses: frozenset[str],
        min_reserve: Decimal | float | int,
        source_tag: int = 0,
        locks: AccountLocks | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._signers = dict(signers)
        self._funding = funding
        self._strategy = strategy
        self._issuer = issuer
        self._currency = currency
        self._requires_auth = requires_auth
        self._min_reserve = Decimal(str(min_reserve))
        self._locks = locks or AccountLocks()
        self._authorization = AuthorizationGuard(
            client,
            managed_addresses=managed_addresses,
            submit=self._submit_authorization,
            source_tag=source_tag,
        )

    @property
    def strategy(self) -> SubmissionStrategy:
        return self._strategy

    @property
    def authorization(self) -> AuthorizationGuard:
        return self._authorization

    @property
    def locks(self) -> AccountLocks:
        return self._locks

    # -----------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------

    async def run(self, request: SubmissionRequest) -> OperationResult:
        """Drive one request through lookup → preflight → submit → extract → commit."""
        key = request.idempotency_key
        bound = log.bind(kind=str(request.kind), key=key, account=request.intent.account)

        replay = self._lookup(request)
        if replay is not None:
            bound.info("idempotent_replay")
            return replay

        try:
            failure = await self._preflight(request)
            if failure is not None:
                bound.info("preflight_failed", code=str(failure.code), detail=failure.detail)
                return OperationResult.failure(failure)

            strategy = self._strategy.for_batch() if request.batch else self._strategy
            outcome = await self._submit(request.intent, strategy, timeout=request.timeout)
            return self._finish(request, outcome)
        except Exception as exc:
            bound.exception("submission_internal_error")
            return OperationResult.failure(Failure(code=ErrorCode.INTERNAL, detail=str(exc)))

    async def reconcile(self, request: SubmissionRequest, tx_hash: str) -> OperationResult | None:
        """Resolve an earlier, unresolved submission of ``request``.

        Returns the committed result when ``tx_hash`` has since validated
        (success or failure), or None when it is still not validated and
        the caller may submit again.
        """
        replay = self._lookup(request)
        if replay is not None:
            return replay

        try:
            status = await self._client.get_tx(tx_hash)
        except Exception as exc:
            log.warning("reconcile_lookup_failed", tx_hash=tx_hash, error=str(exc))
            return None

        if not status.validated:
            return None

        log.info("late_validation_observed", tx_hash=tx_hash, engine_result=status.engine_result)
        try:
            return self._finish(request, SubmissionOutcome.from_validated(status))
        except Exception as exc:
            log.exception("reconcile_internal_error", tx_hash=tx_hash)
            return OperationResult.failure(
                Failure(code=ErrorCode.INTERNAL, detail=str(exc), tx_hash=tx_hash)
            )

    # -----------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------

    def _lookup(self, request: SubmissionRequest) -> OperationResult | None:
        if not request.idempotency_key:
            return None
        hit = self._store.get(request.kind, request.idempotency_key)
        if hit is None:
            return None
        return OperationResult.success(hit, replayed=True)

    async def _preflight(self, request: SubmissionRequest) -> Failure | None:
        fund_accounts = request.fund_accounts
        if fund_accounts is None:
            fund_accounts = (request.intent.account,)

        for address in fund_accounts:
            funding = await self._funding.ensure_funded(address, self._min_reserve)
            if not funding.ok:
                return funding.to_failure()

        if request.asset_holders:
            failure = await self._check_holders(request.asset_holders)
            if failure is not None:
                return failure

        for check in request.checks:
            failure = await check()
            if failure is not None:
                return failure
        return None

    async def _check_holders(self, holders: tuple[str, ...]) -> Failure | None:
        """Each holder needs a trust line, issuer-authorized under RequireAuth."""
        issuer = self._issuer
        if issuer is None:
            return Failure(code=ErrorCode.MISSING_ACCOUNTS, detail="no issuer account")

        requires_auth = self._requires_auth()
        for holder in holders:
            if requires_auth:
                auth = await self._authorization.ensure_authorized(issuer, holder, self._currency)
                if not auth.ok:
                    return auth.to_failure()
            elif await find_trust_line(self._client, holder, issuer, self._currency) is None:
                return Failure(
                    code=ErrorCode.MISSING_TRUST_LINE,
                    detail=f"{holder} has no {self._currency} trust line to {issuer}",
                )
        return None

    def _signer_for(self, account: str) -> Signer:
        signer = self._signers.get(account)
        if signer is None:
            raise KeyError(f"no signer for account {account}")
        return signer

    async def _submit(
        self,
        intent: TransactionIntent,
        strategy: SubmissionStrategy,
        *,
        timeout: float | None = None,
    ) -> SubmissionOutcome:
        signer = self._signer_for(intent.account)

        async with self._locks.lock(intent.account):
            tx = await self._client.autofill(intent.to_transaction())
            signed = signer.sign(tx)
            log.info(
                "transaction_signed",
                account=intent.account,
                transaction_type=intent.transaction_type,
                tx_hash=signed.tx_hash,
                sequence=signed.sequence,
                strategy=strategy.name,
            )

            if timeout is None:
                outcome = await strategy.resolve(self._client, signed)
            else:
                try:
                    async with asyncio.timeout(timeout):
                        outcome = await strategy.resolve(self._client, signed)
                except TimeoutError:
                    outcome = SubmissionOutcome.timed_out(
                        signed.tx_hash,
                        f"caller deadline of {timeout}s elapsed before validation",
                    )

        log.info(
            "submission_resolved",
            tx_hash=outcome.tx_hash,
            status=str(outcome.status),
            engine_result=outcome.engine_result,
            reason=str(outcome.reason) if outcome.reason else None,
        )
        return outcome

    async def _submit_authorization(self, intent: TrustSet) -> SubmissionOutcome:
        return await self._submit(intent, SubmitAndWait())

    def _finish(self, request: SubmissionRequest, outcome: SubmissionOutcome) -> OperationResult:
        if not outcome.succeeded:
            return OperationResult.failure(outcome.to_failure())

        artifact = extract_artifact(request.intent.artifact, outcome.meta)
        if artifact is None:
            log.error(
                "artifact_not_found",
                tx_hash=outcome.tx_hash,
                artifact=str(request.intent.artifact),
            )
            return OperationResult.failure(
                Failure(
                    code=ErrorCode.ARTIFACT_NOT_FOUND,
                    detail=(
                        f"transaction validated but its metadata has no "
                        f"{request.intent.artifact}; inspect {outcome.tx_hash}"
                    ),
                    tx_hash=outcome.tx_hash,
                    engine_result=outcome.engine_result,
                )
            )

        payload = request.build_payload(outcome, artifact or None)
        if request.idempotency_key:
            record = self._store.put(request.kind, request.idempotency_key, payload)
            return OperationResult.success(record.payload)
        return OperationResult.success(payload)
