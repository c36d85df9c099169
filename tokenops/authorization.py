"""
Authorization guard — issuer-side trust-line authorization.

Applies only when the issuer requires authorization (RequireAuth). The
caller decides that; this guard assumes it.

Safety rule: the issuer only ever authorizes trust lines held by accounts
this system manages. Any other holder is a no-op OK and nothing is
submitted, so the issuer cannot be steered into authorizing an
uncontrolled counterparty.

Algorithm for a managed holder:
    1. Look up the holder's trust line to the issuer for the currency.
       Absent → ERROR(MISSING_TRUSTLINE).
    2. Already authorized by the issuer → OK.
    3. Otherwise submit an issuer TrustSet with tfSetAuth and wait for
       validation → AUTHORIZED(tx_hash), or ERROR(AUTHORIZATION_FAILED).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from enum import StrEnum

from tokenops.errors import ErrorCode, Failure
from tokenops.intents import TrustSet
from tokenops.ledger.client import LedgerClient, TrustLine
from tokenops.logs import get_logger
from tokenops.submission import SubmissionOutcome

log = get_logger(__name__)

MISSING_TRUSTLINE = "MISSING_TRUSTLINE"
AUTHORIZATION_FAILED = "AUTHORIZATION_FAILED"

# Submits an issuer-signed intent under the issuer's account lock and
# resolves it with submit-and-wait semantics.
AuthSubmitter = Callable[[TrustSet], Awaitable[SubmissionOutcome]]


class AuthStatus(StrEnum):
    OK = "OK"
    AUTHORIZED = "AUTHORIZED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class AuthResult:
    status: AuthStatus
    error_code: str | None = None
    tx_hash: str | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != AuthStatus.ERROR

    def to_failure(self) -> Failure:
        if self.error_code == MISSING_TRUSTLINE:
            return Failure(
                code=ErrorCode.MISSING_TRUST_LINE,
                detail=self.detail or "holder has no trust line to the issuer",
            )
        return Failure(
            code=ErrorCode.NOT_AUTHORIZED,
            detail=self.detail or "issuer authorization failed",
            tx_hash=self.tx_hash,
        )


async def find_trust_line(
    client: LedgerClient,
    holder: str,
    issuer: str,
    currency: str,
) -> TrustLine | None:
    """The holder's trust line to ``issuer`` for ``currency``, or None."""
    for line in await client.account_lines(holder, peer=issuer):
        if line.peer == issuer and line.currency == currency:
            return line
    return None


class AuthorizationGuard:
    """Ensures the issuer has authorized managed holders' trust lines.

    Args:
        client: Ledger client for trust-line lookups.
        managed_addresses: Addresses the issuer may authorize.
        submit: Submits and resolves the issuer's authorization TrustSet.
        source_tag: Source tag stamped on the authorization transaction.
    """

    def __init__(
        self,
        client: LedgerClient,
        *,
        managed_addresses: Collection[str],
        submit: AuthSubmitter,
        source_tag: int = 0,
    ) -> None:
        self._client = client
        self._managed = frozenset(managed_addresses)
        self._submit = submit
        self._source_tag = source_tag

    async def ensure_authorized(self, issuer: str, holder: str, currency: str) -> AuthResult:
        if holder not in self._managed:
            log.warning("authorization_skipped_unmanaged_holder", holder=holder)
            return AuthResult(AuthStatus.OK)

        line = await find_trust_line(self._client, holder, issuer, currency)
        if line is None:
            return AuthResult(
                AuthStatus.ERROR,
                error_code=MISSING_TRUSTLINE,
                detail=f"{holder} has no {currency} trust line to {issuer}",
            )
        if line.peer_authorized:
            return AuthResult(AuthStatus.OK)

        log.info("authorizing_trust_line", issuer=issuer, holder=holder, currency=currency)
        intent = TrustSet(
            account=issuer,
            source_tag=self._source_tag,
            currency=currency,
            peer=holder,
            authorize=True,
        )
        outcome = await self._submit(intent)

        if outcome.succeeded:
            log.info("trust_line_authorized", holder=holder, tx_hash=outcome.tx_hash)
            return AuthResult(AuthStatus.AUTHORIZED, tx_hash=outcome.tx_hash)

        log.warning(
            "trust_line_authorization_failed",
            holder=holder,
            tx_hash=outcome.tx_hash,
            engine_result=outcome.engine_result,
        )
        return AuthResult(
            AuthStatus.ERROR,
            error_code=AUTHORIZATION_FAILED,
            tx_hash=outcome.tx_hash,
            detail=(
                f"authorization TrustSet ended with "
                f"{outcome.engine_result or outcome.reason or 'no result'}"
            ),
        )
