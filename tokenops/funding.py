"""
Funding guard — an account must exist and hold the minimum reserve
before it signs anything.

Outcomes:
    - SUFFICIENT: the account exists with balance >= min_reserve.
    - FUNDED: the account did not exist, the faucet created it, and its
      balance now meets min_reserve.
    - INSUFFICIENT: everything else. A low-balance account that already
      exists is never topped up (faucets only create accounts), and
      without auto-funding a missing account is not created.

After a faucet request the guard polls for the new account up to
``max_polls`` times with linear backoff (1x, 2x, 3x ``retry_delay``).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from tokenops.errors import ErrorCode, Failure
from tokenops.ledger.client import LedgerClient
from tokenops.logs import get_logger

log = get_logger(__name__)


class FundingStatus(StrEnum):
    SUFFICIENT = "SUFFICIENT"
    FUNDED = "FUNDED"
    INSUFFICIENT = "INSUFFICIENT"


@dataclass(frozen=True)
class FundingResult:
    status: FundingStatus
    address: str
    balance_xrp: Decimal | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != FundingStatus.INSUFFICIENT

    def to_failure(self) -> Failure:
        detail = self.detail or f"account {self.address} is below the minimum reserve"
        return Failure(code=ErrorCode.INSUFFICIENT_RESERVE, detail=detail)


class FundingGuard:
    """Checks (and on test networks, creates) signing accounts.

    Args:
        client: Ledger client for account lookups and faucet requests.
        auto_funding: Whether faucet creation of missing accounts is
            permitted on this network.
        retry_delay: Backoff unit in seconds between post-faucet polls.
        max_polls: Polls after a faucet request.
        sleep: Injectable sleep coroutine.
    """

    def __init__(
        self,
        client: LedgerClient,
        *,
        auto_funding: bool,
        retry_delay: float = 1.0,
        max_polls: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._auto_funding = auto_funding
        self._retry_delay = retry_delay
        self._max_polls = max_polls
        self._sleep = sleep

    @property
    def auto_funding(self) -> bool:
        return self._auto_funding

    async def ensure_funded(self, address: str, min_reserve: Decimal | float | int) -> FundingResult:
        """Ensure ``address`` exists with at least ``min_reserve`` XRP.

        Lookup errors other than "account not found" propagate.
        """
        minimum = Decimal(str(min_reserve))
        info = await self._client.account_info(address)

        if info.found:
            if info.balance_xrp >= minimum:
                return FundingResult(FundingStatus.SUFFICIENT, address, info.balance_xrp)
            log.warning(
                "account_below_reserve",
                address=address,
                balance_xrp=str(info.balance_xrp),
                min_reserve=str(minimum),
            )
            return FundingResult(
                FundingStatus.INSUFFICIENT,
                address,
                info.balance_xrp,
                detail=(
                    f"account {address} holds {info.balance_xrp} XRP, "
                    f"below the {minimum} XRP minimum; fund it manually"
                ),
            )

        if not self._auto_funding:
            return FundingResult(
                FundingStatus.INSUFFICIENT,
                address,
                detail=f"account {address} does not exist and auto-funding is disabled",
            )

        return await self._fund_new_account(address, minimum)

    async def _fund_new_account(self, address: str, minimum: Decimal) -> FundingResult:
        log.info("faucet_funding_requested", address=address)
        try:
            faucet = await self._client.fund_account(address)
        except Exception as exc:
            log.warning("faucet_request_failed", address=address, error=str(exc))
            return FundingResult(
                FundingStatus.INSUFFICIENT,
                address,
                detail=f"faucet request failed: {exc}",
            )

        if not faucet.funded:
            return FundingResult(
                FundingStatus.INSUFFICIENT,
                address,
                detail=faucet.detail or "faucet did not fund the account",
            )

        balance: Decimal | None = None
        for attempt in range(1, self._max_polls + 1):
            await self._sleep(self._retry_delay * attempt)
            info = await self._client.account_info(address)
            log.debug("faucet_poll", address=address, attempt=attempt, found=info.found)
            if not info.found:
                continue
            balance = info.balance_xrp
            if balance >= minimum:
                log.info("account_funded", address=address, balance_xrp=str(balance))
                return FundingResult(FundingStatus.FUNDED, address, balance)

        return FundingResult(
            FundingStatus.INSUFFICIENT,
            address,
            balance,
            detail=(
                f"account {address} was funded but holds {balance} XRP, "
                f"below the {minimum} XRP minimum"
                if balance is not None
                else f"account {address} did not appear after faucet funding"
            ),
        )
