"""
XRPL JSON-RPC client — real network implementation of LedgerClient.

Translates rippled JSON-RPC responses into the typed results defined in
client.py. Uses an injectable transport (JsonRpcTransport) so the HTTP
layer can be swapped for test fakes without changing parsing logic.

No retry loops beyond pagination and the bounded submit-and-wait follow.
No secrets: signing happens elsewhere, this client only sees blobs.

Response parsing targets rippled JSON-RPC conventions:
    - Successful responses: {"result": {"status": "success", ...}}
    - Error responses: {"result": {"status": "error", "error": "...", ...}}
    - Submit responses include: engine_result, accepted, applied, tx_json
    - tx responses include: validated, ledger_index, ledger_hash, meta, hash
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from tokenops.cache import RefreshingCache
from tokenops.errors import LedgerRequestError, is_provisional_success
from tokenops.ledger.client import (
    AccountInfo,
    FaucetResult,
    NFToken,
    NFTOffer,
    SubmitAndWaitResult,
    SubmitResult,
    TrustLine,
    TxStatusResult,
)
from tokenops.ledger.metadata import parse_meta
from tokenops.ledger.transport import HttpxTransport, JsonRpcTransport
from tokenops.logs import get_logger

log = get_logger(__name__)

# Ledgers a transaction may wait for inclusion before it expires.
LEDGER_OFFSET = 20
# Pages followed per paginated lookup.
MAX_PAGES = 50
# Fee ceiling in drops (2 XRP).
MAX_FEE_DROPS = 2_000_000

# JSON-RPC request ID counter (simple, no thread-safety needed for async)
_REQUEST_ID = 0


def _next_request_id() -> int:
    global _REQUEST_ID
    _REQUEST_ID += 1
    return _REQUEST_ID


class JsonRpcClient:
    """XRPL JSON-RPC client implementing the LedgerClient protocol.

    Args:
        url: The rippled JSON-RPC endpoint URL.
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
        faucet_url: Account-creation faucet endpoint, None on networks
            without one.
        fee_ttl: Seconds a fetched network fee stays cached.
        wait_interval: Seconds between status checks in submit_and_wait.
        max_wait_polls: Upper bound on status checks in submit_and_wait.
        sleep: Injectable sleep coroutine (tests pass a no-op).
        clock: Monotonic clock used for the fee cache.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
        *,
        faucet_url: str | None = None,
        fee_ttl: float = 30.0,
        wait_interval: float = 1.0,
        max_wait_polls: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()
        self._faucet_url = faucet_url
        self._wait_interval = wait_interval
        self._max_wait_polls = max_wait_polls
        self._sleep = sleep
        self._clock = clock
        self._fee_cache: RefreshingCache[int] = RefreshingCache(self._fetch_fee, ttl=fee_ttl)

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    async def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        payload = {
            "method": method,
            "params": [params],
            "id": _next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        result: dict[str, Any] = response.get("result", {})
        return result

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Call a lookup method, raising LedgerRequestError on server errors."""
        result = await self._call(method, params)
        if result.get("status") == "error":
            raise LedgerRequestError(
                result.get("error", "unknown"),
                result.get("error_message"),
            )
        return result

    async def _paged(self, method: str, params: dict[str, Any], field: str) -> list[dict[str, Any]]:
        """Follow ``marker`` pagination, collecting ``result[field]`` entries."""
        items: list[dict[str, Any]] = []
        for _ in range(MAX_PAGES):
            result = await self._request(method, params)
            items.extend(result.get(field, []))
            marker = result.get("marker")
            if marker is None:
                break
            params = {**params, "marker": marker}
        return items

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------

    async def account_info(self, address: str) -> AccountInfo:
        result = await self._call(
            "account_info",
            {"account": address, "ledger_index": "validated"},
        )
        return _parse_account_info(address, result)

    async def account_lines(self, address: str, peer: str | None = None) -> list[TrustLine]:
        params: dict[str, Any] = {"account": address, "ledger_index": "validated"}
        if peer is not None:
            params["peer"] = peer
        return [_parse_trust_line(raw) for raw in await self._paged("account_lines", params, "lines")]

    async def account_nfts(self, address: str) -> list[NFToken]:
        raw_nfts = await self._paged(
            "account_nfts",
            {"account": address, "ledger_index": "validated"},
            "account_nfts",
        )
        return [_parse_nftoken(raw) for raw in raw_nfts if isinstance(raw.get("NFTokenID"), str)]

    async def account_nft_offers(self, address: str) -> list[NFTOffer]:
        objects = await self._paged(
            "account_objects",
            {"account": address, "type": "nft_offer", "ledger_index": "validated"},
            "account_objects",
        )
        return [
            _parse_nft_offer(raw)
            for raw in objects
            if raw.get("LedgerEntryType") == "NFTokenOffer"
        ]

    async def account_tx(self, address: str, limit: int = 100) -> list[dict[str, Any]]:
        result = await self._request(
            "account_tx",
            {
                "account": address,
                "ledger_index_min": -1,
                "ledger_index_max": -1,
                "limit": limit,
            },
        )
        return [_normalize_account_tx_entry(e) for e in result.get("transactions", [])]

    async def validated_ledger_index(self) -> int:
        result = await self._request("ledger", {"ledger_index": "validated"})
        return int(result["ledger_index"])

    # -----------------------------------------------------------------
    # Autofill
    # -----------------------------------------------------------------

    async def _fetch_fee(self) -> int:
        result = await self._request("fee", {})
        drops = result.get("drops", {})
        base = int(drops.get("base_fee", 10))
        open_ledger = int(drops.get("open_ledger_fee", base))
        return min(max(base, open_ledger), MAX_FEE_DROPS)

    async def autofill(self, tx: dict[str, Any]) -> dict[str, Any]:
        """Fill Sequence, Fee and LastLedgerSequence where absent.

        Raises:
            LedgerRequestError: If the signing account does not exist.
        """
        filled = dict(tx)

        if "Sequence" not in filled:
            info = await self.account_info(filled["Account"])
            if not info.found or info.sequence is None:
                raise LedgerRequestError("actNotFound", f"account {filled['Account']} not found")
            filled["Sequence"] = info.sequence

        if "Fee" not in filled:
            fee = await self._fee_cache.refresh(self._clock())
            filled["Fee"] = str(fee)

        if "LastLedgerSequence" not in filled:
            result = await self._request("ledger_current", {})
            filled["LastLedgerSequence"] = int(result["ledger_current_index"]) + LEDGER_OFFSET

        return filled

    # -----------------------------------------------------------------
    # Submission
    # -----------------------------------------------------------------

    async def submit(self, signed_tx_blob_hex: str) -> SubmitResult:
        """Submit a signed transaction blob via JSON-RPC.

        Transport exceptions propagate to the caller.
        """
        payload = {
            "method": "submit",
            "params": [{"tx_blob": signed_tx_blob_hex}],
            "id": _next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_submit_response(response)

    async def get_tx(self, tx_hash: str) -> TxStatusResult:
        """Query transaction status via JSON-RPC.

        Transport exceptions propagate to the caller.
        """
        payload = {
            "method": "tx",
            "params": [{"transaction": tx_hash, "binary": False}],
            "id": _next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_tx_response(response, tx_hash)

    async def submit_and_wait(
        self,
        signed_tx_blob_hex: str,
        tx_hash: str,
        last_ledger_sequence: int | None,
    ) -> SubmitAndWaitResult:
        """Submit and follow the transaction to a final outcome.

        Stops when the transaction is validated, when the validated ledger
        passes ``last_ledger_sequence`` (the transaction can no longer be
        included), or after ``max_wait_polls`` checks.
        """
        submitted = await self.submit(signed_tx_blob_hex)
        if not submitted.accepted:
            return SubmitAndWaitResult(submit=submitted)
        if not is_provisional_success(submitted.engine_result) and not (
            submitted.engine_result or ""
        ).startswith("tec"):
            return SubmitAndWaitResult(submit=submitted)

        tx_hash = submitted.tx_hash or tx_hash
        status: TxStatusResult | None = None
        for _ in range(self._max_wait_polls):
            await self._sleep(self._wait_interval)
            status = await self.get_tx(tx_hash)
            if status.validated:
                return SubmitAndWaitResult(submit=submitted, status=status)
            if last_ledger_sequence is not None:
                if await self.validated_ledger_index() > last_ledger_sequence:
                    # One last look: it may have validated in the final ledger.
                    status = await self.get_tx(tx_hash)
                    return SubmitAndWaitResult(
                        submit=submitted,
                        status=status,
                        expired=not status.validated,
                    )

        log.warning("submit_and_wait_exhausted", tx_hash=tx_hash, polls=self._max_wait_polls)
        return SubmitAndWaitResult(submit=submitted, status=status)

    # -----------------------------------------------------------------
    # Faucet
    # -----------------------------------------------------------------

    async def fund_account(self, address: str) -> FaucetResult:
        """Create and fund ``address`` through the network faucet.

        Transport exceptions propagate to the caller.
        """
        if self._faucet_url is None:
            return FaucetResult(funded=False, address=address, detail="no faucet for this network")

        response = await self._transport.post_json(self._faucet_url, {"destination": address})
        return _parse_faucet_response(address, response)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_account_info(address: str, result: dict[str, Any]) -> AccountInfo:
    """Parse an account_info result.

    Raises:
        LedgerRequestError: On server errors other than actNotFound.
    """
    if result.get("status") == "error":
        if result.get("error") == "actNotFound":
            return AccountInfo(address=address, found=False)
        raise LedgerRequestError(result.get("error", "unknown"), result.get("error_message"))

    data = result.get("account_data", {})
    return AccountInfo(
        address=address,
        found=True,
        balance_drops=int(data.get("Balance", "0")),
        sequence=data.get("Sequence"),
        flags=int(data.get("Flags", 0)),
        owner_count=int(data.get("OwnerCount", 0)),
    )


def _parse_trust_line(raw: dict[str, Any]) -> TrustLine:
    return TrustLine(
        peer=raw["account"],
        currency=raw["currency"],
        balance=str(raw.get("balance", "0")),
        limit=str(raw.get("limit", "0")),
        limit_peer=str(raw.get("limit_peer", "0")),
        authorized=bool(raw.get("authorized", False)),
        peer_authorized=bool(raw.get("peer_authorized", False)),
    )


def _parse_nftoken(raw: dict[str, Any]) -> NFToken:
    return NFToken(
        nftoken_id=raw["NFTokenID"].upper(),
        taxon=int(raw.get("NFTokenTaxon", 0)),
        uri_hex=raw.get("URI") or None,
        flags=int(raw.get("Flags", 0)),
        issuer=raw.get("Issuer"),
    )


def _parse_nft_offer(raw: dict[str, Any]) -> NFTOffer:
    """Parse an NFTokenOffer ledger object; XRP amounts stay in drops."""
    amount = raw.get("Amount", "0")
    if isinstance(amount, dict):
        value = str(amount.get("value", "0"))
        currency, issuer = amount.get("currency"), amount.get("issuer")
    else:
        value, currency, issuer = str(amount), None, None
    return NFTOffer(
        offer_index=str(raw["index"]).upper(),
        nftoken_id=str(raw["NFTokenID"]).upper(),
        owner=raw.get("Owner", ""),
        amount=value,
        currency=currency,
        issuer=issuer,
        flags=int(raw.get("Flags", 0)),
        destination=raw.get("Destination"),
    )


def _normalize_account_tx_entry(entry: dict[str, Any]) -> dict[str, Any]:
    """Give API v1 and v2 account_tx entries one shape: {tx, meta, validated}."""
    tx = entry.get("tx")
    if tx is None:
        tx = dict(entry.get("tx_json", {}))
        if "hash" in entry:
            tx["hash"] = entry["hash"]
        if "date" not in tx and "close_time_iso" in entry:
            tx["close_time_iso"] = entry["close_time_iso"]
    return {
        "tx": tx,
        "meta": entry.get("meta", {}),
        "validated": bool(entry.get("validated", False)),
    }


def _parse_submit_response(response: dict[str, Any]) -> SubmitResult:
    """Parse a rippled submit JSON-RPC response into SubmitResult.

    Handles:
        - Successful submit (engine_result present)
        - Server-level errors (status == "error")
        - Missing/malformed fields (returns accepted=False with detail)
    """
    result = response.get("result", {})

    # Server-level error (e.g. invalidParams, amendmentBlocked)
    if result.get("status") == "error":
        return SubmitResult(
            accepted=False,
            error_code="SERVER_ERROR",
            detail=result.get("error_message") or result.get("error", "unknown server error"),
        )

    engine_result = result.get("engine_result")
    if engine_result is None:
        return SubmitResult(
            accepted=False,
            error_code="SERVER_ERROR",
            detail="no engine_result in submit response",
        )

    tx_hash = None
    tx_json = result.get("tx_json")
    if isinstance(tx_json, dict):
        tx_hash = tx_json.get("hash")

    # Some server versions omit "accepted"; fall back to the engine result.
    accepted = result.get("accepted", False)
    if not accepted:
        accepted = engine_result == "tesSUCCESS" or engine_result.startswith(("ter", "tec"))

    return SubmitResult(
        accepted=accepted,
        tx_hash=tx_hash,
        engine_result=engine_result,
        detail=result.get("engine_result_message"),
    )


def _parse_tx_response(response: dict[str, Any], tx_hash: str | None = None) -> TxStatusResult:
    """Parse a rippled tx JSON-RPC response into TxStatusResult.

    Handles:
        - Transaction found and validated (meta parsed into TransactionMeta)
        - Transaction found but not yet validated
        - Transaction not found (txnNotFound error)
        - Server-level errors
        - Malformed metadata (error_code MALFORMED_META, meta None)
    """
    result = response.get("result", {})

    if result.get("status") == "error":
        error = result.get("error", "")
        if error == "txnNotFound":
            return TxStatusResult(found=False, tx_hash=tx_hash)
        return TxStatusResult(
            found=False,
            tx_hash=tx_hash,
            error_code="SERVER_ERROR",
            detail=result.get("error_message") or error,
        )

    validated = bool(result.get("validated", False))
    raw_meta = result.get("meta")

    engine_result = None
    if isinstance(raw_meta, dict):
        engine_result = raw_meta.get("TransactionResult")

    meta = None
    error_code = None
    detail = None
    if validated:
        try:
            meta = parse_meta(raw_meta)
        except ValueError as exc:
            error_code = "MALFORMED_META"
            detail = str(exc)

    return TxStatusResult(
        found=True,
        tx_hash=result.get("hash") or tx_hash,
        validated=validated,
        ledger_index=result.get("ledger_index") if validated else None,
        ledger_hash=result.get("ledger_hash") if validated else None,
        engine_result=engine_result,
        meta=meta,
        ledger_close_time=result.get("close_time_iso"),
        error_code=error_code,
        detail=detail,
    )


def _parse_faucet_response(address: str, response: dict[str, Any]) -> FaucetResult:
    account = response.get("account") or {}
    funded_address = account.get("classicAddress") or account.get("address")
    if funded_address is not None and funded_address != address:
        return FaucetResult(
            funded=False,
            address=address,
            detail=f"faucet funded {funded_address} instead of {address}",
        )
    amount = response.get("amount")
    return FaucetResult(
        funded=True,
        address=address,
        amount_xrp=str(amount) if amount is not None else None,
    )
