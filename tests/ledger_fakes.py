"""
In-memory ledger and signer fakes shared by the test modules.

FakeLedger implements the LedgerClient protocol against dicts. Each
submission is scripted: ``preliminary`` results are popped per submit
(default tesSUCCESS), ``final`` results per submit decide what the
transaction validates with (None = never validates). Tests inspect
``submitted`` and ``events`` afterwards.

FakeSigner "signs" by hex-encoding the transaction JSON; the hash is the
SHA-256 of that JSON. FakeLedger decodes the blob back.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any

from tokenops.accounts import Account, AccountBook, Role
from tokenops.errors import LedgerRequestError
from tokenops.intents import TF_SET_AUTH
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
from tokenops.ledger.signer import SignResult

ISSUER = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
HOT = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"
SELLER = "rf1BiGeXwwQoi8Z2ueFYTEXSwuJYfV2Jpn"
BUYER = "rDsbeomae4FXwgQTJp9Rs64Qg9vDiTCdBv"
OUTSIDER = "rU6K7V3Po4snVhBBaU29sesqs2qTQJWDw1"

ADDRESSES = {Role.ISSUER: ISSUER, Role.HOT: HOT, Role.SELLER: SELLER, Role.BUYER: BUYER}

SOURCE_TAG = 846813574
ONE_XRP = 1_000_000


def digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest().upper()


def make_book(
    roles: tuple[Role, ...] = tuple(Role),
    *,
    source_tag: int = SOURCE_TAG,
    configuration: dict[str, Any] | None = None,
) -> AccountBook:
    return AccountBook(
        network="TESTNET",
        source_tag=source_tag,
        accounts={
            r: Account(role=r, address=ADDRESSES[r], public_key=f"ED{r.upper()}", seed=f"s{r}")
            for r in roles
        },
        created_at="2026-01-01T00:00:00+00:00",
        configuration=configuration or {},
    )


async def no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Signer
# ---------------------------------------------------------------------------


class FakeSigner:
    def __init__(self, account: Account | str) -> None:
        self._account = account if isinstance(account, str) else account.address

    @property
    def account(self) -> str:
        return self._account

    @property
    def key_id(self) -> str:
        return f"fake-{self._account}"

    def sign(self, tx_dict: dict[str, Any]) -> SignResult:
        if tx_dict.get("Account") != self._account:
            raise ValueError("transaction Account does not match the signer")
        body = json.dumps(tx_dict, sort_keys=True)
        return SignResult(
            signed_tx_blob_hex=body.encode("utf-8").hex().upper(),
            tx_hash=digest(body),
            key_id=self.key_id,
            sequence=tx_dict.get("Sequence"),
            last_ledger_sequence=tx_dict.get("LastLedgerSequence"),
        )


def decode_blob(blob: str) -> dict[str, Any]:
    decoded: dict[str, Any] = json.loads(bytes.fromhex(blob).decode("utf-8"))
    return decoded


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class FakeLedger:
    """Scriptable LedgerClient."""

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, int]] = {}
        self.lines: dict[str, list[TrustLine]] = {}
        self.nfts: dict[str, list[str]] = {}
        self.nft_records: dict[str, NFToken] = {}
        self.offers: dict[str, list[NFTOffer]] = {}
        self.history: dict[str, list[dict[str, Any]]] = {}

        self.preliminary: list[str] = []
        self.final: list[str | None] = []
        self.missing_artifact: set[str] = set()
        self.faucet_funds = True
        self.faucet_error: Exception | None = None
        self.get_tx_errors: list[Exception] = []
        self.lookup_error: Exception | None = None

        self.submitted: list[dict[str, Any]] = []
        self.events: list[tuple[str, str]] = []
        self.faucet_requests: list[str] = []
        self.get_tx_calls = 0
        self._status: dict[str, TxStatusResult] = {}
        self._pending: dict[str, dict[str, Any]] = {}

    # -- setup helpers ------------------------------------------------------

    def fund(self, address: str, xrp: int = 100, *, flags: int = 0) -> None:
        self.accounts[address] = {"balance": xrp * ONE_XRP, "sequence": 1, "flags": flags}

    def fund_all(self, xrp: int = 100) -> None:
        for address in ADDRESSES.values():
            self.fund(address, xrp)

    def add_line(
        self,
        holder: str,
        *,
        issuer: str = ISSUER,
        currency: str = "SBR",
        balance: str = "0",
        limit: str = "1000000000",
        peer_authorized: bool = False,
    ) -> None:
        self.lines.setdefault(holder, []).append(
            TrustLine(
                peer=issuer,
                currency=currency,
                balance=balance,
                limit=limit,
                peer_authorized=peer_authorized,
            )
        )

    def validate_late(self, tx_hash: str, engine_result: str = "tesSUCCESS") -> None:
        """Make a pending (never-validated) transaction validate now."""
        tx = self._pending.pop(tx_hash)
        self._validate(tx_hash, tx, engine_result)

    @property
    def pending(self) -> list[str]:
        """Hashes of submitted transactions that have not validated."""
        return list(self._pending)

    def submitted_types(self) -> list[str]:
        return [tx["TransactionType"] for tx in self.submitted]

    # -- LedgerClient -------------------------------------------------------

    async def account_info(self, address: str) -> AccountInfo:
        await asyncio.sleep(0)
        if self.lookup_error is not None:
            raise self.lookup_error
        state = self.accounts.get(address)
        if state is None:
            return AccountInfo(address=address, found=False)
        return AccountInfo(
            address=address,
            found=True,
            balance_drops=state["balance"],
            sequence=state["sequence"],
            flags=state["flags"],
        )

    async def account_lines(self, address: str, peer: str | None = None) -> list[TrustLine]:
        await asyncio.sleep(0)
        lines = self.lines.get(address, [])
        return [line for line in lines if peer is None or line.peer == peer]

    async def account_nfts(self, address: str) -> list[NFToken]:
        await asyncio.sleep(0)
        return [self.nft_records.get(i, NFToken(nftoken_id=i)) for i in self.nfts.get(address, [])]

    async def account_nft_offers(self, address: str) -> list[NFTOffer]:
        await asyncio.sleep(0)
        return list(self.offers.get(address, []))

    async def account_tx(self, address: str, limit: int = 100) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        if address not in self.history and address not in self.accounts:
            raise LedgerRequestError("actNotFound", f"{address} not found")
        return self.history.get(address, [])[:limit]

    async def autofill(self, tx: dict[str, Any]) -> dict[str, Any]:
        self.events.append(("autofill", tx["Account"]))
        await asyncio.sleep(0)
        state = self.accounts.get(tx["Account"])
        if state is None:
            raise LedgerRequestError("actNotFound", f"account {tx['Account']} not found")
        return {**tx, "Sequence": state["sequence"], "Fee": "12", "LastLedgerSequence": 1000}

    async def submit(self, signed_tx_blob_hex: str) -> SubmitResult:
        tx = decode_blob(signed_tx_blob_hex)
        tx_hash = digest(json.dumps(tx, sort_keys=True))
        self.events.append(("submit", tx["Account"]))
        self.submitted.append(tx)
        await asyncio.sleep(0)

        engine_result = self.preliminary.pop(0) if self.preliminary else "tesSUCCESS"
        accepted = engine_result == "tesSUCCESS" or engine_result.startswith(("ter", "tec"))
        if engine_result in ("tesSUCCESS", "terQUEUED"):
            self.accounts[tx["Account"]]["sequence"] += 1
            final = self.final.pop(0) if self.final else "tesSUCCESS"
            if final is None:
                self._pending[tx_hash] = tx
            else:
                self._validate(tx_hash, tx, final)
        return SubmitResult(
            accepted=accepted,
            tx_hash=tx_hash,
            engine_result=engine_result,
            detail=f"preliminary {engine_result}",
        )

    async def get_tx(self, tx_hash: str) -> TxStatusResult:
        self.get_tx_calls += 1
        await asyncio.sleep(0)
        if self.get_tx_errors:
            raise self.get_tx_errors.pop(0)
        status = self._status.get(tx_hash)
        if status is not None:
            return status
        if tx_hash in self._pending:
            return TxStatusResult(found=True, tx_hash=tx_hash, validated=False)
        return TxStatusResult(found=False, tx_hash=tx_hash)

    async def submit_and_wait(
        self,
        signed_tx_blob_hex: str,
        tx_hash: str,
        last_ledger_sequence: int | None,
    ) -> SubmitAndWaitResult:
        submitted = await self.submit(signed_tx_blob_hex)
        if submitted.engine_result not in ("tesSUCCESS", "terQUEUED"):
            return SubmitAndWaitResult(submit=submitted)
        status = await self.get_tx(submitted.tx_hash or tx_hash)
        return SubmitAndWaitResult(submit=submitted, status=status, expired=not status.validated)

    async def fund_account(self, address: str) -> FaucetResult:
        self.faucet_requests.append(address)
        await asyncio.sleep(0)
        if self.faucet_error is not None:
            raise self.faucet_error
        if not self.faucet_funds:
            return FaucetResult(funded=False, address=address, detail="faucet dry")
        self.fund(address, 1000)
        return FaucetResult(funded=True, address=address, amount_xrp="1000")

    # -- internals ----------------------------------------------------------

    def _validate(self, tx_hash: str, tx: dict[str, Any], engine_result: str) -> None:
        meta: dict[str, Any] = {"TransactionResult": engine_result, "AffectedNodes": []}
        tx_type = tx["TransactionType"]
        if engine_result == "tesSUCCESS" and tx_type not in self.missing_artifact:
            if tx_type == "NFTokenMint":
                meta["nftoken_id"] = digest(f"nft:{tx_hash}")
                self.nfts.setdefault(tx["Account"], []).append(meta["nftoken_id"])
                self.nft_records[meta["nftoken_id"]] = NFToken(
                    nftoken_id=meta["nftoken_id"],
                    taxon=tx.get("NFTokenTaxon", 0),
                    uri_hex=tx.get("URI"),
                    flags=tx.get("Flags", 0),
                    issuer=tx["Account"],
                )
            elif tx_type == "NFTokenCreateOffer":
                meta["offer_id"] = digest(f"offer:{tx_hash}")
                amount = tx["Amount"]
                self.offers.setdefault(tx["Account"], []).append(
                    NFTOffer(
                        offer_index=meta["offer_id"],
                        nftoken_id=tx["NFTokenID"],
                        owner=tx["Account"],
                        amount=amount["value"],
                        currency=amount["currency"],
                        issuer=amount["issuer"],
                        flags=tx.get("Flags", 0),
                    )
                )
            elif tx_type in ("NFTokenAcceptOffer", "NFTokenCancelOffer"):
                self._remove_offers({tx.get("NFTokenSellOffer"), *tx.get("NFTokenOffers", [])})
            elif tx_type == "TrustSet" and tx.get("Flags", 0) & TF_SET_AUTH:
                self._authorize(tx["Account"], tx["LimitAmount"])
        self._status[tx_hash] = TxStatusResult(
            found=True,
            tx_hash=tx_hash,
            validated=True,
            ledger_index=500 + len(self._status),
            ledger_hash=digest(f"ledger:{tx_hash}"),
            engine_result=engine_result,
            meta=parse_meta(meta),
        )

    def _remove_offers(self, indexes: set[str | None]) -> None:
        for owner, offers in self.offers.items():
            self.offers[owner] = [o for o in offers if o.offer_index not in indexes]

    def _authorize(self, issuer: str, limit_amount: dict[str, str]) -> None:
        holder = limit_amount["issuer"]
        self.lines[holder] = [
            TrustLine(
                peer=line.peer,
                currency=line.currency,
                balance=line.balance,
                limit=line.limit,
                peer_authorized=True,
            )
            if line.peer == issuer and line.currency == limit_amount["currency"]
            else line
            for line in self.lines.get(holder, [])
        ]
