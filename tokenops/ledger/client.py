"""
Ledger client protocol — the network boundary.

Defines the interface the guards and the orchestrator depend on, not a
concrete implementation. This keeps orchestration testable and keeps
HTTP details out of business logic.

Concrete implementations:
    - JsonRpcClient (rippled JSON-RPC over an injectable transport)
    - FakeLedger (tests)

Lookups (account_info, account_lines, account_nfts, account_nft_offers,
account_tx) return typed values and raise LedgerRequestError for
server-level errors other than "account not found". Submission methods
return boring frozen dataclasses; expected XRPL failures are captured in
the result, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from tokenops.ledger.metadata import TransactionMeta

DROPS_PER_XRP = 1_000_000
LSF_SELL_NFTOKEN = 0x00000001


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class AccountInfo:
    """Validated account-root state.

    Attributes:
        address: The queried address.
        found: False when the account does not exist on ledger.
        balance_drops: Native balance in drops (0 when not found).
        sequence: Next sequence number (None when not found).
        flags: Account-root flags (lsf* bit field).
        owner_count: Number of owned ledger objects.
    """

    address: str
    found: bool
    balance_drops: int = 0
    sequence: int | None = None
    flags: int = 0
    owner_count: int = 0

    @property
    def balance_xrp(self) -> Decimal:
        return Decimal(self.balance_drops) / DROPS_PER_XRP

    def has_flag(self, lsf: int) -> bool:
        return bool(self.flags & lsf)


@dataclass(frozen=True)
class TrustLine:
    """One trust line, seen from the queried account's side.

    Attributes:
        peer: The counterparty address (the issuer, for a holder's lines).
        currency: Currency code.
        balance: Balance from the queried account's perspective.
        limit: Limit the queried account set.
        limit_peer: Limit the counterparty set.
        authorized: The queried account authorized the counterparty.
        peer_authorized: The counterparty authorized the queried account.
            For a holder querying its line to an issuer, this is the
            issuer's authorization.
    """

    peer: str
    currency: str
    balance: str = "0"
    limit: str = "0"
    limit_peer: str = "0"
    authorized: bool = False
    peer_authorized: bool = False


@dataclass(frozen=True)
class NFToken:
    """One NFT held by the queried account."""

    nftoken_id: str
    taxon: int = 0
    uri_hex: str | None = None
    flags: int = 0
    issuer: str | None = None

    @property
    def uri(self) -> str | None:
        """The URI decoded as UTF-8, None when absent or not hex."""
        if not self.uri_hex:
            return None
        try:
            return bytes.fromhex(self.uri_hex).decode("utf-8", errors="replace")
        except ValueError:
            return None


@dataclass(frozen=True)
class NFTOffer:
    """An NFTokenOffer ledger object owned by the queried account.

    Attributes:
        offer_index: Ledger index of the offer object.
        nftoken_id: The token on offer.
        owner: Account that created the offer.
        amount: Offered amount: a value for issued currencies, drops
            for XRP.
        currency: Issued currency code, None for XRP.
        issuer: Issuer of ``currency``, None for XRP.
        flags: Ledger-object flags (lsfSellNFToken for sell offers).
        destination: Only account allowed to accept, if any.
    """

    offer_index: str
    nftoken_id: str
    owner: str
    amount: str
    currency: str | None = None
    issuer: str | None = None
    flags: int = 0
    destination: str | None = None

    @property
    def is_sell(self) -> bool:
        return bool(self.flags & LSF_SELL_NFTOKEN)


@dataclass(frozen=True)
class SubmitResult:
    """Result of submitting a signed transaction blob.

    Attributes:
        accepted: Whether the server accepted the transaction for
            processing. True does NOT mean validated.
        tx_hash: Transaction hash (64 hex chars), if the server computed one.
        engine_result: Preliminary engine result (e.g. "tesSUCCESS",
            "terQUEUED", "temBAD_FEE"). None on server-level failure.
        error_code: Machine-readable category when the server itself
            errored ("SERVER_ERROR").
        detail: Human-readable detail for diagnostics.
    """

    accepted: bool
    tx_hash: str | None = None
    engine_result: str | None = None
    error_code: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class TxStatusResult:
    """Result of querying a transaction's ledger status.

    Attributes:
        found: Whether the transaction was found at all.
        tx_hash: The queried hash.
        validated: Whether the transaction is in a validated ledger.
        ledger_index: Ledger containing the transaction, once validated.
        ledger_hash: Hash of that ledger, once validated.
        engine_result: Final result (meta.TransactionResult).
        meta: Typed metadata, once validated.
        ledger_close_time: ISO 8601 close time, when the server sends it.
        error_code: Machine-readable category if the query itself failed.
        detail: Human-readable detail for diagnostics.
    """

    found: bool
    tx_hash: str | None = None
    validated: bool = False
    ledger_index: int | None = None
    ledger_hash: str | None = None
    engine_result: str | None = None
    meta: TransactionMeta | None = None
    ledger_close_time: str | None = None
    error_code: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class SubmitAndWaitResult:
    """Result of submit-and-wait.

    ``status`` is None when the submission itself was rejected; otherwise
    it is the last observed status (validated, or unvalidated once the
    transaction's LastLedgerSequence has passed).
    """

    submit: SubmitResult
    status: TxStatusResult | None = None
    expired: bool = False

    @property
    def validated(self) -> bool:
        return self.status is not None and self.status.validated


@dataclass(frozen=True)
class FaucetResult:
    funded: bool
    address: str
    amount_xrp: str | None = None
    detail: str | None = None


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for XRPL network operations.

    Methods are async because network I/O is inherently asynchronous.
    Transport-level exceptions (connection refused, timeout, TLS) are
    not caught here; callers decide how to map them.
    """

    async def account_info(self, address: str) -> AccountInfo:
        """Validated account state; found=False for a missing account."""
        ...

    async def account_lines(self, address: str, peer: str | None = None) -> list[TrustLine]:
        """All trust lines of ``address``, optionally restricted to one peer."""
        ...

    async def account_nfts(self, address: str) -> list[NFToken]:
        """The NFTs ``address`` owns."""
        ...

    async def account_nft_offers(self, address: str) -> list[NFTOffer]:
        """NFT offers (sell and buy) created by ``address``."""
        ...

    async def account_tx(self, address: str, limit: int = 100) -> list[dict[str, Any]]:
        """Recent validated transactions involving ``address``, newest first.

        Each entry is ``{"tx": {...}, "meta": {...}, "validated": bool}``.
        """
        ...

    async def autofill(self, tx: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of ``tx`` with Sequence, Fee and LastLedgerSequence set."""
        ...

    async def submit(self, signed_tx_blob_hex: str) -> SubmitResult:
        """Submit a signed transaction blob."""
        ...

    async def get_tx(self, tx_hash: str) -> TxStatusResult:
        """Query a previously submitted transaction."""
        ...

    async def submit_and_wait(
        self,
        signed_tx_blob_hex: str,
        tx_hash: str,
        last_ledger_sequence: int | None,
    ) -> SubmitAndWaitResult:
        """Submit, then follow the transaction until the network validates
        it or its LastLedgerSequence passes."""
        ...

    async def fund_account(self, address: str) -> FaucetResult:
        """Ask the network faucet to create and fund ``address``."""
        ...
