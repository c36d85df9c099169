"""
Transaction intents — one frozen dataclass per mutation the system performs.

An intent is the validated, typed description of a single ledger mutation.
Constructing one validates its fields (raising ValueError on bad input);
``to_transaction()`` renders the unsigned XRPL transaction dict that the
ledger client autofills and the signer signs.

Every intent carries the signing account and the system's source tag so
ledger activity can be correlated back to this deployment.

Each variant declares the artifact a successful transaction produces:
    - NFTMint        → NFTOKEN_ID (the minted token's identifier)
    - NFTCreateOffer → OFFER_ID (the new offer's ledger index)
    - everything else → NONE
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, ClassVar

MAX_UINT32 = 4294967295
MAX_URI_BYTES = 256

# Transaction flags
TF_SET_AUTH = 0x00010000
TF_SELL_NFTOKEN = 0x00000001
TF_TRANSFERABLE = 0x00000008

# AccountSet flags (asf*) and the matching account-root flags (lsf*)
ASF_REQUIRE_AUTH = 2
ASF_NO_FREEZE = 6
ASF_DEFAULT_RIPPLE = 8
LSF_REQUIRE_AUTH = 0x00040000
LSF_NO_FREEZE = 0x00200000
LSF_DEFAULT_RIPPLE = 0x00800000

_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$|^[A-F0-9]{40}$")
_ADDRESS_RE = re.compile(r"^r[1-9A-HJ-NP-Za-km-z]{24,34}$")
_HASH_RE = re.compile(r"^[0-9A-Fa-f]{64}$")
_URI_SCHEMES = ("ipfs://", "https://")


class ArtifactKind(StrEnum):
    NONE = "none"
    NFTOKEN_ID = "nftoken_id"
    OFFER_ID = "offer_id"


# =========================================================================
# Field validation
# =========================================================================


def validate_amount(value: str) -> str:
    """Positive decimal string, no sign, no exponent."""
    if not isinstance(value, str) or not _AMOUNT_RE.match(value):
        raise ValueError(f"amount must be a positive decimal string, got {value!r}")
    try:
        if Decimal(value) <= 0:
            raise ValueError(f"amount must be greater than zero, got {value!r}")
    except InvalidOperation:
        raise ValueError(f"amount is not a number: {value!r}") from None
    return value


def validate_currency(code: str) -> str:
    """Three-letter ISO-style code (not XRP) or 40-char hex code."""
    if not isinstance(code, str) or not _CURRENCY_RE.match(code):
        raise ValueError(
            f"currency must be 3 uppercase letters or 40 hex chars, got {code!r}"
        )
    if code == "XRP":
        raise ValueError("XRP is the native asset, not an issued currency")
    return code


def validate_address(address: str, field: str = "account") -> str:
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ValueError(f"{field} is not a classic XRPL address: {address!r}")
    return address


def validate_ledger_id(value: str, field: str) -> str:
    """64-hex identifier (token id, offer index, tx hash), upper-cased."""
    if not isinstance(value, str) or not _HASH_RE.match(value):
        raise ValueError(f"{field} must be 64 hex characters, got {value!r}")
    return value.upper()


def validate_uri(uri: str) -> str:
    if not isinstance(uri, str) or not uri.strip():
        raise ValueError("uri must be non-empty")
    if not uri.startswith(_URI_SCHEMES):
        raise ValueError("uri must start with ipfs:// or https://")
    if len(uri.encode("utf-8")) > MAX_URI_BYTES:
        raise ValueError(f"uri exceeds {MAX_URI_BYTES} bytes")
    return uri


def validate_uint32(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_UINT32:
        raise ValueError(f"{field} must be an integer between 0 and {MAX_UINT32}")
    return value


def issued_amount(currency: str, issuer: str, value: str) -> dict[str, str]:
    return {"currency": currency, "issuer": issuer, "value": value}


# =========================================================================
# Intents
# =========================================================================


@dataclass(frozen=True, kw_only=True)
class _Intent:
    """Fields shared by every variant."""

    transaction_type: ClassVar[str]
    artifact: ClassVar[ArtifactKind] = ArtifactKind.NONE

    account: str
    source_tag: int = 0

    def __post_init__(self) -> None:
        validate_address(self.account)
        validate_uint32(self.source_tag, "source_tag")

    def _base(self) -> dict[str, Any]:
        return {
            "TransactionType": self.transaction_type,
            "Account": self.account,
            "SourceTag": self.source_tag,
        }

    def to_transaction(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True, kw_only=True)
class TrustSet(_Intent):
    """Create, raise, or (issuer-side) authorize a trust line.

    Holder-side: ``account`` is the holder, ``peer`` the issuer, ``limit``
    the amount the holder is willing to hold.

    Issuer-side authorization (``authorize=True``): ``account`` is the
    issuer, ``peer`` the holder, and the limit is forced to "0".
    """

    transaction_type: ClassVar[str] = "TrustSet"

    currency: str
    peer: str
    limit: str = "0"
    authorize: bool = False

    def __post_init__(self) -> None:
        super().__post_init__()
        validate_currency(self.currency)
        validate_address(self.peer, "peer")
        if self.authorize:
            if self.limit != "0":
                raise ValueError("authorization TrustSet must use a zero limit")
        else:
            validate_amount(self.limit)

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["LimitAmount"] = issued_amount(self.currency, self.peer, self.limit)
        tx["Flags"] = TF_SET_AUTH if self.authorize else 0
        return tx


@dataclass(frozen=True, kw_only=True)
class Payment(_Intent):
    """Move ``value`` units of an issued currency to ``destination``."""

    transaction_type: ClassVar[str] = "Payment"

    destination: str
    currency: str
    issuer: str
    value: str

    def __post_init__(self) -> None:
        super().__post_init__()
        validate_address(self.destination, "destination")
        validate_currency(self.currency)
        validate_address(self.issuer, "issuer")
        validate_amount(self.value)
        if self.destination == self.account:
            raise ValueError("payment destination must differ from the sender")

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["Destination"] = self.destination
        tx["Amount"] = issued_amount(self.currency, self.issuer, self.value)
        return tx


@dataclass(frozen=True, kw_only=True)
class NFTMint(_Intent):
    transaction_type: ClassVar[str] = "NFTokenMint"
    artifact: ClassVar[ArtifactKind] = ArtifactKind.NFTOKEN_ID

    uri: str
    taxon: int = 0
    transferable: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        validate_uri(self.uri)
        validate_uint32(self.taxon, "taxon")

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["URI"] = self.uri.encode("utf-8").hex().upper()
        tx["NFTokenTaxon"] = self.taxon
        tx["Flags"] = TF_TRANSFERABLE if self.transferable else 0
        return tx


@dataclass(frozen=True, kw_only=True)
class NFTCreateOffer(_Intent):
    """Sell offer for an NFT, priced in the issued currency."""

    transaction_type: ClassVar[str] = "NFTokenCreateOffer"
    artifact: ClassVar[ArtifactKind] = ArtifactKind.OFFER_ID

    nftoken_id: str
    currency: str
    issuer: str
    value: str

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "nftoken_id", validate_ledger_id(self.nftoken_id, "nftoken_id"))
        validate_currency(self.currency)
        validate_address(self.issuer, "issuer")
        validate_amount(self.value)

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["NFTokenID"] = self.nftoken_id
        tx["Amount"] = issued_amount(self.currency, self.issuer, self.value)
        tx["Flags"] = TF_SELL_NFTOKEN
        return tx


@dataclass(frozen=True, kw_only=True)
class NFTAcceptOffer(_Intent):
    transaction_type: ClassVar[str] = "NFTokenAcceptOffer"

    offer_index: str

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "offer_index", validate_ledger_id(self.offer_index, "offer_index"))

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["NFTokenSellOffer"] = self.offer_index
        return tx


@dataclass(frozen=True, kw_only=True)
class NFTCancelOffer(_Intent):
    transaction_type: ClassVar[str] = "NFTokenCancelOffer"

    offer_indexes: tuple[str, ...]

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.offer_indexes:
            raise ValueError("at least one offer index is required")
        normalized = tuple(validate_ledger_id(o, "offer_index") for o in self.offer_indexes)
        object.__setattr__(self, "offer_indexes", normalized)

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["NFTokenOffers"] = list(self.offer_indexes)
        return tx


@dataclass(frozen=True, kw_only=True)
class NFTBurn(_Intent):
    transaction_type: ClassVar[str] = "NFTokenBurn"

    nftoken_id: str

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "nftoken_id", validate_ledger_id(self.nftoken_id, "nftoken_id"))

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["NFTokenID"] = self.nftoken_id
        return tx


@dataclass(frozen=True, kw_only=True)
class AccountSet(_Intent):
    """Set one account-root flag (asf* value)."""

    transaction_type: ClassVar[str] = "AccountSet"

    set_flag: int

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.set_flag not in (ASF_REQUIRE_AUTH, ASF_NO_FREEZE, ASF_DEFAULT_RIPPLE):
            raise ValueError(f"unsupported AccountSet flag: {self.set_flag}")

    def to_transaction(self) -> dict[str, Any]:
        tx = self._base()
        tx["SetFlag"] = self.set_flag
        return tx


TransactionIntent = (
    TrustSet
    | Payment
    | NFTMint
    | NFTCreateOffer
    | NFTAcceptOffer
    | NFTCancelOffer
    | NFTBurn
    | AccountSet
)
