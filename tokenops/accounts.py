"""
Managed accounts — the four fixed signing roles and their persisted book.

The account book is the ``wallets.json`` document: one entry per role plus
the configuration state this system has applied on ledger (issuer flags,
trust lines). It is validated against a JSON Schema on every load.

The set of managed addresses doubles as the authorization allow-list: the
issuer only ever authorizes trust lines held by accounts in this book.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any

import jsonschema  # type: ignore[import-untyped]
from xrpl.wallet import Wallet

from tokenops.errors import MissingAccountError
from tokenops.logs import get_logger
from tokenops.storage import DocumentStore

log = get_logger(__name__)

BOOK_VERSION = 1
_SCHEMA_PATH = Path(__file__).parent / "schemas" / "wallets.v1.json"


class Role(StrEnum):
    ISSUER = "issuer"
    HOT = "hot"
    SELLER = "seller"
    BUYER = "buyer"


def _now_utc() -> str:
    """RFC3339 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


def load_schema() -> dict[str, Any]:
    schema: dict[str, Any] = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
    return schema


@dataclass(frozen=True)
class Account:
    """A signing identity with a fixed role.

    The seed is signing material: it is excluded from repr and never
    logged. Everything else is public.
    """

    role: Role
    address: str
    public_key: str
    seed: str = field(repr=False)

    def to_dict(self) -> dict[str, str]:
        return {
            "role": str(self.role),
            "address": self.address,
            "publicKey": self.public_key,
            "seed": self.seed,
        }


@dataclass(frozen=True)
class AccountBook:
    """The persisted set of managed accounts.

    Attributes:
        network: Network the accounts were created for.
        source_tag: Source tag stamped on every transaction.
        accounts: Role → Account.
        created_at: RFC3339 creation timestamp.
        configuration: Raw configuration section (issuerFlags, trustLines).
    """

    network: str
    source_tag: int
    accounts: dict[Role, Account]
    created_at: str
    configuration: dict[str, Any] = field(default_factory=dict)

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    def get(self, role: Role | str) -> Account:
        """Return the account for a role.

        Raises:
            MissingAccountError: If the book has no account for the role.
        """
        account = self.accounts.get(Role(role))
        if account is None:
            raise MissingAccountError(f"no {role} account in the account book")
        return account

    def has(self, role: Role | str) -> bool:
        return Role(role) in self.accounts

    def managed_addresses(self) -> frozenset[str]:
        return frozenset(a.address for a in self.accounts.values())

    def role_of(self, address: str) -> Role | None:
        for account in self.accounts.values():
            if account.address == address:
                return account.role
        return None

    def requires_auth(self, default: bool = False) -> bool:
        """Whether the issuer requires trust-line authorization.

        Flags applied on ledger (recorded under configuration.issuerFlags)
        win over the configured default.
        """
        issuer_flags = self.configuration.get("issuerFlags")
        if issuer_flags and issuer_flags.get("configured"):
            return bool(issuer_flags["flags"].get("requireAuth", False))
        return default

    # -----------------------------------------------------------------
    # Configuration updates (return new books)
    # -----------------------------------------------------------------

    def with_issuer_flags(
        self,
        *,
        default_ripple: bool,
        require_auth: bool,
        no_freeze: bool,
        configured_at: str | None = None,
    ) -> AccountBook:
        config = dict(self.configuration)
        config["issuerFlags"] = {
            "configured": True,
            "configuredAt": configured_at or _now_utc(),
            "flags": {
                "defaultRipple": default_ripple,
                "requireAuth": require_auth,
                "noFreeze": no_freeze,
            },
        }
        return replace(self, configuration=config)

    def with_trust_lines(
        self,
        *,
        currency: str,
        limit: str,
        results: list[dict[str, Any]],
        configured_at: str | None = None,
    ) -> AccountBook:
        config = dict(self.configuration)
        config["trustLines"] = {
            "configured": True,
            "configuredAt": configured_at or _now_utc(),
            "currency": currency,
            "limit": limit,
            "results": results,
        }
        return replace(self, configuration=config)

    # -----------------------------------------------------------------
    # Serialization
    # -----------------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "version": BOOK_VERSION,
            "createdAt": self.created_at,
            "network": self.network,
            "sourceTag": self.source_tag,
            "wallets": [self.accounts[r].to_dict() for r in Role if r in self.accounts],
        }
        if self.configuration:
            doc["configuration"] = self.configuration
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> AccountBook:
        """Build a book from a wallets document.

        Raises:
            jsonschema.ValidationError: If the document is malformed.
            ValueError: If a role appears more than once.
        """
        jsonschema.validate(instance=doc, schema=load_schema())

        accounts: dict[Role, Account] = {}
        for entry in doc["wallets"]:
            role = Role(entry["role"])
            if role in accounts:
                raise ValueError(f"duplicate {role} account in wallets document")
            accounts[role] = Account(
                role=role,
                address=entry["address"],
                public_key=entry["publicKey"],
                seed=entry["seed"],
            )

        return cls(
            network=doc["network"],
            source_tag=doc["sourceTag"],
            accounts=accounts,
            created_at=doc["createdAt"],
            configuration=dict(doc.get("configuration") or {}),
        )


# =========================================================================
# Persistence
# =========================================================================


def load_account_book(store: DocumentStore, name: str = "wallets.json") -> AccountBook | None:
    doc = store.load(name)
    if doc is None:
        return None
    return AccountBook.from_document(doc)


def save_account_book(
    store: DocumentStore,
    book: AccountBook,
    name: str = "wallets.json",
) -> None:
    store.save(name, book.to_document())
    log.info("account_book_saved", document=name, roles=[str(r) for r in book.accounts])


def generate_account_book(network: str, source_tag: int) -> AccountBook:
    """Create fresh key material for all four roles.

    Key generation is delegated to xrpl-py. The new accounts do not exist
    on ledger until funded.
    """
    accounts: dict[Role, Account] = {}
    for role in Role:
        wallet = Wallet.create()
        accounts[role] = Account(
            role=role,
            address=wallet.classic_address,
            public_key=wallet.public_key,
            seed=wallet.seed,
        )

    log.info("account_book_generated", network=network, source_tag=source_tag)
    return AccountBook(
        network=network,
        source_tag=source_tag,
        accounts=accounts,
        created_at=_now_utc(),
    )
