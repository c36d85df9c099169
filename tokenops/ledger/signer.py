"""
Signer protocol — the secrets boundary.

The orchestrator passes an autofilled transaction dict to a signer and
gets back a signed blob. It never sees seeds or private keys.

Concrete implementations:
    - WalletSigner (xrpl-py Wallet)
    - FakeSigner (tests)

The signer also exposes a key_id, a public identifier (the public key
hex) that can be logged without leaking secrets.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from xrpl.models.transactions.transaction import Transaction
from xrpl.transaction import sign
from xrpl.wallet import Wallet

from tokenops.accounts import Account


@dataclass(frozen=True)
class SignResult:
    """Result of signing a transaction.

    Attributes:
        signed_tx_blob_hex: Hex-encoded signed transaction blob, ready
            for LedgerClient.submit().
        tx_hash: Transaction hash computed during signing (64 hex chars).
        key_id: Public identifier of the signing key. Never a secret.
        sequence: Sequence number the transaction was signed with.
        last_ledger_sequence: Expiry ledger the transaction was signed
            with, None if it has none.
    """

    signed_tx_blob_hex: str
    tx_hash: str
    key_id: str
    sequence: int | None = None
    last_ledger_sequence: int | None = None


@runtime_checkable
class Signer(Protocol):
    """Interface for XRPL transaction signing.

    Properties:
        account: The XRPL r-address associated with this signer.
        key_id: Public identifier of the signing key (safe for logging).
    """

    @property
    def account(self) -> str:
        """XRPL r-address associated with this signer."""
        ...

    @property
    def key_id(self) -> str:
        """Public identifier of the signing key (safe for logging)."""
        ...

    def sign(self, tx_dict: dict[str, Any]) -> SignResult:
        """Sign an autofilled XRPL transaction dict.

        Args:
            tx_dict: Transaction dict with Sequence, Fee and
                LastLedgerSequence already set.

        Returns:
            SignResult with signed blob hex, tx_hash and key_id.

        Raises:
            ValueError: If the transaction dict is malformed or was
                built for a different account.
        """
        ...


class WalletSigner:
    """Signs with an xrpl-py Wallet derived from the account's seed."""

    def __init__(self, account: Account) -> None:
        self._wallet = Wallet.from_seed(account.seed)
        if self._wallet.classic_address != account.address:
            raise ValueError(f"seed for {account.role} does not derive {account.address}")

    @property
    def account(self) -> str:
        return self._wallet.classic_address

    @property
    def key_id(self) -> str:
        return self._wallet.public_key

    def sign(self, tx_dict: dict[str, Any]) -> SignResult:
        if tx_dict.get("Account") != self.account:
            raise ValueError("transaction Account does not match the signer")

        transaction = Transaction.from_xrpl(tx_dict)
        signed = sign(transaction, self._wallet)
        return SignResult(
            signed_tx_blob_hex=signed.blob(),
            tx_hash=signed.get_hash(),
            key_id=self.key_id,
            sequence=signed.sequence,
            last_ledger_sequence=signed.last_ledger_sequence,
        )
