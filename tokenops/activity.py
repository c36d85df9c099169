"""
Source-tag activity report.

Walks the recent transactions of every managed account and keeps the
successful ones carrying this deployment's source tag. A transaction seen
from two managed accounts (a hot → buyer payment, say) is reported once.

Issued-currency amounts are read from the transaction's Amount (payments,
offers) or, for offer acceptances, from the consumed offer in the
metadata. Entries are sorted newest first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from tokenops.accounts import AccountBook
from tokenops.errors import is_success
from tokenops.ledger.client import DROPS_PER_XRP, LedgerClient
from tokenops.logs import get_logger

log = get_logger(__name__)

RIPPLE_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)
ACCOUNT_TX_LIMIT = 100


@dataclass(frozen=True)
class ActivityEntry:
    tx_hash: str
    account: str
    role: str
    transaction_type: str
    date: datetime | None
    fee_xrp: str
    asset_amount: str | None = None
    destination: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "hash": self.tx_hash,
            "wallet": self.account,
            "walletRole": self.role,
            "type": self.transaction_type,
            "date": self.date.isoformat() if self.date else None,
            "fee": self.fee_xrp,
        }
        if self.asset_amount is not None:
            out["amount"] = self.asset_amount
        if self.destination is not None:
            out["destination"] = self.destination
        return out


@dataclass(frozen=True)
class ActivityReport:
    source_tag: int
    entries: tuple[ActivityEntry, ...]
    total_volume: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceTag": self.source_tag,
            "total": len(self.entries),
            "totalVolume": str(self.total_volume) if self.total_volume is not None else None,
            "transactions": [e.to_dict() for e in self.entries],
        }


def ripple_time(seconds: int) -> datetime:
    """Convert seconds since the Ripple epoch (2000-01-01) to UTC."""
    return RIPPLE_EPOCH + timedelta(seconds=seconds)


def _issued_value(amount: Any, currency: str) -> str | None:
    if isinstance(amount, dict) and amount.get("currency") == currency:
        value = amount.get("value")
        return str(value) if value is not None else None
    return None


def asset_amount(tx: dict[str, Any], meta: dict[str, Any], currency: str) -> str | None:
    """The issued-currency amount a transaction moved, if any."""
    if tx.get("TransactionType") == "NFTokenAcceptOffer":
        for node in meta.get("AffectedNodes", []):
            deleted = node.get("DeletedNode")
            if not deleted:
                continue
            value = _issued_value(deleted.get("FinalFields", {}).get("Amount"), currency)
            if value is not None:
                return value
    return _issued_value(tx.get("Amount", tx.get("DeliverMax")), currency)


def _entry_date(tx: dict[str, Any]) -> datetime | None:
    if "date" in tx:
        return ripple_time(int(tx["date"]))
    if "close_time_iso" in tx:
        return datetime.fromisoformat(tx["close_time_iso"].replace("Z", "+00:00"))
    return None


async def build_activity_report(
    client: LedgerClient,
    book: AccountBook,
    currency: str,
    *,
    include_volume: bool = False,
    limit: int = ACCOUNT_TX_LIMIT,
) -> ActivityReport:
    """Collect source-tagged activity across every managed account.

    An account whose history cannot be fetched is logged and skipped; the
    report covers the others.
    """
    seen: set[str] = set()
    entries: list[ActivityEntry] = []
    volume = Decimal(0)

    for account in book.accounts.values():
        try:
            history = await client.account_tx(account.address, limit=limit)
        except Exception as exc:
            log.warning("account_history_unavailable", address=account.address, error=str(exc))
            continue

        for item in history:
            tx = item.get("tx") or {}
            meta = item.get("meta") or {}
            tx_hash = tx.get("hash")
            if tx.get("SourceTag") != book.source_tag:
                continue
            if not is_success(meta.get("TransactionResult")) or not tx_hash or tx_hash in seen:
                continue
            seen.add(tx_hash)

            amount = asset_amount(tx, meta, currency)
            if include_volume and amount is not None:
                volume += Decimal(amount)

            sender = tx.get("Account", "")
            role = book.role_of(sender)
            entries.append(
                ActivityEntry(
                    tx_hash=tx_hash,
                    account=sender,
                    role=str(role) if role is not None else "unknown",
                    transaction_type=tx.get("TransactionType", ""),
                    date=_entry_date(tx),
                    fee_xrp=f"{Decimal(int(tx.get('Fee', 0))) / DROPS_PER_XRP:.6f}",
                    asset_amount=amount,
                    destination=tx.get("Destination"),
                )
            )

    entries.sort(key=lambda e: e.date or RIPPLE_EPOCH, reverse=True)
    log.info("activity_report_built", source_tag=book.source_tag, total=len(entries))
    return ActivityReport(
        source_tag=book.source_tag,
        entries=tuple(entries),
        total_volume=volume if include_volume else None,
    )
