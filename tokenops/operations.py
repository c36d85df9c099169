"""
Token operations — the upward API.

One coroutine per operation. Each validates its input, builds the intent
and its preflight requirements, and hands a SubmissionRequest to the
orchestrator. Every call returns an OperationResult; expected failures
never raise.

    issue_asset        issuer → hot Payment          kind "issue"
    distribute_asset   hot → buyer Payment           kind "distribute"
    mint_token         seller NFTokenMint            kind "mint"
    create_sell_offer  seller NFTokenCreateOffer     kind "offer_create"
    accept_offer       buyer NFTokenAcceptOffer      kind "offer_accept"
    cancel_offer       seller NFTokenCancelOffer     kind "offer_cancel"
    burn_token         seller/buyer NFTokenBurn      kind "burn"
    mint_batch         N seller mints, sequential    keys "{batch_id}-{i}"

Keyed operations and mint_batch take an optional ``timeout`` in seconds.
When it elapses before validation the call returns VALIDATION_TIMEOUT
carrying the transaction hash; for a batch it bounds each item attempt.

Setup operations (not keyed): configure_issuer_flags, establish_trust_lines.
Read-only: network_info, account_balances, activity_report, list_nfts,
list_sell_offers, trust_line_audit.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any

from tokenops.accounts import Account, AccountBook, Role, load_account_book, save_account_book
from tokenops.activity import build_activity_report
from tokenops.authorization import find_trust_line
from tokenops.batch import BatchProcessor, Observer
from tokenops.config import Settings
from tokenops.errors import ErrorCode, Failure, OperationResult
from tokenops.funding import FundingGuard
from tokenops.idempotency import IdempotencyStore, OperationKind
from tokenops.intents import (
    ASF_DEFAULT_RIPPLE,
    ASF_NO_FREEZE,
    ASF_REQUIRE_AUTH,
    LSF_DEFAULT_RIPPLE,
    LSF_NO_FREEZE,
    LSF_REQUIRE_AUTH,
    AccountSet,
    NFTAcceptOffer,
    NFTBurn,
    NFTCancelOffer,
    NFTCreateOffer,
    NFTMint,
    Payment,
    TrustSet,
    validate_ledger_id,
)
from tokenops.ledger.client import LedgerClient
from tokenops.ledger.jsonrpc_client import JsonRpcClient
from tokenops.ledger.signer import Signer, WalletSigner
from tokenops.logs import configure_logging, get_logger
from tokenops.orchestrator import SubmissionOrchestrator, SubmissionRequest
from tokenops.storage import DocumentStore, FileDocumentStore
from tokenops.submission import AccountLocks, SubmissionOutcome, SubmissionStrategy, strategy_for

log = get_logger(__name__)

_HOLDER_ROLES = (Role.SELLER, Role.BUYER)
_TRUST_ROLES = (Role.HOT, Role.SELLER, Role.BUYER)


def _invalid(exc: ValueError) -> OperationResult:
    return OperationResult.failure(Failure(code=ErrorCode.INVALID_INPUT, detail=str(exc)))


def _holder_role(role: Role | str) -> Role:
    try:
        holder = Role(role)
    except ValueError:
        raise ValueError(f"role must be seller or buyer, got {role!r}") from None
    if holder not in _HOLDER_ROLES:
        raise ValueError(f"role must be seller or buyer, got {role!r}")
    return holder


class TokenOperations:
    """Upward API over one account book and one ledger.

    Args:
        settings: Runtime settings.
        book: Managed accounts.
        client: Ledger client.
        store: Idempotency store.
        documents: Where the account book is persisted after setup
            operations. None keeps changes in memory only.
        strategy: Submission strategy. Defaults to the network profile's.
        signer_factory: Builds a Signer per account.
        sleep: Injectable sleep coroutine for every delay.
        locks: Per-account locks, shared with other TokenOperations
            instances that sign for the same accounts.
    """

    def __init__(
        self,
        settings: Settings,
        book: AccountBook,
        client: LedgerClient,
        store: IdempotencyStore,
        *,
        documents: DocumentStore | None = None,
        strategy: SubmissionStrategy | None = None,
        signer_factory: Callable[[Account], Signer] = WalletSigner,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        locks: AccountLocks | None = None,
    ) -> None:
        self._settings = settings
        self._book = book
        self._client = client
        self._store = store
        self._documents = documents
        self._sleep = sleep

        issuer = book.accounts.get(Role.ISSUER)
        self._orchestrator = SubmissionOrchestrator(
            client,
            store,
            {a.address: signer_factory(a) for a in book.accounts.values()},
            FundingGuard(client, auto_funding=settings.auto_funding_permitted, sleep=sleep),
            strategy=strategy or strategy_for(settings.profile.submission, sleep=sleep),
            issuer=issuer.address if issuer is not None else None,
            currency=settings.currency_code,
            requires_auth=lambda: self._book.requires_auth(settings.require_auth),
            managed_addresses=book.managed_addresses(),
            min_reserve=settings.min_xrp,
            source_tag=book.source_tag,
            locks=locks,
        )
        self._batches = BatchProcessor(self._orchestrator, sleep=sleep)

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenOperations:
        """Wire the default stack: JSON-RPC client, files under data_dir.

        Raises:
            FileNotFoundError: If no account book has been saved yet.
        """
        configure_logging(settings.log_level, json=settings.log_json)
        documents = FileDocumentStore(settings.data_dir)
        book = load_account_book(documents, settings.wallets_document)
        if book is None:
            raise FileNotFoundError(
                f"{settings.wallets_document} not found in {settings.data_dir}"
            )
        client = JsonRpcClient(
            settings.effective_rpc_url,
            faucet_url=settings.effective_faucet_url,
        )
        store = IdempotencyStore(settings.idempotency_db_path)
        return cls(settings, book, client, store, documents=documents)

    @property
    def book(self) -> AccountBook:
        return self._book

    @property
    def orchestrator(self) -> SubmissionOrchestrator:
        return self._orchestrator

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _require(self, *roles: Role) -> Failure | None:
        missing = [str(r) for r in roles if not self._book.has(r)]
        if missing:
            return Failure(
                code=ErrorCode.MISSING_ACCOUNTS,
                detail=f"account book has no {', '.join(missing)} account",
            )
        return None

    def _address(self, role: Role) -> str:
        return self._book.get(role).address

    def _persist(self) -> None:
        if self._documents is not None:
            save_account_book(self._documents, self._book, self._settings.wallets_document)

    # -----------------------------------------------------------------
    # Fungible asset
    # -----------------------------------------------------------------

    async def issue_asset(
        self,
        amount: str | None = None,
        idempotency_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        """Pay ``amount`` (default XRPL_DEFAULT_ISSUE) from issuer to hot."""
        if (missing := self._require(Role.ISSUER, Role.HOT)) is not None:
            return OperationResult.failure(missing)

        issuer, hot = self._address(Role.ISSUER), self._address(Role.HOT)
        value = amount if amount is not None else self._settings.default_issue
        try:
            intent = Payment(
                account=issuer,
                source_tag=self._book.source_tag,
                destination=hot,
                currency=self._settings.currency_code,
                issuer=issuer,
                value=value,
            )
        except ValueError as exc:
            return _invalid(exc)

        return await self._orchestrator.run(
            SubmissionRequest(
                kind=OperationKind.ISSUE,
                intent=intent,
                build_payload=_payment_payload(intent),
                idempotency_key=idempotency_key,
                timeout=timeout,
                asset_holders=(hot,),
            )
        )

    async def distribute_asset(
        self,
        amount: str | None = None,
        idempotency_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        """Pay ``amount`` (default XRPL_DEFAULT_DISTRIBUTE) from hot to buyer."""
        if (missing := self._require(Role.ISSUER, Role.HOT, Role.BUYER)) is not None:
            return OperationResult.failure(missing)

        issuer = self._address(Role.ISSUER)
        hot, buyer = self._address(Role.HOT), self._address(Role.BUYER)
        value = amount if amount is not None else self._settings.default_distribute
        try:
            intent = Payment(
                account=hot,
                source_tag=self._book.source_tag,
                destination=buyer,
                currency=self._settings.currency_code,
                issuer=issuer,
                value=value,
            )
        except ValueError as exc:
            return _invalid(exc)

        async def hot_balance_covers_amount() -> Failure | None:
            line = await find_trust_line(self._client, hot, issuer, intent.currency)
            held = Decimal(line.balance) if line is not None else Decimal(0)
            if held < Decimal(value):
                return Failure(
                    code=ErrorCode.INSUFFICIENT_ASSET_BALANCE,
                    detail=f"hot account holds {held} {intent.currency}, needs {value}",
                )
            return None

        return await self._orchestrator.run(
            SubmissionRequest(
                kind=OperationKind.DISTRIBUTE,
                intent=intent,
                build_payload=_payment_payload(intent),
                idempotency_key=idempotency_key,
                timeout=timeout,
                asset_holders=(buyer,),
                checks=(hot_balance_covers_amount,),
            )
        )

    # -----------------------------------------------------------------
    # NFTs
    # -----------------------------------------------------------------

    def _mint_request(
        self,
        uri: str,
        taxon: int,
        transferable: bool,
        idempotency_key: str | None,
        *,
        batch: bool = False,
        timeout: float | None = None,
    ) -> SubmissionRequest:
        intent = NFTMint(
            account=self._address(Role.SELLER),
            source_tag=self._book.source_tag,
            uri=uri,
            taxon=taxon,
            transferable=transferable,
        )

        def payload(outcome: SubmissionOutcome, nftoken_id: str | None) -> dict[str, Any]:
            return {
                "nftokenId": nftoken_id,
                "txHash": outcome.tx_hash,
                "uri": uri,
                "taxon": taxon,
                "transferable": transferable,
            }

        return SubmissionRequest(
            kind=OperationKind.MINT,
            intent=intent,
            build_payload=payload,
            idempotency_key=idempotency_key,
            batch=batch,
            timeout=timeout,
        )

    async def mint_token(
        self,
        uri: str,
        taxon: int = 0,
        transferable: bool = True,
        idempotency_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        if (missing := self._require(Role.SELLER)) is not None:
            return OperationResult.failure(missing)
        try:
            request = self._mint_request(uri, taxon, transferable, idempotency_key, timeout=timeout)
        except ValueError as exc:
            return _invalid(exc)
        return await self._orchestrator.run(request)

    async def create_sell_offer(
        self,
        nftoken_id: str,
        amount: str,
        idempotency_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        """Offer the seller's token for ``amount`` of the issued currency."""
        if (missing := self._require(Role.ISSUER, Role.SELLER)) is not None:
            return OperationResult.failure(missing)

        seller = self._address(Role.SELLER)
        try:
            intent = NFTCreateOffer(
                account=seller,
                source_tag=self._book.source_tag,
                nftoken_id=nftoken_id,
                currency=self._settings.currency_code,
                issuer=self._address(Role.ISSUER),
                value=amount,
            )
        except ValueError as exc:
            return _invalid(exc)

        def payload(outcome: SubmissionOutcome, offer_index: str | None) -> dict[str, Any]:
            return {
                "offerIndex": offer_index,
                "nftokenId": intent.nftoken_id,
                "amount": intent.value,
                "currency": intent.currency,
                "txHash": outcome.tx_hash,
            }

        return await self._orchestrator.run(
            SubmissionRequest(
                kind=OperationKind.OFFER_CREATE,
                intent=intent,
                build_payload=payload,
                idempotency_key=idempotency_key,
                timeout=timeout,
                asset_holders=(seller,),
                checks=(self._owns(seller, intent.nftoken_id, Role.SELLER),),
            )
        )

    async def accept_offer(
        self,
        offer_index: str,
        idempotency_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        """Buyer accepts a sell offer, paying in the issued currency."""
        if (missing := self._require(Role.ISSUER, Role.BUYER)) is not None:
            return OperationResult.failure(missing)

        buyer = self._address(Role.BUYER)
        try:
            intent = NFTAcceptOffer(
                account=buyer,
                source_tag=self._book.source_tag,
                offer_index=offer_index,
            )
        except ValueError as exc:
            return _invalid(exc)

        return await self._orchestrator.run(
            SubmissionRequest(
                kind=OperationKind.OFFER_ACCEPT,
                intent=intent,
                build_payload=lambda outcome, _: {
                    "txHash": outcome.tx_hash,
                    "offerIndex": intent.offer_index,
                },
                idempotency_key=idempotency_key,
                timeout=timeout,
                asset_holders=(buyer,),
            )
        )

    async def cancel_offer(
        self,
        offer_index: str,
        idempotency_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        if (missing := self._require(Role.SELLER)) is not None:
            return OperationResult.failure(missing)
        try:
            intent = NFTCancelOffer(
                account=self._address(Role.SELLER),
                source_tag=self._book.source_tag,
                offer_indexes=(offer_index,),
            )
        except ValueError as exc:
            return _invalid(exc)

        return await self._orchestrator.run(
            SubmissionRequest(
                kind=OperationKind.OFFER_CANCEL,
                intent=intent,
                build_payload=lambda outcome, _: {
                    "txHash": outcome.tx_hash,
                    "offerIndex": intent.offer_indexes[0],
                },
                idempotency_key=idempotency_key,
                timeout=timeout,
            )
        )

    async def burn_token(
        self,
        nftoken_id: str,
        role: Role | str = Role.SELLER,
        idempotency_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        """Burn a token held by the seller or the buyer."""
        try:
            owner_role = _holder_role(role)
        except ValueError as exc:
            return _invalid(exc)
        if (missing := self._require(owner_role)) is not None:
            return OperationResult.failure(missing)

        owner = self._address(owner_role)
        try:
            intent = NFTBurn(account=owner, source_tag=self._book.source_tag, nftoken_id=nftoken_id)
        except ValueError as exc:
            return _invalid(exc)

        return await self._orchestrator.run(
            SubmissionRequest(
                kind=OperationKind.BURN,
                intent=intent,
                build_payload=lambda outcome, _: {
                    "nftokenId": intent.nftoken_id,
                    "txHash": outcome.tx_hash,
                    "role": str(owner_role),
                },
                idempotency_key=idempotency_key,
                timeout=timeout,
                checks=(self._owns(owner, intent.nftoken_id, owner_role),),
            )
        )

    def _owns(self, address: str, nftoken_id: str, role: Role) -> Callable[[], Awaitable[Failure | None]]:
        async def check() -> Failure | None:
            owned = {nft.nftoken_id for nft in await self._client.account_nfts(address)}
            if nftoken_id not in owned:
                return Failure(
                    code=ErrorCode.NFT_NOT_FOUND,
                    detail=f"NFT {nftoken_id} not found in {role} account",
                )
            return None

        return check

    async def mint_batch(
        self,
        uri: str,
        count: int,
        batch_id: str | None = None,
        transferable: bool = True,
        taxon: int = 0,
        observer: Observer | None = None,
        *,
        timeout: float | None = None,
    ) -> OperationResult:
        """Mint ``count`` tokens in order, halting at the first item that fails.

        The result data is the batch summary, also on failure; re-running
        with the returned ``batchId`` resumes after the last recorded item.
        """
        if (missing := self._require(Role.SELLER)) is not None:
            return OperationResult.failure(missing)

        try:
            self._mint_request(uri, taxon, transferable, None)
        except ValueError as exc:
            return _invalid(exc)

        batch_id = batch_id or f"batch-{uuid.uuid4().hex}"
        try:
            result = await self._batches.run(
                batch_id,
                count,
                lambda _, key: self._mint_request(
                    uri, taxon, transferable, key, batch=True, timeout=timeout
                ),
                observer,
            )
        except ValueError as exc:
            return _invalid(exc)

        if result.completed:
            return OperationResult.success(result.to_dict())
        return OperationResult(ok=False, data=result.to_dict(), error=result.failures[0].error)

    # -----------------------------------------------------------------
    # Setup
    # -----------------------------------------------------------------

    async def configure_issuer_flags(self) -> OperationResult:
        """Set DefaultRipple, and RequireAuth / NoFreeze when configured.

        Flags already set on ledger are skipped. The applied configuration
        is recorded in the account book.
        """
        if (missing := self._require(Role.ISSUER)) is not None:
            return OperationResult.failure(missing)

        issuer = self._address(Role.ISSUER)
        wanted = [("defaultRipple", ASF_DEFAULT_RIPPLE, LSF_DEFAULT_RIPPLE)]
        if self._settings.require_auth:
            wanted.append(("requireAuth", ASF_REQUIRE_AUTH, LSF_REQUIRE_AUTH))
        if self._settings.no_freeze:
            wanted.append(("noFreeze", ASF_NO_FREEZE, LSF_NO_FREEZE))

        try:
            info = await self._client.account_info(issuer)
        except Exception as exc:
            log.exception("issuer_lookup_failed", issuer=issuer)
            return OperationResult.failure(Failure(code=ErrorCode.INTERNAL, detail=str(exc)))

        applied: list[dict[str, Any]] = []
        for name, asf, lsf in wanted:
            if info.found and info.has_flag(lsf):
                applied.append({"flag": name, "alreadySet": True})
                continue
            intent = AccountSet(account=issuer, source_tag=self._book.source_tag, set_flag=asf)
            result = await self._orchestrator.run(
                SubmissionRequest(
                    kind=OperationKind.ACCOUNT_SET,
                    intent=intent,
                    build_payload=lambda outcome, _: {"txHash": outcome.tx_hash},
                )
            )
            if not result.ok:
                return result
            assert result.data is not None
            applied.append({"flag": name, "alreadySet": False, "txHash": result.data["txHash"]})

        self._book = self._book.with_issuer_flags(
            default_ripple=True,
            require_auth=self._settings.require_auth,
            no_freeze=self._settings.no_freeze,
        )
        self._persist()
        log.info("issuer_flags_configured", issuer=issuer, flags=[a["flag"] for a in applied])
        return OperationResult.success({"issuer": issuer, "flags": applied})

    async def establish_trust_lines(self) -> OperationResult:
        """Create or raise hot/seller/buyer trust lines to the issuer."""
        if (missing := self._require(Role.ISSUER, *_TRUST_ROLES)) is not None:
            return OperationResult.failure(missing)

        issuer = self._address(Role.ISSUER)
        currency = self._settings.currency_code
        limit = self._settings.trust_limit
        results: list[dict[str, Any]] = []

        for role in _TRUST_ROLES:
            holder = self._address(role)
            try:
                existing = await find_trust_line(self._client, holder, issuer, currency)
            except Exception as exc:
                log.exception("trust_line_lookup_failed", holder=holder)
                return OperationResult.failure(Failure(code=ErrorCode.INTERNAL, detail=str(exc)))
            if existing is not None and Decimal(existing.limit) >= Decimal(limit):
                results.append({"role": str(role), "address": holder, "created": False})
                continue

            intent = TrustSet(
                account=holder,
                source_tag=self._book.source_tag,
                currency=currency,
                peer=issuer,
                limit=limit,
            )
            result = await self._orchestrator.run(
                SubmissionRequest(
                    kind=OperationKind.TRUST_SET,
                    intent=intent,
                    build_payload=lambda outcome, _: {"txHash": outcome.tx_hash},
                )
            )
            if not result.ok:
                return result
            assert result.data is not None
            results.append(
                {
                    "role": str(role),
                    "address": holder,
                    "created": True,
                    "txHash": result.data["txHash"],
                }
            )

        self._book = self._book.with_trust_lines(currency=currency, limit=limit, results=results)
        self._persist()
        log.info("trust_lines_established", currency=currency, limit=limit)
        return OperationResult.success({"currency": currency, "limit": limit, "results": results})

    # -----------------------------------------------------------------
    # Read-only
    # -----------------------------------------------------------------

    async def list_nfts(self, role: Role | str = Role.SELLER) -> OperationResult:
        """NFTs held by the seller or the buyer, with decoded URIs."""
        try:
            owner_role = _holder_role(role)
        except ValueError as exc:
            return _invalid(exc)
        if (missing := self._require(owner_role)) is not None:
            return OperationResult.failure(missing)

        address = self._address(owner_role)
        try:
            nfts = await self._client.account_nfts(address)
        except Exception as exc:
            log.exception("nft_lookup_failed", address=address)
            return OperationResult.failure(Failure(code=ErrorCode.INTERNAL, detail=str(exc)))
        return OperationResult.success(
            {
                "role": str(owner_role),
                "address": address,
                "nfts": [
                    {"nftokenId": nft.nftoken_id, "uri": nft.uri, "taxon": nft.taxon}
                    for nft in nfts
                ],
            }
        )

    async def list_sell_offers(self, nftoken_id: str | None = None) -> OperationResult:
        """Open sell offers created by the seller, optionally for one token."""
        if (missing := self._require(Role.SELLER)) is not None:
            return OperationResult.failure(missing)
        if nftoken_id is not None:
            try:
                nftoken_id = validate_ledger_id(nftoken_id, "nftoken_id")
            except ValueError as exc:
                return _invalid(exc)

        seller = self._address(Role.SELLER)
        try:
            offers = await self._client.account_nft_offers(seller)
        except Exception as exc:
            log.exception("offer_lookup_failed", address=seller)
            return OperationResult.failure(Failure(code=ErrorCode.INTERNAL, detail=str(exc)))

        listed = [
            {
                "offerIndex": offer.offer_index,
                "nftokenId": offer.nftoken_id,
                "amount": offer.amount,
                "currency": offer.currency,
            }
            for offer in offers
            if offer.is_sell and (nftoken_id is None or offer.nftoken_id == nftoken_id)
        ]
        return OperationResult.success({"offers": listed})

    async def trust_line_audit(self) -> OperationResult:
        """Issuer trust lines whose holder is not a managed account.

        Reports the lines and the owner reserve their removal would free.
        Nothing is submitted.
        """
        if (missing := self._require(Role.ISSUER)) is not None:
            return OperationResult.failure(missing)

        issuer = self._address(Role.ISSUER)
        try:
            lines = await self._client.account_lines(issuer)
        except Exception as exc:
            log.exception("trust_line_lookup_failed", holder=issuer)
            return OperationResult.failure(Failure(code=ErrorCode.INTERNAL, detail=str(exc)))

        managed: list[dict[str, Any]] = []
        unmanaged: list[dict[str, Any]] = []
        for line in lines:
            entry = {
                "account": line.peer,
                "currency": line.currency,
                "balance": line.balance,
                "limit": line.limit,
            }
            role = self._book.role_of(line.peer)
            if role is None:
                unmanaged.append(entry)
            else:
                managed.append({**entry, "role": str(role)})

        reclaimable = self._settings.profile.owner_reserve * len(unmanaged)
        if unmanaged:
            log.info("unmanaged_trust_lines_found", issuer=issuer, count=len(unmanaged))
        return OperationResult.success(
            {
                "issuer": issuer,
                "totalTrustLines": len(lines),
                "managedTrustLines": len(managed),
                "unmanagedTrustLines": len(unmanaged),
                "reclaimableReserveXrp": str(reclaimable),
                "managed": managed,
                "unmanaged": unmanaged,
            }
        )

    def network_info(self) -> dict[str, Any]:
        profile = self._settings.profile
        return {
            "network": str(self._settings.network),
            "name": profile.name,
            "hasFaucet": profile.has_faucet,
            "autoFunding": self._settings.auto_funding_permitted,
            "minReserve": profile.min_reserve,
            "ownerReserve": str(profile.owner_reserve),
            "recommendedMin": profile.recommended_min,
            "submission": str(profile.submission),
            "sourceTag": self._book.source_tag,
            "currency": self._settings.currency_code,
        }

    async def account_balances(self) -> OperationResult:
        """XRP and issued-currency balance of every managed account."""
        issuer = self._book.accounts.get(Role.ISSUER)
        currency = self._settings.currency_code
        balances: list[dict[str, Any]] = []
        try:
            for role in Role:
                account = self._book.accounts.get(role)
                if account is None:
                    continue
                info = await self._client.account_info(account.address)
                entry: dict[str, Any] = {
                    "role": str(role),
                    "address": account.address,
                    "exists": info.found,
                    "balanceXrp": str(info.balance_xrp),
                    "balanceDrops": str(info.balance_drops),
                }
                if info.found and issuer is not None and role != Role.ISSUER:
                    line = await find_trust_line(self._client, account.address, issuer.address, currency)
                    entry["balanceAsset"] = line.balance if line is not None else None
                balances.append(entry)
        except Exception as exc:
            log.exception("balance_lookup_failed")
            return OperationResult.failure(Failure(code=ErrorCode.INTERNAL, detail=str(exc)))
        return OperationResult.success({"currency": currency, "balances": balances})

    async def activity_report(self, include_volume: bool = False) -> OperationResult:
        report = await build_activity_report(
            self._client,
            self._book,
            self._settings.currency_code,
            include_volume=include_volume,
        )
        return OperationResult.success(report.to_dict())


def _payment_payload(intent: Payment) -> Callable[[SubmissionOutcome, str | None], dict[str, Any]]:
    def payload(outcome: SubmissionOutcome, _: str | None) -> dict[str, Any]:
        return {
            "txHash": outcome.tx_hash,
            "amount": intent.value,
            "currency": intent.currency,
            "from": intent.account,
            "to": intent.destination,
        }

    return payload
