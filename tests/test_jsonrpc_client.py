"""
Tests for JsonRpcClient — canned JSON-RPC responses, no network.

Uses a RoutingTransport that answers by JSON-RPC method (or by URL for
the faucet), exercising the parsing logic in jsonrpc_client.py.

Test plan:
- Submit: success, tem rejection, ter/tec accepted, server error,
  missing engine_result, transport error propagates, payload shape
- Tx: not found, found not validated (meta not parsed), validated with
  typed meta, malformed meta → MALFORMED_META, server error
- account_info: found, actNotFound → found=False, other errors raise
- account_lines / account_nfts / account_nft_offers: marker pagination,
  peer filter param, URI decoding, sell flag
- account_tx: API v2 entries normalized to {tx, meta, validated}
- autofill: Sequence/Fee/LastLedgerSequence, fee cached, fee capped,
  missing account raises
- submit_and_wait: validated, expired past LastLedgerSequence, rejected
- fund_account: no faucet, posts destination, wrong address refused
"""

from typing import Any

import pytest

from tokenops.errors import LedgerRequestError
from tokenops.ledger.jsonrpc_client import LEDGER_OFFSET, MAX_FEE_DROPS, JsonRpcClient

RPC_URL = "http://localhost:5005"
FAUCET_URL = "http://faucet.local/accounts"
ACCOUNT = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
ISSUER = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"

# ---------------------------------------------------------------------------
# Fake transports
# ---------------------------------------------------------------------------


class RoutingTransport:
    """Returns queued responses per JSON-RPC method; the last one repeats."""

    def __init__(self, responses: dict[str, list[dict[str, Any]]]) -> None:
        self._responses = responses
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def methods(self) -> list[str]:
        return [payload.get("method", "faucet") for _, payload in self.calls]

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((url, payload))
        key = "faucet" if url == FAUCET_URL else payload["method"]
        queue = self._responses[key]
        return queue.pop(0) if len(queue) > 1 else queue[0]


class ErrorTransport:
    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        raise self._exc


async def no_sleep(seconds: float) -> None:
    return None


def make_client(responses: dict[str, list[dict[str, Any]]], **kwargs: Any) -> tuple[JsonRpcClient, RoutingTransport]:
    transport = RoutingTransport(responses)
    client = JsonRpcClient(RPC_URL, transport, faucet_url=FAUCET_URL, sleep=no_sleep, **kwargs)
    return client, transport


def ok(**result: Any) -> dict[str, Any]:
    return {"result": {"status": "success", **result}}


def err(error: str, message: str | None = None) -> dict[str, Any]:
    result: dict[str, Any] = {"status": "error", "error": error}
    if message is not None:
        result["error_message"] = message
    return {"result": result}


def submitted(engine_result: str, accepted: bool | None = None, tx_hash: str = "A" * 64) -> dict[str, Any]:
    result: dict[str, Any] = {
        "engine_result": engine_result,
        "engine_result_message": f"{engine_result} message",
        "tx_json": {"hash": tx_hash},
    }
    if accepted is not None:
        result["accepted"] = accepted
    return ok(**result)


MINT_META = {
    "TransactionResult": "tesSUCCESS",
    "nftoken_id": "000800006203F49C21D5D6E022CB16DE3538F248662FC73C0000000000000099",
    "AffectedNodes": [
        {"ModifiedNode": {"LedgerEntryType": "AccountRoot", "FinalFields": {"Account": ACCOUNT}}}
    ],
}

TX_VALIDATED = ok(
    hash="A" * 64,
    validated=True,
    ledger_index=46447423,
    ledger_hash="B" * 64,
    close_time_iso="2026-01-15T12:01:00Z",
    meta=MINT_META,
)

TX_PENDING = ok(hash="A" * 64, validated=False, meta={"TransactionResult": "tesSUCCESS"})


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


class TestSubmit:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        client, _ = make_client({"submit": [submitted("tesSUCCESS", True)]})
        result = await client.submit("DEADBEEF")
        assert result.accepted is True
        assert result.tx_hash == "A" * 64
        assert result.engine_result == "tesSUCCESS"
        assert result.detail == "tesSUCCESS message"

    @pytest.mark.asyncio
    async def test_tem_not_accepted(self) -> None:
        client, _ = make_client({"submit": [submitted("temBAD_FEE", False)]})
        result = await client.submit("DEADBEEF")
        assert result.accepted is False
        assert result.engine_result == "temBAD_FEE"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("engine_result", ["terQUEUED", "tecPATH_DRY"])
    async def test_ter_and_tec_accepted(self, engine_result: str) -> None:
        client, _ = make_client({"submit": [submitted(engine_result)]})
        result = await client.submit("DEADBEEF")
        assert result.accepted is True

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        client, _ = make_client({"submit": [err("invalidParams", "Missing field 'tx_blob'.")]})
        result = await client.submit("DEADBEEF")
        assert result.accepted is False
        assert result.error_code == "SERVER_ERROR"
        assert "tx_blob" in (result.detail or "")

    @pytest.mark.asyncio
    async def test_missing_engine_result(self) -> None:
        client, _ = make_client({"submit": [ok()]})
        result = await client.submit("DEADBEEF")
        assert result.accepted is False
        assert result.error_code == "SERVER_ERROR"

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        client = JsonRpcClient(RPC_URL, ErrorTransport(ConnectionError("refused")))
        with pytest.raises(ConnectionError, match="refused"):
            await client.submit("DEADBEEF")

    @pytest.mark.asyncio
    async def test_payload(self) -> None:
        client, transport = make_client({"submit": [submitted("tesSUCCESS")]})
        await client.submit("AABBCCDD")
        url, payload = transport.calls[0]
        assert url == RPC_URL
        assert payload["method"] == "submit"
        assert payload["params"] == [{"tx_blob": "AABBCCDD"}]
        assert isinstance(payload["id"], int)


# ---------------------------------------------------------------------------
# Tx
# ---------------------------------------------------------------------------


class TestGetTx:
    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        client, _ = make_client({"tx": [err("txnNotFound")]})
        result = await client.get_tx("A" * 64)
        assert result.found is False
        assert result.error_code is None

    @pytest.mark.asyncio
    async def test_pending_meta_not_parsed(self) -> None:
        client, _ = make_client({"tx": [TX_PENDING]})
        result = await client.get_tx("A" * 64)
        assert result.found and not result.validated
        assert result.meta is None
        assert result.ledger_index is None

    @pytest.mark.asyncio
    async def test_validated(self) -> None:
        client, _ = make_client({"tx": [TX_VALIDATED]})
        result = await client.get_tx("A" * 64)
        assert result.validated
        assert result.ledger_index == 46447423
        assert result.ledger_hash == "B" * 64
        assert result.engine_result == "tesSUCCESS"
        assert result.ledger_close_time == "2026-01-15T12:01:00Z"
        assert result.meta is not None
        assert result.meta.nftoken_id == MINT_META["nftoken_id"]
        assert result.meta.affected_nodes[0].ledger_entry_type == "AccountRoot"

    @pytest.mark.asyncio
    async def test_malformed_meta(self) -> None:
        bad = ok(validated=True, meta={"TransactionResult": "tesSUCCESS", "AffectedNodes": "nope"})
        client, _ = make_client({"tx": [bad]})
        result = await client.get_tx("A" * 64)
        assert result.validated
        assert result.meta is None
        assert result.error_code == "MALFORMED_META"

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        client, _ = make_client({"tx": [err("tooBusy", "The server is too busy")]})
        result = await client.get_tx("A" * 64)
        assert result.found is False
        assert result.error_code == "SERVER_ERROR"
        assert result.detail == "The server is too busy"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestAccountInfo:
    @pytest.mark.asyncio
    async def test_found(self) -> None:
        data = {"Balance": "25000000", "Sequence": 7, "Flags": 0x00800000, "OwnerCount": 2}
        client, _ = make_client({"account_info": [ok(account_data=data)]})
        info = await client.account_info(ACCOUNT)
        assert info.found
        assert info.balance_drops == 25_000_000
        assert info.balance_xrp == 25
        assert info.sequence == 7
        assert info.has_flag(0x00800000)
        assert info.owner_count == 2

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        client, _ = make_client({"account_info": [err("actNotFound")]})
        info = await client.account_info(ACCOUNT)
        assert info.found is False
        assert info.balance_drops == 0

    @pytest.mark.asyncio
    async def test_other_error_raises(self) -> None:
        client, _ = make_client({"account_info": [err("lgrNotFound", "ledgerNotFound")]})
        with pytest.raises(LedgerRequestError) as exc_info:
            await client.account_info(ACCOUNT)
        assert exc_info.value.error == "lgrNotFound"


class TestPagination:
    @pytest.mark.asyncio
    async def test_account_lines_follows_marker(self) -> None:
        line = {"account": ISSUER, "currency": "SBR", "balance": "5", "limit": "100", "peer_authorized": True}
        client, transport = make_client(
            {"account_lines": [ok(lines=[line], marker="m1"), ok(lines=[{**line, "currency": "USD"}])]}
        )
        lines = await client.account_lines(ACCOUNT, peer=ISSUER)

        assert [ln.currency for ln in lines] == ["SBR", "USD"]
        assert lines[0].peer_authorized is True
        assert lines[0].balance == "5"
        params = [payload["params"][0] for _, payload in transport.calls]
        assert params[0]["peer"] == ISSUER
        assert "marker" not in params[0]
        assert params[1]["marker"] == "m1"

    @pytest.mark.asyncio
    async def test_account_nfts_parsed(self) -> None:
        uri = "ipfs://QmToken".encode().hex().upper()
        client, _ = make_client(
            {
                "account_nfts": [
                    ok(account_nfts=[{"NFTokenID": "ab" * 32, "URI": uri, "NFTokenTaxon": 7}], marker="m"),
                    ok(account_nfts=[{"NFTokenID": "CD" * 32}]),
                ]
            }
        )
        nfts = await client.account_nfts(ACCOUNT)

        assert [n.nftoken_id for n in nfts] == ["AB" * 32, "CD" * 32]
        assert nfts[0].uri == "ipfs://QmToken"
        assert nfts[0].taxon == 7
        assert nfts[1].uri is None
        assert nfts[1].taxon == 0

    @pytest.mark.asyncio
    async def test_account_nft_offers(self) -> None:
        sell = {
            "LedgerEntryType": "NFTokenOffer",
            "index": "aa" * 32,
            "NFTokenID": "BB" * 32,
            "Owner": ACCOUNT,
            "Amount": {"currency": "SBR", "issuer": ISSUER, "value": "10"},
            "Flags": 1,
        }
        buy = {**sell, "index": "CC" * 32, "Amount": "1000000", "Flags": 0}
        client, transport = make_client(
            {
                "account_objects": [
                    ok(account_objects=[sell, {"LedgerEntryType": "RippleState"}], marker="m"),
                    ok(account_objects=[buy]),
                ]
            }
        )
        offers = await client.account_nft_offers(ACCOUNT)

        assert [o.offer_index for o in offers] == ["AA" * 32, "CC" * 32]
        assert offers[0].is_sell and not offers[1].is_sell
        assert (offers[0].amount, offers[0].currency, offers[0].issuer) == ("10", "SBR", ISSUER)
        assert (offers[1].amount, offers[1].currency) == ("1000000", None)
        assert transport.calls[0][1]["params"][0]["type"] == "nft_offer"

    @pytest.mark.asyncio
    async def test_lookup_error_raises(self) -> None:
        client, _ = make_client({"account_lines": [err("actNotFound")]})
        with pytest.raises(LedgerRequestError):
            await client.account_lines(ACCOUNT)


class TestAccountTx:
    @pytest.mark.asyncio
    async def test_v2_entries_normalized(self) -> None:
        entry = {
            "hash": "H" * 64,
            "tx_json": {"Account": ACCOUNT, "TransactionType": "Payment", "SourceTag": 1},
            "meta": {"TransactionResult": "tesSUCCESS"},
            "close_time_iso": "2026-01-15T12:01:00Z",
            "validated": True,
        }
        client, transport = make_client({"account_tx": [ok(transactions=[entry])]})
        history = await client.account_tx(ACCOUNT, limit=5)

        assert history[0]["tx"]["hash"] == "H" * 64
        assert history[0]["tx"]["close_time_iso"] == "2026-01-15T12:01:00Z"
        assert history[0]["validated"] is True
        assert transport.calls[0][1]["params"][0]["limit"] == 5


# ---------------------------------------------------------------------------
# Autofill
# ---------------------------------------------------------------------------


AUTOFILL_RESPONSES: dict[str, list[dict[str, Any]]] = {
    "account_info": [ok(account_data={"Balance": "1", "Sequence": 42})],
    "fee": [ok(drops={"base_fee": "10", "open_ledger_fee": "15"})],
    "ledger_current": [ok(ledger_current_index=1000)],
}


class TestAutofill:
    @pytest.mark.asyncio
    async def test_fills_fields(self) -> None:
        client, _ = make_client({k: list(v) for k, v in AUTOFILL_RESPONSES.items()})
        tx = await client.autofill({"TransactionType": "AccountSet", "Account": ACCOUNT})
        assert tx["Sequence"] == 42
        assert tx["Fee"] == "15"
        assert tx["LastLedgerSequence"] == 1000 + LEDGER_OFFSET

    @pytest.mark.asyncio
    async def test_fee_is_cached(self) -> None:
        now = [0.0]
        client, transport = make_client(
            {k: list(v) for k, v in AUTOFILL_RESPONSES.items()},
            fee_ttl=30.0,
            clock=lambda: now[0],
        )
        await client.autofill({"Account": ACCOUNT})
        now[0] = 10.0
        await client.autofill({"Account": ACCOUNT})
        assert transport.methods().count("fee") == 1

        now[0] = 45.0
        await client.autofill({"Account": ACCOUNT})
        assert transport.methods().count("fee") == 2

    @pytest.mark.asyncio
    async def test_fee_capped(self) -> None:
        responses = {k: list(v) for k, v in AUTOFILL_RESPONSES.items()}
        responses["fee"] = [ok(drops={"base_fee": "10", "open_ledger_fee": "99999999"})]
        client, _ = make_client(responses)
        tx = await client.autofill({"Account": ACCOUNT})
        assert tx["Fee"] == str(MAX_FEE_DROPS)

    @pytest.mark.asyncio
    async def test_present_fields_kept(self) -> None:
        client, transport = make_client({k: list(v) for k, v in AUTOFILL_RESPONSES.items()})
        tx = await client.autofill(
            {"Account": ACCOUNT, "Sequence": 3, "Fee": "12", "LastLedgerSequence": 9}
        )
        assert (tx["Sequence"], tx["Fee"], tx["LastLedgerSequence"]) == (3, "12", 9)
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_missing_account_raises(self) -> None:
        client, _ = make_client({"account_info": [err("actNotFound")]})
        with pytest.raises(LedgerRequestError):
            await client.autofill({"Account": ACCOUNT})


# ---------------------------------------------------------------------------
# Submit and wait
# ---------------------------------------------------------------------------


class TestSubmitAndWait:
    @pytest.mark.asyncio
    async def test_validated(self) -> None:
        client, _ = make_client(
            {
                "submit": [submitted("tesSUCCESS", True)],
                "tx": [TX_PENDING, TX_VALIDATED],
                "ledger": [ok(ledger_index=50)],
            }
        )
        result = await client.submit_and_wait("DEADBEEF", "A" * 64, 100)
        assert result.validated
        assert result.status is not None and result.status.engine_result == "tesSUCCESS"
        assert not result.expired

    @pytest.mark.asyncio
    async def test_expired(self) -> None:
        client, transport = make_client(
            {
                "submit": [submitted("tesSUCCESS", True)],
                "tx": [TX_PENDING],
                "ledger": [ok(ledger_index=101)],
            }
        )
        result = await client.submit_and_wait("DEADBEEF", "A" * 64, 100)
        assert result.expired
        assert not result.validated
        assert transport.methods() == ["submit", "tx", "ledger", "tx"]

    @pytest.mark.asyncio
    async def test_rejected(self) -> None:
        client, transport = make_client({"submit": [submitted("temMALFORMED", False)]})
        result = await client.submit_and_wait("DEADBEEF", "A" * 64, 100)
        assert result.status is None
        assert transport.methods() == ["submit"]

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        client, _ = make_client(
            {"submit": [submitted("tesSUCCESS", True)], "tx": [TX_PENDING]},
            max_wait_polls=3,
        )
        result = await client.submit_and_wait("DEADBEEF", "A" * 64, None)
        assert not result.validated
        assert not result.expired


# ---------------------------------------------------------------------------
# Faucet
# ---------------------------------------------------------------------------


class TestFaucet:
    @pytest.mark.asyncio
    async def test_no_faucet(self) -> None:
        client = JsonRpcClient(RPC_URL, RoutingTransport({}))
        result = await client.fund_account(ACCOUNT)
        assert result.funded is False

    @pytest.mark.asyncio
    async def test_funds(self) -> None:
        client, transport = make_client(
            {"faucet": [{"account": {"classicAddress": ACCOUNT}, "amount": 1000}]}
        )
        result = await client.fund_account(ACCOUNT)
        assert result.funded
        assert result.amount_xrp == "1000"
        assert transport.calls[0] == (FAUCET_URL, {"destination": ACCOUNT})

    @pytest.mark.asyncio
    async def test_wrong_address(self) -> None:
        client, _ = make_client({"faucet": [{"account": {"classicAddress": ISSUER}}]})
        result = await client.fund_account(ACCOUNT)
        assert result.funded is False
        assert ISSUER in (result.detail or "")
