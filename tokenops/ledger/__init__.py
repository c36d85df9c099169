"""
XRPL network boundary for tokenops.

Public API:

    Protocols (for dependency injection):
        - ``LedgerClient`` — lookups, autofill, submit, tx status,
          submit-and-wait, faucet.
        - ``Signer`` — secrets boundary (sign an autofilled tx dict).
        - ``JsonRpcTransport`` — injectable HTTP transport.

    Result types:
        - ``AccountInfo``, ``TrustLine``, ``NFToken``, ``NFTOffer`` — lookup
          results.
        - ``SubmitResult``, ``TxStatusResult``, ``SubmitAndWaitResult``,
          ``FaucetResult`` — submission results.
        - ``SignResult`` — signer result type.
        - ``TransactionMeta``, ``AffectedNode`` — typed metadata.

    Concrete implementations:
        - ``JsonRpcClient`` — JSON-RPC implementation of LedgerClient.
        - ``HttpxTransport`` — default httpx-based transport.
        - ``WalletSigner`` — xrpl-py wallet signer.
"""

from tokenops.ledger.client import (
    AccountInfo,
    FaucetResult,
    LedgerClient,
    NFToken,
    NFTOffer,
    SubmitAndWaitResult,
    SubmitResult,
    TrustLine,
    TxStatusResult,
)
from tokenops.ledger.jsonrpc_client import JsonRpcClient
from tokenops.ledger.metadata import (
    AffectedNode,
    TransactionMeta,
    extract_artifact,
    extract_nftoken_id,
    extract_offer_id,
    parse_meta,
)
from tokenops.ledger.signer import SignResult, Signer, WalletSigner
from tokenops.ledger.transport import HttpxTransport, JsonRpcTransport

__all__ = [
    "AccountInfo",
    "AffectedNode",
    "FaucetResult",
    "HttpxTransport",
    "JsonRpcClient",
    "JsonRpcTransport",
    "LedgerClient",
    "NFToken",
    "NFTOffer",
    "SignResult",
    "Signer",
    "SubmitAndWaitResult",
    "SubmitResult",
    "TransactionMeta",
    "TrustLine",
    "TxStatusResult",
    "WalletSigner",
    "extract_artifact",
    "extract_nftoken_id",
    "extract_offer_id",
    "parse_meta",
]
