"""
tokenops — exactly-once transaction orchestration on the XRP Ledger.

Four fixed roles (issuer, hot, seller, buyer) issue and move a fungible
asset and mint, trade and burn NFTs. Every mutation goes through the
same pipeline: idempotency lookup, funding and authorization preflight,
serialized submission, resolution to a validated outcome, artifact
extraction, commit.
"""

__version__ = "0.1.0"
