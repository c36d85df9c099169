"""
Transaction metadata — typed view of a validated transaction's effects.

rippled returns metadata as loosely shaped JSON. ``parse_meta`` validates
it once at the boundary and produces frozen dataclasses; nothing above
this module indexes into raw metadata dicts.

Artifact extraction (pure functions):
    - NFToken id: the server-computed ``nftoken_id`` field when present,
      otherwise the one token id present in the final state of the
      affected NFTokenPage entries but absent from their previous state.
    - Offer id: the server-computed ``offer_id`` field when present,
      otherwise the LedgerIndex of the created NFTokenOffer entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tokenops.intents import ArtifactKind

_NODE_ACTIONS = ("CreatedNode", "ModifiedNode", "DeletedNode")


@dataclass(frozen=True)
class AffectedNode:
    """One entry of ``meta.AffectedNodes``.

    Attributes:
        action: "CreatedNode", "ModifiedNode" or "DeletedNode".
        ledger_entry_type: e.g. "NFTokenPage", "NFTokenOffer", "RippleState".
        ledger_index: The entry's ledger index (64 hex), if present.
        new_fields: NewFields (created nodes).
        final_fields: FinalFields (modified/deleted nodes).
        previous_fields: PreviousFields (modified nodes).
    """

    action: str
    ledger_entry_type: str
    ledger_index: str | None = None
    new_fields: dict[str, Any] = field(default_factory=dict)
    final_fields: dict[str, Any] = field(default_factory=dict)
    previous_fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionMeta:
    transaction_result: str | None
    affected_nodes: tuple[AffectedNode, ...] = ()
    nftoken_id: str | None = None
    offer_id: str | None = None
    delivered_amount: Any = None

    def nodes_of_type(self, entry_type: str, action: str | None = None) -> list[AffectedNode]:
        return [
            n
            for n in self.affected_nodes
            if n.ledger_entry_type == entry_type and (action is None or n.action == action)
        ]


# =====================================================================
# Parsing (pure functions, no I/O)
# =====================================================================


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _parse_node(raw: Any) -> AffectedNode:
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ValueError(f"malformed affected node: {raw!r}")
    action, body = next(iter(raw.items()))
    if action not in _NODE_ACTIONS or not isinstance(body, dict):
        raise ValueError(f"unknown affected node action: {action!r}")
    entry_type = body.get("LedgerEntryType")
    if not isinstance(entry_type, str):
        raise ValueError(f"{action} without LedgerEntryType")
    return AffectedNode(
        action=action,
        ledger_entry_type=entry_type,
        ledger_index=body.get("LedgerIndex"),
        new_fields=_as_dict(body.get("NewFields")),
        final_fields=_as_dict(body.get("FinalFields")),
        previous_fields=_as_dict(body.get("PreviousFields")),
    )


def parse_meta(raw: Any) -> TransactionMeta | None:
    """Parse rippled transaction metadata.

    Returns None when there is no metadata (not yet validated, or the
    response omitted it).

    Raises:
        ValueError: If metadata is present but malformed.
    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError("transaction metadata must be an object")
    nodes_raw = raw.get("AffectedNodes", [])
    if not isinstance(nodes_raw, list):
        raise ValueError("AffectedNodes must be a list")
    return TransactionMeta(
        transaction_result=raw.get("TransactionResult"),
        affected_nodes=tuple(_parse_node(n) for n in nodes_raw),
        nftoken_id=raw.get("nftoken_id"),
        offer_id=raw.get("offer_id"),
        delivered_amount=raw.get("delivered_amount"),
    )


# =====================================================================
# Artifact extraction
# =====================================================================


def _token_ids(fields: dict[str, Any]) -> set[str]:
    ids: set[str] = set()
    for entry in fields.get("NFTokens") or []:
        token = _as_dict(entry).get("NFToken")
        token_id = _as_dict(token).get("NFTokenID")
        if isinstance(token_id, str):
            ids.add(token_id.upper())
    return ids


def extract_nftoken_id(meta: TransactionMeta) -> str | None:
    """Identifier of the token a mint created, or None."""
    if meta.nftoken_id:
        return meta.nftoken_id.upper()

    before: set[str] = set()
    after: set[str] = set()
    for node in meta.nodes_of_type("NFTokenPage"):
        if node.action == "CreatedNode":
            after |= _token_ids(node.new_fields)
        elif node.action == "ModifiedNode":
            # PreviousFields only lists NFTokens when the page contents changed
            if "NFTokens" in node.previous_fields:
                before |= _token_ids(node.previous_fields)
                after |= _token_ids(node.final_fields)
        elif node.action == "DeletedNode":
            before |= _token_ids(node.final_fields)

    created = after - before
    if len(created) != 1:
        return None
    return created.pop()


def extract_offer_id(meta: TransactionMeta) -> str | None:
    """Ledger index of the offer a create-offer produced, or None."""
    if meta.offer_id:
        return meta.offer_id.upper()
    for node in meta.nodes_of_type("NFTokenOffer", "CreatedNode"):
        if node.ledger_index:
            return node.ledger_index.upper()
    return None


def extract_artifact(kind: ArtifactKind, meta: TransactionMeta | None) -> str | None:
    """Variant-specific artifact, or None if the expected entry is absent.

    ``ArtifactKind.NONE`` always extracts to the empty string so callers
    can distinguish "nothing expected" from "expected but missing".
    """
    if kind == ArtifactKind.NONE:
        return ""
    if meta is None:
        return None
    if kind == ArtifactKind.NFTOKEN_ID:
        return extract_nftoken_id(meta)
    if kind == ArtifactKind.OFFER_ID:
        return extract_offer_id(meta)
    raise ValueError(f"unknown artifact kind: {kind}")
