"""
Canonical, JSON-safe rendering of decoded XDR record trees.

Rules, applied depth first:

- public keys (field or union arm `ed25519`) become strkey addresses
- asset codes lose their trailing NUL padding
- known 64-bit quantities become decimal strings
- known hash fields become lowercase hex, signatures base64
- memos become `{"type", "value"}` and disappear entirely when `none`
- other unions become `{"type", "code"[, "value"]}`
- structs become dicts, arrays lists, scalars pass through

Opaque leaves whose typedef has no renderer raise `UnsupportedXDR`, so a new
codec type shows up as a failure instead of an unconverted blob.
"""

from __future__ import annotations

import base64
from typing import Any, Callable, Dict, Mapping, Optional

from stellar_sdk import StrKey

from har_ingest.errors import UnsupportedXDR
from har_ingest.xdr.tree import XdrArray, XdrBytes, XdrNode, XdrScalar, XdrStruct, XdrUnion

PUBLIC_KEY_ARM = "ed25519"
MEMO_TYPE_NAME = "Memo"
MEMO_FIELD = "memo"

AMOUNT_FIELDS = frozenset(
    {
        "fee_pool",
        "id_pool",
        "total_coins",
        "amount",
        "starting_balance",
        "send_max",
        "dest_amount",
        "destination_amount",
        "limit",
        "fee_charged",
    }
)

HASH_FIELDS = frozenset(
    {
        "hash",
        "previous_ledger_hash",
        "tx_set_hash",
        "transaction_set_hash",
        "transaction_hash",
    }
)

SIGNATURE_FIELDS = frozenset({"signature"})


def _hex(data: bytes) -> str:
    return data.hex()


def _base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _asset_code(data: bytes) -> str:
    return _text(data.rstrip(b"\x00"))


def _strkey(data: bytes) -> str:
    return StrKey.encode_ed25519_public_key(data)


# Renderers for opaque leaves by typedef name. None is raw opaque/string data
# with no typedef of its own.
OPAQUE_RENDERERS: Mapping[Optional[str], Callable[[bytes], str]] = {
    None: _hex,
    "Hash": _hex,
    "Uint256": _hex,
    "SignatureHint": _hex,
    "Thresholds": _hex,
    "UpgradeType": _hex,
    "Value": _hex,
    "DataValue": _hex,
    "EncryptedBody": _hex,
    "SCBytes": _hex,
    "Signature": _base64,
    "AssetCode4": _asset_code,
    "AssetCode12": _asset_code,
    "String32": _text,
    "String64": _text,
    "SCString": _text,
    "SCSymbol": _text,
}

# Arms of the AssetCode union carry raw, untyped padded codes.
ASSET_CODE_ARMS = frozenset({"asset_code4", "asset_code12"})

_OMIT = object()


def _render_bytes(node: XdrBytes, field: Optional[str]) -> str:
    if field == PUBLIC_KEY_ARM:
        return _strkey(node.data)
    if field in HASH_FIELDS:
        return _hex(node.data)
    if field in SIGNATURE_FIELDS:
        return _base64(node.data)
    if field in ASSET_CODE_ARMS and node.type_name is None:
        return _asset_code(node.data)
    renderer = OPAQUE_RENDERERS.get(node.type_name)
    if renderer is None:
        raise UnsupportedXDR(
            f"No rendering rule for opaque type '{node.type_name}' (field '{field}')"
        )
    return renderer(node.data)


def _render_memo(node: XdrUnion) -> Any:
    if node.discriminant == "none":
        return _OMIT
    value = node.value
    if isinstance(value, XdrBytes):
        rendered = _text(value.data) if node.discriminant == "text" else _hex(value.data)
    elif isinstance(value, XdrScalar):
        rendered = None if value.value is None else str(value.value)
    else:
        raise UnsupportedXDR(f"Memo of type '{node.discriminant}' has no scalar value")
    return {"type": node.discriminant, "value": rendered}


def _render_union(node: XdrUnion, field: Optional[str]) -> Any:
    if node.type_name == MEMO_TYPE_NAME or field == MEMO_FIELD:
        return _render_memo(node)
    if PUBLIC_KEY_ARM in (node.arm, node.discriminant) and isinstance(node.value, XdrBytes):
        return _strkey(node.value.data)
    rendered: Dict[str, Any] = {"type": node.discriminant, "code": node.code}
    if node.value is not None:
        value = _normalize(node.value, node.arm)
        if value is not _OMIT:
            rendered["value"] = value
    return rendered


def _normalize(node: XdrNode, field: Optional[str] = None) -> Any:
    if isinstance(node, XdrStruct):
        out: Dict[str, Any] = {}
        for name, child in node.fields:
            value = _normalize(child, name)
            if value is not _OMIT:
                out[name] = value
        return out
    if isinstance(node, XdrUnion):
        return _render_union(node, field)
    if isinstance(node, XdrArray):
        items = (_normalize(child, field) for child in node.items)
        return [item for item in items if item is not _OMIT]
    if isinstance(node, XdrBytes):
        return _render_bytes(node, field)
    if isinstance(node, XdrScalar):
        if field in AMOUNT_FIELDS and isinstance(node.value, int) and not isinstance(node.value, bool):
            return str(node.value)
        return node.value
    raise UnsupportedXDR(f"Unknown record tree node {type(node).__name__}")


def normalize(tree: XdrNode) -> Any:
    """
    Render a decoded record tree in canonical form.

    The result only contains dicts, lists, str, int, bool and None, so it can
    be stored as JSON without loss; normalizing the same tree twice yields
    equal output.
    """
    value = _normalize(tree)
    return None if value is _OMIT else value


__all__ = [
    "AMOUNT_FIELDS",
    "HASH_FIELDS",
    "SIGNATURE_FIELDS",
    "OPAQUE_RENDERERS",
    "normalize",
]
