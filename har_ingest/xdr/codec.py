"""
Decoder adapter over the `stellar_sdk` XDR codec.

Decoding raw bytes is delegated to `stellar_sdk.xdr`; this module converts
the generated decoder objects into the explicit node types of
`har_ingest.xdr.tree`. Generated classes come in four shapes, told apart by
their constructor signature:

- enums: `IntEnum` members
- typedef containers: a single constructor argument (`Uint32(uint32)`,
  `Hash(hash)`, one-field structs); collapsed here so the wrapped value
  appears directly on the parent
- unions: a discriminant followed only by arms defaulting to None
- structs: everything else
"""

from __future__ import annotations

import inspect
from enum import IntEnum
from functools import lru_cache
from typing import Any, Tuple, Type

from stellar_sdk import xdr as stellar_xdr

from har_ingest.domain.models import CATEGORY_XDR_TYPES, LEDGER_SEQ_PATHS, Category
from har_ingest.errors import DecodeError, UnsupportedXDR
from har_ingest.xdr.tree import XdrArray, XdrBytes, XdrNode, XdrScalar, XdrStruct, XdrUnion, lookup


def decoder_type(type_name: str) -> Type[Any]:
    xdr_type = getattr(stellar_xdr, type_name, None)
    if xdr_type is None or not hasattr(xdr_type, "from_xdr_bytes"):
        raise UnsupportedXDR(f"XDR type '{type_name}' is not provided by the codec")
    return xdr_type


def validate_categories() -> None:
    """Fail loudly if any category maps to a decoder type the codec lacks."""
    for category in Category:
        type_name = CATEGORY_XDR_TYPES.get(category)
        if type_name is None:
            raise UnsupportedXDR(f"No decoder type mapped for category '{category.value}'")
        decoder_type(type_name)


def decode(data: bytes, type_name: str) -> Any:
    """Parse one record with the codec; any codec failure becomes `DecodeError`."""
    xdr_type = decoder_type(type_name)
    try:
        return xdr_type.from_xdr_bytes(bytes(data))
    except Exception as exc:  # noqa: BLE001 - codec raises a variety of unpacking errors
        raise DecodeError(f"Input XDR could not be parsed as {type_name}: {exc}", type_name) from exc


@lru_cache(maxsize=None)
def _signature(cls: type) -> Tuple[Tuple[str, bool], ...]:
    """(name, has_default) for each constructor argument of a generated class."""
    params = inspect.signature(cls.__init__).parameters
    return tuple(
        (name, param.default is not inspect.Parameter.empty)
        for name, param in params.items()
        if name != "self" and param.kind is inspect.Parameter.POSITIONAL_OR_KEYWORD
    )


@lru_cache(maxsize=None)
def _enum_prefix(enum_cls: Type[IntEnum]) -> int:
    """Number of leading name tokens shared by every member of `enum_cls`."""
    token_lists = [name.split("_") for name in enum_cls.__members__]
    if len(token_lists) == 1:
        return max(len(token_lists[0]) - 1, 0)
    shared = 0
    for tokens in zip(*token_lists):
        if len(set(tokens)) != 1:
            break
        shared += 1
    # keep at least one token for every member
    return min(shared, min(len(tokens) for tokens in token_lists) - 1)


def enum_name(member: IntEnum) -> str:
    """Short, lowercase arm name: MEMO_TEXT -> text, PUBLIC_KEY_TYPE_ED25519 -> ed25519."""
    tokens = member.name.split("_")
    return "_".join(tokens[_enum_prefix(type(member)) :]).lower()


def _discriminant(value: Any) -> Tuple[str, int]:
    if isinstance(value, IntEnum):
        return enum_name(value), int(value)
    return f"v{int(value)}", int(value)


def _with_type(node: XdrNode, type_name: str) -> XdrNode:
    """Record the typedef name on a collapsed leaf, keeping the innermost one."""
    if isinstance(node, XdrBytes) and node.type_name is None:
        return XdrBytes(node.data, type_name)
    if isinstance(node, XdrScalar) and node.type_name is None:
        return XdrScalar(node.value, type_name)
    return node


def to_tree(obj: Any) -> XdrNode:
    """Convert a decoded `stellar_sdk.xdr` object (or primitive) into an `XdrNode`."""
    if obj is None or isinstance(obj, bool):
        return XdrScalar(obj)
    if isinstance(obj, IntEnum):
        name, code = _discriminant(obj)
        return XdrUnion(type(obj).__name__, name, code)
    if isinstance(obj, int):
        return XdrScalar(obj)
    if isinstance(obj, (bytes, bytearray)):
        return XdrBytes(bytes(obj))
    if isinstance(obj, (list, tuple)):
        return XdrArray(tuple(to_tree(item) for item in obj))

    cls = type(obj)
    params = _signature(cls)
    if not params:
        raise UnsupportedXDR(f"Cannot map decoder object of type {cls.__name__}")

    if len(params) == 1:
        return _with_type(to_tree(getattr(obj, params[0][0])), cls.__name__)

    (switch_name, switch_default), arms = params[0], params[1:]
    if not switch_default and all(has_default for _, has_default in arms):
        name, code = _discriminant(getattr(obj, switch_name))
        for arm_name, _ in arms:
            arm_value = getattr(obj, arm_name, None)
            if arm_value is not None:
                return XdrUnion(cls.__name__, name, code, arm_name, to_tree(arm_value))
        return XdrUnion(cls.__name__, name, code)

    return XdrStruct(
        cls.__name__,
        tuple((field_name, to_tree(getattr(obj, field_name))) for field_name, _ in params),
    )


def decode_tree(data: bytes, category: Category) -> XdrNode:
    type_name = CATEGORY_XDR_TYPES.get(category)
    if type_name is None:
        raise UnsupportedXDR(f"No decoder type mapped for category '{category}'")
    return to_tree(decode(data, type_name))


def ledger_seq_of(category: Category, tree: XdrNode, checkpoint: int) -> int:
    """Ledger sequence a decoded record belongs to (see LEDGER_SEQ_PATHS)."""
    if category not in LEDGER_SEQ_PATHS:
        raise UnsupportedXDR(f"No ledger sequence rule for category '{category}'")
    path = LEDGER_SEQ_PATHS[category]
    if path is None:
        return checkpoint
    node = lookup(tree, path)
    if not isinstance(node, XdrScalar) or not isinstance(node.value, int):
        raise UnsupportedXDR(
            f"Record of category '{category.value}' has no ledger sequence at {'.'.join(path)}"
        )
    return node.value


__all__ = [
    "decode",
    "decode_tree",
    "decoder_type",
    "enum_name",
    "ledger_seq_of",
    "to_tree",
    "validate_categories",
]
