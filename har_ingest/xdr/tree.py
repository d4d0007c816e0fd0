"""
Explicit sum type for decoded XDR record trees.

The codec adapter turns decoder objects into these nodes once; everything
downstream (normalizer, ledger sequence lookup) matches on the node type
instead of probing attributes of decoder objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class XdrScalar:
    """Integer, boolean or absent optional value."""

    value: Union[int, bool, None]
    type_name: Optional[str] = None


@dataclass(frozen=True)
class XdrBytes:
    """Fixed or variable length opaque data / XDR string."""

    data: bytes
    type_name: Optional[str] = None


@dataclass(frozen=True)
class XdrArray:
    items: Tuple["XdrNode", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class XdrStruct:
    type_name: str
    fields: Tuple[Tuple[str, "XdrNode"], ...] = field(default_factory=tuple)

    def get(self, name: str) -> Optional["XdrNode"]:
        for field_name, node in self.fields:
            if field_name == name:
                return node
        return None


@dataclass(frozen=True)
class XdrUnion:
    """
    Tagged union or plain enum value.

    `discriminant` is the short arm name (e.g. "text" for MEMO_TEXT), `code`
    its numeric value. `arm` names the attribute holding `value`; both are
    None for void arms and bare enums.
    """

    type_name: str
    discriminant: str
    code: int
    arm: Optional[str] = None
    value: Optional["XdrNode"] = None


XdrNode = Union[XdrScalar, XdrBytes, XdrArray, XdrStruct, XdrUnion]


def lookup(node: XdrNode, path: Tuple[str, ...]) -> Optional[XdrNode]:
    """Follow struct field names along `path`, stepping through union arms."""
    current: Optional[XdrNode] = node
    for name in path:
        while isinstance(current, XdrUnion):
            current = current.value
        if not isinstance(current, XdrStruct):
            return None
        current = current.get(name)
    return current


__all__ = [
    "XdrScalar",
    "XdrBytes",
    "XdrArray",
    "XdrStruct",
    "XdrUnion",
    "XdrNode",
    "lookup",
]
