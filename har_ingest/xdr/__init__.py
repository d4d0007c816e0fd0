"""
XDR package: record tree types, the stellar_sdk decoder adapter and the normalizer.
"""

from har_ingest.xdr.normalizer import normalize
from har_ingest.xdr.tree import XdrArray, XdrBytes, XdrNode, XdrScalar, XdrStruct, XdrUnion

__all__ = [
    "normalize",
    "XdrArray",
    "XdrBytes",
    "XdrNode",
    "XdrScalar",
    "XdrStruct",
    "XdrUnion",
]
