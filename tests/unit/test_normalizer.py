import base64

import pytest
from stellar_sdk import StrKey

from har_ingest.errors import UnsupportedXDR
from har_ingest.xdr.normalizer import normalize
from har_ingest.xdr.tree import XdrArray, XdrBytes, XdrScalar, XdrStruct, XdrUnion

ED25519_BYTES = bytes(
    [
        154, 255, 164, 158, 84, 122, 37, 29, 149, 169, 103, 148, 210, 79, 248, 22,
        11, 217, 254, 212, 149, 228, 49, 24, 226, 11, 180, 136, 228, 202, 130, 149,
    ]
)
ED25519_ADDRESS = "GCNP7JE6KR5CKHMVVFTZJUSP7ALAXWP62SK6IMIY4IF3JCHEZKBJKDZF"


def _public_key(raw: bytes = ED25519_BYTES) -> XdrUnion:
    return XdrUnion("PublicKey", "ed25519", 0, "ed25519", XdrBytes(raw, "Uint256"))


def _tx(memo: XdrUnion) -> XdrStruct:
    return XdrStruct(
        "Transaction",
        (
            ("source_account", _public_key()),
            ("fee", XdrScalar(100, "Uint32")),
            ("seq_num", XdrScalar(2**60, "Int64")),
            ("memo", memo),
        ),
    )


def test_memo_none_is_removed():
    out = normalize(_tx(XdrUnion("Memo", "none", 0)))
    assert "memo" not in out
    assert out["fee"] == 100


def test_memo_text():
    memo = XdrUnion("Memo", "text", 1, "text", XdrBytes(b"hi"))
    assert normalize(_tx(memo))["memo"] == {"type": "text", "value": "hi"}


def test_memo_hash_and_return_are_hex():
    digest = bytes(range(32))
    for discriminant, arm in (("hash", "hash"), ("return", "ret_hash")):
        memo = XdrUnion("Memo", discriminant, 3, arm, XdrBytes(digest, "Hash"))
        assert normalize(_tx(memo))["memo"] == {"type": discriminant, "value": digest.hex()}


def test_memo_id_is_decimal_string():
    memo = XdrUnion("Memo", "id", 2, "id", XdrScalar(2**64 - 1, "Uint64"))
    assert normalize(_tx(memo))["memo"] == {"type": "id", "value": str(2**64 - 1)}


def test_public_key_becomes_strkey_and_decodes_back():
    address = normalize(_tx(XdrUnion("Memo", "none", 0)))["source_account"]
    assert address == ED25519_ADDRESS
    assert StrKey.decode_ed25519_public_key(address) == ED25519_BYTES


def test_ed25519_struct_field_becomes_strkey():
    muxed = XdrStruct(
        "MuxedAccountMed25519",
        (("id", XdrScalar(7, "Uint64")), ("ed25519", XdrBytes(ED25519_BYTES, "Uint256"))),
    )
    assert normalize(muxed) == {"id": 7, "ed25519": ED25519_ADDRESS}


def test_amount_fields_are_decimal_strings():
    header = XdrStruct(
        "LedgerHeader",
        (
            ("ledger_seq", XdrScalar(1048575, "Uint32")),
            ("total_coins", XdrScalar(1000000000000000000, "Int64")),
            ("fee_pool", XdrScalar(2**63 - 1, "Int64")),
            ("id_pool", XdrScalar(12, "Uint64")),
            ("base_fee", XdrScalar(100, "Uint32")),
        ),
    )
    assert normalize(header) == {
        "ledger_seq": 1048575,
        "total_coins": "1000000000000000000",
        "fee_pool": str(2**63 - 1),
        "id_pool": "12",
        "base_fee": 100,
    }


def test_hash_fields_are_hex():
    digest = b"\xab" * 32
    entry = XdrStruct(
        "TransactionResultPair",
        (("transaction_hash", XdrBytes(digest, "Hash")), ("skip", XdrBytes(b"\x01\x02"))),
    )
    assert normalize(entry) == {"transaction_hash": "ab" * 32, "skip": "0102"}


def test_signature_is_base64_and_hint_hex():
    signature = b"\x00\x01" * 32
    decorated = XdrStruct(
        "DecoratedSignature",
        (
            ("hint", XdrBytes(b"\xde\xad\xbe\xef", "SignatureHint")),
            ("signature", XdrBytes(signature, "Signature")),
        ),
    )
    assert normalize(decorated) == {
        "hint": "deadbeef",
        "signature": base64.b64encode(signature).decode("ascii"),
    }


def test_asset_codes_are_stripped():
    alpha4 = XdrStruct(
        "AlphaNum4",
        (("asset_code", XdrBytes(b"USD\x00", "AssetCode4")), ("issuer", _public_key())),
    )
    alpha12 = XdrBytes(b"LONGCODE\x00\x00\x00\x00", "AssetCode12")
    assert normalize(alpha4) == {"asset_code": "USD", "issuer": ED25519_ADDRESS}
    assert normalize(XdrStruct("X", (("code", alpha12),))) == {"code": "LONGCODE"}


def test_asset_code_union_arms_are_stripped():
    code = XdrUnion("AssetCode", "credit_alphanum4", 1, "asset_code4", XdrBytes(b"EUR\x00"))
    assert normalize(XdrStruct("AllowTrustOp", (("asset", code),))) == {
        "asset": {"type": "credit_alphanum4", "code": 1, "value": "EUR"}
    }


def test_generic_unions_and_enums():
    result = XdrStruct(
        "TransactionResult",
        (
            ("fee_charged", XdrScalar(100, "Int64")),
            ("result", XdrUnion("TransactionResultResult", "txfailed", -1, "results", XdrArray(()))),
            ("ext", XdrUnion("TransactionResultExt", "v0", 0)),
        ),
    )
    assert normalize(result) == {
        "fee_charged": "100",
        "result": {"type": "txfailed", "code": -1, "value": []},
        "ext": {"type": "v0", "code": 0},
    }


def test_arrays_recurse_with_field_context():
    tree = XdrStruct(
        "Op",
        (("amounts", XdrArray((XdrScalar(1), XdrScalar(2)))),
         ("amount", XdrScalar(5, "Int64"))),
    )
    assert normalize(tree) == {"amounts": [1, 2], "amount": "5"}


def test_unknown_opaque_typedef_fails_loudly():
    tree = XdrStruct("Future", (("blob", XdrBytes(b"\x00", "BrandNewOpaque")),))
    with pytest.raises(UnsupportedXDR, match="BrandNewOpaque"):
        normalize(tree)


def test_normalize_is_deterministic():
    memo = XdrUnion("Memo", "text", 1, "text", XdrBytes(b"hello"))
    tree = _tx(memo)
    assert normalize(tree) == normalize(tree)
    assert normalize(tree) is not normalize(tree)
