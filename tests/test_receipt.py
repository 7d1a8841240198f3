import hashlib
import json
from types import SimpleNamespace

import pytest

from yuchain.receipt import Receipt, calculate_receipt_root, merkle_root
from yuchain.types import NULL_HASH, Event, SignedTxn, WrCall


def test_codec_result():
    ev = Event(value=None)
    receipt = Receipt(events=[ev])
    decoded = Receipt.decode(receipt.encode())
    assert decoded.events[0] == ev


def test_full_round_trip():
    receipt = Receipt(
        tx_hash=b"\x01" * 32,
        caller=b"\x02" * 20,
        block_stage="ExecuteTxns",
        block_hash=b"\x03" * 32,
        height=12,
        tripod_name="asset",
        writing_name="Transfer",
        lei_cost=4,
        events=[Event(b"moved")],
        error="insufficient",
        extra=b"meta",
    )
    assert Receipt.decode(receipt.encode()) == receipt


def test_encoding_is_one_line_and_omits_empty():
    encoded = Receipt().encode()
    assert encoded.endswith(b"\n")
    doc = json.loads(encoded)
    assert "events" not in doc
    assert "error" not in doc
    assert "extra" not in doc
    assert doc["caller"] is None


def test_hash_is_sha256_of_encoding():
    receipt = Receipt(tripod_name="asset")
    assert receipt.hash() == hashlib.sha256(receipt.encode()).digest()


def test_from_result():
    assert Receipt.from_result([], ValueError("boom"), None).error == "boom"
    receipt = Receipt.from_result([Event(b"x")], None, b"e")
    assert receipt.error == ""
    assert receipt.events == [Event(b"x")]
    assert receipt.extra == b"e"


def test_fill_metadata():
    call = WrCall(tripod_name="asset", func_name="Transfer")
    stxn = SignedTxn.create(call, None, b"\x05" * 20, None)
    block = SimpleNamespace(hash=b"\x09" * 32, height=3)
    receipt = Receipt()
    receipt.fill_metadata(block, stxn, 7)
    assert receipt.tx_hash == stxn.txn_hash
    assert receipt.caller == b"\x05" * 20
    assert receipt.tripod_name == "asset"
    assert receipt.writing_name == "Transfer"
    assert receipt.block_hash == b"\x09" * 32
    assert receipt.height == 3
    assert receipt.lei_cost == 7


def test_decode_invalid():
    with pytest.raises(ValueError):
        Receipt.decode(b"garbage")


def test_str_mentions_fields():
    text = str(Receipt(tripod_name="asset", writing_name="Transfer"))
    assert text.startswith("Receipt:{ tx_hash: ")
    assert "tripod_name: asset" in text
    assert "writing_name: Transfer" in text


def test_merkle_root_edges():
    assert merkle_root([]) == NULL_HASH
    leaf = b"\x07" * 32
    assert merkle_root([leaf]) == leaf


def test_merkle_root_order_matters():
    a, b = b"\x01" * 32, b"\x02" * 32
    assert merkle_root([a, b]) != merkle_root([b, a])
    assert len(merkle_root([a, b, a])) == 32


def test_receipt_root_independent_of_insertion_order():
    r1 = Receipt(tripod_name="one")
    r2 = Receipt(tripod_name="two")
    k1, k2 = b"\x01" * 32, b"\x02" * 32
    assert calculate_receipt_root({k1: r1, k2: r2}) == calculate_receipt_root({k2: r2, k1: r1})
    assert calculate_receipt_root({}) == NULL_HASH