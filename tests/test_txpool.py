import pytest

from yuchain.txpool import (
    OrderedTxns,
    PoolOverflow,
    TxPool,
    TxnTooLarge,
    check,
    with_default_checks,
)
from yuchain.types import NodeType, SignedTxn, WrCall

CALLER1 = bytes([1] * 20)
CALLER2 = bytes([2] * 20)
PUBKEY = b"\x04" + bytes(64)


def _make(lei_price: int, caller: bytes, tripod: str = "asset") -> SignedTxn:
    return SignedTxn.create(
        WrCall(tripod_name=tripod, lei_price=lei_price), PUBKEY, caller, b"signature-bytes"
    )


@pytest.fixture
def txs():
    tx1 = _make(10, CALLER1)
    tx2 = _make(30, CALLER1)
    tx3 = _make(20, CALLER2)
    return tx1, tx2, tx3


def _pool(**overrides):
    params = {"node_type": NodeType.FULL, "capacity": 100, "txn_max_size": 1 << 20}
    params.update(overrides)
    return with_default_checks(**params)


class _Checker:
    def __init__(self, error=None):
        self.error = error
        self.seen = []

    def check_txn(self, stxn):
        self.seen.append(stxn)
        if self.error is not None:
            raise self.error


def test_ordered_sorted_by_lei_price(txs):
    tx1, tx2, tx3 = txs
    otxns = OrderedTxns()
    otxns.insert(tx1)
    otxns.insert(tx2)
    otxns.insert(tx3)
    otxns.sort_txns(lambda txns: sorted(txns, key=lambda t: t.lei_price(), reverse=True))
    assert otxns.gets(3, lambda txn: True) == [tx2, tx3, tx1]


def test_ordered_keeps_insertion_order(txs):
    tx1, tx2, tx3 = txs
    otxns = OrderedTxns()
    for tx in (tx3, tx1, tx2):
        otxns.insert(tx)
    assert otxns.get_all() == [tx3, tx1, tx2]
    assert otxns.size() == 3


def test_ordered_duplicate_insert_raises(txs):
    otxns = OrderedTxns()
    otxns.insert(txs[0])
    with pytest.raises(ValueError, match="duplicated"):
        otxns.insert(txs[0])
    assert otxns.size() == 1


def test_ordered_deletes(txs):
    tx1, tx2, tx3 = txs
    otxns = OrderedTxns()
    for tx in txs:
        otxns.insert(tx)
    otxns.deletes([tx1.txn_hash, tx3.txn_hash, bytes(32)])
    assert otxns.get_all() == [tx2]
    assert not otxns.exist(tx1.txn_hash)
    assert otxns.get(tx3.txn_hash) is None
    assert otxns.get(tx2.txn_hash) is tx2


def test_ordered_gets_limits_before_filtering(txs):
    otxns = OrderedTxns()
    for tx in txs:
        otxns.insert(tx)
    assert otxns.gets(2, lambda txn: txn.caller() == CALLER2) == []
    assert otxns.gets(10, lambda txn: txn.caller() == CALLER2) == [txs[2]]


def test_check_pool_size(txs):
    pool = _pool(capacity=1)
    pool.insert(txs[0])
    with pytest.raises(PoolOverflow):
        pool.base_check(txs[1])


def test_check_txn_size(txs):
    pool = _pool(txn_max_size=1)
    with pytest.raises(TxnTooLarge):
        pool.base_check(txs[0])


def test_pack_for(txs):
    pool = _pool()
    for tx in txs:
        pool.insert(tx)
    packed = pool.pack_for(3, lambda tx: tx.caller() == CALLER2)
    assert packed == [txs[2]]


def test_pack_uses_pack_filter(txs):
    pool = _pool()
    for tx in txs:
        pool.insert(tx)
    assert pool.pack(3) == list(txs)
    pool.set_pack_filter(lambda tx: tx.lei_price() >= 20)
    assert pool.pack(3) == [txs[1], txs[2]]


def test_light_node_keeps_nothing(txs):
    pool = _pool(node_type=NodeType.LIGHT)
    pool.insert(txs[0])
    assert pool.size() == 0
    assert not pool.exist(txs[0].txn_hash)


def test_reset_and_reset_by_hashes(txs):
    tx1, tx2, tx3 = txs
    pool = _pool()
    for tx in txs:
        pool.insert(tx)
    pool.reset([tx1])
    assert pool.get_all_txns() == [tx2, tx3]
    pool.reset_by_hashes([tx3.txn_hash])
    assert pool.get_all_txns() == [tx2]
    assert pool.get_txn(tx2.txn_hash) is tx2


def test_tripods_check_without_registration_raises(txs):
    pool = _pool()
    with pytest.raises(KeyError):
        pool.tripods_check(txs[0])


def test_check_txn_runs_tripod_check(txs):
    pool = _pool()
    pool.with_tripod_check("asset", _Checker(RuntimeError("denied")))
    with pytest.raises(RuntimeError, match="denied"):
        pool.check_txn(txs[0])


def test_necessary_check_ignores_pool_limit(txs):
    pool = _pool(capacity=1)
    pool.insert(txs[0])
    checker = _Checker()
    pool.with_tripod_check("asset", checker)
    pool.necessary_check(txs[1])
    assert checker.seen == [txs[1]]
    with pytest.raises(PoolOverflow):
        pool.check_txn(txs[1])


def test_with_base_check_appends(txs):
    checker = _Checker(ValueError("bad"))
    pool = TxPool(NodeType.FULL, 10, 1 << 20).with_base_check(checker)
    with pytest.raises(ValueError, match="bad"):
        pool.base_check(txs[0])
    assert checker.seen == [txs[0]]
    assert pool.capacity() == 10


def test_check_stops_at_first_failure(txs):
    calls = []

    def first(stxn):
        calls.append("first")
        raise PoolOverflow()

    def second(stxn):
        calls.append("second")

    with pytest.raises(PoolOverflow):
        check([first, second], txs[0])
    assert calls == ["first"]


def test_sort_txns_through_pool(txs):
    pool = _pool()
    for tx in txs:
        pool.insert(tx)
    pool.sort_txns(lambda txns: sorted(txns, key=lambda t: t.lei_price()))
    assert pool.get_all_txns() == [txs[0], txs[2], txs[1]]