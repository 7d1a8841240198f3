from types import SimpleNamespace

import pytest

from yuchain.block import Block, Header
from yuchain.land import Land, WritingNotFound
from yuchain.receipt import Receipt, calculate_receipt_root
from yuchain.state import MemoryKvdb, NoStateDB, SpmtKV
from yuchain.tripod import (
    EXECUTE_TXNS_STAGE,
    Bronze,
    DefaultBlockCycle,
    DefaultInit,
    Tripod,
)
from yuchain.txdb import TxDB
from yuchain.types import NULL_HASH, Event, NodeType, SignedTxn, WrCall


def transfer(ctx):
    return None


def create_account(ctx):
    return None


class Asset:
    def query_balance(self, ctx):
        return None


class FullHooks:
    def check_txn(self, stxn):
        return None

    def pre_handle_txn(self, stxn):
        return None

    def start_block(self, block):
        return None

    def end_block(self, block):
        return None

    def finalize_block(self, block):
        return None

    def commit(self, block):
        return None

    def verify_block(self, block):
        return None

    def init_chain(self, block):
        return None


class OnlyStart:
    def start_block(self, block):
        return None


class Recorder:
    def __init__(self):
        self.blocks = []

    def commit(self, block):
        self.blocks.append(block)


class Subscriber:
    def __init__(self):
        self.received = []

    def emit(self, receipt):
        self.received.append(receipt)


def make_env(state=None, sub=None):
    return SimpleNamespace(
        state=SpmtKV(MemoryKvdb()) if state is None else state,
        tx_db=TxDB(NodeType.FULL, MemoryKvdb()),
        sub=sub,
        chain=None,
    )


def make_txn():
    call = WrCall(tripod_name="asset", func_name="transfer")
    return SignedTxn.create(call, None, b"\x01" * 20, None)


def test_unnamed_tripod_takes_class_name():
    tripod = Tripod()
    asset = Asset()
    tripod.set_instance(asset)
    assert tripod.name() == "asset"
    assert tripod.instance is asset


def test_named_tripod_keeps_its_name():
    tripod = Tripod("custom")
    tripod.set_instance(Asset())
    assert tripod.name() == "custom"


def test_set_instance_adopts_defined_hooks():
    tripod = Tripod("full")
    hooks = FullHooks()
    tripod.set_instance(hooks)
    assert tripod.txn_checker is hooks
    assert tripod.pre_txn_handler is hooks
    assert tripod.block_cycle is hooks
    assert tripod.committer is hooks
    assert tripod.block_verifier is hooks
    assert tripod.init is hooks


def test_partial_block_cycle_is_not_adopted():
    tripod = Tripod("partial")
    only_start = OnlyStart()
    tripod.set_instance(only_start)
    assert tripod.instance is only_start
    assert tripod.name() == "partial"
    assert type(tripod.block_cycle) is DefaultBlockCycle
    assert type(tripod.init) is DefaultInit
    assert tripod.block_cycle.end_block(Block()) is None


def test_writings_and_readings_are_named_after_functions():
    tripod = Tripod("asset")
    asset = Asset()
    tripod.set_writings(transfer, create_account)
    tripod.set_readings(asset.query_balance)
    assert sorted(tripod.all_writing_names()) == ["create_account", "transfer"]
    assert tripod.all_reading_names() == ["query_balance"]
    assert tripod.get_writing("transfer") is transfer
    assert tripod.get_reading("query_balance") == asset.query_balance
    assert tripod.exist_writing("transfer")
    assert not tripod.exist_writing("missing")
    assert tripod.get_writing("missing") is None


def test_lookups_through_land():
    land = Land()
    tripod = Tripod("asset")
    tripod.set_writings(transfer)
    tripod.set_land(land)
    land.set_tripods(tripod)
    assert tripod.get_writing_from_land("asset", "transfer") is transfer
    with pytest.raises(WritingNotFound):
        tripod.get_reading_from_land("asset", "transfer")


def test_set_p2p_handler_chains_and_stores():
    tripod = Tripod("net")

    def handler(data):
        return data

    assert tripod.set_p2p_handler(3, handler) is tripod
    assert tripod.p2p_handlers == {3: handler}


def test_state_wrapper_scopes_keys_by_tripod():
    env = make_env()
    first, second = Tripod("a"), Tripod("b")
    first.set_chain_env(env)
    second.set_chain_env(env)
    first.set(b"k", b"v")
    assert first.get(b"k") == b"v"
    assert second.get(b"k") is None
    assert first.exist(b"k")
    assert not second.exist(b"k")


def test_commit_state_matches_state_root():
    state = SpmtKV(MemoryKvdb())
    tripod = Tripod("a")
    tripod.set_chain_env(make_env(state))
    tripod.set(b"k", b"v")
    root = tripod.commit_state()
    assert root == state.commit()
    assert tripod.get_by_block(b"k", None) == b"v"
    assert tripod.get_finalized(b"k") == b"v"


def test_discard_drops_last_transaction():
    tripod = Tripod("a")
    tripod.set_chain_env(make_env())
    tripod.set(b"k", b"v")
    tripod.next_txn()
    tripod.set(b"k", b"w")
    assert tripod.get(b"k") == b"w"
    tripod.discard()
    assert tripod.get(b"k") == b"v"


def test_delete_and_discard_all():
    tripod = Tripod("a")
    tripod.set_chain_env(make_env())
    tripod.set(b"k", b"v")
    tripod.commit_state()
    tripod.delete(b"k")
    assert tripod.get(b"k") is None
    tripod.discard_all()
    assert tripod.get(b"k") == b"v"


def test_commit_state_without_state_gives_null_hash():
    tripod = Tripod("a")
    tripod.set_chain_env(make_env(NoStateDB()))
    assert tripod.commit_state() == NULL_HASH


def test_state_access_without_env_raises():
    with pytest.raises(RuntimeError):
        Tripod("a").get(b"k")


def test_post_execute_commits_and_fills_roots():
    land = Land()
    env = make_env()
    first, second = Tripod("one"), Tripod("two")
    first_recorder, second_recorder = Recorder(), Recorder()
    first.set_instance(first_recorder)
    second.set_instance(second_recorder)
    for tripod in (first, second):
        tripod.set_land(land)
        tripod.set_chain_env(env)
    land.set_tripods(first, second)

    first.set(b"k", b"v")
    block = Block()
    receipt = Receipt(tx_hash=b"\x11" * 32, tripod_name="one")
    receipts = {receipt.tx_hash: receipt}

    first.post_execute(block, receipts)

    assert first_recorder.blocks == [block]
    assert second_recorder.blocks == [block]
    assert env.tx_db.get_receipt(receipt.tx_hash) == receipt
    reference = SpmtKV(MemoryKvdb())
    reference.set("one", b"k", b"v")
    assert block.state_root == reference.commit()
    assert block.receipt_root == calculate_receipt_root(receipts)


def test_post_execute_keeps_roots_set_by_committers():
    land = Land()
    env = make_env()
    tripod = Tripod("one")
    tripod.set_land(land)
    tripod.set_chain_env(env)
    land.set_tripods(tripod)
    state_root, receipt_root = b"\x22" * 32, b"\x33" * 32
    block = Block(header=Header(state_root=state_root, receipt_root=receipt_root))

    tripod.post_execute(block, {})

    assert block.state_root == state_root
    assert block.receipt_root == receipt_root
    assert sum(env.tx_db.counters.values()) == 0


def test_handle_event_fills_receipt_and_emits():
    sub = Subscriber()
    tripod = Tripod("asset")
    tripod.set_chain_env(make_env(sub=sub))
    ctx = SimpleNamespace(events=[Event(b"moved")], extra=b"note", lei_cost=7)
    block = Block(header=Header(hash=b"\x05" * 32, height=3))
    stxn = make_txn()

    receipt = tripod.handle_event(ctx, block, stxn)

    assert receipt.tx_hash == stxn.txn_hash
    assert receipt.block_hash == block.hash
    assert receipt.height == 3
    assert receipt.lei_cost == 7
    assert receipt.tripod_name == "asset"
    assert receipt.writing_name == "transfer"
    assert receipt.events == [Event(b"moved")]
    assert receipt.extra == b"note"
    assert receipt.error == ""
    assert receipt.block_stage == EXECUTE_TXNS_STAGE
    assert sub.received == [receipt]


def test_handle_error_records_message():
    tripod = Tripod("asset")
    tripod.set_chain_env(make_env())
    ctx = SimpleNamespace(events=[], extra=None, lei_cost=0)
    receipt = tripod.handle_error(ValueError("boom"), ctx, Block(), make_txn())
    assert receipt.error == "boom"
    assert receipt.block_stage == EXECUTE_TXNS_STAGE


def test_current_blocks_come_from_chain():
    block = Block()
    compact = block.compact()
    env = make_env()
    env.chain = SimpleNamespace(
        get_end_block=lambda: block, get_end_compact_block=lambda: compact
    )
    tripod = Tripod("a")
    tripod.set_chain_env(env)
    assert tripod.current_block() is block
    assert tripod.current_compact_block() is compact


def test_bronze_name_and_wiring():
    class Cache:
        pass

    bronze = Bronze()
    cache = Cache()
    land = Land()
    env = make_env()
    bronze.set_instance(cache)
    bronze.set_land(land)
    bronze.set_chain_env(env)
    assert bronze.name() == "cache"
    assert bronze.instance is cache
    assert bronze.land is land
    assert bronze.chain_env is env


def test_named_bronze_keeps_name():
    bronze = Bronze("shared")
    bronze.set_instance(object())
    assert bronze.name() == "shared"