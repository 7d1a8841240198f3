# yuchain

Building blocks for writing a modular blockchain in Python: transactions,
blocks, receipts, a staged key-value state over a sparse Merkle tree, a
transaction pool, transaction storage, and "tripods" — pluggable units of
chain logic that register writings, readings and block hooks.

## Installation

```
pip install yuchain
```

The only runtime dependency is `pycryptodome` (for Keccak-256).

## Modules

### `yuchain.types`

- `WrCall` — a call of a tripod's writing (`chain_id`, `tripod_name`,
  `func_name`, `params`, `lei_price`, `tips`); `bind_json_params()` parses
  `params` as JSON.
- `UnsignedTxn` and `SignedTxn` — transactions with JSON `encode()` /
  `decode()`. `SignedTxn.create(wr_call, pubkey, address, signature)` builds a
  transaction and sets `txn_hash` to the SHA-256 of its encoding. Helpers:
  `caller()`, `eth_format_caller()`, `tripod_name()`, `wr_name()`,
  `chain_id()`, `params()`, `tips()`, `lei_price()`, `params_is_json()`,
  `size()` (length of the encoding in bytes).
- `SignedTxns` — an immutable sequence of transactions with `hashes()`,
  `remove(txn_hash)` (returns the index and the remaining transactions, or
  `(-1, None)`), `encode()` and `decode()`.
- `Event`, `NodeType` (`FULL`, `LIGHT`), `ConvergeType`.
- `bytes_to_hash`, `bytes_to_address` (fit bytes to 32 / 20 bytes, keeping the
  tail or left-padding with zeros) and `keccak256`.
- `TxnChecker` and `ItxDB` protocols.

### `yuchain.receipt`

- `Receipt` — the outcome of a transaction. `Receipt.from_result(events, error,
  extra)`, `fill_metadata(block, stxn, lei_cost)`, JSON `encode()` / `decode()`
  and `hash()` (SHA-256 of the encoding).
- `merkle_root(hashes)` — binary SHA-256 Merkle root; odd levels repeat their
  last node, and no hashes give 32 zero bytes.
- `calculate_receipt_root(receipts)` — Merkle root of the receipt hashes, taken
  in order of transaction hash.

### `yuchain.block`

- `Header`, `Validator`, `Block` and `CompactBlock`. Blocks expose their
  header's fields as attributes (`block.height`, `block.state_root`, ...).
  `Block.compact()`, `Block.use_lei(lei)`, JSON `encode()` / `decode()`.
- `encode_blocks` / `decode_blocks`, `encode_compact_blocks` /
  `decode_compact_blocks`.
- `if_lei_out(lei, block)` and `make_txn_root(txns)`.
- `IBlockChain` — the protocol a block store is expected to follow.

### `yuchain.state`

- `MemoryKV` and `MemoryKvdb` — thread-safe in-memory tables;
  `MemoryKvdb.new(name)` returns the table of that name.
- `SparseMerkleTree` — a SHA-256 sparse Merkle tree over two tables (nodes and
  values) that can be reopened from a root.
- `SpmtKV` — state scoped by tripod: writes are staged per transaction
  (`next_txn()`, `discard()`, `discard_all()`) and applied by `commit()`, which
  returns the state root and records it for the current block.
- `NoStateDB` — a state that keeps no values.
- `new_state_db(typ, kvdb)` — `"no"` gives a `NoStateDB`, anything else a
  `SpmtKV`. `make_key(tri_name, key)` prefixes a key with the tripod's name.

A tripod name may be a string or any object with a `name()` method.

### `yuchain.txdb`

- `TxDB(node_type, kvdb)` — stores transactions and receipts in two tables of
  `kvdb`. Light nodes keep no transactions. `counters` counts operations by
  kind, operation and outcome.

### `yuchain.txpool`

- `TxPool` — unpacked transactions in insertion order with base checks and
  per-tripod checks (`with_base_check`, `with_tripod_check`), `insert`,
  `pack(num_limit)`, `pack_for(num_limit, filter)`, `sort_txns(fn)`, `reset`
  and `reset_by_hashes`.
- `with_default_checks(node_type, capacity, txn_max_size)` — a pool whose base
  checks refuse transactions when it is full (`PoolOverflow`) or when they are
  too large (`TxnTooLarge`).
- `OrderedTxns` — the ordered store behind the pool; inserting a duplicate
  raises `ValueError`. `tripods_check` raises `KeyError` when no check is
  registered for the transaction's tripod.

### `yuchain.tripod`, `yuchain.land`, `yuchain.inject`

- `Tripod` — holds writings, readings, p2p handlers and block hooks. Calling
  `set_instance(obj)` names an unnamed tripod after the object's class and
  adopts any hooks the object defines (`check_txn`, `pre_handle_txn`,
  `start_block`/`end_block`/`finalize_block`, `commit`, `verify_block`,
  `init_chain`). State wrappers (`set`, `get`, `delete`, `exist`,
  `commit_state`, ...) go through the chain environment's `state`.
  `post_execute(block, receipts)` runs every committer in the land, stores the
  receipts, commits the state and fills in the block's roots.
- `Bronze` — a named helper shared by tripods.
- `Land` — tripods by name and in registration order, and bronzes by name.
  Lookups raise `TripodNotFound`, `WritingNotFound`, `ReadingNotFound` or
  `BronzeNotFound`.
- `TripodRef` and `BronzeRef` — class attributes naming what to inject;
  `"name,omitempty"` makes a reference optional. `inject_to_tripod(obj)` and
  `inject_to_bronze(land, obj)` fill them from the land.

### `yuchain.subscribe`

- `Subscription` — a background worker that sends each emitted receipt, encoded
  as text, to every registered connection. A connection needs `send(text)` and
  `close()`; one that fails to send is closed and unregistered. `close()`
  delivers what is queued and stops the worker; the subscription is also a
  context manager.

## A short tour

```python
from yuchain.types import WrCall, SignedTxn
from yuchain.txpool import with_default_checks
from yuchain.state import MemoryKvdb, SpmtKV

call = WrCall(tripod_name="asset", func_name="Transfer", params='{"amount": 5}')
txn = SignedTxn.create(call, pubkey=b"\x04" + b"\x01" * 64, address=b"\x02" * 20, signature=b"")

pool = with_default_checks(node_type=0, capacity=1024, txn_max_size=1 << 20)
pool.insert(txn)
packed = pool.pack(10)

state = SpmtKV(MemoryKvdb())
state.set("asset", b"balance", b"100")
root = state.commit()
assert state.get("asset", b"balance") == b"100"
```

Injection between tripods:

```python
from yuchain.inject import TripodRef, inject_to_tripod
from yuchain.land import Land
from yuchain.tripod import Tripod

class Asset:
    def __init__(self):
        self.tripod = Tripod("asset")

class Exchange:
    asset = TripodRef("asset")

    def __init__(self):
        self.tripod = Tripod("exchange")

land = Land()
asset, exchange = Asset(), Exchange()
for obj in (asset, exchange):
    obj.tripod.set_land(land)
    obj.tripod.set_instance(obj)
land.set_tripods(asset.tripod, exchange.tripod)

inject_to_tripod(exchange)
assert exchange.asset is asset
```

## What it does not do

- There is no node: no command to start one, no consensus, no peer-to-peer
  networking, no HTTP or websocket server. `Subscription` pushes to connection
  objects you supply.
- There is no block store; `IBlockChain` only describes one.
- Storage is in memory only (`MemoryKvdb`); nothing is written to disk.
- `SpmtKV` keeps only the latest version of the tree, so `get_by_block` and
  `get_finalized` read the latest committed state whatever block is given.
- Encodings are JSON; signatures are carried but not verified.

## Running the tests

```
pip install yuchain[test]
pytest
```