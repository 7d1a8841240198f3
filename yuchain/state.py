"""World state: per-transaction write stashes over a sparse Merkle tree."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Protocol, Union, runtime_checkable

from yuchain.types import NULL_HASH

logger = logging.getLogger(__name__)

SPMT_INDEX = "spmt-index"
NODES = "spmt-nodes"
VALUES = "spmt-values"

EMPTY_ROOT = bytes.fromhex("56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421")
PLACEHOLDER = bytes(32)

_LEAF_PREFIX = b"\x00"
_NODE_PREFIX = b"\x01"


def _digest(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


class MemoryKV:
    """A thread-safe in-memory key-value table."""

    def __init__(self) -> None:
        self._data: dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            return self._data.get(bytes(key))

    def set(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._data[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> None:
        with self._lock:
            self._data.pop(bytes(key), None)

    def exist(self, key: bytes) -> bool:
        with self._lock:
            return bytes(key) in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[bytes]:
        with self._lock:
            return iter(list(self._data))


class MemoryKvdb:
    """A set of named in-memory tables."""

    def __init__(self) -> None:
        self._tables: dict[str, MemoryKV] = {}
        self._lock = threading.Lock()

    def new(self, name: str) -> MemoryKV:
        """Return the table called ``name``, creating it on first use."""
        with self._lock:
            return self._tables.setdefault(name, MemoryKV())


class Ops(IntEnum):
    SET = 0
    DELETE = 1


def _bit(path: bytes, depth: int) -> int:
    return (path[depth // 8] >> (7 - depth % 8)) & 1


class SparseMerkleTree:
    """A SHA-256 sparse Merkle tree whose single-leaf subtrees collapse to the leaf.

    Nodes are kept in ``nodes`` by hash and values in ``values`` by key path,
    so a tree can be reopened from a root.
    """

    def __init__(self, nodes: Any, values: Any, root: Optional[bytes] = None) -> None:
        self._nodes = nodes
        self._values = values
        self._leaves: dict[bytes, bytes] = {}
        self._root: Optional[bytes] = None
        if root is not None and bytes(root) != PLACEHOLDER:
            self._load(bytes(root))
            self._root = bytes(root)

    def _load(self, root: bytes) -> None:
        pending = [root]
        while pending:
            node_hash = pending.pop()
            if node_hash == PLACEHOLDER:
                continue
            data = self._nodes.get(node_hash)
            if data is None:
                raise ValueError(f"unknown tree node {node_hash.hex()}")
            if data[:1] == _LEAF_PREFIX:
                self._leaves[data[1:33]] = data[33:65]
            else:
                pending.extend((data[1:33], data[33:65]))

    def get(self, key: bytes) -> Optional[bytes]:
        path = _digest(bytes(key))
        if path not in self._leaves:
            return None
        return self._values.get(path)

    def update(self, key: bytes, value: Optional[bytes]) -> None:
        """Set ``key``; an empty value deletes it."""
        if not value:
            self.delete(key)
            return
        path = _digest(bytes(key))
        self._values.set(path, bytes(value))
        self._leaves[path] = _digest(bytes(value))
        self._root = None

    def delete(self, key: bytes) -> None:
        """Remove ``key``; removing an absent key changes nothing."""
        path = _digest(bytes(key))
        if path not in self._leaves:
            return
        del self._leaves[path]
        self._values.delete(path)
        self._root = None

    def root(self) -> bytes:
        if self._root is None:
            self._root = self._build(sorted(self._leaves), 0)
        return self._root

    def _store(self, data: bytes) -> bytes:
        node_hash = _digest(data)
        self._nodes.set(node_hash, data)
        return node_hash

    def _build(self, paths: list[bytes], depth: int) -> bytes:
        if not paths:
            return PLACEHOLDER
        if len(paths) == 1:
            path = paths[0]
            return self._store(_LEAF_PREFIX + path + self._leaves[path])
        left = [path for path in paths if not _bit(path, depth)]
        right = [path for path in paths if _bit(path, depth)]
        left_hash = self._build(left, depth + 1)
        right_hash = self._build(right, depth + 1)
        return self._store(_NODE_PREFIX + left_hash + right_hash)


@dataclass
class _KvStash:
    op: Ops
    key: bytes
    value: Optional[bytes]


class TxnStashes:
    """Writes made by one transaction, in the order they were made."""

    def __init__(self) -> None:
        self._stashes: list[_KvStash] = []
        self._latest: dict[bytes, _KvStash] = {}

    def __len__(self) -> int:
        return len(self._stashes)

    def append(self, op: Ops, key: bytes, value: Optional[bytes]) -> None:
        stash = _KvStash(Ops(op), bytes(key), value)
        self._stashes.append(stash)
        self._latest[stash.key] = stash

    def get(self, key: bytes) -> tuple[Optional[Ops], Optional[bytes]]:
        """Return the latest operation on ``key`` and its value, or ``(None, None)``."""
        stash = self._latest.get(bytes(key))
        if stash is None:
            return None, None
        return stash.op, stash.value

    def apply(self, tree: SparseMerkleTree) -> None:
        for stash in self._stashes:
            if stash.op is Ops.SET:
                tree.update(stash.key, stash.value)
            elif stash.op is Ops.DELETE:
                tree.delete(stash.key)


def _tripod_name(tri_name: Any) -> str:
    return tri_name if isinstance(tri_name, str) else tri_name.name()


def make_key(tri_name: Union[str, Any], key: bytes) -> bytes:
    """Prefix ``key`` with the tripod's name."""
    return _tripod_name(tri_name).encode() + bytes(key)


def _block_key(block: Any) -> bytes:
    return NULL_HASH if block is None else bytes(block.hash)


@runtime_checkable
class IState(Protocol):
    """Key-value state scoped by tripod, staged per transaction."""

    def set(self, tri_name: Any, key: bytes, value: bytes) -> None:
        """Stage a write."""

    def delete(self, tri_name: Any, key: bytes) -> None:
        """Stage a deletion."""

    def get(self, tri_name: Any, key: bytes) -> Optional[bytes]:
        """Read through staged writes."""

    def get_finalized(self, tri_name: Any, key: bytes) -> Optional[bytes]:
        """Read as of the finalized block."""

    def exist(self, tri_name: Any, key: bytes) -> bool:
        """Tell whether a key has a value."""

    def get_by_block(self, tri_name: Any, key: bytes, block: Any) -> Optional[bytes]:
        """Read as of a block."""

    def commit(self) -> Optional[bytes]:
        """Apply staged writes and return the state root."""

    def next_txn(self) -> None:
        """Start staging a new transaction."""

    def discard(self) -> None:
        """Drop the last transaction's writes."""

    def discard_all(self) -> None:
        """Drop every staged write."""

    def start_block(self, block: Any) -> None:
        """Begin a new block."""

    def finalize_block(self, block: Any) -> None:
        """Record the finalized block."""


class NoStateDB:
    """A state that keeps no values.

    Keys are still checked, and block and transaction progress is tracked,
    but every read finds nothing and a commit has no root.
    """

    def __init__(self) -> None:
        self.prev_block: Any = None
        self.current_block: Any = None
        self.finalized_block: Any = None
        self.open_txns = 0

    @staticmethod
    def _checked_key(tri_name: Any, key: bytes) -> bytes:
        return make_key(tri_name, key)

    def set(self, tri_name: Any, key: bytes, value: bytes) -> None:
        self._checked_key(tri_name, key)

    def delete(self, tri_name: Any, key: bytes) -> None:
        self._checked_key(tri_name, key)

    def get(self, tri_name: Any, key: bytes) -> Optional[bytes]:
        return self.get_by_block(tri_name, key, self.prev_block)

    def get_finalized(self, tri_name: Any, key: bytes) -> Optional[bytes]:
        return self.get_by_block(tri_name, key, self.finalized_block)

    def exist(self, tri_name: Any, key: bytes) -> bool:
        return self.get(tri_name, key) is not None

    def get_by_block(self, tri_name: Any, key: bytes, block: Any) -> Optional[bytes]:
        self._checked_key(tri_name, key)
        return None

    def commit(self) -> Optional[bytes]:
        self.open_txns = 0
        return None

    def next_txn(self) -> None:
        self.open_txns += 1

    def discard(self) -> None:
        self.open_txns = max(self.open_txns - 1, 0)

    def discard_all(self) -> None:
        self.open_txns = 0

    def start_block(self, block: Any) -> None:
        self.prev_block = self.current_block
        self.current_block = block

    def finalize_block(self, block: Any) -> None:
        self.finalized_block = block


class SpmtKV:
    """State backed by a sparse Merkle tree, with a block-hash to root index."""

    def __init__(self, kvdb: Any, root: Optional[bytes] = None) -> None:
        self._index_db = kvdb.new(SPMT_INDEX)
        self._nodes_db = kvdb.new(NODES)
        self._values_db = kvdb.new(VALUES)
        self._tree = SparseMerkleTree(self._nodes_db, self._values_db, root)
        self.prev_block: Any = None
        self.current_block: Any = None
        self.finalized_block: Any = None
        self._stashes: list[TxnStashes] = []

    def next_txn(self) -> None:
        self._stashes.append(TxnStashes())

    def set(self, tri_name: Any, key: bytes, value: bytes) -> None:
        self._mute(Ops.SET, tri_name, key, value)

    def delete(self, tri_name: Any, key: bytes) -> None:
        self._mute(Ops.DELETE, tri_name, key, None)

    def _mute(self, op: Ops, tri_name: Any, key: bytes, value: Optional[bytes]) -> None:
        if not self._stashes:
            self._stashes.append(TxnStashes())
        self._stashes[-1].append(op, make_key(tri_name, key), value)

    def get(self, tri_name: Any, key: bytes) -> Optional[bytes]:
        full_key = make_key(tri_name, key)
        for stashes in reversed(self._stashes):
            op, value = stashes.get(full_key)
            if op is None:
                continue
            if op is Ops.DELETE:
                return None
            if value is not None:
                return value
        return self.get_by_block(tri_name, key, self.prev_block)

    def get_finalized(self, tri_name: Any, key: bytes) -> Optional[bytes]:
        return self.get_by_block(tri_name, key, self.finalized_block)

    def exist(self, tri_name: Any, key: bytes) -> bool:
        return self.get(tri_name, key) is not None

    def get_by_block(self, tri_name: Any, key: bytes, block: Any) -> Optional[bytes]:
        """Read committed state; the tree keeps only its latest version."""
        value = self._tree.get(make_key(tri_name, key))
        return value or None

    def commit(self) -> bytes:
        """Apply every staged transaction, record and return the state root."""
        start = time.perf_counter()
        try:
            try:
                for stashes in self._stashes:
                    stashes.apply(self._tree)
                state_root = self._tree.root()
                self._index_db.set(_block_key(self.current_block), state_root)
            except Exception:
                self.discard_all()
                raise
            self._stashes.clear()
            return state_root
        finally:
            logger.debug("state commit took %.6fs", time.perf_counter() - start)

    def discard(self) -> None:
        if self._stashes:
            self._stashes.pop()

    def discard_all(self) -> None:
        """Drop staged writes and point the current block at the previous root."""
        state_root = self._index_db.get(_block_key(self.prev_block))
        if state_root is None:
            self._index_db.delete(_block_key(self.current_block))
        else:
            self._index_db.set(_block_key(self.current_block), state_root)
        self._stashes.clear()

    def start_block(self, block: Any) -> None:
        self.prev_block = self.current_block
        self.current_block = block

    def finalize_block(self, block: Any) -> None:
        self.finalized_block = block


def new_state_db(typ: str, kvdb: Any) -> IState:
    """``"no"`` gives a state that keeps nothing; anything else a Merkle-tree state."""
    if typ == "no":
        return NoStateDB()
    return SpmtKV(kvdb)