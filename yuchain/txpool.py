"""The pool of transactions waiting to be packed into blocks."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import Optional

from yuchain.types import NodeType, SignedTxn, TxnChecker

logger = logging.getLogger(__name__)

TxnCheckFn = Callable[[SignedTxn], None]
TxnFilter = Callable[[SignedTxn], bool]


class TxPoolError(Exception):
    """A transaction was refused by the pool."""


class PoolOverflow(TxPoolError):
    """The pool is full."""

    def __init__(self, message: str = "pool size is full") -> None:
        super().__init__(message)


class TxnTooLarge(TxPoolError):
    """The transaction is larger than the pool accepts."""

    def __init__(self, message: str = "the size of txn is too large") -> None:
        super().__init__(message)


class OrderedTxns:
    """Unpacked transactions kept in insertion order, indexed by hash."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._txns: list[SignedTxn] = []
        self._index: dict[bytes, SignedTxn] = {}

    def insert(self, txn: SignedTxn) -> None:
        """Add a transaction; raise ``ValueError`` if it is already here."""
        with self._lock:
            if txn.txn_hash in self._index:
                raise ValueError(f"insert txn {txn.txn_hash.hex()} duplicated")
            self._index[txn.txn_hash] = txn
            self._txns.append(txn)

    def deletes(self, txn_hashes: Iterable[bytes]) -> None:
        doomed = set(txn_hashes)
        with self._lock:
            for txn_hash in doomed:
                self._index.pop(txn_hash, None)
            self._txns = [txn for txn in self._txns if txn.txn_hash not in doomed]

    def exist(self, txn_hash: bytes) -> bool:
        with self._lock:
            return txn_hash in self._index

    def get(self, txn_hash: bytes) -> Optional[SignedTxn]:
        with self._lock:
            return self._index.get(txn_hash)

    def get_all(self) -> list[SignedTxn]:
        with self._lock:
            return list(self._txns)

    def gets(self, num_limit: int, filter: TxnFilter) -> list[SignedTxn]:
        """Of the first ``num_limit`` transactions, those that pass ``filter``."""
        with self._lock:
            chosen = []
            for txn in self._txns[: max(num_limit, 0)]:
                if filter(txn):
                    logger.debug("pack txn(%s) from txpool", txn.txn_hash.hex())
                    chosen.append(txn)
            return chosen

    def sort_txns(self, fn: Callable[[list[SignedTxn]], Sequence[SignedTxn]]) -> None:
        """Replace the order with what ``fn`` returns for the current list."""
        with self._lock:
            self._txns = list(fn(list(self._txns)))

    def size(self) -> int:
        with self._lock:
            return len(self._txns)

    def __len__(self) -> int:
        return self.size()


def check(checks: Iterable[TxnCheckFn], stxn: SignedTxn) -> None:
    """Run the checks in order; the first one that raises stops the rest."""
    for run_check in checks:
        run_check(stxn)


class TxPool:
    """Unpacked transactions with base checks and per-tripod checks."""

    def __init__(self, node_type: NodeType | int, capacity: int, txn_max_size: int) -> None:
        self.node_type = NodeType(node_type)
        self._capacity = capacity
        self.txn_max_size = txn_max_size
        self._unpacked = OrderedTxns()
        self._base_checks: list[TxnCheckFn] = []
        self._tripod_checks: dict[str, TxnCheckFn] = {}
        self._filter: TxnFilter = lambda txn: True

    def _with_default_base_checks(self) -> TxPool:
        self._base_checks = [self._check_pool_limit, self._check_txn_size]
        return self

    def set_pack_filter(self, fn: TxnFilter) -> None:
        self._filter = fn

    def capacity(self) -> int:
        return self._capacity

    def size(self) -> int:
        return self._unpacked.size()

    def __len__(self) -> int:
        return self.size()

    def with_base_check(self, checker: TxnChecker) -> TxPool:
        self._base_checks.append(checker.check_txn)
        return self

    def with_tripod_check(self, tripod_name: str, checker: TxnChecker) -> TxPool:
        self._tripod_checks[tripod_name] = checker.check_txn
        return self

    def exist(self, txn_hash: bytes) -> bool:
        return self._unpacked.exist(txn_hash)

    def check_txn(self, stxn: SignedTxn) -> None:
        self.base_check(stxn)
        self.tripods_check(stxn)

    def insert(self, stxn: SignedTxn) -> None:
        """Add a transaction; light nodes keep nothing."""
        if self.node_type is NodeType.LIGHT:
            return
        self._unpacked.insert(stxn)

    def sort_txns(self, fn: Callable[[list[SignedTxn]], Sequence[SignedTxn]]) -> None:
        self._unpacked.sort_txns(fn)

    def get_txn(self, txn_hash: bytes) -> Optional[SignedTxn]:
        return self._unpacked.get(txn_hash)

    def get_all_txns(self) -> list[SignedTxn]:
        return self._unpacked.get_all()

    def pack(self, num_limit: int) -> list[SignedTxn]:
        """Pick transactions with the pool's own filter."""
        return self._unpacked.gets(num_limit, self._filter)

    def pack_for(self, num_limit: int, filter: TxnFilter) -> list[SignedTxn]:
        return self._unpacked.gets(num_limit, filter)

    def reset(self, txns: Iterable[SignedTxn]) -> None:
        """Drop packed transactions."""
        self._unpacked.deletes(txn.txn_hash for txn in txns)

    def reset_by_hashes(self, hashes: Iterable[bytes]) -> None:
        self._unpacked.deletes(hashes)

    def base_check(self, stxn: SignedTxn) -> None:
        check(self._base_checks, stxn)

    def tripods_check(self, stxn: SignedTxn) -> None:
        """Run the check registered for the transaction's tripod."""
        tripod_name = stxn.tripod_name()
        try:
            tripod_check = self._tripod_checks[tripod_name]
        except KeyError:
            raise KeyError(f"no txn check registered for tripod {tripod_name!r}") from None
        tripod_check(stxn)

    def necessary_check(self, stxn: SignedTxn) -> None:
        """The checks for synced transactions: size and tripod check only."""
        self._check_txn_size(stxn)
        self.tripods_check(stxn)

    def _check_pool_limit(self, stxn: SignedTxn) -> None:
        if self._unpacked.size() >= self._capacity:
            raise PoolOverflow()

    def _check_txn_size(self, stxn: SignedTxn) -> None:
        if stxn.size() > self.txn_max_size:
            raise TxnTooLarge()


def with_default_checks(node_type: NodeType | int, capacity: int, txn_max_size: int) -> TxPool:
    """A pool that checks its capacity and the size of each transaction."""
    return TxPool(node_type, capacity, txn_max_size)._with_default_base_checks()