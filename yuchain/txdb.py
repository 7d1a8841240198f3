"""Storage of transactions and their receipts in a key-value database."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from contextlib import contextmanager
from typing import Any, Iterator, Optional, TypeVar

from yuchain.receipt import Receipt
from yuchain.types import NodeType, SignedTxn

logger = logging.getLogger(__name__)

TXNS = "txns"
RESULTS = "results"
MAX_RETRIES = 5

_KV_SOURCE = "kv"
_TXN_TYPE = "txn"
_RECEIPT_TYPE = "receipt"
_SUCCESS = "success"
_ERROR = "err"

_T = TypeVar("_T")


def _read_with_retry(
    kv: Any, key: bytes, decode: Callable[[bytes], _T], what: str
) -> Optional[_T]:
    """Read and decode ``key``, reading again when the stored bytes fail to decode."""
    last_error: Optional[ValueError] = None
    for attempt in range(MAX_RETRIES):
        data = kv.get(key)
        if data is None:
            return None
        try:
            value = decode(data)
        except ValueError as exc:
            logger.debug(
                "%s(%s): decode failed on attempt %d, data: %r, error: %s",
                what, key.hex(), attempt, data, exc,
            )
            last_error = exc
            continue
        if attempt:
            logger.debug("%s(%s): succeeded after %d retries", what, key.hex(), attempt)
        return value
    assert last_error is not None
    raise last_error


class TxDB:
    """Transactions and receipts kept in two tables of a key-value database.

    ``counters`` counts operations by ``(kind, source, operation, status)``.
    """

    def __init__(self, node_type: NodeType | int, kvdb: Any) -> None:
        self.node_type = NodeType(node_type)
        self._txn_kv = kvdb.new(TXNS)
        self._receipt_kv = kvdb.new(RESULTS)
        self.counters: Counter[tuple[str, str, str, str]] = Counter()

    @property
    def _is_light(self) -> bool:
        return self.node_type is NodeType.LIGHT

    @contextmanager
    def _counted(self, kind: str, operation: str) -> Iterator[None]:
        try:
            yield
        except Exception:
            self.counters[(kind, _KV_SOURCE, operation, _ERROR)] += 1
            raise
        self.counters[(kind, _KV_SOURCE, operation, _SUCCESS)] += 1

    def get_txn(self, txn_hash: bytes) -> Optional[SignedTxn]:
        """Return the stored transaction, or ``None``; light nodes keep none."""
        if self._is_light:
            return None
        with self._counted(_TXN_TYPE, "getTxn"):
            return _read_with_retry(
                self._txn_kv, bytes(txn_hash), SignedTxn.decode, "TxDB.get_txn"
            )

    def get_txns(self, txn_hashes: Iterable[bytes]) -> list[SignedTxn]:
        """Return the stored transactions among ``txn_hashes``, in order."""
        if self._is_light:
            return []
        txns = []
        for txn_hash in txn_hashes:
            txn = self.get_txn(txn_hash)
            if txn is not None:
                txns.append(txn)
        return txns

    def exist_txn(self, txn_hash: bytes) -> bool:
        if self._is_light:
            return False
        return self._txn_kv.exist(bytes(txn_hash))

    def set_txns(self, txns: Iterable[SignedTxn]) -> None:
        if self._is_light:
            return
        with self._counted(_TXN_TYPE, "setTxns"):
            for txn in txns:
                self._txn_kv.set(bytes(txn.txn_hash), txn.encode())

    def set_receipts(self, receipts: Mapping[bytes, Receipt]) -> None:
        with self._counted(_RECEIPT_TYPE, "setReceipts"):
            for tx_hash, receipt in receipts.items():
                self._receipt_kv.set(bytes(tx_hash), receipt.encode())

    def set_receipt(self, tx_hash: bytes, receipt: Receipt) -> None:
        with self._counted(_RECEIPT_TYPE, "setReceipt"):
            self._receipt_kv.set(bytes(tx_hash), receipt.encode())

    def get_receipt(self, tx_hash: bytes) -> Optional[Receipt]:
        with self._counted(_RECEIPT_TYPE, "getReceipt"):
            return _read_with_retry(
                self._receipt_kv, bytes(tx_hash), Receipt.decode, "TxDB.get_receipt"
            )