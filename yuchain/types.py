"""Calls, transactions, events and the interfaces shared by the chain's stores."""

from __future__ import annotations

import base64
import hashlib
import json
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

from Crypto.Hash import keccak

if TYPE_CHECKING:
    from yuchain.receipt import Receipt

HASH_LENGTH = 32
ADDRESS_LENGTH = 20
NULL_HASH = bytes(HASH_LENGTH)


class NodeType(IntEnum):
    """Kind of node; light nodes keep no transactions."""

    FULL = 0
    LIGHT = 1


class ConvergeType(IntEnum):
    """How a chain picks its canonical branch."""

    LONGEST = 0
    HEAVIEST = 1
    FINALIZE = 2


def _fit(data: bytes, length: int) -> bytes:
    data = bytes(data)
    if len(data) > length:
        return data[-length:]
    return data.rjust(length, b"\x00")


def bytes_to_hash(data: bytes) -> bytes:
    """Return a 32-byte hash: longer input keeps its tail, shorter is left-padded."""
    return _fit(data, HASH_LENGTH)


def bytes_to_address(data: bytes) -> bytes:
    """Return a 20-byte address: longer input keeps its tail, shorter is left-padded."""
    return _fit(data, ADDRESS_LENGTH)


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest of ``data``."""
    digest = keccak.new(digest_bits=256)
    digest.update(bytes(data))
    return digest.digest()


def _hex(data: Optional[bytes]) -> Optional[str]:
    return None if data is None else bytes(data).hex()


def _unhex(text: Optional[str]) -> Optional[bytes]:
    return None if text is None else bytes.fromhex(text)


def _load_json(data: bytes | str, what: str) -> Any:
    try:
        return json.loads(data)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"cannot decode {what}: {exc}") from exc


def _dump_json(doc: Any) -> bytes:
    return json.dumps(doc, sort_keys=True, separators=(",", ":")).encode()


@dataclass
class WrCall:
    """A call of a tripod's writing, as sent by a client."""

    chain_id: int = 0
    tripod_name: str = ""
    func_name: str = ""
    params: str = ""
    lei_price: int = 0
    tips: int = 0

    def bind_json_params(self) -> Any:
        """Parse the params as JSON."""
        return json.loads(self.params)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "tripod_name": self.tripod_name,
            "func_name": self.func_name,
            "params": self.params,
            "lei_price": self.lei_price,
            "tips": self.tips,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WrCall:
        return cls(
            chain_id=int(data.get("chain_id", 0)),
            tripod_name=str(data.get("tripod_name", "")),
            func_name=str(data.get("func_name", "")),
            params=str(data.get("params", "")),
            lei_price=int(data.get("lei_price", 0)),
            tips=int(data.get("tips", 0)),
        )


@dataclass
class Event:
    """A value emitted by a writing while it runs."""

    value: Optional[bytes] = None

    def to_dict(self) -> dict[str, Any]:
        encoded = None if self.value is None else base64.b64encode(self.value).decode()
        return {"value": encoded}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        encoded = data.get("value")
        return cls(value=None if encoded is None else base64.b64decode(encoded))


@dataclass
class UnsignedTxn:
    """The signed-over part of a transaction."""

    wr_call: WrCall
    timestamp: int = 0
    nonce: int = 0

    def bind_json_params(self) -> Any:
        return self.wr_call.bind_json_params()

    def to_dict(self) -> dict[str, Any]:
        return {"wr_call": self.wr_call.to_dict(), "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional[UnsignedTxn]:
        """Build from a mapping; a missing call gives ``None``."""
        if data is None or data.get("wr_call") is None:
            return None
        return cls(
            wr_call=WrCall.from_dict(data["wr_call"]),
            timestamp=int(data.get("timestamp", 0)),
        )

    def encode(self) -> bytes:
        return _dump_json(self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> Optional[UnsignedTxn]:
        doc = _load_json(data, "unsigned transaction")
        try:
            return cls.from_dict(doc)
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise ValueError(f"cannot decode unsigned transaction: {exc}") from exc


@dataclass
class SignedTxn:
    """A transaction with its hash, sender and signature."""

    raw: Optional[UnsignedTxn]
    txn_hash: bytes = NULL_HASH
    address: bytes = b""
    pubkey: Optional[bytes] = None
    signature: Optional[bytes] = None
    from_p2p: bool = False

    @classmethod
    def create(
        cls,
        wr_call: WrCall,
        pubkey: Optional[bytes],
        address: bytes,
        signature: Optional[bytes],
    ) -> SignedTxn:
        """Build a transaction and compute its hash."""
        txn = cls(raw=UnsignedTxn(wr_call), address=address, pubkey=pubkey, signature=signature)
        txn.txn_hash = txn.generate_hash()
        return txn

    def generate_hash(self) -> bytes:
        """SHA-256 of the current encoding."""
        return hashlib.sha256(self.encode()).digest()

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw": None if self.raw is None else self.raw.to_dict(),
            "txn_hash": bytes(self.txn_hash).hex(),
            "pubkey": _hex(self.pubkey),
            "signature": _hex(self.signature),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SignedTxn:
        return cls(
            raw=UnsignedTxn.from_dict(data.get("raw")),
            txn_hash=bytes_to_hash(bytes.fromhex(data.get("txn_hash", ""))),
            pubkey=_unhex(data.get("pubkey")),
            signature=_unhex(data.get("signature")),
        )

    def encode(self) -> bytes:
        return _dump_json(self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> SignedTxn:
        doc = _load_json(data, "signed transaction")
        try:
            return cls.from_dict(doc)
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise ValueError(f"cannot decode signed transaction: {exc}") from exc

    def size(self) -> int:
        """Size of the encoded transaction in bytes."""
        return len(self.encode())

    def caller(self) -> bytes:
        return bytes_to_address(self.address)

    def eth_format_caller(self) -> Optional[bytes]:
        """Address derived Ethereum-style from an uncompressed public key."""
        if self.pubkey is None:
            return None
        return bytes_to_address(keccak256(self.pubkey[1:])[12:])

    def tripod_name(self) -> str:
        return self.raw.wr_call.tripod_name

    def wr_name(self) -> str:
        return self.raw.wr_call.func_name

    def chain_id(self) -> int:
        return self.raw.wr_call.chain_id

    def params(self) -> str:
        return self.raw.wr_call.params

    def tips(self) -> int:
        return self.raw.wr_call.tips

    def lei_price(self) -> int:
        return self.raw.wr_call.lei_price

    def params_is_json(self) -> bool:
        try:
            json.loads(self.params())
        except ValueError:
            return False
        return True

    def bind_json_params(self) -> Any:
        return self.raw.bind_json_params()


class SignedTxns(Sequence):
    """An ordered, immutable collection of signed transactions."""

    def __init__(self, txns: Iterable[SignedTxn] = ()) -> None:
        self._txns = list(txns)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return SignedTxns(self._txns[index])
        return self._txns[index]

    def __len__(self) -> int:
        return len(self._txns)

    def __iter__(self) -> Iterator[SignedTxn]:
        return iter(self._txns)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SignedTxns):
            return self._txns == other._txns
        if isinstance(other, list):
            return self._txns == other
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"SignedTxns({self._txns!r})"

    def hashes(self) -> list[bytes]:
        return [txn.txn_hash for txn in self._txns]

    def remove(self, txn_hash: bytes) -> tuple[int, Optional[SignedTxns]]:
        """Return the index of the matching transaction and the rest, or ``(-1, None)``."""
        for index, txn in enumerate(self._txns):
            if txn.txn_hash == txn_hash:
                return index, SignedTxns(self._txns[:index] + self._txns[index + 1 :])
        return -1, None

    def encode(self) -> bytes:
        return _dump_json({"txns": [txn.to_dict() for txn in self._txns]})

    @classmethod
    def decode(cls, data: bytes) -> SignedTxns:
        doc = _load_json(data, "signed transactions")
        try:
            return cls(SignedTxn.from_dict(item) for item in doc.get("txns") or [])
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise ValueError(f"cannot decode signed transactions: {exc}") from exc


@runtime_checkable
class TxnChecker(Protocol):
    """Anything that can veto a transaction."""

    def check_txn(self, stxn: SignedTxn) -> None:
        """Raise if the transaction is not acceptable."""


@runtime_checkable
class ItxDB(Protocol):
    """Storage of transactions and their receipts."""

    def get_txn(self, txn_hash: bytes) -> Optional[SignedTxn]:
        """Return the stored transaction or ``None``."""

    def get_txns(self, txn_hashes: Iterable[bytes]) -> list[SignedTxn]:
        """Return the stored transactions among ``txn_hashes``."""

    def exist_txn(self, txn_hash: bytes) -> bool:
        """Tell whether the transaction is stored."""

    def set_txns(self, txns: Iterable[SignedTxn]) -> None:
        """Store the transactions."""

    def set_receipts(self, receipts: Mapping[bytes, Receipt]) -> None:
        """Store receipts keyed by transaction hash."""

    def get_receipt(self, tx_hash: bytes) -> Optional[Receipt]:
        """Return the stored receipt or ``None``."""

    def set_receipt(self, tx_hash: bytes, receipt: Receipt) -> None:
        """Store one receipt."""