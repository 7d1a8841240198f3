"""Receipts of executed transactions and their Merkle root."""

from __future__ import annotations

import base64
import hashlib
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from yuchain.types import NULL_HASH, Event, bytes_to_address, bytes_to_hash


def _to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def _from_hex(text: str) -> bytes:
    return bytes.fromhex(text[2:] if text.startswith(("0x", "0X")) else text)


@dataclass
class Receipt:
    """The outcome of one transaction: its events, error and metadata."""

    tx_hash: bytes = NULL_HASH
    caller: Optional[bytes] = None
    block_stage: str = ""
    block_hash: bytes = NULL_HASH
    height: int = 0
    tripod_name: str = ""
    writing_name: str = ""
    lei_cost: int = 0
    events: list[Event] = field(default_factory=list)
    error: str = ""
    extra: Optional[bytes] = None

    @classmethod
    def from_result(
        cls,
        events: Optional[Iterable[Event]],
        error: Optional[BaseException],
        extra: Optional[bytes],
    ) -> Receipt:
        return cls(
            events=list(events or []),
            error="" if error is None else str(error),
            extra=extra,
        )

    def fill_metadata(self, block: Any, stxn: Any, lei_cost: int) -> None:
        """Copy transaction and block details into the receipt."""
        wr_call = stxn.raw.wr_call
        self.tx_hash = stxn.txn_hash
        self.caller = stxn.caller()
        self.tripod_name = wr_call.tripod_name
        self.writing_name = wr_call.func_name
        self.block_hash = block.hash
        self.height = block.height
        self.lei_cost = lei_cost

    def encode(self) -> bytes:
        """JSON encoding, one line terminated by a newline."""
        doc: dict[str, Any] = {
            "tx_hash": _to_hex(self.tx_hash),
            "caller": None if self.caller is None else _to_hex(self.caller),
            "block_stage": self.block_stage,
            "block_hash": _to_hex(self.block_hash),
            "height": self.height,
            "tripod_name": self.tripod_name,
            "writing_name": self.writing_name,
            "lei_cost": self.lei_cost,
        }
        if self.events:
            doc["events"] = [event.to_dict() for event in self.events]
        if self.error:
            doc["error"] = self.error
        if self.extra:
            doc["extra"] = base64.b64encode(self.extra).decode()
        return (json.dumps(doc, separators=(",", ":")) + "\n").encode()

    @classmethod
    def decode(cls, data: bytes) -> Receipt:
        try:
            doc = json.loads(data)
            caller = doc.get("caller")
            extra = doc.get("extra")
            return cls(
                tx_hash=bytes_to_hash(_from_hex(doc.get("tx_hash", ""))),
                caller=None if caller is None else bytes_to_address(_from_hex(caller)),
                block_stage=doc.get("block_stage", ""),
                block_hash=bytes_to_hash(_from_hex(doc.get("block_hash", ""))),
                height=int(doc.get("height", 0)),
                tripod_name=doc.get("tripod_name", ""),
                writing_name=doc.get("writing_name", ""),
                lei_cost=int(doc.get("lei_cost", 0)),
                events=[Event.from_dict(item) for item in doc.get("events") or []],
                error=doc.get("error", ""),
                extra=None if extra is None else base64.b64decode(extra),
            )
        except (ValueError, TypeError, AttributeError, KeyError) as exc:
            raise ValueError(f"cannot decode receipt: {exc}") from exc

    def hash(self) -> bytes:
        return hashlib.sha256(self.encode()).digest()

    def __str__(self) -> str:
        caller = "<nil>" if self.caller is None else _to_hex(self.caller)
        extra = (self.extra or b"").decode(errors="replace")
        return (
            f"Receipt:{{ tx_hash: {_to_hex(self.tx_hash)}, caller: {caller}, "
            f"block_stage: {self.block_stage}, block_hash: {_to_hex(self.block_hash)}, "
            f"Height: {self.height}, tripod_name: {self.tripod_name}, "
            f"writing_name: {self.writing_name}, lei_cost: {self.lei_cost}, "
            f"events: {self.events}, error: {self.error}, extra: {extra} }}"
        )


def merkle_root(hashes: Iterable[bytes]) -> bytes:
    """Root of a binary SHA-256 Merkle tree; odd levels repeat their last node."""
    level = list(hashes)
    if not level:
        return NULL_HASH
    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        level = [
            hashlib.sha256(left + right).digest()
            for left, right in zip(level[::2], level[1::2])
        ]
    return level[0]


def calculate_receipt_root(receipts: Mapping[bytes, Receipt]) -> bytes:
    """Merkle root of the receipts, taken in order of transaction hash."""
    return merkle_root(receipts[tx_hash].hash() for tx_hash in sorted(receipts))