"""Blocks, their headers and the interface of a block chain store."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Protocol, runtime_checkable

from yuchain.receipt import merkle_root
from yuchain.types import (
    NULL_HASH,
    ConvergeType,
    ItxDB,
    SignedTxn,
    SignedTxns,
    bytes_to_hash,
)

_DECODE_ERRORS = (KeyError, TypeError, AttributeError, ValueError)


def _hex(data: Optional[bytes]) -> Optional[str]:
    return None if data is None else bytes(data).hex()


def _unhex(text: Optional[str]) -> Optional[bytes]:
    return None if text is None else bytes.fromhex(text)


def _hash_from(data: Mapping[str, Any], key: str) -> bytes:
    return bytes_to_hash(bytes.fromhex(data.get(key) or ""))


def _dump_json(doc: Any) -> bytes:
    return json.dumps(doc, sort_keys=True, separators=(",", ":")).encode()


def _load_json(data: bytes | str, what: str) -> Any:
    try:
        return json.loads(data)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"cannot decode {what}: {exc}") from exc


@dataclass
class Validator:
    """A validator and its weights in proposing and voting."""

    pubkey: Optional[bytes] = None
    propose_weight: int = 0
    vote_weight: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "pubkey": _hex(self.pubkey),
            "propose_weight": self.propose_weight,
            "vote_weight": self.vote_weight,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Validator:
        return cls(
            pubkey=_unhex(data.get("pubkey")),
            propose_weight=int(data.get("propose_weight", 0)),
            vote_weight=int(data.get("vote_weight", 0)),
        )


@dataclass
class Header:
    """Everything about a block except its transactions."""

    chain_id: int = 0
    prev_hash: bytes = NULL_HASH
    hash: bytes = NULL_HASH
    height: int = 0
    txn_root: bytes = NULL_HASH
    state_root: bytes = NULL_HASH
    receipt_root: bytes = NULL_HASH
    timestamp: int = 0
    peer_id: str = ""
    extra: Optional[bytes] = None
    lei_limit: int = 0
    lei_used: int = 0
    miner_pubkey: Optional[bytes] = None
    miner_signature: Optional[bytes] = None
    validators: list[Validator] = field(default_factory=list)
    proof_block_hash: bytes = NULL_HASH
    proof_height: int = 0
    proof: Optional[bytes] = None
    nonce: int = 0
    difficulty: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "prev_hash": bytes(self.prev_hash).hex(),
            "hash": bytes(self.hash).hex(),
            "height": self.height,
            "txn_root": bytes(self.txn_root).hex(),
            "state_root": bytes(self.state_root).hex(),
            "receipt_root": bytes(self.receipt_root).hex(),
            "timestamp": self.timestamp,
            "peer_id": self.peer_id,
            "extra": _hex(self.extra),
            "lei_limit": self.lei_limit,
            "lei_used": self.lei_used,
            "miner_pubkey": _hex(self.miner_pubkey),
            "miner_signature": _hex(self.miner_signature),
            "validators": [validator.to_dict() for validator in self.validators],
            "proof_block_hash": bytes(self.proof_block_hash).hex(),
            "proof_height": self.proof_height,
            "proof": _hex(self.proof),
            "nonce": self.nonce,
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Header:
        return cls(
            chain_id=int(data.get("chain_id", 0)),
            prev_hash=_hash_from(data, "prev_hash"),
            hash=_hash_from(data, "hash"),
            height=int(data.get("height", 0)),
            txn_root=_hash_from(data, "txn_root"),
            state_root=_hash_from(data, "state_root"),
            receipt_root=_hash_from(data, "receipt_root"),
            timestamp=int(data.get("timestamp", 0)),
            peer_id=str(data.get("peer_id") or ""),
            extra=_unhex(data.get("extra")),
            lei_limit=int(data.get("lei_limit", 0)),
            lei_used=int(data.get("lei_used", 0)),
            miner_pubkey=_unhex(data.get("miner_pubkey")),
            miner_signature=_unhex(data.get("miner_signature")),
            validators=[Validator.from_dict(item) for item in data.get("validators") or []],
            proof_block_hash=_hash_from(data, "proof_block_hash"),
            proof_height=int(data.get("proof_height", 0)),
            proof=_unhex(data.get("proof")),
            nonce=int(data.get("nonce", 0)),
            difficulty=int(data.get("difficulty", 0)),
        )


class _HeaderView:
    """Exposes the fields of ``self.header`` as attributes of the owner."""

    header: Header


def _header_property(name: str) -> property:
    def getter(self: _HeaderView) -> Any:
        return getattr(self.header, name)

    def setter(self: _HeaderView, value: Any) -> None:
        setattr(self.header, name, value)

    return property(getter, setter, doc=f"The header's ``{name}``.")


for _field in fields(Header):
    setattr(_HeaderView, _field.name, _header_property(_field.name))


@dataclass
class CompactBlock(_HeaderView):
    """A header with the hashes of its transactions."""

    header: Header = field(default_factory=Header)
    txns_hashes: list[bytes] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": self.header.to_dict(),
            "txns_hashes": [bytes(txn_hash).hex() for txn_hash in self.txns_hashes],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompactBlock:
        return cls(
            header=Header.from_dict(data.get("header") or {}),
            txns_hashes=[
                bytes_to_hash(bytes.fromhex(item)) for item in data.get("txns_hashes") or []
            ],
        )

    def encode(self) -> bytes:
        return _dump_json(self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> CompactBlock:
        doc = _load_json(data, "compact block")
        try:
            return cls.from_dict(doc)
        except _DECODE_ERRORS as exc:
            raise ValueError(f"cannot decode compact block: {exc}") from exc


@dataclass
class Block(_HeaderView):
    """A header with its full transactions."""

    header: Header = field(default_factory=Header)
    txns: SignedTxns = field(default_factory=SignedTxns)

    def compact(self) -> CompactBlock:
        """A compact view sharing this block's header."""
        return CompactBlock(header=self.header, txns_hashes=self.txns.hashes())

    def use_lei(self, lei: int) -> None:
        self.header.lei_used += lei

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": self.header.to_dict(),
            "txns": [txn.to_dict() for txn in self.txns],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Block:
        return cls(
            header=Header.from_dict(data.get("header") or {}),
            txns=SignedTxns(SignedTxn.from_dict(item) for item in data.get("txns") or []),
        )

    def encode(self) -> bytes:
        return _dump_json(self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> Block:
        doc = _load_json(data, "block")
        try:
            return cls.from_dict(doc)
        except _DECODE_ERRORS as exc:
            raise ValueError(f"cannot decode block: {exc}") from exc


def encode_blocks(blocks: Iterable[Block]) -> bytes:
    return _dump_json({"blocks": [block.to_dict() for block in blocks]})


def decode_blocks(data: bytes) -> list[Block]:
    doc = _load_json(data, "blocks")
    try:
        return [Block.from_dict(item) for item in doc.get("blocks") or []]
    except _DECODE_ERRORS as exc:
        raise ValueError(f"cannot decode blocks: {exc}") from exc


def encode_compact_blocks(blocks: Iterable[CompactBlock]) -> bytes:
    return _dump_json({"blocks": [block.to_dict() for block in blocks]})


def decode_compact_blocks(data: bytes) -> list[CompactBlock]:
    doc = _load_json(data, "compact blocks")
    try:
        return [CompactBlock.from_dict(item) for item in doc.get("blocks") or []]
    except _DECODE_ERRORS as exc:
        raise ValueError(f"cannot decode compact blocks: {exc}") from exc


def if_lei_out(lei: int, block: Block) -> bool:
    """Tell whether spending ``lei`` more would exceed the block's limit."""
    return lei + block.lei_used > block.lei_limit


def make_txn_root(txns: Iterable[SignedTxn]) -> bytes:
    """Merkle root of the transaction hashes, in order."""
    return merkle_root(txn.txn_hash for txn in txns)


@runtime_checkable
class IBlockChain(ItxDB, Protocol):
    """A store of blocks that also keeps transactions and receipts."""

    def converge_type(self) -> ConvergeType:
        """How the chain picks its canonical branch."""

    def chain_id(self) -> int:
        """Identifier of the chain."""

    def new_empty_block(self) -> Block:
        """A fresh block with nothing in it."""

    def get_genesis(self) -> Optional[Block]:
        """The first block."""

    def set_genesis(self, block: Block) -> None:
        """Store the first block."""

    def append_block(self, block: Block) -> None:
        """Add a block to the chain."""

    def get_compact_block(self, block_hash: bytes) -> Optional[CompactBlock]:
        """Compact block with the given hash."""

    def get_block(self, block_hash: bytes) -> Optional[Block]:
        """Block with the given hash."""

    def get_compact_block_by_height(self, height: int) -> Optional[CompactBlock]:
        """Canonical compact block at a height."""

    def get_finalized_compact_block_by_height(self, height: int) -> Optional[CompactBlock]:
        """Finalized compact block at a height."""

    def get_block_by_height(self, height: int) -> Optional[Block]:
        """Canonical block at a height."""

    def get_finalized_block_by_height(self, height: int) -> Optional[Block]:
        """Finalized block at a height."""

    def get_all_compact_blocks_by_height(self, height: int) -> list[CompactBlock]:
        """Every compact block at a height."""

    def get_all_blocks_by_height(self, height: int) -> list[Block]:
        """Every block at a height."""

    def exists_block(self, block_hash: bytes) -> bool:
        """Tell whether a block is stored."""

    def update_block(self, block: Block) -> None:
        """Replace a stored block, found by hash."""

    def update_block_by_height(self, block: Block) -> None:
        """Replace a stored block, found by height."""

    def children(self, prev_block_hash: bytes) -> list[Block]:
        """Blocks whose parent has the given hash."""

    def children_compact(self, prev_block_hash: bytes) -> list[CompactBlock]:
        """Compact blocks whose parent has the given hash."""

    def finalize(self, block: Block) -> None:
        """Mark a block finalized."""

    def last_finalized(self) -> Optional[Block]:
        """The latest finalized block."""

    def last_finalized_compact(self) -> Optional[CompactBlock]:
        """The latest finalized compact block."""

    def get_end_compact_block(self) -> Optional[CompactBlock]:
        """The compact block at the end of the chain."""

    def get_end_block(self) -> Optional[Block]:
        """The block at the end of the chain."""

    def get_all_compact_blocks(self) -> list[CompactBlock]:
        """Every stored compact block."""

    def get_range_blocks(self, start_height: int, end_height: int) -> Sequence[Block]:
        """Blocks between two heights."""