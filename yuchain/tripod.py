"""Tripods, the units of chain logic, and bronzes, their shared helpers."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional

from yuchain.block import Block
from yuchain.land import Land
from yuchain.receipt import Receipt, calculate_receipt_root
from yuchain.types import NULL_HASH, SignedTxn, bytes_to_hash

logger = logging.getLogger(__name__)

EXECUTE_TXNS_STAGE = "Execute Txns"

# A writing changes state when a transaction calls it; a reading only queries.
Writing = Callable[[Any], None]
Reading = Callable[[Any], None]
# Serves one peer-to-peer request: request bytes in, response bytes out.
P2pHandler = Callable[[bytes], bytes]


def _expect(value: Any, kind: type, what: str) -> None:
    if not isinstance(value, kind):
        raise TypeError(
            f"{what} must be a {kind.__name__}, not {type(value).__name__}"
        )


class DefaultTxnChecker:
    """Accepts every well-formed transaction."""

    def check_txn(self, stxn: SignedTxn) -> None:
        _expect(stxn, SignedTxn, "stxn")


class DefaultBlockVerifier:
    """Accepts every well-formed block."""

    def verify_block(self, block: Block) -> None:
        _expect(block, Block, "block")


class DefaultInit:
    """Leaves the genesis block as it is."""

    def init_chain(self, block: Block) -> None:
        _expect(block, Block, "block")


class DefaultBlockCycle:
    """Leaves each block as it is at every stage of its cycle."""

    def start_block(self, block: Block) -> None:
        _expect(block, Block, "block")

    def end_block(self, block: Block) -> None:
        _expect(block, Block, "block")

    def finalize_block(self, block: Block) -> None:
        _expect(block, Block, "block")


class DefaultPreTxnHandler:
    """Lets every well-formed transaction through unchanged."""

    def pre_handle_txn(self, stxn: SignedTxn) -> None:
        _expect(stxn, SignedTxn, "stxn")


class DefaultCommitter:
    """Adds nothing to a block when it is committed."""

    def commit(self, block: Block) -> None:
        _expect(block, Block, "block")


def _derive_name(instance: Any) -> str:
    return type(instance).__name__.lower()


def _implements(obj: Any, *methods: str) -> bool:
    return all(callable(getattr(obj, method, None)) for method in methods)


class Bronze:
    """A helper shared by tripods; it has a name, a land and a chain environment."""

    def __init__(self, name: str = "") -> None:
        self._name = name
        self.chain_env: Any = None
        self.land: Optional[Land] = None
        self.instance: Any = None

    def name(self) -> str:
        return self._name

    def set_chain_env(self, env: Any) -> None:
        self.chain_env = env

    def set_land(self, land: Land) -> None:
        self.land = land

    def set_instance(self, instance: Any) -> None:
        """Attach the object this bronze serves; an unnamed bronze takes its class name."""
        if not self._name:
            self._name = _derive_name(instance)
        self.instance = instance


class Tripod:
    """Writings, readings, peer handlers and block hooks of one piece of chain logic.

    The chain environment is expected to offer ``state``, ``chain``, ``tx_db``
    and ``sub``.
    """

    def __init__(self, name: str = "") -> None:
        self._name = name
        self.chain_env: Any = None
        self.land: Optional[Land] = None

        self.block_verifier: Any = DefaultBlockVerifier()
        self.txn_checker: Any = DefaultTxnChecker()
        self.init: Any = DefaultInit()
        self.block_cycle: Any = DefaultBlockCycle()
        self.pre_txn_handler: Any = DefaultPreTxnHandler()
        self.committer: Any = DefaultCommitter()

        self.instance: Any = None
        self._writings: dict[str, Writing] = {}
        self._readings: dict[str, Reading] = {}
        self.p2p_handlers: dict[int, P2pHandler] = {}

    def name(self) -> str:
        return self._name

    def set_instance(self, instance: Any) -> None:
        """Attach the object this tripod serves and adopt the hooks it defines."""
        if not self._name:
            self._name = _derive_name(instance)

        if _implements(instance, "pre_handle_txn"):
            self.pre_txn_handler = instance
        if _implements(instance, "check_txn"):
            self.txn_checker = instance
        if _implements(instance, "start_block", "end_block", "finalize_block"):
            self.block_cycle = instance
        if _implements(instance, "commit"):
            self.committer = instance
        if _implements(instance, "verify_block"):
            self.block_verifier = instance
        if _implements(instance, "init_chain"):
            self.init = instance

        for name in self._writings:
            logger.info("register Writing (%s) into Tripod(%s)", name, self._name)
        for name in self._readings:
            logger.info("register Reading (%s) into Tripod(%s)", name, self._name)

        self.instance = instance

    def set_chain_env(self, env: Any) -> None:
        self.chain_env = env

    def set_land(self, land: Land) -> None:
        self.land = land

    @property
    def _env(self) -> Any:
        if self.chain_env is None:
            raise RuntimeError(f"tripod({self._name}) has no chain environment")
        return self.chain_env

    @property
    def _land(self) -> Land:
        if self.land is None:
            raise RuntimeError(f"tripod({self._name}) has no land")
        return self.land

    def set_writings(self, *args: Writing) -> None:
        for writing in args:
            self._writings[writing.__name__] = writing

    def set_readings(self, *args: Reading) -> None:
        for reading in args:
            self._readings[reading.__name__] = reading

    def set_p2p_handler(self, code: int, handler: P2pHandler) -> Tripod:
        self.p2p_handlers[code] = handler
        logger.info("register P2pHandler(%d) into Tripod(%s)", code, self._name)
        return self

    def exist_writing(self, name: str) -> bool:
        return name in self._writings

    def get_writing(self, name: str) -> Optional[Writing]:
        return self._writings.get(name)

    def get_writing_from_land(self, tripod_name: str, func_name: str) -> Writing:
        return self._land.get_writing(tripod_name, func_name)

    def get_reading(self, name: str) -> Optional[Reading]:
        return self._readings.get(name)

    def get_reading_from_land(self, tripod_name: str, func_name: str) -> Reading:
        return self._land.get_reading(tripod_name, func_name)

    def all_reading_names(self) -> list[str]:
        return list(self._readings)

    def all_writing_names(self) -> list[str]:
        return list(self._writings)

    def current_compact_block(self) -> Any:
        return self._env.chain.get_end_compact_block()

    def current_block(self) -> Any:
        return self._env.chain.get_end_block()

    def post_execute(self, block: Block, receipts: Mapping[bytes, Receipt]) -> None:
        """Run every committer, store the receipts, commit state and fill the roots."""
        for tripod in self._land:
            tripod.committer.commit(block)

        if receipts:
            self._env.tx_db.set_receipts(receipts)

        state_root = self._env.state.commit()

        # Committers may already have filled these.
        if block.state_root == NULL_HASH:
            block.state_root = bytes_to_hash(state_root or b"")
        if block.receipt_root == NULL_HASH:
            block.receipt_root = calculate_receipt_root(receipts)

    def handle_error(
        self, err: BaseException, ctx: Any, block: Block, stxn: SignedTxn
    ) -> Receipt:
        logger.error("push error: %s", err)
        receipt = Receipt.from_result(ctx.events, err, ctx.extra)
        self.handle_receipt(ctx, receipt, block, stxn)
        return receipt

    def handle_event(self, ctx: Any, block: Block, stxn: SignedTxn) -> Receipt:
        receipt = Receipt.from_result(ctx.events, None, ctx.extra)
        self.handle_receipt(ctx, receipt, block, stxn)
        return receipt

    def handle_receipt(
        self, ctx: Any, receipt: Receipt, block: Block, stxn: SignedTxn
    ) -> None:
        """Fill in the receipt's metadata and push it to subscribers."""
        receipt.fill_metadata(block, stxn, ctx.lei_cost)
        receipt.block_stage = EXECUTE_TXNS_STAGE
        sub = getattr(self._env, "sub", None)
        if sub is not None:
            sub.emit(receipt)

    def set(self, key: bytes, value: bytes) -> None:
        self._env.state.set(self, key, value)

    def get(self, key: bytes) -> Optional[bytes]:
        return self._env.state.get(self, key)

    def delete(self, key: bytes) -> None:
        self._env.state.delete(self, key)

    def get_finalized(self, key: bytes) -> Optional[bytes]:
        return self._env.state.get_finalized(self, key)

    def exist(self, key: bytes) -> bool:
        return self._env.state.exist(self, key)

    def get_by_block(self, key: bytes, block: Any) -> Optional[bytes]:
        return self._env.state.get_by_block(self, key, block)

    def next_txn(self) -> None:
        self._env.state.next_txn()

    def commit_state(self) -> bytes:
        """Commit the state and return its root as a 32-byte hash."""
        return bytes_to_hash(self._env.state.commit() or b"")

    def discard(self) -> None:
        self._env.state.discard()

    def discard_all(self) -> None:
        self._env.state.discard_all()