"""Transactions, blocks, receipts, staged Merkle state, a transaction pool and tripods."""

__version__ = "0.1.0"

__all__ = [
    "block",
    "inject",
    "land",
    "receipt",
    "state",
    "subscribe",
    "tripod",
    "txdb",
    "txpool",
    "types",
]