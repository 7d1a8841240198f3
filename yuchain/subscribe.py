"""Push receipts to subscribed clients from a background worker."""

from __future__ import annotations

import logging
import queue
import threading
from contextlib import suppress
from typing import Any, Optional

from yuchain.receipt import Receipt

logger = logging.getLogger(__name__)


class Subscription:
    """Fan receipts out to registered connections.

    A connection needs ``send(text)`` and ``close()``. If it offers
    ``set_close_handler(callback)``, closing it unregisters it.
    """

    def __init__(self, capacity: int = 10) -> None:
        self._subscribers: set[Any] = set()
        self._lock = threading.Lock()
        self._results: queue.Queue[Optional[Receipt]] = queue.Queue(maxsize=capacity)
        self._closed = False
        self._worker = threading.Thread(
            target=self._emit_to_clients, name="receipt-subscription", daemon=True
        )
        self._worker.start()

    def register(self, conn: Any) -> None:
        set_close_handler = getattr(conn, "set_close_handler", None)
        if callable(set_close_handler):
            set_close_handler(lambda *_: self.unregister(conn))
        with self._lock:
            self._subscribers.add(conn)

    def unregister(self, conn: Any) -> None:
        with self._lock:
            self._subscribers.discard(conn)

    def emit(self, receipt: Receipt) -> None:
        """Queue a receipt for delivery; blocks while the queue is full."""
        if self._closed:
            raise RuntimeError("subscription is closed")
        self._results.put(receipt)

    def close(self) -> None:
        """Deliver what is queued, then stop the worker."""
        if self._closed:
            return
        self._closed = True
        self._results.put(None)
        self._worker.join()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def __contains__(self, conn: object) -> bool:
        with self._lock:
            return conn in self._subscribers

    def _emit_to_clients(self) -> None:
        while True:
            receipt = self._results.get()
            if receipt is None:
                return
            try:
                message = receipt.encode().decode()
            except (TypeError, ValueError) as exc:
                logger.error("encode Receipt error: %s", exc)
                continue
            with self._lock:
                conns = list(self._subscribers)
            for conn in conns:
                try:
                    conn.send(message)
                except Exception as exc:
                    remote = getattr(conn, "remote_address", "unknown")
                    logger.error("emit receipt to client(%s) error: %s", remote, exc)
                    with suppress(Exception):
                        conn.close()
                    self.unregister(conn)