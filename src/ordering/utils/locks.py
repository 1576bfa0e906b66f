"""In-process locks for stock rows and orders.

Request handlers and job workers in the same process serialise their units of
work on the rows they touch: ``stock:<store>:<product>`` for inventory rows and
``order:<id>`` for orders. Keys hash onto a fixed set of stripes and stripes are
always acquired in ascending order, so two callers locking overlapping key sets
can never deadlock.

Across processes the database is the arbiter: Protean's aggregate versioning
rejects a write based on a stale read.
"""

import threading
import zlib
from collections.abc import Iterable, Iterator
from contextlib import contextmanager


def stock_key(store_id, product_id) -> str:
    return f"stock:{store_id}:{product_id}"


def order_key(order_id) -> str:
    return f"order:{order_id}"


class KeyedLocks:
    def __init__(self, stripes: int = 256) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._locks = [threading.RLock() for _ in range(stripes)]

    def _stripe(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % len(self._locks)

    def stripes_for(self, keys: Iterable[str]) -> list[int]:
        """Distinct stripe indexes covering ``keys``, in acquisition order."""
        return sorted({self._stripe(key) for key in keys})

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[None]:
        acquired = []
        try:
            for index in self.stripes_for(keys):
                self._locks[index].acquire()
                acquired.append(index)
            yield
        finally:
            for index in reversed(acquired):
                self._locks[index].release()


_locks = KeyedLocks()


def get_locks() -> KeyedLocks:
    """Process-wide lock table shared by checkout and fulfillment."""
    return _locks
