from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar


T = TypeVar("T")

DEFAULT_MAX_POOL_SIZE = 1000


class NodePool(Generic[T]):
    """Bounded free list of reusable render objects.

    Objects are reset (via their ``reset()`` method, when they have one)
    on release, so an acquired object is always indistinguishable from a
    fresh factory product.
    """

    def __init__(self, factory: Callable[[], T], max_size: int = DEFAULT_MAX_POOL_SIZE):
        self._factory = factory
        self.max_size = max_size
        self._free: list[T] = []
        self._free_ids: set[int] = set()
        self._lock = threading.Lock()
        self._created = 0
        self._reused = 0

    def acquire(self) -> T:
        with self._lock:
            if self._free:
                self._reused += 1
                obj = self._free.pop()
                self._free_ids.discard(id(obj))
                return obj
            self._created += 1
        return self._factory()

    def release(self, obj: T) -> None:
        """Return obj to the free list. Releasing an object that is
        already free is a no-op."""
        with self._lock:
            if id(obj) in self._free_ids:
                return
            reset = getattr(obj, "reset", None)
            if callable(reset):
                reset()
            if len(self._free) < self.max_size:
                self._free.append(obj)
                self._free_ids.add(id(obj))

    def stats(self) -> dict:
        with self._lock:
            total = self._created + self._reused
            return {
                "created": self._created,
                "reused": self._reused,
                "poolSize": len(self._free),
                "reuseRate": (self._reused / total * 100.0) if total else 0.0,
            }

    def clear(self) -> None:
        with self._lock:
            self._free.clear()
            self._free_ids.clear()
            self._created = 0
            self._reused = 0
