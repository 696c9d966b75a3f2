from __future__ import annotations

import collections
import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class BufferClosed(Exception):
    """Raised by a blocking pop once the buffer has been closed."""


class BoundedQueue(Generic[T]):
    """
    Fixed-capacity FIFO between the document producer and the insert workers.

    push blocks while the buffer is full and pop blocks while it is empty.
    Neither has a timeout; closing the buffer is the only way to release a
    blocked caller.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("BoundedQueue capacity must be >= 1")
        self._capacity = capacity
        self._items: collections.deque[T] = collections.deque()
        self._lock = threading.Lock()
        self._not_full = threading.Condition(self._lock)
        self._not_empty = threading.Condition(self._lock)
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def push(self, item: T) -> bool:
        with self._not_full:
            self._not_full.wait_for(
                lambda: self._closed or len(self._items) < self._capacity
            )
            if self._closed:
                return False
            self._items.append(item)
            self._not_empty.notify()
            return True

    def pop(self) -> T:
        with self._not_empty:
            self._not_empty.wait_for(lambda: self._closed or bool(self._items))
            if self._closed:
                raise BufferClosed("buffer closed while waiting for a payload")
            item = self._items.popleft()
            self._not_full.notify()
            return item

    def try_pop(self) -> T | None:
        with self._lock:
            if self._closed or not self._items:
                return None
            item = self._items.popleft()
            self._not_full.notify()
            return item

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._not_full.notify_all()
            self._not_empty.notify_all()


__all__ = ["BoundedQueue", "BufferClosed"]
