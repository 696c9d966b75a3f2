from __future__ import annotations

import threading


class CancellationSignal:
    """Single-fire broadcast shared between the coordinator and its threads."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()

    def fire(self) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = "fired" if self.is_set() else "armed"
        return f"CancellationSignal({self.name!r}, {state})"


__all__ = ["CancellationSignal"]
