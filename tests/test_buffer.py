"""
Tests for the bounded buffer between producer and insert workers.
"""

import threading
import time

import pytest

from mongo_harness.buffer import BoundedQueue, BufferClosed
from mongo_harness.signals import CancellationSignal

from conftest import wait_until


class TestBoundedQueue:
    """Tests for BoundedQueue."""

    def test_rejects_zero_capacity(self):
        """Capacity must be at least one."""
        with pytest.raises(ValueError):
            BoundedQueue(0)

    def test_fifo_order(self):
        """Items come out in the order they went in."""
        queue = BoundedQueue(3)
        for item in ("a", "b", "c"):
            assert queue.push(item) is True
        assert [queue.pop(), queue.pop(), queue.pop()] == ["a", "b", "c"]

    def test_push_blocks_while_full(self):
        """A push on a full queue waits until a slot frees up."""
        queue = BoundedQueue(1)
        queue.push("first")
        pushed = threading.Event()

        def pusher():
            queue.push("second")
            pushed.set()

        thread = threading.Thread(target=pusher, daemon=True)
        thread.start()

        assert not pushed.wait(0.2)
        assert len(queue) == 1

        assert queue.pop() == "first"
        assert pushed.wait(1.0)
        assert queue.pop() == "second"
        thread.join(1.0)

    def test_pop_blocks_while_empty(self):
        """A pop on an empty queue waits for the next push."""
        queue = BoundedQueue(1)
        received = []

        thread = threading.Thread(target=lambda: received.append(queue.pop()), daemon=True)
        thread.start()
        time.sleep(0.1)
        assert received == []

        queue.push("payload")
        thread.join(1.0)
        assert received == ["payload"]

    def test_close_releases_blocked_pusher(self):
        """Closing a full queue makes the blocked push return False."""
        queue = BoundedQueue(1)
        queue.push("first")
        results = []

        thread = threading.Thread(target=lambda: results.append(queue.push("second")), daemon=True)
        thread.start()
        time.sleep(0.1)

        queue.close()
        thread.join(1.0)
        assert results == [False]
        assert len(queue) == 1

    def test_close_releases_blocked_popper(self):
        """Closing an empty queue makes the blocked pop raise BufferClosed."""
        queue = BoundedQueue(1)
        errors = []

        def popper():
            try:
                queue.pop()
            except BufferClosed as exc:
                errors.append(exc)

        thread = threading.Thread(target=popper, daemon=True)
        thread.start()
        time.sleep(0.1)

        queue.close()
        thread.join(1.0)
        assert len(errors) == 1

    def test_push_after_close_is_refused(self):
        """Nothing enters a closed queue."""
        queue = BoundedQueue(2)
        queue.close()
        queue.close()
        assert queue.closed
        assert queue.push("late") is False
        assert len(queue) == 0

    def test_try_pop(self):
        """try_pop never blocks."""
        queue = BoundedQueue(2)
        assert queue.try_pop() is None
        queue.push("x")
        assert queue.try_pop() == "x"
        assert queue.try_pop() is None

    @pytest.mark.parametrize("capacity", [1, 2, 5])
    def test_in_flight_never_exceeds_capacity(self, capacity):
        """Under a fast producer and slow consumer the buffer stays bounded."""
        queue = BoundedQueue(capacity)
        stop = threading.Event()
        observed = []
        total = 60

        def producer():
            for i in range(total):
                queue.push(i)

        def sampler():
            while not stop.is_set():
                observed.append(len(queue))
                time.sleep(0.0005)

        producer_thread = threading.Thread(target=producer, daemon=True)
        sampler_thread = threading.Thread(target=sampler, daemon=True)
        producer_thread.start()
        sampler_thread.start()

        consumed = []
        for _ in range(total):
            consumed.append(queue.pop())
            time.sleep(0.001)

        producer_thread.join(2.0)
        stop.set()
        sampler_thread.join(2.0)

        assert consumed == list(range(total))
        assert observed
        assert max(observed) <= capacity


class TestCancellationSignal:
    """Tests for CancellationSignal."""

    def test_fires_exactly_once(self):
        """Only the first fire reports that it changed the state."""
        signal = CancellationSignal("stop")
        assert not signal.is_set()
        assert signal.fire() is True
        assert signal.fire() is False
        assert signal.is_set()

    def test_wait_returns_once_fired(self):
        """Waiters are released by another thread firing."""
        signal = CancellationSignal("stop")
        threading.Timer(0.05, signal.fire).start()
        assert signal.wait(1.0) is True
        assert wait_until(signal.is_set)

    def test_repr_shows_state(self):
        signal = CancellationSignal("abort")
        assert "armed" in repr(signal)
        signal.fire()
        assert "fired" in repr(signal)
