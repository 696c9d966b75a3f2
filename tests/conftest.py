"""
Shared fixtures for the harness test-suite.

The store and the metrics sink are replaced with in-process fakes so the
suite never needs a MongoDB server or a push gateway.
"""

import json
import threading
from typing import Callable, List, Optional

import pytest
from pymongo.errors import AutoReconnect

from mongo_harness.metrics import HarnessMetrics
from mongo_harness.templates import RenderError


VALID_PAYLOAD = json.dumps({"name": "widget", "qty": 3, "createdAt": {"$date": "2024-01-01T00:00:00Z"}})
MALFORMED_PAYLOAD = '{"name": "widget", "qty": '


class FakeCollection:
    """Thread-safe stand-in for a pymongo collection."""

    def __init__(self, fail_every: int = 0):
        self.fail_every = fail_every
        self.documents: List[dict] = []
        self.calls = 0
        self._lock = threading.Lock()

    def insert_one(self, document):
        with self._lock:
            self.calls += 1
            if self.fail_every and self.calls % self.fail_every == 0:
                raise AutoReconnect("simulated network blip")
            # pymongo assigns _id on the mapping it is handed
            document.setdefault("_id", self.calls)
            self.documents.append(document)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self.documents)


class FakeRenderer:
    """Renderer returning canned payloads, optionally failing on a given call."""

    def __init__(
        self,
        payloads: Optional[List[str]] = None,
        fail_on_call: Optional[int] = None,
        delay_s: float = 0.0,
    ):
        self.payloads = list(payloads or [])
        self.fail_on_call = fail_on_call
        self.delay_s = delay_s
        self.calls = 0
        self._lock = threading.Lock()

    def render(self, name: str) -> str:
        with self._lock:
            self.calls += 1
            call = self.calls
        if self.delay_s:
            threading.Event().wait(self.delay_s)
        if self.fail_on_call is not None and call >= self.fail_on_call:
            raise RenderError(f"simulated failure on render {call}")
        if self.payloads:
            return self.payloads.pop(0)
        return VALID_PAYLOAD


class FakeSink:
    """Metrics sink recording each push, optionally raising instead."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.pushes = []

    def push(self, registry):
        self.pushes.append(registry)
        if self.error is not None:
            raise self.error


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    event = threading.Event()
    waited = 0.0
    while waited < timeout:
        if predicate():
            return True
        event.wait(0.01)
        waited += 0.01
    return predicate()


@pytest.fixture
def metrics():
    return HarnessMetrics()


@pytest.fixture
def collection():
    return FakeCollection()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def sink():
    return FakeSink()
