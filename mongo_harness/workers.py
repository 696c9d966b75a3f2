from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from pymongo.errors import PyMongoError

from .buffer import BoundedQueue, BufferClosed
from .metrics import HarnessMetrics
from .signals import CancellationSignal
from .store import PayloadDecodeError, decode_payload

LOGGER = logging.getLogger("mongo_harness.workers")


class InsertTarget(Protocol):
    def insert_one(self, document: Mapping[str, Any]) -> Any: ...


@dataclass
class WorkerResult:
    worker_id: int
    attempts: int = 0
    failures: int = 0
    new_payloads: int = 0
    reused_payloads: int = 0
    decode_failed: bool = False
    aborted: bool = False
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def duration_s(self) -> float:
        return max(self.finished_at - self.started_at, 0.0)

    @property
    def inserts_per_second(self) -> float:
        if self.duration_s == 0:
            return 0.0
        return self.attempts / self.duration_s


class InsertWorker:
    """
    Inserts the same decoded document until its time budget runs out.

    The budget starts when ``run`` is entered. With ``reuse_payload`` disabled
    the worker swaps in a freshly produced payload whenever one is already
    waiting in the buffer, but it never blocks for one after the first.
    """

    def __init__(
        self,
        worker_id: int,
        queue: BoundedQueue[str],
        collection: InsertTarget,
        metrics: HarnessMetrics,
        budget_s: float,
        reuse_payload: bool = True,
        abort: CancellationSignal | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.worker_id = worker_id
        self._queue = queue
        self._collection = collection
        self._metrics = metrics
        self._budget_s = budget_s
        self._reuse_payload = reuse_payload
        self._abort = abort
        self._clock = clock
        self.result = WorkerResult(worker_id=worker_id)

    def run(self) -> WorkerResult:
        result = self.result
        result.started_at = self._clock()
        deadline = result.started_at + self._budget_s
        LOGGER.info("starting insert worker %d", self.worker_id)

        try:
            payload = self._queue.pop()
        except BufferClosed:
            result.aborted = True
            return self._finish("buffer closed before first payload")

        document = self._decode(payload)
        if document is None:
            return self._finish("decode failure")
        LOGGER.info("insert worker %d got first payload", self.worker_id)

        while True:
            if self._clock() >= deadline:
                return self._finish("timed out")

            fresh = None if self._reuse_payload else self._queue.try_pop()
            if fresh is not None:
                document = self._decode(fresh)
                if document is None:
                    return self._finish("decode failure")

            # abort is checked after the refresh, right before counting
            if self._abort is not None and self._abort.is_set():
                result.aborted = True
                return self._finish("aborted")
            if fresh is not None:
                result.new_payloads += 1
            else:
                result.reused_payloads += 1
            self._metrics.record_insert()
            result.attempts += 1
            try:
                # insert_one sets _id on the mapping it receives
                self._collection.insert_one(dict(document))
            except PyMongoError as exc:
                result.failures += 1
                self._metrics.record_insert_failure()
                LOGGER.debug("insert worker %d insert failed: %s", self.worker_id, exc)

    def _decode(self, payload: str) -> dict[str, Any] | None:
        try:
            return decode_payload(payload)
        except PayloadDecodeError as exc:
            self.result.decode_failed = True
            LOGGER.error(
                "insert worker %d could not convert payload to BSON: %s (payload=%r)",
                self.worker_id,
                exc,
                payload,
            )
            return None

    def _finish(self, reason: str) -> WorkerResult:
        result = self.result
        result.finished_at = self._clock()
        LOGGER.info(
            "insert worker %d stopped: %s (attempts=%d, failures=%d, new payloads=%d, reused payloads=%d)",
            self.worker_id,
            reason,
            result.attempts,
            result.failures,
            result.new_payloads,
            result.reused_payloads,
        )
        return result


__all__ = ["InsertTarget", "InsertWorker", "WorkerResult"]
