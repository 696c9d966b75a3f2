from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Sequence

from .buffer import BoundedQueue
from .metrics import HarnessMetrics, MetricsSink, MetricsSnapshot
from .producer import DocumentProducer
from .signals import CancellationSignal
from .workers import InsertWorker, WorkerResult

LOGGER = logging.getLogger("mongo_harness.coordinator")

PRODUCER_GRACE_S = 2.0


@dataclass
class RunReport:
    workers: list[WorkerResult]
    produced: int
    metrics: MetricsSnapshot
    exported: bool
    started_at: float
    finished_at: float
    error: BaseException | None = None
    worker_errors: list[BaseException] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.error is not None

    @property
    def total_attempts(self) -> int:
        return sum(result.attempts for result in self.workers)

    @property
    def total_failures(self) -> int:
        return sum(result.failures for result in self.workers)

    @property
    def duration_s(self) -> float:
        return max(self.finished_at - self.started_at, 0.0)


class ShutdownCoordinator:
    """
    Runs one load test from start to metrics flush.

    Workers stop on their own budget; the coordinator only waits for them.
    Once the last one is done it stops the producer and pushes metrics
    without waiting for the producer to acknowledge, so the exported render
    count may miss a render that was in flight at that moment.

    A producer failure aborts the run: no further workers are started,
    running workers stop before their next insert, and nothing is exported.
    """

    def __init__(
        self,
        producer: DocumentProducer,
        workers: Sequence[InsertWorker],
        queue: BoundedQueue[str],
        metrics: HarnessMetrics,
        cancel: CancellationSignal,
        abort: CancellationSignal,
        sink: MetricsSink | None = None,
        producer_grace_s: float = PRODUCER_GRACE_S,
    ) -> None:
        self._producer = producer
        self._workers = list(workers)
        self._queue = queue
        self._metrics = metrics
        self._cancel = cancel
        self._abort = abort
        self._sink = sink
        self._producer_grace_s = producer_grace_s

        self._errors_lock = threading.Lock()
        self._producer_errors: list[BaseException] = []
        self._worker_errors: list[BaseException] = []
        self._producer_thread: threading.Thread | None = None
        self._worker_threads: list[threading.Thread] = []
        self._started_workers: list[InsertWorker] = []
        self.export_attempts = 0

    def run(self) -> RunReport:
        started_at = time.time()
        self._start_producer()

        for worker in self._workers:
            if self._abort.is_set():
                LOGGER.warning("run aborted; not starting remaining insert workers")
                break
            self._start_worker(worker)

        LOGGER.info("making requests until timeout...")
        try:
            for thread in self._worker_threads:
                thread.join()
        except KeyboardInterrupt:
            LOGGER.warning("interrupted; aborting run")
            self.abort(KeyboardInterrupt("run interrupted"))
            for thread in self._worker_threads:
                thread.join()

        error = self._first_producer_error()
        exported = False
        if error is None:
            if self._cancel.fire():
                self._queue.close()
            exported = self._export()
        else:
            LOGGER.error("run aborted by %s: %s", type(error).__name__, error)

        if self._producer_thread is not None:
            self._producer_thread.join(timeout=self._producer_grace_s)

        return RunReport(
            workers=[worker.result for worker in self._started_workers],
            produced=self._producer.produced,
            metrics=self._metrics.snapshot(),
            exported=exported,
            started_at=started_at,
            finished_at=time.time(),
            error=error,
            worker_errors=list(self._worker_errors),
        )

    def abort(self, error: BaseException) -> None:
        with self._errors_lock:
            self._producer_errors.append(error)
        self._abort.fire()
        self._queue.close()

    def _start_producer(self) -> None:
        def producer_runner() -> None:
            try:
                self._producer.run()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("document producer failed")
                self.abort(exc)

        thread = threading.Thread(target=producer_runner, name="document-producer", daemon=True)
        thread.start()
        self._producer_thread = thread

    def _start_worker(self, worker: InsertWorker) -> None:
        def worker_runner() -> None:
            try:
                worker.run()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("insert worker %d failed", worker.worker_id)
                with self._errors_lock:
                    self._worker_errors.append(exc)

        thread = threading.Thread(
            target=worker_runner,
            name=f"insert-worker-{worker.worker_id}",
            daemon=True,
        )
        thread.start()
        self._worker_threads.append(thread)
        self._started_workers.append(worker)

    def _export(self) -> bool:
        if self._sink is None:
            LOGGER.info("no metrics sink configured; skipping export")
            return False
        self.export_attempts += 1
        return self._metrics.export(self._sink)

    def _first_producer_error(self) -> BaseException | None:
        with self._errors_lock:
            return self._producer_errors[0] if self._producer_errors else None


__all__ = ["PRODUCER_GRACE_S", "RunReport", "ShutdownCoordinator"]
