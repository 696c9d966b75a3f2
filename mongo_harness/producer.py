from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from .buffer import BoundedQueue
from .metrics import HarnessMetrics
from .signals import CancellationSignal

LOGGER = logging.getLogger("mongo_harness.producer")


class Renderer(Protocol):
    def render(self, name: str) -> str: ...


class DocumentProducer:
    """
    Renders one template over and over and publishes the payloads.

    Cancellation is observed between iterations only. While the buffer is
    full the producer sleeps inside ``push``; closing the buffer wakes it.
    Render errors are not handled here and propagate out of ``run``.
    """

    def __init__(
        self,
        renderer: Renderer,
        template_name: str,
        queue: BoundedQueue[str],
        metrics: HarnessMetrics,
        cancel: CancellationSignal,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._renderer = renderer
        self._template_name = template_name
        self._queue = queue
        self._metrics = metrics
        self._cancel = cancel
        self._clock = clock
        self.rendered = 0
        self.produced = 0

    def run(self) -> int:
        while not self._cancel.is_set():
            payload = self._render()
            if not self._queue.push(payload):
                break
            self.produced += 1

        LOGGER.info(
            "document producer asked to quit (documents generated=%d, rendered=%d)",
            self.produced,
            self.rendered,
        )
        return self.produced

    def _render(self) -> str:
        start = self._clock()
        payload = self._renderer.render(self._template_name)
        self._metrics.observe_render(self._clock() - start)
        self.rendered += 1
        return payload


__all__ = ["DocumentProducer", "Renderer"]
