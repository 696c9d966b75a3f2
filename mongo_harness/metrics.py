from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from typing import Protocol

from prometheus_client import CollectorRegistry, Counter, Histogram, pushadd_to_gateway

LOGGER = logging.getLogger("mongo_harness.metrics")

NAMESPACE = "mongo_test_harness"
RENDER_LATENCY_BUCKETS: tuple[float, ...] = (
    0.01,
    0.02,
    0.03,
    0.04,
    0.05,
    0.10,
    0.20,
    0.30,
    0.40,
    1.0,
)


class MetricsSink(Protocol):
    def push(self, registry: CollectorRegistry) -> None: ...


@dataclass(frozen=True)
class MetricsSnapshot:
    render_count: int
    render_sum_s: float
    inserts: int
    insert_failures: int
    # cumulative counts keyed by upper bound, "+Inf" last
    render_buckets: dict[str, int] = field(default_factory=dict)

    @property
    def mean_render_s(self) -> float:
        if self.render_count == 0:
            return 0.0
        return self.render_sum_s / self.render_count


class HarnessMetrics:
    """
    Render-latency histogram and insert counters for a single run.

    Every instance owns its registry, so separate runs (and tests) never share
    state. prometheus_client guards each value with a lock, which makes
    observe/inc safe from the producer and all insert workers at once.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.render_latency = Histogram(
            "render_latency",
            "Seconds spent rendering one document template",
            namespace=NAMESPACE,
            buckets=RENDER_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.request_count = Counter(
            "request_count",
            "Insert requests issued against the store",
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.insert_failures = Counter(
            "insert_failures",
            "Insert requests the store rejected or failed to answer",
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def observe_render(self, seconds: float) -> None:
        self.render_latency.observe(seconds)

    def record_insert(self) -> None:
        self.request_count.inc()

    def record_insert_failure(self) -> None:
        self.insert_failures.inc()

    def snapshot(self) -> MetricsSnapshot:
        buckets: dict[str, int] = {}
        render_count = 0
        render_sum = 0.0
        for metric in self.render_latency.collect():
            for sample in metric.samples:
                if sample.name.endswith("_bucket"):
                    buckets[sample.labels["le"]] = int(sample.value)
                elif sample.name.endswith("_count"):
                    render_count = int(sample.value)
                elif sample.name.endswith("_sum"):
                    render_sum = float(sample.value)
        return MetricsSnapshot(
            render_count=render_count,
            render_sum_s=render_sum,
            inserts=int(self._counter_value(self.request_count)),
            insert_failures=int(self._counter_value(self.insert_failures)),
            render_buckets=buckets,
        )

    def export(self, sink: MetricsSink) -> bool:
        try:
            sink.push(self.registry)
        except Exception:  # noqa: BLE001
            LOGGER.exception("failed to push metrics")
            return False
        LOGGER.info("metrics pushed")
        return True

    @staticmethod
    def _counter_value(counter: Counter) -> float:
        for metric in counter.collect():
            for sample in metric.samples:
                if sample.name.endswith("_total"):
                    return sample.value
        return 0.0


def default_instance_label() -> str:
    return socket.gethostname()


class PushGatewaySink:
    """Pushes a registry to a Prometheus push gateway, grouped by instance."""

    def __init__(
        self,
        gateway: str,
        job: str,
        instance: str | None = None,
        timeout_s: float = 5.0,
    ) -> None:
        self.gateway = gateway
        self.job = job
        self.instance = instance or default_instance_label()
        self.timeout_s = timeout_s

    def push(self, registry: CollectorRegistry) -> None:
        pushadd_to_gateway(
            self.gateway,
            job=self.job,
            registry=registry,
            grouping_key={"instance": self.instance},
            timeout=self.timeout_s,
        )


__all__ = [
    "NAMESPACE",
    "RENDER_LATENCY_BUCKETS",
    "HarnessMetrics",
    "MetricsSink",
    "MetricsSnapshot",
    "PushGatewaySink",
    "default_instance_label",
]
