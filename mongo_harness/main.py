from __future__ import annotations

import logging
import sys

from .buffer import BoundedQueue
from .config import HarnessConfig, load_config
from .coordinator import RunReport, ShutdownCoordinator
from .metrics import HarnessMetrics, PushGatewaySink
from .producer import DocumentProducer
from .signals import CancellationSignal
from .store import StoreConnectionError, create_client, get_collection
from .templates import TemplateLoadError, load_templates
from .workers import InsertWorker

LOGGER = logging.getLogger("mongo_harness")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_coordinator(config: HarnessConfig, client, renderer) -> ShutdownCoordinator:
    metrics = HarnessMetrics()
    queue: BoundedQueue[str] = BoundedQueue(config.queue_capacity)
    cancel = CancellationSignal("stop-producing")
    abort = CancellationSignal("abort")

    producer = DocumentProducer(
        renderer=renderer,
        template_name=config.template_name,
        queue=queue,
        metrics=metrics,
        cancel=cancel,
    )
    collection = get_collection(client, config.database, config.collection)
    workers = [
        InsertWorker(
            worker_id=worker_id,
            queue=queue,
            collection=collection,
            metrics=metrics,
            budget_s=config.duration_s,
            reuse_payload=config.reuse_payload,
            abort=abort,
        )
        for worker_id in range(config.workers)
    ]

    sink = None
    if config.pushgateway:
        sink = PushGatewaySink(config.pushgateway, config.job, config.instance_label)

    return ShutdownCoordinator(
        producer=producer,
        workers=workers,
        queue=queue,
        metrics=metrics,
        cancel=cancel,
        abort=abort,
        sink=sink,
    )


def summarise(report: RunReport) -> None:
    LOGGER.info(
        "workers=%d produced=%d inserts=%d failures=%d renders=%d mean_render=%.4fs exported=%s",
        len(report.workers),
        report.produced,
        report.metrics.inserts,
        report.metrics.insert_failures,
        report.metrics.render_count,
        report.metrics.mean_render_s,
        report.exported,
    )


def run(argv: list[str] | None = None) -> int:
    config = load_config(argv)
    setup_logging(config.log_level)
    LOGGER.info("Starting")

    try:
        client = create_client(config.mongo_uri, config.store_timeout_s)
    except StoreConnectionError:
        LOGGER.exception("failed to initialise MongoDB client")
        return 1

    try:
        try:
            renderer = load_templates(config.template_dir)
        except TemplateLoadError:
            LOGGER.exception("failed to load templates from %s", config.template_dir)
            return 1

        if config.template_name not in renderer.names:
            LOGGER.error(
                "template %r not found in %s (available: %s)",
                config.template_name,
                config.template_dir,
                ", ".join(renderer.names),
            )
            return 1

        coordinator = build_coordinator(config, client, renderer)
        report = coordinator.run()
    finally:
        client.close()

    summarise(report)

    if config.output_dir is not None:
        from .report import write_report

        try:
            write_report(report, config.output_dir)
        except Exception:  # noqa: BLE001
            LOGGER.exception("failed to write run report to %s", config.output_dir)

    if report.aborted:
        print(f"\nHarness status: ABORTED ({report.error!r})", file=sys.stderr)
        return 1

    LOGGER.info("Done")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
