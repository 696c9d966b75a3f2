from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, TypeVar

from .metrics import default_instance_label
from .store import DEFAULT_MONGO_URI, DEFAULT_TIMEOUT_S
from .templates import DEFAULT_TEMPLATE_DIR

T = TypeVar("T")

DEFAULT_TEMPLATE_NAME = "file1.template"
DEFAULT_WORKERS = 10
DEFAULT_DURATION_S = 30.0
DEFAULT_QUEUE_CAPACITY = 1
DEFAULT_PUSHGATEWAY = "localhost:9091"
DEFAULT_JOB = "mongo_test_harness"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class HarnessConfig:
    """Everything a single load-test run needs to know."""

    mongo_uri: str = DEFAULT_MONGO_URI
    database: str = "testing"
    collection: str = "one"
    store_timeout_s: float = DEFAULT_TIMEOUT_S
    template_dir: Path = DEFAULT_TEMPLATE_DIR
    template_name: str = DEFAULT_TEMPLATE_NAME
    workers: int = DEFAULT_WORKERS
    duration_s: float = DEFAULT_DURATION_S
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    reuse_payload: bool = True
    pushgateway: str | None = DEFAULT_PUSHGATEWAY
    job: str = DEFAULT_JOB
    instance: str | None = None
    output_dir: Path | None = None
    log_level: str = "INFO"

    @property
    def instance_label(self) -> str:
        return self.instance or default_instance_label()


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate synthetic insert load against MongoDB")
    parser.add_argument("--mongo-uri", help="MongoDB connection string")
    parser.add_argument("--database", help="Database receiving the inserts")
    parser.add_argument("--collection", help="Collection receiving the inserts")
    parser.add_argument(
        "--store-timeout",
        type=float,
        help="Connect, socket and server selection timeout in seconds",
    )
    parser.add_argument("--template-dir", help="Directory holding *.template files")
    parser.add_argument("--template", help="Name of the template to render")
    parser.add_argument("--workers", type=int, help="Number of parallel insert workers")
    parser.add_argument(
        "--duration",
        type=float,
        help="Seconds each insert worker keeps inserting",
    )
    parser.add_argument(
        "--queue-capacity",
        type=int,
        help="Rendered documents buffered between producer and workers",
    )
    parser.add_argument(
        "--refresh-payload",
        action="store_true",
        default=None,
        help="Let workers switch to newly rendered documents instead of reusing the first",
    )
    parser.add_argument(
        "--pushgateway",
        help="Prometheus push gateway address (empty string disables the push)",
    )
    parser.add_argument("--job", help="Push gateway job name")
    parser.add_argument("--instance", help="Instance grouping label (defaults to hostname)")
    parser.add_argument(
        "--output-dir",
        help="Directory to store run artefacts (CSV, JSON and charts)",
    )
    parser.add_argument("--log-level", help="Logging level")
    return parser.parse_args(argv)


def _env_value(
    env: Mapping[str, str],
    name: str,
    default: T,
    convert: Callable[[str], T],
) -> T:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return convert(raw)
    except ValueError:
        print(
            f"invalid {name} value {raw!r}; defaulting to {default}",
            file=sys.stderr,
        )
        return default


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise ValueError("non-positive value")
    return value


def _positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise ValueError("non-positive value")
    return value


def _boolean(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _positive_arg(value: T | None, name: str, default: T) -> T | None:
    if value is None:
        return None
    if value <= 0:  # type: ignore[operator]
        print(f"invalid {name} value {value!r}; defaulting to {default}", file=sys.stderr)
        return default
    return value


def load_config(
    argv: list[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> HarnessConfig:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    env = os.environ if env is None else env

    workers = _positive_arg(args.workers, "--workers", DEFAULT_WORKERS)
    if workers is None:
        workers = _env_value(env, "HARNESS_WORKERS", DEFAULT_WORKERS, _positive_int)

    duration = _positive_arg(args.duration, "--duration", DEFAULT_DURATION_S)
    if duration is None:
        duration = _env_value(env, "HARNESS_DURATION_SECONDS", DEFAULT_DURATION_S, _positive_float)

    capacity = _positive_arg(args.queue_capacity, "--queue-capacity", DEFAULT_QUEUE_CAPACITY)
    if capacity is None:
        capacity = _env_value(
            env, "HARNESS_QUEUE_CAPACITY", DEFAULT_QUEUE_CAPACITY, _positive_int
        )

    store_timeout = _positive_arg(args.store_timeout, "--store-timeout", DEFAULT_TIMEOUT_S)
    if store_timeout is None:
        store_timeout = _env_value(env, "MONGO_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_S, _positive_float)

    if args.refresh_payload:
        reuse_payload = False
    else:
        reuse_payload = _env_value(env, "HARNESS_REUSE_PAYLOAD", True, _boolean)

    pushgateway = args.pushgateway
    if pushgateway is None:
        pushgateway = env.get("PUSHGATEWAY_URL", DEFAULT_PUSHGATEWAY)

    template_dir = args.template_dir or env.get("TEMPLATE_DIR")
    output_dir = args.output_dir or env.get("HARNESS_OUTPUT_DIR")

    return HarnessConfig(
        mongo_uri=args.mongo_uri or env.get("MONGO_URI", DEFAULT_MONGO_URI),
        database=args.database or env.get("MONGO_DATABASE", "testing"),
        collection=args.collection or env.get("MONGO_COLLECTION", "one"),
        store_timeout_s=store_timeout,
        template_dir=Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR,
        template_name=args.template or env.get("TEMPLATE_NAME", DEFAULT_TEMPLATE_NAME),
        workers=workers,
        duration_s=duration,
        queue_capacity=capacity,
        reuse_payload=reuse_payload,
        pushgateway=pushgateway or None,
        job=args.job or env.get("PUSHGATEWAY_JOB", DEFAULT_JOB),
        instance=args.instance or env.get("HARNESS_INSTANCE") or None,
        output_dir=Path(output_dir) if output_dir else None,
        log_level=args.log_level or env.get("HARNESS_LOG_LEVEL", "INFO"),
    )


__all__ = ["HarnessConfig", "load_config", "parse_args"]
