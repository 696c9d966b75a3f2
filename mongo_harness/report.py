from __future__ import annotations

import json
import logging
import math
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .coordinator import RunReport
from .metrics import MetricsSnapshot

LOGGER = logging.getLogger("mongo_harness.report")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 150
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["axes.labelsize"] = 11

WORKER_COLUMNS = [
    "worker_id",
    "attempts",
    "failures",
    "new_payloads",
    "reused_payloads",
    "decode_failed",
    "aborted",
    "duration_s",
    "inserts_per_s",
]


def build_worker_frame(report: RunReport) -> pd.DataFrame:
    rows = [
        {
            "worker_id": result.worker_id,
            "attempts": result.attempts,
            "failures": result.failures,
            "new_payloads": result.new_payloads,
            "reused_payloads": result.reused_payloads,
            "decode_failed": result.decode_failed,
            "aborted": result.aborted,
            "duration_s": result.duration_s,
            "inserts_per_s": result.inserts_per_second,
        }
        for result in report.workers
    ]
    if not rows:
        return pd.DataFrame(columns=WORKER_COLUMNS)
    return pd.DataFrame(rows, columns=WORKER_COLUMNS).sort_values("worker_id", ignore_index=True)


def build_latency_frame(snapshot: MetricsSnapshot) -> pd.DataFrame:
    """Turn cumulative histogram buckets into per-bucket counts."""
    if not snapshot.render_buckets:
        return pd.DataFrame(columns=["upper_bound_s", "label", "count"])

    bounds = sorted(snapshot.render_buckets, key=float)
    cumulative = np.array([snapshot.render_buckets[bound] for bound in bounds], dtype=np.int64)
    counts = np.diff(cumulative, prepend=0)
    return pd.DataFrame(
        {
            "upper_bound_s": [float(bound) for bound in bounds],
            "label": [_bucket_label(bound) for bound in bounds],
            "count": counts,
        }
    )


def write_report(report: RunReport, output_dir: Path) -> Path:
    """Write CSVs, charts and a JSON summary for ``report``; return the summary path."""
    output_dir.mkdir(parents=True, exist_ok=True)

    workers_df = build_worker_frame(report)
    workers_path = output_dir / "workers.csv"
    workers_df.to_csv(workers_path, index=False)
    LOGGER.info("Saved worker results to %s (%d rows)", workers_path, len(workers_df))

    latency_df = build_latency_frame(report.metrics)
    latency_path = output_dir / "render_latency.csv"
    latency_df.to_csv(latency_path, index=False)

    charts = []
    if not workers_df.empty:
        charts.append(str(_render_worker_chart(workers_df, output_dir / "worker_inserts.png")))
    if not latency_df.empty:
        charts.append(str(_render_latency_chart(latency_df, output_dir / "render_latency.png")))

    summary = {
        "aborted": report.aborted,
        "error": repr(report.error) if report.error else None,
        "duration_s": round(report.duration_s, 3),
        "workers": len(report.workers),
        "produced": report.produced,
        "total_attempts": report.total_attempts,
        "total_failures": report.total_failures,
        "inserts_counter": report.metrics.inserts,
        "render_count": report.metrics.render_count,
        "mean_render_s": report.metrics.mean_render_s,
        "metrics_exported": report.exported,
        "artefacts": {
            "workers": str(workers_path),
            "render_latency": str(latency_path),
            "charts": charts,
        },
    }
    summary_path = output_dir / "run_summary.json"
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)
    LOGGER.info("Run summary written to %s", summary_path)
    return summary_path


def _bucket_label(bound: str) -> str:
    value = float(bound)
    if math.isinf(value):
        return "> 1s"
    return f"<= {value * 1000:g}ms"


def _render_worker_chart(df: pd.DataFrame, chart_path: Path) -> Path:
    fig, ax = plt.subplots(figsize=(10, 6))

    bars = ax.bar(
        df["worker_id"].astype(str),
        df["attempts"],
        color="#2E86AB",
        alpha=0.8,
        edgecolor="white",
        linewidth=2,
    )
    ax.set_xlabel("Insert worker", fontweight="semibold")
    ax.set_ylabel("Insert attempts", fontweight="semibold")
    ax.set_title("Insert Attempts per Worker", fontweight="bold", pad=15)
    ax.grid(True, alpha=0.3, axis="y", linestyle="--")

    for bar in bars:
        height = bar.get_height()
        ax.text(
            bar.get_x() + bar.get_width() / 2.0,
            height,
            f"{height:.0f}",
            ha="center",
            va="bottom",
            fontweight="semibold",
        )

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def _render_latency_chart(df: pd.DataFrame, chart_path: Path) -> Path:
    fig, ax = plt.subplots(figsize=(10, 6))

    sns.barplot(data=df, x="label", y="count", color="#F18F01", ax=ax)
    ax.set_xlabel("Render latency bucket", fontweight="semibold")
    ax.set_ylabel("Renders", fontweight="semibold")
    ax.set_title("Template Render Latency", fontweight="bold", pad=15)
    ax.grid(True, alpha=0.3, axis="y", linestyle="--")
    ax.tick_params(axis="x", rotation=30)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


__all__ = ["build_latency_frame", "build_worker_frame", "write_report"]
