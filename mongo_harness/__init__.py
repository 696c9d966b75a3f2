"""
Synthetic insert load generator for MongoDB.

A single producer renders documents from Jinja2 templates into a bounded
buffer, a pool of insert workers hammers the store for a fixed time budget,
and the render-latency histogram and insert counters are pushed to a
Prometheus push gateway once the run completes.
"""

from .main import main, run

__all__ = ["main", "run"]
