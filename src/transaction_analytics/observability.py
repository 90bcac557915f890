"""Process-scoped metrics.

Call ``init()`` once before first use; repeated calls return the same
state. Metrics live for the whole process and need no teardown. The query
core never imports this module; the CLI and the collaborators record
around it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

__all__ = ["Metrics", "init", "get_metrics", "metrics_text", "CONTENT_TYPE_LATEST"]


@dataclass(frozen=True)
class Metrics:
    registry: CollectorRegistry
    queries: Counter
    query_seconds: Histogram
    messages: Counter

    def observe_query(self, *, latency_s: float, ok: bool) -> None:
        self.queries.labels(status="ok" if ok else "error").inc()
        self.query_seconds.observe(max(0.0, float(latency_s)))

    def observe_message(self) -> None:
        self.messages.inc()


_LOCK = threading.Lock()
_METRICS: Optional[Metrics] = None


def init() -> Metrics:
    """Create the process metrics registry (idempotent)."""
    global _METRICS
    with _LOCK:
        if _METRICS is None:
            registry = CollectorRegistry()
            _METRICS = Metrics(
                registry=registry,
                queries=Counter(
                    "txn_queries",
                    "Queries executed, by outcome",
                    ["status"],
                    registry=registry,
                ),
                query_seconds=Histogram(
                    "txn_query_duration_seconds",
                    "Wall time spent executing a query",
                    registry=registry,
                ),
                messages=Counter(
                    "txn_stream_messages",
                    "Payloads received from the transactions topic",
                    registry=registry,
                ),
            )
        return _METRICS


def get_metrics() -> Metrics:
    return init()


def metrics_text() -> bytes:
    """Prometheus text exposition of the process registry."""
    return generate_latest(get_metrics().registry)
