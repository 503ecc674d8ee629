# stepbench/metrics.py
"""
stepbench Metrics
-----------------
Prometheus metric definitions on a dedicated registry, plus helpers used by
the connectors and the API layer.

 - executions started per variant
 - log query polls / outcomes / timeouts
 - retrieval latency per variant
 - external call errors per service
 - requests per command and status
"""

from __future__ import annotations

import time
import contextlib
from typing import Iterator

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

PROM_REGISTRY = CollectorRegistry(auto_describe=False)

SB_EXECUTIONS_STARTED = Counter(
    "stepbench_executions_started_total", "Workflow executions started", ["variant"], registry=PROM_REGISTRY
)
SB_QUERY_POLLS = Counter(
    "stepbench_log_query_polls_total", "Log query status polls issued", registry=PROM_REGISTRY
)
SB_QUERY_OUTCOMES = Counter(
    "stepbench_log_query_outcomes_total", "Log query terminal states", ["status"], registry=PROM_REGISTRY
)
SB_QUERY_TIMEOUTS = Counter(
    "stepbench_log_query_timeouts_total", "Log queries abandoned at the poll bound", registry=PROM_REGISTRY
)
SB_RETRIEVAL_LATENCY = Histogram(
    "stepbench_duration_retrieval_seconds",
    "Wall time to retrieve duration samples",
    ["variant"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60, 120),
    registry=PROM_REGISTRY,
)
SB_EXTERNAL_ERRORS = Counter(
    "stepbench_external_errors_total", "Failed calls to AWS services", ["service", "operation"], registry=PROM_REGISTRY
)
SB_REQUESTS = Counter(
    "stepbench_requests_total", "Orchestration requests", ["cmd", "status"], registry=PROM_REGISTRY
)


@contextlib.contextmanager
def time_retrieval(variant: str) -> Iterator[None]:
    t0 = time.perf_counter()
    try:
        yield
    finally:
        SB_RETRIEVAL_LATENCY.labels(variant=variant).observe(time.perf_counter() - t0)


def render_latest() -> bytes:
    return generate_latest(PROM_REGISTRY)


__all__ = [
    "PROM_REGISTRY",
    "CONTENT_TYPE_LATEST",
    "SB_EXECUTIONS_STARTED",
    "SB_QUERY_POLLS",
    "SB_QUERY_OUTCOMES",
    "SB_QUERY_TIMEOUTS",
    "SB_RETRIEVAL_LATENCY",
    "SB_EXTERNAL_ERRORS",
    "SB_REQUESTS",
    "time_retrieval",
    "render_latest",
]
