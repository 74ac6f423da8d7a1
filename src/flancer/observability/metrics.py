"""Prometheus metrics instrumentation for the negotiation service.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus the business counters.
- Business counters updated by the engine at transition time.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

NEGOTIATIONS_OPENED: Counter = Counter(
    "flancer_negotiations_opened_total",
    "Total number of negotiations opened by a price proposal",
)

JOBS_CREATED: Counter = Counter(
    "flancer_jobs_created_total",
    "Total number of jobs materialized from agreed negotiations",
)

CONCURRENT_MODIFICATIONS: Counter = Counter(
    "flancer_concurrent_modifications_total",
    "Total number of negotiation writes rejected by the version guard",
)

NOTIFICATION_FAILURES: Counter = Counter(
    "flancer_notification_failures_total",
    "Total number of notifications that could not be delivered",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
