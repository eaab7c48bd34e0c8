"""
Shared API Dependencies
========================

The ingestion driver lives on ``app.state``; routes resolve it
through ``get_driver`` so tests can install their own instance.
"""

from fastapi import Request

from otelview.infra.telemetry import IngestionMetrics, get_metrics
from otelview.ingest import IngestionDriver

__all__ = [
    "get_driver",
    "get_metrics_collector",
]


def get_driver(request: Request) -> IngestionDriver:
    """Ingestion driver installed by the application lifespan."""
    return request.app.state.driver


def get_metrics_collector(request: Request) -> IngestionMetrics:
    return getattr(request.app.state, "metrics", None) or get_metrics()
