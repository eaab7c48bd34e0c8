"""
Telemetry Layer — Service Observability
========================================

Observability for otelview itself (not the telemetry it ingests).

Provides:
  - Structured logging with broker message context
  - Prometheus metrics for the ingestion pipeline

Usage:
    from otelview.infra.telemetry import get_logger, get_metrics

    logger = get_logger(__name__)
    get_metrics().record_message("traces")
    logger.info("batch_admitted", records=12)
"""

from otelview.infra.telemetry.logger import (
    StructuredLogger,
    get_logger,
    message_context,
    setup_logging,
)
from otelview.infra.telemetry.metrics import IngestionMetrics, get_metrics

__all__ = [
    "IngestionMetrics",
    "StructuredLogger",
    "get_logger",
    "get_metrics",
    "message_context",
    "setup_logging",
]
