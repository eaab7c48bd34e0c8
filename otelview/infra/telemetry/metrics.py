"""
Ingestion Metrics — Prometheus Counters and Gauges
====================================================

Centralized metrics for the ingestion pipeline with Prometheus
exposition.

Design:
  - One collector per registry; the process singleton uses its own
    CollectorRegistry so tests can build isolated instances
  - Recording methods take plain values, never Prometheus objects
  - Label values are bounded (signal kind, drop reason, frame status)

Metric Naming Convention:
  - otelview_{component}_{metric}_{unit}
  - e.g., otelview_ingest_messages_total
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from otelview.infra.telemetry.logger import get_logger

logger = get_logger(__name__)

class IngestionMetrics:
    """
    Ingestion pipeline metrics.

    Pre-defines every pipeline metric with its labels so call sites
    never create metrics ad hoc.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        # ── Consume Loop ──
        self.messages = Counter(
            "otelview_ingest_messages_total",
            "Broker messages received",
            labelnames=["signal"],
            registry=self.registry,
        )

        self.dropped = Counter(
            "otelview_ingest_messages_dropped_total",
            "Messages dropped before reaching the cache",
            labelnames=["signal", "reason"],
            registry=self.registry,
        )

        self.frames = Counter(
            "otelview_ingest_frames_total",
            "Frame decoder outcomes",
            labelnames=["status"],
            registry=self.registry,
        )

        self.records = Counter(
            "otelview_ingest_records_normalized_total",
            "Flat records produced by the normalizer",
            labelnames=["signal"],
            registry=self.registry,
        )

        # ── Cache ──
        self.cache_size = Gauge(
            "otelview_cache_entries",
            "Entries currently cached",
            labelnames=["signal"],
            registry=self.registry,
        )

        self.cache_duplicates = Counter(
            "otelview_cache_duplicates_total",
            "Admissions rejected as duplicates",
            labelnames=["signal"],
            registry=self.registry,
        )

        self.cache_evictions = Counter(
            "otelview_cache_evictions_total",
            "Entries evicted on overflow",
            labelnames=["signal"],
            registry=self.registry,
        )

        # ── Consumer ──
        self.consumer_running = Gauge(
            "otelview_consumer_running",
            "1 while the consume loop is running",
            registry=self.registry,
        )

        self.consumer_starts = Counter(
            "otelview_consumer_starts_total",
            "Consumer start attempts",
            labelnames=["status"],
            registry=self.registry,
        )

    # ── Recording Methods ──────────────────────────────────────────

    def record_message(self, signal: str) -> None:
        self.messages.labels(signal=signal).inc()

    def record_drop(self, signal: str, reason: str) -> None:
        self.dropped.labels(signal=signal, reason=reason).inc()

    def record_frame(self, status: str) -> None:
        self.frames.labels(status=status).inc()

    def record_admit(
        self,
        signal: str,
        *,
        admitted: bool,
        records: int,
        size: int,
        evicted: int,
    ) -> None:
        """Record the outcome of one cache admission."""
        if admitted:
            self.records.labels(signal=signal).inc(records)
        else:
            self.cache_duplicates.labels(signal=signal).inc()
        if evicted:
            self.cache_evictions.labels(signal=signal).inc(evicted)
        self.cache_size.labels(signal=signal).set(size)

    def record_consumer_start(self, *, success: bool) -> None:
        self.consumer_starts.labels(status="success" if success else "error").inc()
        self.consumer_running.set(1 if success else 0)

    def record_consumer_stopped(self) -> None:
        self.consumer_running.set(0)

    def export_prometheus(self) -> bytes:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry)

# ── Singleton ──────────────────────────────────────────────────────

_metrics: IngestionMetrics | None = None

def get_metrics() -> IngestionMetrics:
    # Lock-free benign-race singleton.
    global _metrics
    if _metrics is not None:
        return _metrics
    _metrics = IngestionMetrics()
    logger.debug("metrics_initialized")
    return _metrics
