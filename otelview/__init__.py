"""
otelview — OTLP telemetry ingestion for live dashboards.

Consumes trace and log batches from Kafka, flattens them into
UI-ready records and keeps a bounded in-memory view with latency
statistics.
"""

__version__ = "0.3.0"
