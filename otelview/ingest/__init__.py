"""
Ingestion Pipeline
===================

broker → frame decode → record decode → normalize → dedup cache → stats

Usage:
    from otelview.ingest import IngestionDriver

    driver = IngestionDriver(get_settings())
    await driver.ensure_started()
    view = driver.get_snapshot()
"""

from otelview.ingest.broker import BrokerConsumer, KafkaBrokerConsumer, RawEnvelope
from otelview.ingest.cache import BoundedCache, CacheEntry, TelemetryState
from otelview.ingest.codec import Codec, ProtobufCodec
from otelview.ingest.driver import IngestionDriver
from otelview.ingest.frame import FrameResult, FrameStatus, decode_frame
from otelview.ingest.normalizer import NormalizedLog, NormalizedSpan, iter_logs, iter_spans
from otelview.ingest.stats import LatencySnapshot, compute_latency

__all__ = [
    "BoundedCache",
    "BrokerConsumer",
    "CacheEntry",
    "Codec",
    "FrameResult",
    "FrameStatus",
    "IngestionDriver",
    "KafkaBrokerConsumer",
    "LatencySnapshot",
    "NormalizedLog",
    "NormalizedSpan",
    "ProtobufCodec",
    "RawEnvelope",
    "TelemetryState",
    "compute_latency",
    "decode_frame",
    "iter_logs",
    "iter_spans",
]
