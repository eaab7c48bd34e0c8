"""
Statistics Engine
==================

Latency aggregates over the cached trace population.

A span's latency is the first positive numeric value among the
configured latency attributes (protocol-level measurements such as
``http.latency_ms``), falling back to its wall-clock duration. Only
strictly positive latencies are sampled.

Percentiles use the nearest-rank estimator: ``index = floor(N * p)``
clamped to ``N - 1``. Snapshots are recomputed from a cache snapshot
on every read, never maintained incrementally.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from otelview.ingest.cache import CacheEntry
from otelview.ingest.normalizer import NormalizedSpan

DEFAULT_LATENCY_KEYS: tuple[str, ...] = ("latency_ms", "http.latency_ms", "rpc.latency_ms")
DEFAULT_SLOW_THRESHOLD_MS = 300.0

@dataclass(frozen=True, slots=True)
class LatencySnapshot:
    avg: float = 0.0
    max: float = 0.0
    min: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    count: int = 0
    slow: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

EMPTY_SNAPSHOT = LatencySnapshot()

def percentile(sorted_values: Sequence[float], fraction: float) -> float:
    """Nearest-rank percentile of an ascending sequence (``fraction`` in [0, 1])."""
    if not sorted_values:
        return 0.0
    idx = math.floor(len(sorted_values) * fraction)
    return sorted_values[max(0, min(idx, len(sorted_values) - 1))]

def span_latency(span: NormalizedSpan, latency_keys: Iterable[str] = DEFAULT_LATENCY_KEYS) -> float:
    attrs = span.attributes
    for key in latency_keys:
        value = attrs.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if value > 0 and math.isfinite(value):
            return float(value)
    return float(span.duration)

def summarize(samples: Iterable[float], slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS) -> LatencySnapshot:
    values = sorted(v for v in samples if v > 0)
    if not values:
        return EMPTY_SNAPSHOT
    n = len(values)
    # Clamp guards float rounding on near-identical samples
    avg = min(max(math.fsum(values) / n, values[0]), values[-1])
    return LatencySnapshot(
        avg=avg,
        max=values[-1],
        min=values[0],
        p95=percentile(values, 0.95),
        p99=percentile(values, 0.99),
        count=n,
        slow=sum(1 for v in values if v > slow_threshold_ms),
    )

def compute_latency(
    entries: Iterable[CacheEntry[Any]],
    *,
    latency_keys: Iterable[str] = DEFAULT_LATENCY_KEYS,
    slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS,
) -> LatencySnapshot:
    """Latency snapshot over every span in the given cache entries."""
    keys = tuple(latency_keys)
    samples = (
        span_latency(record, keys)
        for entry in entries
        for record in entry.records
        if isinstance(record, NormalizedSpan)
    )
    return summarize(samples, slow_threshold_ms)
