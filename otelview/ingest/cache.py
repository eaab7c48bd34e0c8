"""
Dedup & Bounded Cache
======================

Fixed-capacity, insertion-ordered message caches with identity-based
deduplication.

Design:
  - One BoundedCache per signal; each entry is one broker message
    carrying the flat records normalized from it
  - Oldest entries are evicted first once capacity is exceeded
  - Identities of cached entries are tracked in a set; an entry whose
    identity is already cached is rejected
  - Entries without an identity are always admitted
  - admit() and snapshot() run under one lock, so a reader sees the
    cache either before or after an admission, never in between
  - snapshot() returns an immutable tuple ordered oldest → newest
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from otelview.core.types import SignalKind

T = TypeVar("T")

def message_identity(
    partition: int | None, offset: int | None, key: bytes | str | None
) -> str | None:
    """Identity used for dedup: partition-qualified offset, else key, else None."""
    if offset is not None:
        return f"{partition if partition is not None else '-'}:{offset}"
    if key:
        return key.hex() if isinstance(key, bytes) else str(key)
    return None

@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """One cached broker message and the records it produced."""

    identity: str | None
    records: tuple[T, ...]
    topic: str = ""
    partition: int | None = None
    offset: int | None = None
    timestamp: int | None = None
    ingested_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "offset": self.offset,
            "partition": self.partition,
            "timestamp": self.timestamp,
            "data": [
                r.to_dict() if hasattr(r, "to_dict") else r for r in self.records
            ],
        }

@dataclass(frozen=True, slots=True)
class AdmitResult:
    admitted: bool
    evicted: int = 0
    size: int = 0

class BoundedCache(Generic[T]):
    """Insertion-ordered, capacity-limited cache with dedup."""

    def __init__(self, capacity: int, name: str = "cache") -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._name = name
        self._entries: deque[CacheEntry[T]] = deque()
        self._identities: set[str] = set()
        self._lock = threading.Lock()
        self._evictions = 0
        self._duplicates = 0

    def admit(self, entry: CacheEntry[T]) -> AdmitResult:
        """Append ``entry`` unless its identity is already cached."""
        with self._lock:
            if entry.identity is not None and entry.identity in self._identities:
                self._duplicates += 1
                return AdmitResult(admitted=False, size=len(self._entries))

            self._entries.append(entry)
            if entry.identity is not None:
                self._identities.add(entry.identity)

            evicted = 0
            while len(self._entries) > self._capacity:
                oldest = self._entries.popleft()
                if oldest.identity is not None:
                    self._identities.discard(oldest.identity)
                evicted += 1
            self._evictions += evicted
            return AdmitResult(admitted=True, evicted=evicted, size=len(self._entries))

    def snapshot(self) -> tuple[CacheEntry[T], ...]:
        with self._lock:
            return tuple(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._identities.clear()
            self._evictions = 0
            self._duplicates = 0

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._identities

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def name(self) -> str:
        return self._name

    @property
    def evictions(self) -> int:
        return self._evictions

    @property
    def duplicates(self) -> int:
        return self._duplicates

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": len(self),
            "capacity": self._capacity,
            "evictions": self._evictions,
            "duplicates": self._duplicates,
        }

class TelemetryState:
    """
    Process state shared between the consume loop and snapshot readers.

    Owns one cache per signal, the consumer-running flag and the last
    pipeline-level error. Constructed explicitly and injected; tests
    call reset() between cases.
    """

    def __init__(self, *, trace_capacity: int = 100, log_capacity: int = 100) -> None:
        self.caches: dict[SignalKind, BoundedCache[Any]] = {
            SignalKind.TRACES: BoundedCache(trace_capacity, name=SignalKind.TRACES.value),
            SignalKind.LOGS: BoundedCache(log_capacity, name=SignalKind.LOGS.value),
        }
        self.consumer_running = False
        self.last_error: str | None = None

    @property
    def traces(self) -> BoundedCache[Any]:
        return self.caches[SignalKind.TRACES]

    @property
    def logs(self) -> BoundedCache[Any]:
        return self.caches[SignalKind.LOGS]

    def cache_for(self, kind: SignalKind) -> BoundedCache[Any]:
        return self.caches[kind]

    def reset(self) -> None:
        for cache in self.caches.values():
            cache.clear()
        self.consumer_running = False
        self.last_error = None
