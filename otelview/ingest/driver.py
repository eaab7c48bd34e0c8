"""
Ingestion Driver — Consume Loop and Snapshot Boundary
=======================================================

Owns the broker consume loop and exposes the cached view.

Lifecycle:
  not started → running → (poll failure) stopped, restartable

  - start() is single-flight: concurrent callers share one attempt,
    and a running driver is never started twice
  - a failed start tears the consumer down and discards it, so the
    next attempt begins from a fresh client
  - a failed poll ends the loop the same way; the next
    ensure_started() call restarts it

Per message, in broker order:
  route by topic → frame decode → record decode → normalize → admit

Any exception raised while handling one message is logged and the
message dropped; the loop moves on to the next message.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

from otelview.core.config import Settings
from otelview.core.exceptions import (
    ConsumerStartError,
    IngestionError,
    NormalizationError,
    RecordDecodeError,
    UnknownTopicError,
)
from otelview.core.types import SignalKind
from otelview.infra.telemetry import (
    IngestionMetrics,
    get_logger,
    get_metrics,
    message_context,
)
from otelview.ingest.broker import BrokerConsumer, RawEnvelope, kafka_consumer_factory
from otelview.ingest.cache import CacheEntry, TelemetryState, message_identity
from otelview.ingest.codec import Codec, ProtobufCodec
from otelview.ingest.frame import decode_frame
from otelview.ingest.normalizer import iter_records
from otelview.ingest.stats import LatencySnapshot, compute_latency

logger = get_logger(__name__)

ConsumerFactory = Callable[[Settings], BrokerConsumer]

def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__

class IngestionDriver:
    """
    Runs the consume loop and serves snapshots of the caches.

    Usage:
        driver = IngestionDriver(settings)
        await driver.ensure_started()
        payload = driver.get_snapshot()
        ...
        await driver.stop()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        state: TelemetryState | None = None,
        codec: Codec | None = None,
        consumer_factory: ConsumerFactory = kafka_consumer_factory,
        metrics: IngestionMetrics | None = None,
    ) -> None:
        self._settings = settings
        self._state = state or TelemetryState(
            trace_capacity=settings.capacity_for(SignalKind.TRACES),
            log_capacity=settings.capacity_for(SignalKind.LOGS),
        )
        self._codec = codec or ProtobufCodec()
        self._consumer_factory = consumer_factory
        self._metrics = metrics or get_metrics()
        self._routes: dict[str, SignalKind] = settings.topics
        self._start_lock = asyncio.Lock()
        self._consumer: BrokerConsumer | None = None
        self._task: asyncio.Task[None] | None = None

    # ── Lifecycle ──────────────────────────────────────────────────

    @property
    def state(self) -> TelemetryState:
        return self._state

    @property
    def metrics(self) -> IngestionMetrics:
        return self._metrics

    @property
    def is_running(self) -> bool:
        return self._state.consumer_running

    async def start(self) -> None:
        """Connect, subscribe and spawn the consume loop (at most once)."""
        async with self._start_lock:
            if self._state.consumer_running:
                return

            consumer: BrokerConsumer | None = None
            try:
                consumer = self._consumer_factory(self._settings)
                await consumer.start()
            except Exception as exc:  # noqa: BLE001 - any start failure leaves the driver restartable
                if consumer is not None:
                    await self._teardown(consumer)
                self._state.last_error = _describe(exc)
                self._metrics.record_consumer_start(success=False)
                logger.error(
                    "consumer_start_failed",
                    exc=exc,
                    brokers=",".join(self._settings.KAFKA_BROKERS),
                )
                raise ConsumerStartError(
                    f"Failed to start consumer: {self._state.last_error}",
                    brokers=list(self._settings.KAFKA_BROKERS),
                    original_error=exc,
                ) from exc

            self._consumer = consumer
            self._state.consumer_running = True
            self._state.last_error = None
            self._metrics.record_consumer_start(success=True)
            self._task = asyncio.create_task(
                self._consume_loop(consumer), name="otelview-consume-loop"
            )
            logger.info("consumer_started", topics=",".join(self._routes))

    async def ensure_started(self) -> bool:
        """Start if needed; report failure through state instead of raising."""
        if self._state.consumer_running:
            return True
        try:
            await self.start()
        except ConsumerStartError:
            return False
        return True

    async def stop(self) -> None:
        """Cancel the consume loop and close the consumer."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            await self._teardown(consumer)
        self._mark_stopped()
        logger.info("consumer_stopped")

    def _mark_stopped(self) -> None:
        if not self._state.consumer_running:
            return
        self._state.consumer_running = False
        self._metrics.record_consumer_stopped()

    async def _teardown(self, consumer: BrokerConsumer) -> None:
        try:
            await consumer.stop()
        except Exception as exc:  # noqa: BLE001 - a broken client must not block shutdown
            logger.warning("consumer_stop_failed", error=_describe(exc))

    async def _consume_loop(self, consumer: BrokerConsumer) -> None:
        try:
            while True:
                envelopes = await consumer.poll()
                for envelope in envelopes:
                    self.dispatch(envelope)
        except Exception as exc:  # noqa: BLE001 - the next ensure_started() restarts the loop
            logger.error("consume_loop_failed", exc=exc)
            self._state.last_error = _describe(exc)
            if self._consumer is consumer:
                self._consumer = None
            await self._teardown(consumer)
        finally:
            self._mark_stopped()

    # ── Per-message pipeline ───────────────────────────────────────

    def dispatch(self, envelope: RawEnvelope) -> bool:
        """Handle one envelope, logging and dropping it on any failure."""
        with message_context(
            topic=envelope.topic,
            partition=envelope.partition,
            offset=envelope.offset,
        ):
            signal = self._routes.get(envelope.topic)
            label = signal.value if signal is not None else "unknown"
            try:
                return self.handle(envelope)
            except RecordDecodeError as exc:
                self._metrics.record_drop(label, "decode")
                logger.warning("message_decode_failed", error=exc.detail, **exc.context)
            except IngestionError as exc:
                self._metrics.record_drop(label, exc.stage)
                logger.warning("message_dropped", stage=exc.stage, error=exc.detail)
            except Exception as exc:  # noqa: BLE001 - one bad message must not stop the loop
                self._metrics.record_drop(label, "unexpected")
                logger.error("message_handler_error", exc=exc)
            return False

    def handle(self, envelope: RawEnvelope) -> bool:
        """
        Run one envelope through the pipeline.

        Returns True if a new cache entry was admitted, False for empty
        payloads and duplicates. Raises IngestionError subclasses for
        messages that cannot be routed, decoded or normalized.
        """
        kind = self._routes.get(envelope.topic)
        if kind is None:
            raise UnknownTopicError(envelope.topic)
        self._metrics.record_message(kind.value)

        if not envelope.payload:
            self._metrics.record_drop(kind.value, "empty")
            return False

        frame = decode_frame(envelope.payload)
        self._metrics.record_frame(frame.status.value)
        if frame.is_fallback:
            logger.warning("frame_decompress_failed", reason=frame.reason)

        batch = self._codec.decode(frame.payload, kind)
        try:
            records = tuple(iter_records(batch, kind))
        except (AttributeError, TypeError, ValueError) as exc:
            raise NormalizationError(
                f"Malformed {kind.value} batch: {exc}",
                signal=kind.value,
                original_error=exc,
            ) from exc

        entry = CacheEntry(
            identity=message_identity(envelope.partition, envelope.offset, envelope.key),
            records=records,
            topic=envelope.topic,
            partition=envelope.partition,
            offset=envelope.offset,
            timestamp=envelope.timestamp,
        )
        result = self._state.cache_for(kind).admit(entry)
        self._metrics.record_admit(
            kind.value,
            admitted=result.admitted,
            records=len(records),
            size=result.size,
            evicted=result.evicted,
        )
        if not result.admitted:
            logger.debug("duplicate_message_skipped", identity=entry.identity)
        return result.admitted

    # ── Snapshot boundary ──────────────────────────────────────────

    def latency(self) -> LatencySnapshot:
        return compute_latency(
            self._state.traces.snapshot(),
            latency_keys=self._settings.LATENCY_ATTRIBUTE_KEYS,
            slow_threshold_ms=self._settings.SLOW_SPAN_THRESHOLD_MS,
        )

    def get_snapshot(self) -> dict[str, Any]:
        """
        JSON-ready view of both caches, oldest entry first.

        Never blocks on the consume loop. When the consumer is down
        after a failure, ``error`` and ``details`` describe it and the
        cached data is still returned.
        """
        traces = self._state.traces.snapshot()
        logs = self._state.logs.snapshot()
        latency = compute_latency(
            traces,
            latency_keys=self._settings.LATENCY_ATTRIBUTE_KEYS,
            slow_threshold_ms=self._settings.SLOW_SPAN_THRESHOLD_MS,
        )
        snapshot: dict[str, Any] = {
            "traces": [entry.to_dict() for entry in traces],
            "logs": [entry.to_dict() for entry in logs],
            "consumerRunning": self._state.consumer_running,
            "latency": latency.to_dict(),
        }
        if not self._state.consumer_running and self._state.last_error:
            snapshot["error"] = "Failed to retrieve telemetry data"
            snapshot["details"] = self._state.last_error
        return snapshot

    def get_stats(self) -> dict[str, Any]:
        return {
            "consumerRunning": self._state.consumer_running,
            "refreshIntervalMs": self._settings.REFRESH_INTERVAL_MS,
            "latency": self.latency().to_dict(),
            "caches": {
                kind.value: cache.get_stats()
                for kind, cache in self._state.caches.items()
            },
        }
