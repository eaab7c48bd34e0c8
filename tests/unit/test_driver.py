"""
Ingestion Driver — Unit Tests
==============================

Per-message pipeline, failure isolation, start/stop lifecycle and
the snapshot boundary, driven through an in-memory broker.
"""

import asyncio

import pytest
from conftest import (
    LOG_TOPIC,
    ConsumerFactory,
    FakeConsumer,
    logs_payload,
    make_span,
    traces_payload,
)
from opentelemetry.proto.common.v1.common_pb2 import AnyValue
from opentelemetry.proto.logs.v1.logs_pb2 import LogRecord

from otelview.core.exceptions import ConsumerStartError, UnknownTopicError
from otelview.ingest.broker import RawEnvelope
from otelview.ingest.driver import IngestionDriver
from otelview.ingest.frame import encode_frame


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class TestHandle:
    @pytest.fixture(autouse=True)
    def _driver(self, settings, metrics):
        self.driver = IngestionDriver(
            settings,
            metrics=metrics,
            consumer_factory=ConsumerFactory(FakeConsumer),
        )

    def test_trace_message_is_normalized_and_cached(self, trace_envelope):
        assert self.driver.handle(trace_envelope(offset=1)) is True
        (cached,) = self.driver.state.traces.snapshot()
        (span,) = cached.records
        assert span.trace_id == "AABBCC"
        assert span.duration == 50
        assert span.attributes["resourceAttributes"] == {"service_name": "checkout"}

    def test_same_offset_twice_keeps_cache_size(self, trace_envelope):
        self.driver.handle(trace_envelope(offset=1))
        assert self.driver.handle(trace_envelope(offset=1)) is False
        assert len(self.driver.state.traces) == 1

    def test_capacity_keeps_newest(self, trace_envelope):
        for offset in (1, 2, 3, 4):
            self.driver.handle(trace_envelope(offset=offset))
        assert [e.offset for e in self.driver.state.traces.snapshot()] == [2, 3, 4]

    def test_snappy_framed_payload(self, trace_envelope):
        framed = encode_frame(traces_payload([make_span()]))
        assert self.driver.handle(trace_envelope(offset=5, payload=framed))
        assert len(self.driver.state.traces) == 1

    def test_log_message_lands_in_log_cache(self):
        payload = logs_payload([LogRecord(body=AnyValue(string_value="hello"))])
        envelope = RawEnvelope(
            topic=LOG_TOPIC, partition=0, offset=1, key=None, payload=payload
        )
        assert self.driver.handle(envelope)
        assert len(self.driver.state.logs) == 1
        assert len(self.driver.state.traces) == 0

    def test_unknown_topic_raises(self, trace_envelope):
        with pytest.raises(UnknownTopicError):
            self.driver.handle(trace_envelope(topic="other"))

    def test_empty_payload_is_skipped(self, trace_envelope):
        envelope = RawEnvelope(
            topic=trace_envelope().topic, partition=0, offset=1, key=None, payload=None
        )
        assert self.driver.handle(envelope) is False
        assert len(self.driver.state.traces) == 0


class TestDispatch:
    @pytest.fixture(autouse=True)
    def _driver(self, settings, metrics):
        self.metrics = metrics
        self.driver = IngestionDriver(
            settings,
            metrics=metrics,
            consumer_factory=ConsumerFactory(FakeConsumer),
        )

    def test_bad_message_does_not_stop_the_next(self, trace_envelope):
        assert self.driver.dispatch(trace_envelope(offset=1, payload=b"\xff\xff\xff\xff\xff")) is False
        assert len(self.driver.state.traces) == 0
        assert self.driver.dispatch(trace_envelope(offset=2)) is True
        assert len(self.driver.state.traces) == 1

    def test_corrupt_frame_is_dropped_after_fallback(self, trace_envelope):
        corrupt = b"\xff\x06\x00\x00" + b"\xff" * 12
        assert self.driver.dispatch(trace_envelope(offset=1, payload=corrupt)) is False
        assert len(self.driver.state.traces) == 0

    def test_unknown_topic_is_swallowed(self, trace_envelope):
        assert self.driver.dispatch(trace_envelope(topic="other")) is False

    def test_unexpected_codec_error_is_swallowed(self, settings, trace_envelope):
        class ExplodingCodec:
            def decode(self, payload, kind):
                raise RuntimeError("codec bug")

        driver = IngestionDriver(settings, codec=ExplodingCodec(), metrics=self.metrics)
        assert driver.dispatch(trace_envelope()) is False

    def test_malformed_batch_shape_is_dropped(self, settings, trace_envelope):
        class ListCodec:
            def decode(self, payload, kind):
                return ["not", "a", "mapping"]

        driver = IngestionDriver(settings, codec=ListCodec(), metrics=self.metrics)
        assert driver.dispatch(trace_envelope()) is False
        assert len(driver.state.traces) == 0

    def test_drops_are_counted(self, trace_envelope):
        self.driver.dispatch(trace_envelope(payload=b"\xff\xff\xff\xff\xff"))
        value = self.metrics.registry.get_sample_value(
            "otelview_ingest_messages_dropped_total",
            {"signal": "traces", "reason": "decode"},
        )
        assert value == 1.0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_consume_loop_processes_polled_messages(self, settings, metrics, trace_envelope):
        batch = [trace_envelope(offset=o) for o in (1, 2, 1)]
        factory = ConsumerFactory(lambda: FakeConsumer([batch]))
        driver = IngestionDriver(settings, metrics=metrics, consumer_factory=factory)

        await driver.start()
        try:
            assert driver.is_running
            await wait_for(lambda: len(driver.state.traces) == 2)
        finally:
            await driver.stop()

        assert not driver.is_running
        assert factory.created[0].stopped

    @pytest.mark.asyncio
    async def test_start_is_single_flight(self, settings, metrics):
        factory = ConsumerFactory(FakeConsumer)
        driver = IngestionDriver(settings, metrics=metrics, consumer_factory=factory)
        try:
            results = await asyncio.gather(*(driver.ensure_started() for _ in range(5)))
            await driver.start()
        finally:
            await driver.stop()
        assert all(results)
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_failed_start_tears_down_and_reports(self, settings, metrics, trace_envelope):
        factory = ConsumerFactory(lambda: FakeConsumer(fail_start=True))
        driver = IngestionDriver(settings, metrics=metrics, consumer_factory=factory)
        driver.handle(trace_envelope(offset=1))

        with pytest.raises(ConsumerStartError):
            await driver.start()
        assert factory.created[0].stopped
        assert not driver.is_running

        assert await driver.ensure_started() is False
        assert len(factory.created) == 2

        snapshot = driver.get_snapshot()
        assert snapshot["consumerRunning"] is False
        assert snapshot["error"] == "Failed to retrieve telemetry data"
        assert "Unable to bootstrap" in snapshot["details"]
        assert len(snapshot["traces"]) == 1

    @pytest.mark.asyncio
    async def test_poll_failure_allows_clean_restart(self, settings, metrics):
        factory = ConsumerFactory(lambda: FakeConsumer(fail_poll_after=1))
        driver = IngestionDriver(settings, metrics=metrics, consumer_factory=factory)

        await driver.start()
        await wait_for(lambda: not driver.is_running)
        assert factory.created[0].stopped
        assert "error" in driver.get_snapshot()

        try:
            assert await driver.ensure_started() is True
            assert len(factory.created) == 2
            assert "error" not in driver.get_snapshot()
        finally:
            await driver.stop()

    @pytest.mark.asyncio
    async def test_unexpected_start_error_degrades(self, settings, metrics):
        factory = ConsumerFactory(lambda: FakeConsumer(start_error=RuntimeError("bad config")))
        driver = IngestionDriver(settings, metrics=metrics, consumer_factory=factory)

        assert await driver.ensure_started() is False
        assert factory.created[0].stopped
        assert not driver.is_running
        assert driver.get_snapshot()["details"] == "bad config"

    @pytest.mark.asyncio
    async def test_consumer_construction_error_degrades(self, settings, metrics):
        def build():
            raise ValueError("invalid client config")

        driver = IngestionDriver(settings, metrics=metrics, consumer_factory=ConsumerFactory(build))
        with pytest.raises(ConsumerStartError):
            await driver.start()
        assert await driver.ensure_started() is False
        assert driver.state.last_error == "invalid client config"

    @pytest.mark.asyncio
    async def test_unexpected_poll_error_tears_down(self, settings, metrics):
        factory = ConsumerFactory(
            lambda: FakeConsumer(fail_poll_after=1, poll_error=RuntimeError("boom"))
        )
        driver = IngestionDriver(settings, metrics=metrics, consumer_factory=factory)

        await driver.start()
        await wait_for(lambda: not driver.is_running)
        assert factory.created[0].stopped
        assert driver.state.last_error == "boom"
        assert driver.get_snapshot()["details"] == "boom"

        try:
            assert await driver.ensure_started() is True
            assert len(factory.created) == 2
        finally:
            await driver.stop()

    @pytest.mark.asyncio
    async def test_stop_marks_consumer_stopped(self, settings, metrics):
        driver = IngestionDriver(
            settings, metrics=metrics, consumer_factory=ConsumerFactory(FakeConsumer)
        )
        await driver.start()
        assert metrics.registry.get_sample_value("otelview_consumer_running") == 1
        await driver.stop()
        await driver.stop()
        assert not driver.is_running
        assert metrics.registry.get_sample_value("otelview_consumer_running") == 0


class TestSnapshot:
    def test_shape_and_order(self, settings, metrics, trace_envelope):
        driver = IngestionDriver(settings, metrics=metrics)
        for offset in (1, 2):
            driver.handle(trace_envelope(offset=offset))

        snapshot = driver.get_snapshot()
        assert set(snapshot) == {"traces", "logs", "consumerRunning", "latency"}
        assert [e["offset"] for e in snapshot["traces"]] == [1, 2]
        first = snapshot["traces"][0]
        assert first["timestamp"] == 1_700_000_000_000
        assert first["data"][0]["traceId"] == "AABBCC"
        assert first["data"][0]["kind"] == "UNSPECIFIED"
        assert snapshot["logs"] == []
        assert snapshot["latency"]["count"] == 2
        assert snapshot["latency"]["avg"] == 50

    def test_latency_override_from_attributes(self, settings, metrics, trace_envelope):
        driver = IngestionDriver(settings, metrics=metrics)
        payload = traces_payload([make_span(attributes={"http.latency_ms": 12.0})])
        driver.handle(trace_envelope(offset=1, payload=payload))
        assert driver.latency().p99 == 12.0

    def test_stats(self, settings, metrics, trace_envelope):
        driver = IngestionDriver(settings, metrics=metrics)
        driver.handle(trace_envelope(offset=1))
        stats = driver.get_stats()
        assert stats["caches"]["traces"]["size"] == 1
        assert stats["caches"]["logs"]["capacity"] == 3
        assert stats["latency"]["max"] == 50
