"""Shared fixtures: OTLP payload builders and an in-memory broker."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

import pytest
from aiokafka.errors import KafkaConnectionError
from opentelemetry.proto.common.v1.common_pb2 import (
    AnyValue,
    InstrumentationScope,
    KeyValue,
    KeyValueList,
)
from opentelemetry.proto.logs.v1.logs_pb2 import (
    LogRecord,
    LogsData,
    ResourceLogs,
    ScopeLogs,
)
from opentelemetry.proto.resource.v1.resource_pb2 import Resource
from opentelemetry.proto.trace.v1.trace_pb2 import (
    ResourceSpans,
    ScopeSpans,
    Span,
    TracesData,
)

from otelview.core.config import Settings
from otelview.infra.telemetry import IngestionMetrics
from otelview.ingest.broker import RawEnvelope

TRACE_TOPIC = "test.otlp.traces"
LOG_TOPIC = "test.otlp.logs"


def kv(key: str, value) -> KeyValue:
    if isinstance(value, bool):
        any_value = AnyValue(bool_value=value)
    elif isinstance(value, int):
        any_value = AnyValue(int_value=value)
    elif isinstance(value, float):
        any_value = AnyValue(double_value=value)
    elif isinstance(value, dict):
        any_value = AnyValue(
            kvlist_value=KeyValueList(values=[kv(k, v) for k, v in value.items()])
        )
    else:
        any_value = AnyValue(string_value=value)
    return KeyValue(key=key, value=any_value)


def traces_payload(
    spans: Sequence[Span],
    *,
    resource: dict | None = None,
    scope: tuple[str, str] | None = None,
) -> bytes:
    scope_spans = ScopeSpans(spans=list(spans))
    if scope is not None:
        scope_spans.scope.CopyFrom(InstrumentationScope(name=scope[0], version=scope[1]))
    resource_spans = ResourceSpans(scope_spans=[scope_spans])
    if resource is not None:
        resource_spans.resource.CopyFrom(
            Resource(attributes=[kv(k, v) for k, v in resource.items()])
        )
    return TracesData(resource_spans=[resource_spans]).SerializeToString()


def make_span(
    *,
    trace_id: bytes = b"\xaa\xbb\xcc",
    span_id: bytes = b"\x01\x02\x03\x04\x05\x06\x07\x08",
    start_ns: int = 1_000_000_000,
    end_ns: int = 1_050_000_000,
    name: str = "",
    attributes: dict | None = None,
    kind: int = 0,
) -> Span:
    return Span(
        trace_id=trace_id,
        span_id=span_id,
        name=name,
        kind=kind,
        start_time_unix_nano=start_ns,
        end_time_unix_nano=end_ns,
        attributes=[kv(k, v) for k, v in (attributes or {}).items()],
    )


def logs_payload(
    records: Sequence[LogRecord],
    *,
    resource: dict | None = None,
    scope: tuple[str, str] | None = None,
) -> bytes:
    scope_logs = ScopeLogs(log_records=list(records))
    if scope is not None:
        scope_logs.scope.CopyFrom(InstrumentationScope(name=scope[0], version=scope[1]))
    resource_logs = ResourceLogs(scope_logs=[scope_logs])
    if resource is not None:
        resource_logs.resource.CopyFrom(
            Resource(attributes=[kv(k, v) for k, v in resource.items()])
        )
    return LogsData(resource_logs=[resource_logs]).SerializeToString()


class FakeConsumer:
    """In-memory BrokerConsumer: serves scripted batches, then idles."""

    def __init__(
        self,
        batches: Sequence[Sequence[RawEnvelope]] = (),
        *,
        fail_start: bool = False,
        fail_poll_after: int | None = None,
        start_error: Exception | None = None,
        poll_error: Exception | None = None,
    ) -> None:
        self._batches = [list(b) for b in batches]
        self.fail_start = fail_start
        self.fail_poll_after = fail_poll_after
        self.start_error = start_error
        self.poll_error = poll_error
        self.started = False
        self.stopped = False
        self.polls = 0

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        if self.fail_start:
            raise KafkaConnectionError("Unable to bootstrap from [('broker', 9092)]")
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def poll(self) -> list[RawEnvelope]:
        self.polls += 1
        if self.fail_poll_after is not None and self.polls > self.fail_poll_after:
            raise self.poll_error or KafkaConnectionError("connection lost")
        if self._batches:
            return self._batches.pop(0)
        await asyncio.sleep(0.01)
        return []


class ConsumerFactory:
    """Records every consumer it builds."""

    def __init__(self, build: Callable[[], FakeConsumer]) -> None:
        self._build = build
        self.created: list[FakeConsumer] = []

    def __call__(self, settings: Settings) -> FakeConsumer:
        consumer = self._build()
        self.created.append(consumer)
        return consumer


@pytest.fixture
def settings() -> Settings:
    return Settings(
        TRACE_TOPIC=TRACE_TOPIC,
        LOG_TOPIC=LOG_TOPIC,
        KAFKA_BROKERS=["broker:9092"],
        TRACE_CACHE_CAPACITY=3,
        LOG_CACHE_CAPACITY=3,
    )


@pytest.fixture
def metrics() -> IngestionMetrics:
    return IngestionMetrics()


@pytest.fixture
def trace_envelope() -> Callable[..., RawEnvelope]:
    def build(offset: int | None = 1, payload: bytes | None = None, **kwargs) -> RawEnvelope:
        return RawEnvelope(
            topic=kwargs.pop("topic", TRACE_TOPIC),
            partition=kwargs.pop("partition", 0),
            offset=offset,
            key=kwargs.pop("key", None),
            payload=payload if payload is not None else traces_payload(
                [make_span()], resource={"service_name": "checkout"}
            ),
            timestamp=kwargs.pop("timestamp", 1_700_000_000_000),
        )

    return build
