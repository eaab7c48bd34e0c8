"""
Record Decoder
===============

Turns a decompressed payload into the canonical dict form of an OTLP
``TracesData`` or ``LogsData`` message.

The generated ``opentelemetry-proto`` classes do the parsing;
``MessageToDict`` maps the result to the JSON mapping of the schema:
camelCase keys, enum values as names and 64-bit integers as decimal
strings. Trace and span ids on spans and log records are put back as
raw bytes: their base64 text can look like hex, so it cannot be told
apart from an id that is already hex-encoded.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Protocol

from google.protobuf.json_format import MessageToDict
from google.protobuf.message import DecodeError, Message
from opentelemetry.proto.logs.v1.logs_pb2 import LogsData
from opentelemetry.proto.trace.v1.trace_pb2 import TracesData

from otelview.core.exceptions import RecordDecodeError
from otelview.core.types import SignalKind

# (message field, JSON name) per nesting level down to the leaf records
_LEAF_PATHS: dict[SignalKind, tuple[tuple[str, str], ...]] = {
    SignalKind.TRACES: (
        ("resource_spans", "resourceSpans"),
        ("scope_spans", "scopeSpans"),
        ("spans", "spans"),
    ),
    SignalKind.LOGS: (
        ("resource_logs", "resourceLogs"),
        ("scope_logs", "scopeLogs"),
        ("log_records", "logRecords"),
    ),
}

_ID_FIELDS = (
    ("trace_id", "traceId"),
    ("span_id", "spanId"),
    ("parent_span_id", "parentSpanId"),
)

def _leaves(
    message: Message, mapping: dict[str, Any], path: tuple[tuple[str, str], ...]
) -> Iterator[tuple[Message, dict[str, Any]]]:
    # MessageToDict keeps every element of a repeated field, in order
    field, json_name = path[0]
    pairs = zip(getattr(message, field), mapping.get(json_name) or ())
    if len(path) == 1:
        yield from pairs
        return
    for child, child_mapping in pairs:
        yield from _leaves(child, child_mapping, path[1:])

def restore_ids(message: Message, batch: dict[str, Any], kind: SignalKind) -> dict[str, Any]:
    """Replace the base64 id strings of each leaf record with the raw bytes."""
    for leaf, leaf_mapping in _leaves(message, batch, _LEAF_PATHS[kind]):
        for field, json_name in _ID_FIELDS:
            if json_name in leaf_mapping:
                leaf_mapping[json_name] = getattr(leaf, field)
    return batch

class Codec(Protocol):
    """Black-box decode function per signal kind."""

    def decode(self, payload: bytes, kind: SignalKind) -> dict[str, Any]: ...

class ProtobufCodec:
    """Decodes OTLP protobuf payloads."""

    MESSAGE_TYPES: dict[SignalKind, type[Message]] = {
        SignalKind.TRACES: TracesData,
        SignalKind.LOGS: LogsData,
    }

    def decode(self, payload: bytes, kind: SignalKind) -> dict[str, Any]:
        message_type = self.MESSAGE_TYPES[kind]
        message = message_type()
        try:
            message.ParseFromString(payload)
        except DecodeError as exc:
            raise RecordDecodeError(
                f"Invalid {message_type.__name__} payload: {exc}",
                signal=kind.value,
                original_error=exc,
                payload_size=len(payload),
            ) from exc
        return restore_ids(message, MessageToDict(message), kind)
