"""
Normalizer — OTLP Batch to Flat Records
=========================================

Walks ``resource → scope → span`` (or ``resource → scope → logRecord``)
in a decoded batch and yields self-contained flat records.

Attribute precedence (highest first):
  1. Leaf attributes (span or log record)
  2. ``scopeName`` / ``scopeVersion``
  3. ``resourceAttributes`` (nested map of the resource's attributes)

Timestamps are truncated from nanoseconds to milliseconds; span
durations are clamped at zero. Missing sections never raise; they
resolve to empty maps, empty strings and zeros.

Both iterators are lazy and single-use per batch.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from opentelemetry.proto.logs.v1.logs_pb2 import SeverityNumber

from otelview.core.types import SeverityLevel, SignalKind, SpanKind
from otelview.ingest.attributes import (
    Scalar,
    format_id,
    nanos_to_millis,
    resolve_attributes,
    resolve_body,
)

Attributes = dict[str, Any]

@dataclass(frozen=True, slots=True)
class NormalizedSpan:
    trace_id: str
    span_id: str
    parent_span_id: str
    name: str
    kind: SpanKind
    start_time: int
    end_time: int
    duration: int
    attributes: Attributes = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "traceId": self.trace_id,
            "spanId": self.span_id,
            "parentSpanId": self.parent_span_id,
            "name": self.name,
            "kind": self.kind.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "attributes": self.attributes,
        }

@dataclass(frozen=True, slots=True)
class NormalizedLog:
    time: int
    observed_time: int
    severity_number: int
    severity_text: str
    body: str | dict[str, Scalar]
    trace_id: str
    span_id: str
    attributes: Attributes = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "observedTime": self.observed_time,
            "severityNumber": self.severity_number,
            "severityText": self.severity_text,
            "body": self.body,
            "traceId": self.trace_id,
            "spanId": self.span_id,
            "attributes": self.attributes,
        }

NormalizedRecord = NormalizedSpan | NormalizedLog

# ── Shared helpers ─────────────────────────────────────────────────

def _scope_fields(scope: Mapping[str, Any]) -> Attributes:
    fields: Attributes = {}
    if scope.get("name"):
        fields["scopeName"] = scope["name"]
    if scope.get("version"):
        fields["scopeVersion"] = scope["version"]
    return fields

def _merge_attributes(
    leaf: Mapping[str, Scalar],
    scope_fields: Attributes,
    resource_attrs: Mapping[str, Scalar],
) -> Attributes:
    return {
        "resourceAttributes": dict(resource_attrs),
        **scope_fields,
        **leaf,
    }

def _walk(
    batch: Mapping[str, Any] | None,
    resource_key: str,
    scope_key: str,
    leaf_key: str,
) -> Iterator[tuple[Mapping[str, Any], Attributes, dict[str, Scalar]]]:
    for resource_block in (batch or {}).get(resource_key) or ():
        resource = resource_block.get("resource") or {}
        resource_attrs = resolve_attributes(resource.get("attributes"))
        for scope_block in resource_block.get(scope_key) or ():
            scope_fields = _scope_fields(scope_block.get("scope") or {})
            for leaf in scope_block.get(leaf_key) or ():
                yield leaf, scope_fields, resource_attrs

# ── Spans ──────────────────────────────────────────────────────────

def normalize_span(
    span: Mapping[str, Any],
    scope_fields: Attributes | None = None,
    resource_attrs: Mapping[str, Scalar] | None = None,
) -> NormalizedSpan:
    start = nanos_to_millis(span.get("startTimeUnixNano"))
    end = nanos_to_millis(span.get("endTimeUnixNano"))
    return NormalizedSpan(
        trace_id=format_id(span.get("traceId")),
        span_id=format_id(span.get("spanId")),
        parent_span_id=format_id(span.get("parentSpanId")),
        name=span.get("name") or "",
        kind=SpanKind.parse(span.get("kind")),
        start_time=start,
        end_time=end,
        duration=max(0, end - start),
        attributes=_merge_attributes(
            resolve_attributes(span.get("attributes")),
            scope_fields or {},
            resource_attrs or {},
        ),
    )

def iter_spans(batch: Mapping[str, Any] | None) -> Iterator[NormalizedSpan]:
    """Lazily flatten a decoded ``TracesData`` mapping."""
    for span, scope_fields, resource_attrs in _walk(
        batch, "resourceSpans", "scopeSpans", "spans"
    ):
        yield normalize_span(span, scope_fields, resource_attrs)

# ── Logs ───────────────────────────────────────────────────────────

def severity_number(value: Any) -> int:
    """Resolve an enum name (``SEVERITY_NUMBER_WARN``) or ordinal to an int."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value.isdigit():
            return int(value)
        try:
            return SeverityNumber.Value(value)
        except ValueError:
            return 0
    return 0

def severity_text(number: int, text: str | None = None) -> str:
    if text:
        return text
    level = SeverityLevel.for_number(number)
    return level.name if level is not None else ""

def normalize_log(
    record: Mapping[str, Any],
    scope_fields: Attributes | None = None,
    resource_attrs: Mapping[str, Scalar] | None = None,
) -> NormalizedLog:
    number = severity_number(record.get("severityNumber"))
    return NormalizedLog(
        time=nanos_to_millis(record.get("timeUnixNano")),
        observed_time=nanos_to_millis(record.get("observedTimeUnixNano")),
        severity_number=number,
        severity_text=severity_text(number, record.get("severityText")),
        body=resolve_body(record.get("body")),
        trace_id=format_id(record.get("traceId")),
        span_id=format_id(record.get("spanId")),
        attributes=_merge_attributes(
            resolve_attributes(record.get("attributes")),
            scope_fields or {},
            resource_attrs or {},
        ),
    )

def iter_logs(batch: Mapping[str, Any] | None) -> Iterator[NormalizedLog]:
    """Lazily flatten a decoded ``LogsData`` mapping."""
    for record, scope_fields, resource_attrs in _walk(
        batch, "resourceLogs", "scopeLogs", "logRecords"
    ):
        yield normalize_log(record, scope_fields, resource_attrs)

def iter_records(
    batch: Mapping[str, Any] | None, kind: SignalKind
) -> Iterator[NormalizedRecord]:
    if kind is SignalKind.TRACES:
        return iter_spans(batch)
    return iter_logs(batch)
