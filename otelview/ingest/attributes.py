"""
Attribute and identifier resolution for decoded OTLP records.

Works on the JSON mapping produced by the record decoder, where an
attribute is ``{"key": ..., "value": {"stringValue": ...}}`` and the
value holds exactly one variant.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_NANOS_PER_MILLI = 1_000_000

class ValueKind(StrEnum):
    """Scalar variants of an OTLP ``AnyValue``, in resolution order."""

    STRING = "stringValue"
    INT = "intValue"
    DOUBLE = "doubleValue"
    BOOL = "boolValue"

Scalar = str | int | float | bool

@dataclass(frozen=True, slots=True)
class AttributeValue:
    """A resolved scalar attribute value tagged with its variant."""

    kind: ValueKind
    value: Scalar

    @classmethod
    def from_any(cls, raw: Mapping[str, Any] | None) -> AttributeValue | None:
        """Resolve the first non-empty scalar variant of an ``AnyValue``.

        ``intValue`` arrives as a decimal string and ``doubleValue`` may
        arrive as a string ("NaN", "Infinity"); both are coerced. Values
        that cannot be coerced, and non-scalar variants, resolve to None.
        """
        if not raw:
            return None
        for kind in ValueKind:
            candidate = raw.get(kind.value)
            if candidate is None or candidate == "":
                continue
            value = _coerce(kind, candidate)
            if value is not None:
                return cls(kind=kind, value=value)
        return None

def _coerce(kind: ValueKind, candidate: Any) -> Scalar | None:
    try:
        if kind is ValueKind.STRING:
            return str(candidate)
        if kind is ValueKind.INT:
            return int(candidate)
        if kind is ValueKind.DOUBLE:
            return float(candidate)
        if isinstance(candidate, bool):
            return candidate
        if isinstance(candidate, str) and candidate.lower() in ("true", "false"):
            return candidate.lower() == "true"
    except (TypeError, ValueError):
        return None
    return None

def resolve_value(raw: Mapping[str, Any] | None) -> Scalar | None:
    resolved = AttributeValue.from_any(raw)
    return resolved.value if resolved is not None else None

def resolve_attributes(attributes: Iterable[Mapping[str, Any]] | None) -> dict[str, Scalar]:
    """Flatten a KeyValue list; keys without a resolvable value are omitted."""
    result: dict[str, Scalar] = {}
    for attr in attributes or ():
        key = attr.get("key")
        if not key:
            continue
        value = resolve_value(attr.get("value"))
        if value is not None:
            result[key] = value
    return result

def resolve_body(body: Mapping[str, Any] | None) -> str | dict[str, Scalar]:
    """Log body as text, or as a flat map for ``kvlistValue`` bodies."""
    if not body:
        return ""
    if "kvlistValue" in body:
        kvlist = body["kvlistValue"] or {}
        # JSON mapping nests the pairs under "values"; accept a bare list too
        items = kvlist.get("values", []) if isinstance(kvlist, Mapping) else kvlist
        return resolve_attributes(items)
    scalar = resolve_value(body)
    if scalar is not None:
        return str(scalar)
    return json.dumps(body, sort_keys=True, default=str)

def format_id(value: Any) -> str:
    """Normalize a trace or span id to uppercase hex.

    Raw bytes and base64 strings are converted; strings that are
    already hex pass through unchanged. Anything else yields "".
    """
    if not value:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex().upper()
    if not isinstance(value, str):
        return ""
    if len(value) % 2 == 0 and _HEX_RE.match(value):
        return value
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return ""
    return decoded.hex().upper()

def nanos_to_millis(value: Any) -> int:
    """Truncate a nanosecond epoch timestamp (int or decimal string) to ms."""
    if value is None or value == "":
        return 0
    try:
        return int(value) // _NANOS_PER_MILLI
    except (TypeError, ValueError):
        return 0
