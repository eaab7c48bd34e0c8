"""
Canonical Type Definitions
===========================

Shared enums used across the ingestion pipeline and the API layer.

This module defines:
- SignalKind: Which OTLP signal a topic carries
- SpanKind: Normalized span kinds
- SeverityLevel: Coarse log severity buckets
"""

from enum import IntEnum, StrEnum

__all__ = [
    "SeverityLevel",
    "SignalKind",
    "SpanKind",
]

class SignalKind(StrEnum):
    """OTLP signal carried by a topic.

    Selects the decode path and the cache a message lands in.
    """

    TRACES = "traces"
    LOGS = "logs"

class SpanKind(StrEnum):
    """Span kinds, without the ``SPAN_KIND_`` wire prefix."""

    UNSPECIFIED = "UNSPECIFIED"
    INTERNAL = "INTERNAL"
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"

    @classmethod
    def parse(cls, value: object) -> "SpanKind":
        """Resolve a wire value (enum name or ordinal) to a SpanKind."""
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            return members[value] if 0 <= value < len(members) else cls.UNSPECIFIED
        if isinstance(value, str):
            name = value.upper().removeprefix("SPAN_KIND_")
            if name.isdigit():
                return cls.parse(int(name))
            try:
                return cls(name)
            except ValueError:
                return cls.UNSPECIFIED
        return cls.UNSPECIFIED

class SeverityLevel(IntEnum):
    """Lower bound of each OTLP severity range (1-4 TRACE ... 21-24 FATAL)."""

    TRACE = 1
    DEBUG = 5
    INFO = 9
    WARN = 13
    ERROR = 17
    FATAL = 21

    @classmethod
    def for_number(cls, number: int) -> "SeverityLevel | None":
        if number <= 0:
            return None
        level = cls.TRACE
        for candidate in cls:
            if number >= candidate:
                level = candidate
        return level
