"""Custom exception classes for otelview.

Includes:
- Base exception for API-facing errors
- Ingestion pipeline exceptions carrying stage and message context
"""

from datetime import UTC, datetime
from typing import Any


class OtelViewError(Exception):
    """Base exception for all otelview errors."""

    def __init__(
        self, detail: str, status_code: int = 500, error_code: str = "INTERNAL_ERROR"
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)

    def to_dict(self):
        """Convert exception to dictionary for API response."""
        return {
            "error": self.error_code,
            "detail": self.detail,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
        }


# =============================================================================
# INGESTION EXCEPTIONS
# =============================================================================


class IngestionError(OtelViewError):
    """Base exception for ingestion pipeline errors with message context."""

    def __init__(
        self,
        detail: str,
        stage: str = "unknown",
        original_error: Exception | None = None,
        context: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(
            detail=detail, status_code=500, error_code=f"INGEST_{stage.upper()}_ERROR"
        )
        self.stage = stage
        self.original_error = original_error
        self.context = context or {}
        self.retryable = retryable

    def to_dict(self):
        base = super().to_dict()
        base.update(
            {
                "stage": self.stage,
                "retryable": self.retryable,
                "context": self.context,
            }
        )
        return base


class UnknownTopicError(IngestionError):
    """Message arrived on a topic with no decode path."""

    def __init__(self, topic: str):
        super().__init__(
            detail=f"No decoder registered for topic {topic!r}",
            stage="route",
            context={"topic": topic},
        )


class RecordDecodeError(IngestionError):
    """Payload could not be decoded into an OTLP batch."""

    def __init__(
        self,
        detail: str,
        signal: str,
        original_error: Exception | None = None,
        payload_size: int | None = None,
    ):
        context: dict[str, Any] = {"signal": signal}
        if payload_size is not None:
            context["payload_size"] = payload_size
        super().__init__(
            detail=detail,
            stage="decode",
            original_error=original_error,
            context=context,
        )


class NormalizationError(IngestionError):
    """Decoded batch could not be flattened."""

    def __init__(
        self, detail: str, signal: str, original_error: Exception | None = None
    ):
        super().__init__(
            detail=detail,
            stage="normalize",
            original_error=original_error,
            context={"signal": signal},
        )


class ConsumerStartError(IngestionError):
    """Broker connect or subscribe failed after the client's own retries."""

    def __init__(
        self,
        detail: str,
        brokers: list[str] | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(
            detail=detail,
            stage="connect",
            original_error=original_error,
            context={"brokers": brokers or []},
            retryable=True,
        )
