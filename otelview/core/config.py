"""
Application Settings
=====================

All runtime options come from the environment (prefix ``OTELVIEW_``)
or an optional ``.env`` file. Core pipeline code receives a Settings
instance by injection and never reads the environment itself.

Example:
    OTELVIEW_KAFKA_BROKERS='["kafka-1:9092","kafka-2:9092"]'
    OTELVIEW_TRACE_CACHE_CAPACITY=500
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from otelview import __version__
from otelview.core.types import SignalKind

class Settings(BaseSettings):
    """Typed runtime configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OTELVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "otelview"
    APP_VERSION: str = __version__
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool | None = None  # None = JSON outside development

    # ── Broker ──
    KAFKA_BROKERS: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["localhost:9092"]
    )
    KAFKA_CLIENT_ID: str = "otelview"
    CONSUMER_GROUP_ID: str = "otelview-consumer"
    TRACE_TOPIC: str = "otlp.traces"
    LOG_TOPIC: str = "otlp.logs"
    SESSION_TIMEOUT_MS: int = Field(default=30_000, ge=1)
    HEARTBEAT_INTERVAL_MS: int = Field(default=5_000, ge=1)
    RETRY_BACKOFF_MS: int = Field(default=100, ge=0)
    POLL_TIMEOUT_MS: int = Field(default=1_000, ge=0)
    POLL_MAX_RECORDS: int = Field(default=500, ge=1)

    # ── Cache ──
    TRACE_CACHE_CAPACITY: int = Field(default=100, ge=1)
    LOG_CACHE_CAPACITY: int = Field(default=100, ge=1)

    # ── Statistics ──
    LATENCY_ATTRIBUTE_KEYS: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["latency_ms", "http.latency_ms", "rpc.latency_ms"]
    )
    SLOW_SPAN_THRESHOLD_MS: float = Field(default=300.0, ge=0)

    # ── Dashboard ──
    REFRESH_INTERVAL_MS: int = Field(default=5_000, ge=100)

    @field_validator("KAFKA_BROKERS", "LATENCY_ATTRIBUTE_KEYS", mode="before")
    @classmethod
    def _split_list(cls, value: object) -> object:
        # Accept "a,b" as well as a JSON list
        if not isinstance(value, str):
            return value
        if value.lstrip().startswith("["):
            return json.loads(value)
        return [part.strip() for part in value.split(",") if part.strip()]

    @model_validator(mode="after")
    def _check_topics(self) -> Settings:
        if self.TRACE_TOPIC == self.LOG_TOPIC:
            raise ValueError("TRACE_TOPIC and LOG_TOPIC must differ")
        if not self.KAFKA_BROKERS:
            raise ValueError("KAFKA_BROKERS must list at least one broker")
        return self

    @property
    def topics(self) -> dict[str, SignalKind]:
        """Topic name → signal routing table."""
        return {
            self.TRACE_TOPIC: SignalKind.TRACES,
            self.LOG_TOPIC: SignalKind.LOGS,
        }

    def capacity_for(self, kind: SignalKind) -> int:
        if kind is SignalKind.TRACES:
            return self.TRACE_CACHE_CAPACITY
        return self.LOG_CACHE_CAPACITY

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return Settings()
