"""Unit tests for settings."""

import pytest
from pydantic import ValidationError

from otelview.core.config import Settings
from otelview.core.types import SignalKind


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("OTELVIEW_TRACE_CACHE_CAPACITY", raising=False)
    s = Settings(_env_file=None)
    assert s.TRACE_CACHE_CAPACITY == 100
    assert s.LOG_CACHE_CAPACITY == 100
    assert s.SLOW_SPAN_THRESHOLD_MS == 300.0
    assert "http.latency_ms" in s.LATENCY_ATTRIBUTE_KEYS


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("OTELVIEW_KAFKA_BROKERS", "kafka-1:9092, kafka-2:9093")
    monkeypatch.setenv("OTELVIEW_TRACE_TOPIC", "prod.trace")
    monkeypatch.setenv("OTELVIEW_LOG_CACHE_CAPACITY", "1000")
    s = Settings(_env_file=None)
    assert s.KAFKA_BROKERS == ["kafka-1:9092", "kafka-2:9093"]
    assert s.TRACE_TOPIC == "prod.trace"
    assert s.LOG_CACHE_CAPACITY == 1000


def test_brokers_accept_json_list(monkeypatch):
    monkeypatch.setenv("OTELVIEW_KAFKA_BROKERS", '["a:1","b:2"]')
    assert Settings(_env_file=None).KAFKA_BROKERS == ["a:1", "b:2"]


def test_latency_keys_accept_comma_list(monkeypatch):
    monkeypatch.setenv("OTELVIEW_LATENCY_ATTRIBUTE_KEYS", "duration_ms, db.latency_ms")
    assert Settings(_env_file=None).LATENCY_ATTRIBUTE_KEYS == ["duration_ms", "db.latency_ms"]

    monkeypatch.setenv("OTELVIEW_LATENCY_ATTRIBUTE_KEYS", '["latency_ms"]')
    assert Settings(_env_file=None).LATENCY_ATTRIBUTE_KEYS == ["latency_ms"]


def test_topic_routing():
    s = Settings(TRACE_TOPIC="t", LOG_TOPIC="l", _env_file=None)
    assert s.topics == {"t": SignalKind.TRACES, "l": SignalKind.LOGS}
    assert s.capacity_for(SignalKind.LOGS) == s.LOG_CACHE_CAPACITY


def test_identical_topics_rejected():
    with pytest.raises(ValidationError):
        Settings(TRACE_TOPIC="same", LOG_TOPIC="same", _env_file=None)


def test_capacity_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(TRACE_CACHE_CAPACITY=0, _env_file=None)
