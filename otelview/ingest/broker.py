"""
Broker Adapter
===============

Thin boundary between the ingestion driver and the Kafka client.

The driver only sees ``RawEnvelope`` batches through the
``BrokerConsumer`` protocol; connection handling and retries belong
to aiokafka. Tests substitute an in-memory consumer.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from aiokafka import AIOKafkaConsumer
from aiokafka.structs import ConsumerRecord

from otelview.core.config import Settings

@dataclass(frozen=True, slots=True)
class RawEnvelope:
    """One broker message. Transient: consumed immediately, never cached."""

    topic: str
    partition: int | None
    offset: int | None
    key: bytes | None
    payload: bytes | None
    timestamp: int | None = None

    @classmethod
    def from_record(cls, record: ConsumerRecord) -> RawEnvelope:
        return cls(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            key=record.key,
            payload=record.value,
            timestamp=record.timestamp,
        )

class BrokerConsumer(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def poll(self) -> Sequence[RawEnvelope]: ...

class KafkaBrokerConsumer:
    """aiokafka consumer subscribed to the trace and log topics."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._consumer = AIOKafkaConsumer(
            *settings.topics,
            bootstrap_servers=settings.KAFKA_BROKERS,
            client_id=settings.KAFKA_CLIENT_ID,
            group_id=settings.CONSUMER_GROUP_ID,
            auto_offset_reset="latest",
            session_timeout_ms=settings.SESSION_TIMEOUT_MS,
            heartbeat_interval_ms=settings.HEARTBEAT_INTERVAL_MS,
            retry_backoff_ms=settings.RETRY_BACKOFF_MS,
        )

    async def start(self) -> None:
        await self._consumer.start()

    async def stop(self) -> None:
        await self._consumer.stop()

    async def poll(self) -> list[RawEnvelope]:
        batches = await self._consumer.getmany(
            timeout_ms=self._settings.POLL_TIMEOUT_MS,
            max_records=self._settings.POLL_MAX_RECORDS,
        )
        # Records keep broker order within each partition
        return [
            RawEnvelope.from_record(record)
            for records in batches.values()
            for record in records
        ]

def kafka_consumer_factory(settings: Settings) -> BrokerConsumer:
    return KafkaBrokerConsumer(settings)
