"""Handoff of resolved offsets and the record decoder to a consuming engine."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Protocol

from confluent_kafka import Consumer, KafkaError, TopicPartition

from kafka_stream_ingest.broker_connections.connection_set import ClientFactory
from kafka_stream_ingest.configuration.runtime_settings import Configuration, SourceSettings
from kafka_stream_ingest.offset_resolution.offset_models import ResolvedOffsetMap
from kafka_stream_ingest.offset_resolution.resolution_use_case import resolve_starting_offsets
from kafka_stream_ingest.record_decoding.record_decoder import RecordDecoder, build_record_decoder
from kafka_stream_ingest.record_decoding.record_formats import RecordDecodeError
from kafka_stream_ingest.record_decoding.structured_records import (
    MessageEnvelope,
    StructuredRecord,
)

logger = logging.getLogger(__name__)

_KAFKA_CLIENT_LOGGER = logging.getLogger("kafka_stream_ingest.kafka.client")


class StreamConsumptionError(Exception):
    """Raised when the consumer reports a message error other than end of partition."""


class StreamConsumerProtocol(Protocol):
    """Protocol implemented by both real and fake consumers."""

    def assign(self, partitions: list[TopicPartition]) -> None: ...

    def consume(self, num_messages: int = 1, timeout: float = -1) -> list[_KafkaRawMessage]: ...

    def close(self) -> None: ...


class _KafkaRawMessage(Protocol):
    """Subset of Kafka message API required by the stream."""

    def error(self) -> Any: ...

    def key(self) -> bytes | None: ...

    def value(self) -> bytes | None: ...

    def partition(self) -> int: ...

    def offset(self) -> int: ...


@dataclass(frozen=True)
class StreamHandoff:
    """Everything a consuming engine needs to start reading the topic."""

    topic: str
    starting_offsets: ResolvedOffsetMap
    decoder: RecordDecoder


def assemble_stream(
    configuration: Configuration, *, client_factory: ClientFactory | None = None
) -> StreamHandoff:
    """Resolve starting offsets and pair them with the configured record decoder."""
    offsets = resolve_starting_offsets(configuration.source, client_factory=client_factory)
    return StreamHandoff(
        topic=configuration.source.topic,
        starting_offsets=offsets,
        decoder=build_record_decoder(configuration.decoding),
    )


class ConsumerStream:
    """Minimal engine adapter reading batches from the resolved offsets onward."""

    def __init__(
        self,
        handoff: StreamHandoff,
        consumer: StreamConsumerProtocol,
        *,
        batch_size: int = 100,
        poll_timeout_seconds: float = 1.0,
        max_idle_polls: int | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._handoff = handoff
        self._consumer = consumer
        self._batch_size = batch_size
        self._poll_timeout = poll_timeout_seconds
        self._max_idle_polls = max_idle_polls
        self._clock = clock or _epoch_millis

    def batches(self, max_messages: int | None = None) -> Iterator[list[StructuredRecord]]:
        """Yield decoded records batch by batch; every batch shares one timestamp."""
        assignment = [
            TopicPartition(partition.topic, partition.partition, offset)
            for partition, offset in sorted(self._handoff.starting_offsets.items())
        ]
        self._consumer.assign(assignment)
        delivered = 0
        idle_polls = 0
        try:
            while max_messages is None or delivered < max_messages:
                limit = self._batch_size
                if max_messages is not None:
                    limit = min(limit, max_messages - delivered)
                messages = self._consumer.consume(num_messages=limit, timeout=self._poll_timeout)
                if not messages:
                    idle_polls += 1
                    if self._max_idle_polls is not None and idle_polls >= self._max_idle_polls:
                        break
                    continue
                idle_polls = 0
                records = self._decode_batch(messages, self._clock())
                delivered += len(records)
                if records:
                    yield records
        finally:
            self._consumer.close()

    def _decode_batch(
        self, messages: list[_KafkaRawMessage], batch_timestamp: int
    ) -> list[StructuredRecord]:
        records: list[StructuredRecord] = []
        for message in messages:
            error = message.error()
            if error:
                if error.code() == KafkaError._PARTITION_EOF:
                    continue
                raise StreamConsumptionError(f"Kafka error: {error}")
            payload = message.value()
            if payload is None:
                raise RecordDecodeError(
                    f"Received empty message payload at partition {message.partition()} "
                    f"offset {message.offset()}."
                )
            envelope = MessageEnvelope(
                key=message.key(),
                value=payload,
                partition=message.partition(),
                offset=message.offset(),
                batch_timestamp=batch_timestamp,
            )
            records.append(self._handoff.decoder(envelope))
        return records


def create_stream_consumer(settings: SourceSettings) -> StreamConsumerProtocol:
    """Create a Kafka consumer for reading the assigned partitions."""
    config: dict[str, str | int | float | bool | None] = {
        "bootstrap.servers": ",".join(broker.address for broker in settings.brokers),
        "group.id": "kafka-stream-ingest",
        "enable.auto.commit": False,
        "enable.partition.eof": False,
        "socket.timeout.ms": settings.connection.timeout_seconds * 1000,
    }
    for key, value in settings.connection.security.items():
        if isinstance(value, str | int | float | bool) or value is None:
            config[key] = value
    return Consumer(config, logger=_KAFKA_CLIENT_LOGGER)


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000
