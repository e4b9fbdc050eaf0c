"""Short-lived broker query connections with guaranteed release."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from types import TracebackType
from typing import Any, Protocol

from confluent_kafka import Consumer, KafkaError, KafkaException, TopicPartition

from kafka_stream_ingest.configuration.runtime_settings import (
    BrokerEndpoint,
    ConnectionSettings,
)
from kafka_stream_ingest.offset_resolution.offset_models import OffsetMarker, Partition

logger = logging.getLogger(__name__)

_KAFKA_CLIENT_LOGGER = logging.getLogger("kafka_stream_ingest.kafka.client")
_KAFKA_CLIENT_LOGGER.addHandler(logging.NullHandler())
_KAFKA_CLIENT_LOGGER.propagate = False
_KAFKA_CLIENT_LOGGER.setLevel(logging.CRITICAL + 1)

BROKER_GUIDANCE = (
    "Please verify that the hostname/IP address of the Kafka server is correct "
    "and that it is running."
)

_PARTITION_LEVEL_ERRORS = frozenset(
    {
        KafkaError._UNKNOWN_PARTITION,
        KafkaError._UNKNOWN_TOPIC,
        KafkaError.UNKNOWN_TOPIC_OR_PART,
    }
)


class BrokerConnectionError(Exception):
    """Raised when a broker cannot be reached or a query fails at the transport level."""

    def __init__(self, endpoint: BrokerEndpoint, detail: str) -> None:
        super().__init__(f"Unable to query Kafka broker {endpoint}: {detail}. {BROKER_GUIDANCE}")
        self.endpoint = endpoint


class BrokerClientProtocol(Protocol):
    """Subset of the Kafka consumer API used for metadata and offset queries."""

    def list_topics(self, topic: str | None = None, timeout: float = -1) -> Any: ...

    def offsets_for_times(
        self, partitions: list[TopicPartition], timeout: float = -1
    ) -> list[TopicPartition]: ...

    def close(self) -> None: ...


ClientFactory = Callable[[BrokerEndpoint, ConnectionSettings], BrokerClientProtocol]


class BrokerConnection:
    """Query channel to exactly one broker endpoint."""

    def __init__(
        self,
        endpoint: BrokerEndpoint,
        client: BrokerClientProtocol,
        settings: ConnectionSettings,
    ) -> None:
        self.endpoint = endpoint
        self._client = client
        self._timeout = float(settings.timeout_seconds)

    def topic_partitions(self, topic: str) -> set[int]:
        """Return the partition ids this broker reports for `topic`."""
        try:
            metadata = self._client.list_topics(topic=topic, timeout=self._timeout)
        except KafkaException as exc:
            raise BrokerConnectionError(self.endpoint, str(exc)) from exc
        topic_metadata = metadata.topics.get(topic)
        if topic_metadata is None:
            return set()
        return {int(partition_id) for partition_id in topic_metadata.partitions}

    def query_offsets(self, requests: Mapping[Partition, OffsetMarker]) -> dict[Partition, int]:
        """Send one batched offset request and return the partitions answered successfully."""
        batch = [
            TopicPartition(partition.topic, partition.partition, marker.value)
            for partition, marker in requests.items()
        ]
        try:
            response = self._client.offsets_for_times(batch, timeout=self._timeout)
        except KafkaException as exc:
            if not _is_partition_level(exc):
                raise BrokerConnectionError(self.endpoint, str(exc)) from exc
            logger.debug(
                "Broker %s has no offsets for %s: %s", self.endpoint, sorted(requests), exc
            )
            return {}

        answered: dict[Partition, int] = {}
        for entry in response:
            partition = Partition(entry.topic, entry.partition)
            if partition not in requests:
                continue
            if entry.error is None and entry.offset >= 0:
                answered[partition] = entry.offset
        return answered

    def close(self) -> None:
        self._client.close()


class BrokerConnectionSet:
    """Open one connection per broker and close every one of them on exit.

    Use as a context manager. Connections are opened in `__enter__`; if opening any
    of them fails, the ones already open are closed before the error propagates.
    A failure while closing a connection is logged and never replaces the error
    that caused the teardown.
    """

    def __init__(
        self,
        brokers: Sequence[BrokerEndpoint],
        settings: ConnectionSettings,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._brokers = tuple(brokers)
        self._settings = settings
        self._client_factory = client_factory or create_broker_client
        self._connections: list[BrokerConnection] = []

    def __enter__(self) -> BrokerConnectionSet:
        try:
            for endpoint in self._brokers:
                client = self._open_client(endpoint)
                self._connections.append(BrokerConnection(endpoint, client, self._settings))
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __iter__(self) -> Iterator[BrokerConnection]:
        return iter(self._connections)

    def __len__(self) -> int:
        return len(self._connections)

    def close(self) -> None:
        """Close every open connection exactly once."""
        connections, self._connections = self._connections, []
        for connection in connections:
            try:
                connection.close()
            except Exception:  # pylint: disable=broad-exception-caught
                logger.warning(
                    "Error closing Kafka connection to %s.", connection.endpoint, exc_info=True
                )

    def _open_client(self, endpoint: BrokerEndpoint) -> BrokerClientProtocol:
        try:
            return self._client_factory(endpoint, self._settings)
        except KafkaException as exc:
            raise BrokerConnectionError(endpoint, str(exc)) from exc


def _is_partition_level(exc: KafkaException) -> bool:
    error = exc.args[0] if exc.args else None
    return isinstance(error, KafkaError) and error.code() in _PARTITION_LEVEL_ERRORS


def create_broker_client(
    endpoint: BrokerEndpoint, settings: ConnectionSettings
) -> BrokerClientProtocol:
    """Create a Kafka consumer bootstrapped against a single broker."""
    config: dict[str, str | int | float | bool | None] = {
        "bootstrap.servers": endpoint.address,
        "group.id": settings.client_id,
        "client.id": settings.client_id,
        "enable.auto.commit": False,
        "socket.timeout.ms": settings.timeout_seconds * 1000,
        "socket.receive.buffer.bytes": settings.receive_buffer_bytes,
    }
    for key, value in settings.security.items():
        if isinstance(value, str | int | float | bool) or value is None:
            config[key] = value
    return Consumer(config, logger=_KAFKA_CLIENT_LOGGER)
