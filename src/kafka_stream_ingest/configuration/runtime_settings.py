"""Configuration domain entities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from kafka_stream_ingest.offset_resolution.offset_models import DesiredOffset, OffsetMarker
from kafka_stream_ingest.schema_management.schema_models import RecordSchema

DEFAULT_TIMEOUT_SECONDS = 20
DEFAULT_RECEIVE_BUFFER_BYTES = 128 * 1024


@dataclass(frozen=True)
class BrokerEndpoint:
    """Host and port of one Kafka broker."""

    host: str
    port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class ConnectionSettings:
    """Limits applied to every short-lived broker query connection."""

    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    receive_buffer_bytes: int = DEFAULT_RECEIVE_BUFFER_BYTES
    client_id: str = "partitionLookup"
    security: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class SourceSettings:
    """Brokers, topic and starting-position settings of the Kafka source."""

    brokers: tuple[BrokerEndpoint, ...]
    topic: str
    partitions: frozenset[int] = frozenset()
    initial_offsets: Mapping[int, DesiredOffset] = field(default_factory=dict)
    default_initial_offset: DesiredOffset = OffsetMarker.LATEST
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)


@dataclass(frozen=True)
class DecodingSettings:  # pylint: disable=too-many-instance-attributes
    """Output schema, optional message format and metadata field names."""

    schema: RecordSchema
    format_name: str | None = None
    message_schema: RecordSchema | None = None
    time_field: str | None = None
    key_field: str | None = None
    partition_field: str | None = None
    offset_field: str | None = None

    @property
    def metadata_fields(self) -> tuple[str, ...]:
        names = (self.time_field, self.key_field, self.partition_field, self.offset_field)
        return tuple(name for name in names if name)


@dataclass(frozen=True)
class Configuration:
    """Top-level configuration aggregate."""

    path: Path | None
    source: SourceSettings
    decoding: DecodingSettings
