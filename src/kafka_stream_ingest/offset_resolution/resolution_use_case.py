"""Resolution phase use-case service."""

from __future__ import annotations

import logging

from kafka_stream_ingest.broker_connections.connection_set import (
    BROKER_GUIDANCE,
    BrokerConnectionError,
    BrokerConnectionSet,
    ClientFactory,
)
from kafka_stream_ingest.configuration.runtime_settings import SourceSettings

from .offset_models import Partition, format_offsets
from .offset_reconciliation import build_desired_offsets, resolve_offsets
from .partition_discovery import resolve_partitions

logger = logging.getLogger(__name__)


def resolve_starting_offsets(
    settings: SourceSettings,
    *,
    client_factory: ClientFactory | None = None,
) -> dict[Partition, int]:
    """Open the broker connections, resolve partitions and offsets, then close them."""
    try:
        with BrokerConnectionSet(
            settings.brokers, settings.connection, client_factory=client_factory
        ) as connections:
            partitions = resolve_partitions(connections, settings.topic, settings.partitions)
            desired_offsets = build_desired_offsets(
                settings.topic,
                partitions,
                settings.initial_offsets,
                settings.default_initial_offset,
            )
            offsets = resolve_offsets(connections, desired_offsets)
    except BrokerConnectionError as exc:
        logger.error("Unable to read from Kafka broker %s. %s", exc.endpoint, BROKER_GUIDANCE)
        raise
    logger.info("Using initial offsets %s", format_offsets(offsets))
    return offsets
