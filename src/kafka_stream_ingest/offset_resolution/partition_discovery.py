"""Effective partition set resolution."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable

from kafka_stream_ingest.broker_connections.connection_set import BrokerConnection

logger = logging.getLogger(__name__)


def resolve_partitions(
    connections: Iterable[BrokerConnection],
    topic: str,
    configured_partitions: Collection[int],
) -> frozenset[int]:
    """Return the configured partitions, or the union every broker reports for `topic`.

    An empty result is returned as-is when no broker knows any partition of the topic.
    """
    if configured_partitions:
        return frozenset(configured_partitions)

    discovered: set[int] = set()
    for connection in connections:
        reported = connection.topic_partitions(topic)
        logger.debug("Broker %s reports partitions %s for %s", connection.endpoint, reported, topic)
        discovered |= reported
    if not discovered:
        logger.warning("No partitions found for topic %s on any broker.", topic)
    return frozenset(discovered)
