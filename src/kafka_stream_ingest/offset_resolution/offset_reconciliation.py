"""Concrete starting offset resolution."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Mapping

from kafka_stream_ingest.broker_connections.connection_set import BrokerConnection

from .offset_models import DesiredOffset, OffsetMarker, Partition, format_offsets

logger = logging.getLogger(__name__)


class PartialOffsetResolutionError(Exception):
    """Raised when no broker could answer the offset request for some partitions."""

    def __init__(self, partitions: Collection[Partition]) -> None:
        self.partitions = tuple(sorted(partitions))
        names = ", ".join(str(partition) for partition in self.partitions)
        super().__init__(
            f"Could not find offsets for [{names}]. "
            "Please check all brokers were included in the broker list."
        )


def build_desired_offsets(
    topic: str,
    partitions: Collection[int],
    explicit_offsets: Mapping[int, DesiredOffset],
    default_offset: DesiredOffset,
) -> dict[Partition, DesiredOffset]:
    """Pair each effective partition with its configured or default starting offset."""
    ignored = sorted(set(explicit_offsets) - set(partitions))
    if ignored:
        logger.warning(
            "Ignoring initial offsets for partitions %s that are not part of topic %s.",
            ignored,
            topic,
        )
    return {
        Partition(topic, partition_id): explicit_offsets.get(partition_id, default_offset)
        for partition_id in partitions
    }


def resolve_offsets(
    connections: Iterable[BrokerConnection],
    desired_offsets: Mapping[Partition, DesiredOffset],
) -> dict[Partition, int]:
    """Replace every earliest/latest marker with the offset a broker reports for it.

    Concrete offsets are copied unchanged. The symbolic ones are sent as one batch to
    every connection; the first successful answer per partition wins. Any symbolic
    partition left unanswered fails the whole resolution.
    """
    resolved: dict[Partition, int] = {}
    requested: dict[Partition, OffsetMarker] = {}
    for partition, offset in desired_offsets.items():
        if isinstance(offset, OffsetMarker):
            requested[partition] = offset
        else:
            resolved[partition] = offset
    if not requested:
        return resolved

    answered: dict[Partition, int] = {}
    for connection in connections:
        for partition, offset in connection.query_offsets(requested).items():
            answered.setdefault(partition, offset)

    missing = requested.keys() - answered.keys()
    if missing:
        raise PartialOffsetResolutionError(missing)
    logger.debug("Resolved symbolic offsets %s", format_offsets(answered))
    resolved.update(answered)
    return resolved
