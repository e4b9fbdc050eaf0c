"""Stream assembly exports."""

from .stream_handoff import (
    ConsumerStream,
    StreamConsumptionError,
    StreamHandoff,
    assemble_stream,
    create_stream_consumer,
)

__all__ = [
    "ConsumerStream",
    "StreamConsumptionError",
    "StreamHandoff",
    "assemble_stream",
    "create_stream_consumer",
]
