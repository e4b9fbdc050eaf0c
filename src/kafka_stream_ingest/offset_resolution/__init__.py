"""Offset resolution domain exports."""

from .offset_models import (
    DesiredOffset,
    OffsetMarker,
    Partition,
    ResolvedOffsetMap,
    format_offsets,
)

__all__ = [
    "DesiredOffset",
    "OffsetMarker",
    "Partition",
    "ResolvedOffsetMap",
    "format_offsets",
]
