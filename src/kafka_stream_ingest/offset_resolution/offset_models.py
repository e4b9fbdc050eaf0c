"""Offset resolution entities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum


class OffsetMarker(Enum):
    """Symbolic starting position, valued with the broker protocol sentinel."""

    EARLIEST = -2
    LATEST = -1

    def __str__(self) -> str:
        return self.name.lower()


DesiredOffset = int | OffsetMarker


@dataclass(frozen=True, order=True)
class Partition:
    """A (topic, partition id) pair."""

    topic: str
    partition: int

    def __str__(self) -> str:
        return f"{self.topic}:{self.partition}"


ResolvedOffsetMap = Mapping[Partition, int]


def format_offsets(offsets: Mapping[Partition, DesiredOffset]) -> str:
    """Render an offset map in partition order for logs and error messages."""
    rendered = ", ".join(f"{partition}={offsets[partition]}" for partition in sorted(offsets))
    return "{" + rendered + "}"
