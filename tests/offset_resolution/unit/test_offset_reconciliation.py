"""Offset reconciliation tests."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import pytest
from kafka_stream_ingest.configuration.runtime_settings import BrokerEndpoint
from kafka_stream_ingest.offset_resolution.offset_models import OffsetMarker, Partition
from kafka_stream_ingest.offset_resolution.offset_reconciliation import (
    PartialOffsetResolutionError,
    build_desired_offsets,
    resolve_offsets,
)


class FakeConnection:
    """Answers only for the partitions it leads."""

    def __init__(self, port: int, offsets: dict[tuple[int, OffsetMarker], int]) -> None:
        self.endpoint = BrokerEndpoint("broker", port)
        self._offsets = offsets
        self.requests: list[dict[Partition, OffsetMarker]] = []

    def query_offsets(self, requests: Mapping[Partition, OffsetMarker]) -> dict[Partition, int]:
        self.requests.append(dict(requests))
        return {
            partition: self._offsets[(partition.partition, marker)]
            for partition, marker in requests.items()
            if (partition.partition, marker) in self._offsets
        }


def _p(partition: int) -> Partition:
    return Partition("orders", partition)


def test_build_desired_offsets_prefers_explicit_values() -> None:
    desired = build_desired_offsets(
        "orders", {0, 1, 2}, {1: 999, 2: OffsetMarker.EARLIEST}, OffsetMarker.LATEST
    )

    assert desired == {
        _p(0): OffsetMarker.LATEST,
        _p(1): 999,
        _p(2): OffsetMarker.EARLIEST,
    }


def test_build_desired_offsets_ignores_offsets_for_unknown_partitions(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING)

    desired = build_desired_offsets("orders", {0}, {0: 5, 7: 10}, OffsetMarker.LATEST)

    assert desired == {_p(0): 5}
    assert "Ignoring initial offsets for partitions [7]" in caplog.text


def test_concrete_offsets_need_no_broker_query() -> None:
    connection = FakeConnection(9092, {})

    resolved = resolve_offsets([connection], {_p(0): 10, _p(1): 0})  # type: ignore[list-item]

    assert resolved == {_p(0): 10, _p(1): 0}
    assert connection.requests == []


def test_symbolic_offsets_are_resolved_across_brokers() -> None:
    leader_a = FakeConnection(9092, {(0, OffsetMarker.EARLIEST): 3})
    leader_b = FakeConnection(9093, {(1, OffsetMarker.LATEST): 512})

    resolved = resolve_offsets(
        [leader_a, leader_b],  # type: ignore[list-item]
        {_p(0): OffsetMarker.EARLIEST, _p(1): OffsetMarker.LATEST, _p(2): 42},
    )

    assert resolved == {_p(0): 3, _p(1): 512, _p(2): 42}
    expected_request = {_p(0): OffsetMarker.EARLIEST, _p(1): OffsetMarker.LATEST}
    assert leader_a.requests == [expected_request]
    assert leader_b.requests == [expected_request]


def test_first_successful_answer_wins() -> None:
    first = FakeConnection(9092, {(0, OffsetMarker.LATEST): 100})
    second = FakeConnection(9093, {(0, OffsetMarker.LATEST): 200})

    resolved = resolve_offsets(
        [first, second], {_p(0): OffsetMarker.LATEST}  # type: ignore[list-item]
    )

    assert resolved == {_p(0): 100}


def test_unanswered_partitions_fail_the_resolution() -> None:
    connection = FakeConnection(9092, {(0, OffsetMarker.LATEST): 7})

    with pytest.raises(PartialOffsetResolutionError) as excinfo:
        resolve_offsets(
            [connection],  # type: ignore[list-item]
            {
                _p(0): OffsetMarker.LATEST,
                _p(5): OffsetMarker.LATEST,
                _p(3): OffsetMarker.EARLIEST,
            },
        )

    assert excinfo.value.partitions == (_p(3), _p(5))
    assert str(excinfo.value) == (
        "Could not find offsets for [orders:3, orders:5]. "
        "Please check all brokers were included in the broker list."
    )


def test_empty_desired_offsets_resolve_to_empty_map() -> None:
    assert resolve_offsets([], {}) == {}
