"""CLI orchestration integration tests."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from click.testing import CliRunner
from kafka_stream_ingest.cli import cli


def _write_config(tmp_path: Path, **kafka_overrides: Any) -> Path:
    schema = {
        "type": "record",
        "name": "RawMessage",
        "fields": [
            {"name": "ts", "type": "long"},
            {"name": "key", "type": ["null", "bytes"]},
            {"name": "partition", "type": "int"},
            {"name": "offset", "type": "long"},
            {"name": "payload", "type": "bytes"},
        ],
    }
    kafka = {"brokers": ["broker-1:9092", "broker-2:9092"], "topic": "events"}
    kafka.update(kafka_overrides)
    config = {
        "kafka": kafka,
        "decoding": {
            "schema": {"inline": json.dumps(schema)},
            "time_field": "ts",
            "key_field": "key",
            "partition_field": "partition",
            "offset_field": "offset",
        },
    }
    path = tmp_path / "ingest.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    return path


@dataclass
class FakeOffsetEntry:
    topic: str
    partition: int
    offset: int
    error: Any = None


@dataclass
class FakeTopicMetadata:
    partitions: dict[int, object]


@dataclass
class FakeClusterMetadata:
    topics: dict[str, FakeTopicMetadata]


class FakeBrokerClient:
    """Broker leading one partition of `events`."""

    instances: list[FakeBrokerClient] = []

    def __init__(self, partition: int, latest: int) -> None:
        self.partition = partition
        self.latest = latest
        self.closed = False
        FakeBrokerClient.instances.append(self)

    def list_topics(self, topic: str | None = None, timeout: float = -1) -> FakeClusterMetadata:
        return FakeClusterMetadata(
            topics={"events": FakeTopicMetadata(partitions={self.partition: object()})}
        )

    def offsets_for_times(self, partitions: list[Any], timeout: float = -1) -> list[Any]:
        return [
            FakeOffsetEntry(tp.topic, tp.partition, 0 if tp.offset == -2 else self.latest)
            for tp in partitions
            if tp.partition == self.partition
        ]

    def close(self) -> None:
        self.closed = True


def _fake_broker_factory(endpoint: Any, settings: Any) -> FakeBrokerClient:
    if endpoint.host == "broker-1":
        return FakeBrokerClient(partition=0, latest=40)
    return FakeBrokerClient(partition=1, latest=75)


class FakeMessage:
    def __init__(self, partition: int, offset: int, key: bytes | None, value: bytes) -> None:
        self._partition = partition
        self._offset = offset
        self._key = key
        self._value = value

    def error(self) -> None:
        return None

    def key(self) -> bytes | None:
        return self._key

    def value(self) -> bytes:
        return self._value

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset


class FakeStreamConsumer:
    def __init__(self) -> None:
        self.assigned: list[Any] = []
        self.closed = False
        self._batches = [
            [FakeMessage(0, 40, b"user-1", b"\x00\x01payload")],
            [FakeMessage(1, 75, None, b"second")],
        ]

    def assign(self, partitions: list[Any]) -> None:
        self.assigned = [(tp.partition, tp.offset) for tp in partitions]

    def consume(self, num_messages: int = 1, timeout: float = -1) -> list[FakeMessage]:
        return self._batches.pop(0) if self._batches else []

    def close(self) -> None:
        self.closed = True


def test_generate_config_command_writes_placeholder_file_with_default_name(
    tmp_path: Path,
) -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["generate-config"])
        output_path = Path("ingest.yaml").resolve()

        assert result.exit_code == 0
        assert output_path.exists()
        content = output_path.read_text(encoding="utf-8")
        assert "kafka:" in content
        assert "decoding:" in content
        assert "<REQUIRED>" in content
        assert str(output_path) in result.output


def test_generate_config_command_fails_when_output_file_already_exists(tmp_path: Path) -> None:
    runner = CliRunner()
    output_path = tmp_path / "ingest.yaml"
    output_path.write_text("already-there", encoding="utf-8")

    result = runner.invoke(cli, ["generate-config", "--output", str(output_path)])

    assert result.exit_code != 0
    assert "already exists" in str(result.exception).lower()
    assert output_path.read_text(encoding="utf-8") == "already-there"


def test_resolve_offsets_command_prints_resolved_offsets(tmp_path: Path, monkeypatch) -> None:
    FakeBrokerClient.instances.clear()
    monkeypatch.setattr(
        "kafka_stream_ingest.broker_connections.connection_set.create_broker_client",
        _fake_broker_factory,
    )
    config_path = _write_config(tmp_path, initial_offsets={"0": "earliest"})

    result = CliRunner().invoke(cli, ["resolve-offsets", "--config", str(config_path)])

    assert result.exit_code == 0
    assert json.loads(result.output) == {"0": 0, "1": 75}
    assert len(FakeBrokerClient.instances) == 2
    assert all(client.closed for client in FakeBrokerClient.instances)


def test_resolve_offsets_command_reports_unresolved_partitions(
    tmp_path: Path, monkeypatch
) -> None:
    monkeypatch.setattr(
        "kafka_stream_ingest.broker_connections.connection_set.create_broker_client",
        _fake_broker_factory,
    )
    config_path = _write_config(tmp_path, partitions=[0, 1, 2])

    result = CliRunner().invoke(cli, ["resolve-offsets", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Could not find offsets for [events:2]" in str(result.exception)


def test_consume_command_prints_decoded_records(tmp_path: Path, monkeypatch) -> None:
    consumer = FakeStreamConsumer()
    monkeypatch.setattr(
        "kafka_stream_ingest.broker_connections.connection_set.create_broker_client",
        _fake_broker_factory,
    )
    monkeypatch.setattr("kafka_stream_ingest.cli.create_stream_consumer", lambda _: consumer)
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli,
        ["consume", "--config", str(config_path), "--max-idle-polls", "1", "--poll-timeout", "0"],
    )

    assert result.exit_code == 0
    records = [json.loads(line) for line in result.output.splitlines()]
    assert consumer.assigned == [(0, 40), (1, 75)]
    assert consumer.closed
    assert [(record["partition"], record["offset"]) for record in records] == [(0, 40), (1, 75)]
    assert records[0]["key"] == base64.b64encode(b"user-1").decode("ascii")
    assert base64.b64decode(records[0]["payload"]) == b"\x00\x01payload"
    assert records[1]["key"] is None
    assert all(isinstance(record["ts"], int) for record in records)


def test_consume_command_honours_max_messages(tmp_path: Path, monkeypatch) -> None:
    consumer = FakeStreamConsumer()
    monkeypatch.setattr(
        "kafka_stream_ingest.broker_connections.connection_set.create_broker_client",
        _fake_broker_factory,
    )
    monkeypatch.setattr("kafka_stream_ingest.cli.create_stream_consumer", lambda _: consumer)
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli, ["consume", "--config", str(config_path), "--max-messages", "1"]
    )

    assert result.exit_code == 0
    assert len(result.output.splitlines()) == 1
    assert consumer.closed
