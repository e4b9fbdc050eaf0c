"""Configuration loader tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from kafka_stream_ingest.configuration.loader import (
    ConfigurationError,
    build_configuration,
    load_configuration,
    parse_desired_offset,
)
from kafka_stream_ingest.configuration.runtime_settings import BrokerEndpoint
from kafka_stream_ingest.offset_resolution.offset_models import OffsetMarker


def _write_file(path: Path, contents: str) -> Path:
    path.write_text(contents, encoding="utf-8")
    return path


def _raw_schema() -> dict[str, Any]:
    return {
        "type": "record",
        "name": "KafkaMessage",
        "fields": [
            {"name": "ts", "type": "long"},
            {"name": "key", "type": ["null", "bytes"]},
            {"name": "partition", "type": "int"},
            {"name": "offset", "type": "long"},
            {"name": "message", "type": "bytes"},
        ],
    }


def _formatted_schema() -> dict[str, Any]:
    return {
        "type": "record",
        "name": "Order",
        "fields": [
            {"name": "ts", "type": "long"},
            {"name": "order_id", "type": "string"},
            {"name": "amount", "type": ["null", "double"]},
        ],
    }


def _config(**overrides: Any) -> dict[str, Any]:
    kafka = {"brokers": ["broker-1:9092"], "topic": "orders"}
    decoding: dict[str, Any] = {
        "schema": {"inline": json.dumps(_raw_schema())},
        "time_field": "ts",
        "key_field": "key",
        "partition_field": "partition",
        "offset_field": "offset",
    }
    kafka.update(overrides.pop("kafka", {}))
    decoding.update(overrides.pop("decoding", {}))
    return {"kafka": kafka, "decoding": decoding}


def _build(config: dict[str, Any], tmp_path: Path | None = None):
    return build_configuration(config, base_path=tmp_path or Path("."))


def test_loads_yaml_configuration_with_defaults(tmp_path: Path) -> None:
    config_path = _write_file(
        tmp_path / "ingest.yaml",
        """
kafka:
  brokers: "broker-1:9092, broker-2:9093"
  topic: "orders"
decoding:
  schema:
    inline: |
      {
        "type": "record",
        "name": "KafkaMessage",
        "fields": [
          {"name": "ts", "type": "long"},
          {"name": "message", "type": "bytes"}
        ]
      }
  time_field: ts
""",
    )

    configuration = load_configuration(config_path)

    assert configuration.path == config_path
    assert configuration.source.brokers == (
        BrokerEndpoint("broker-1", 9092),
        BrokerEndpoint("broker-2", 9093),
    )
    assert configuration.source.topic == "orders"
    assert configuration.source.partitions == frozenset()
    assert configuration.source.initial_offsets == {}
    assert configuration.source.default_initial_offset is OffsetMarker.LATEST
    assert configuration.source.connection.timeout_seconds == 20
    assert configuration.source.connection.receive_buffer_bytes == 128 * 1024
    assert configuration.decoding.format_name is None
    assert configuration.decoding.message_schema is None
    assert configuration.decoding.time_field == "ts"
    assert configuration.decoding.key_field is None


def test_loads_json_configuration_with_schema_path(tmp_path: Path) -> None:
    schema_path = _write_file(tmp_path / "order.avsc", json.dumps(_formatted_schema()))
    config_path = _write_file(
        tmp_path / "ingest.json",
        json.dumps(
            {
                "kafka": {
                    "brokers": ["broker-1:9092"],
                    "topic": "orders",
                    "partitions": [0, 1, 2],
                    "initial_offsets": {"0": "earliest", "1": 999, "2": -1},
                    "default_initial_offset": "earliest",
                    "timeout_seconds": 5,
                    "security": {"security.protocol": "SASL_SSL"},
                },
                "decoding": {
                    "schema": {"path": schema_path.name},
                    "format": "JSON",
                    "time_field": "ts",
                },
            }
        ),
    )

    configuration = load_configuration(config_path)

    assert configuration.source.partitions == frozenset({0, 1, 2})
    assert configuration.source.initial_offsets == {
        0: OffsetMarker.EARLIEST,
        1: 999,
        2: OffsetMarker.LATEST,
    }
    assert configuration.source.default_initial_offset is OffsetMarker.EARLIEST
    assert configuration.source.connection.timeout_seconds == 5
    assert configuration.source.connection.security == {"security.protocol": "SASL_SSL"}
    assert configuration.decoding.format_name == "json"
    assert configuration.decoding.message_schema is not None
    assert configuration.decoding.message_schema.field_names == ("order_id", "amount")


def test_initial_offsets_accept_partition_offset_string() -> None:
    configuration = _build(_config(kafka={"initial_offsets": "0:earliest, 3:42,4:-2"}))

    assert configuration.source.initial_offsets == {
        0: OffsetMarker.EARLIEST,
        3: 42,
        4: OffsetMarker.EARLIEST,
    }


def test_missing_file_raises() -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_configuration("/does/not/exist.yaml")


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"kafka": {"brokers": None}}, "kafka.brokers is required"),
        ({"kafka": {"brokers": "broker-1"}}, "host:port"),
        ({"kafka": {"brokers": "broker-1:abc"}}, "invalid port"),
        ({"kafka": {"brokers": ["b:9092", "b:9092"]}}, "more than once"),
        ({"kafka": {"topic": " "}}, "kafka.topic must not be empty"),
        ({"kafka": {"partitions": [0, -1]}}, "must not be negative"),
        ({"kafka": {"partitions": ["x"]}}, "must be integers"),
        ({"kafka": {"initial_offsets": {"0": "soon"}}}, "'earliest' or 'latest'"),
        ({"kafka": {"initial_offsets": {"0": -5}}}, "must not be negative"),
        ({"kafka": {"initial_offsets": "0=1"}}, "partition:offset"),
        (
            {"kafka": {"partitions": [0], "initial_offsets": {"1": 5}}},
            "not listed in kafka.partitions",
        ),
        ({"kafka": {"timeout_seconds": 0}}, "greater than zero"),
        ({"kafka": {"security": "plain"}}, "kafka.security must be a mapping"),
    ],
)
def test_invalid_kafka_section_raises(overrides: dict[str, Any], message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        _build(_config(**overrides))


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"decoding": {"schema": None}}, "decoding.schema"),
        ({"decoding": {"schema": {"inline": "{}", "path": "x"}}}, "both inline and path"),
        ({"decoding": {"schema": {"inline": "nope"}}}, "Invalid record schema JSON"),
        ({"decoding": {"time_field": "missing"}}, "does not exist in schema"),
        ({"decoding": {"time_field": "message"}}, "must be of type long"),
        ({"decoding": {"partition_field": "ts", "time_field": None}}, "must be of type int"),
        ({"decoding": {"offset_field": "ts"}}, "distinct field names"),
        ({"decoding": {"offset_field": None}}, "exactly one message field"),
        ({"decoding": {"format": "xml"}}, "is not supported"),
    ],
)
def test_invalid_decoding_section_raises(overrides: dict[str, Any], message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        _build(_config(**overrides))


def test_raw_mode_requires_bytes_message_field() -> None:
    schema = _raw_schema()
    schema["fields"][-1] = {"name": "message", "type": "string"}

    with pytest.raises(ConfigurationError, match="must be of type bytes"):
        _build(_config(decoding={"schema": {"inline": json.dumps(schema)}}))


def test_formatted_mode_accepts_explicit_message_schema() -> None:
    message_schema = {
        "type": "record",
        "name": "OrderBody",
        "fields": [{"name": "order_id", "type": "string"}],
    }
    configuration = _build(
        {
            "kafka": {"brokers": "broker-1:9092", "topic": "orders"},
            "decoding": {
                "schema": {"inline": _formatted_schema()},
                "format": "csv",
                "message_schema": {"inline": json.dumps(message_schema)},
                "time_field": "ts",
            },
        }
    )

    assert configuration.decoding.message_schema is not None
    assert configuration.decoding.message_schema.field_names == ("order_id",)


def test_formatted_mode_rejects_message_field_missing_from_schema() -> None:
    message_schema = {
        "type": "record",
        "name": "OrderBody",
        "fields": [{"name": "customer", "type": "string"}],
    }

    with pytest.raises(ConfigurationError, match="'customer' does not exist"):
        _build(
            {
                "kafka": {"brokers": "broker-1:9092", "topic": "orders"},
                "decoding": {
                    "schema": {"inline": json.dumps(_formatted_schema())},
                    "format": "json",
                    "message_schema": json.dumps(message_schema),
                },
            }
        )


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("earliest", OffsetMarker.EARLIEST),
        ("LATEST", OffsetMarker.LATEST),
        (-2, OffsetMarker.EARLIEST),
        ("-1", OffsetMarker.LATEST),
        (0, 0),
        ("125", 125),
    ],
)
def test_parse_desired_offset(value: object, expected: object) -> None:
    assert parse_desired_offset(value, "offset") == expected


def test_parse_desired_offset_rejects_booleans() -> None:
    with pytest.raises(ConfigurationError):
        parse_desired_offset(True, "offset")
