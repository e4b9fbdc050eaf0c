"""Configuration loader service."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml

from kafka_stream_ingest.offset_resolution.offset_models import DesiredOffset, OffsetMarker
from kafka_stream_ingest.record_decoding.record_formats import registered_formats
from kafka_stream_ingest.schema_management import (
    RecordSchema,
    SchemaError,
    derive_message_schema,
    parse_record_schema,
)

from .runtime_settings import (
    DEFAULT_RECEIVE_BUFFER_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    BrokerEndpoint,
    Configuration,
    ConnectionSettings,
    DecodingSettings,
    SourceSettings,
)

_METADATA_FIELD_TYPES = {
    "time_field": "long",
    "key_field": "bytes",
    "partition_field": "int",
    "offset_field": "long",
}
_LEGACY_MARKERS = {marker.value: marker for marker in OffsetMarker}


class ConfigurationError(Exception):
    """Raised when the configuration file is invalid."""


def load_configuration(config_path: Path | str) -> Configuration:
    """Load and validate the configuration file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    text = path.read_text(encoding="utf-8")
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:  # pragma: no cover - exercised indirectly
        raise ConfigurationError(f"Failed to parse configuration file: {exc}") from exc

    if parsed is None:
        parsed = {}

    if not isinstance(parsed, Mapping):
        raise ConfigurationError("Configuration root must be a mapping.")

    return build_configuration(parsed, base_path=path.parent, path=path)


def build_configuration(
    parsed: Mapping[str, Any], *, base_path: Path, path: Path | None = None
) -> Configuration:
    """Validate an already parsed configuration mapping."""
    source = _parse_kafka_section(parsed.get("kafka"))
    decoding = _parse_decoding_section(parsed.get("decoding"), base_path)
    return Configuration(path=path, source=source, decoding=decoding)


def parse_desired_offset(value: Any, field_name: str) -> DesiredOffset:
    """Normalize a numeric offset or an earliest/latest marker."""
    if isinstance(value, OffsetMarker):
        return value
    if isinstance(value, str):
        stripped = value.strip().lower()
        if stripped in {"earliest", "latest"}:
            return OffsetMarker[stripped.upper()]
        try:
            value = int(stripped)
        except ValueError as exc:
            raise ConfigurationError(
                f"{field_name} must be an integer, 'earliest' or 'latest'."
            ) from exc
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{field_name} must be an integer, 'earliest' or 'latest'.")
    if value in _LEGACY_MARKERS:
        return _LEGACY_MARKERS[value]
    if value < 0:
        raise ConfigurationError(f"{field_name} must not be negative.")
    return value


def _parse_kafka_section(value: Any) -> SourceSettings:
    section = _require_mapping(value, "kafka")
    brokers = _normalize_brokers(section.get("brokers"))
    topic = _require_non_empty_string(section.get("topic"), "kafka.topic")
    partitions = _normalize_partitions(section.get("partitions"))
    initial_offsets = _normalize_initial_offsets(section.get("initial_offsets"))
    if partitions:
        unknown = sorted(set(initial_offsets) - partitions)
        if unknown:
            raise ConfigurationError(
                f"kafka.initial_offsets references partitions {unknown} "
                "that are not listed in kafka.partitions."
            )
    default_initial_offset = parse_desired_offset(
        section.get("default_initial_offset", "latest"), "kafka.default_initial_offset"
    )
    security = section.get("security") or {}
    if not isinstance(security, Mapping):
        raise ConfigurationError("kafka.security must be a mapping.")
    connection = ConnectionSettings(
        timeout_seconds=_require_positive_int(
            section.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS), "kafka.timeout_seconds"
        ),
        receive_buffer_bytes=_require_positive_int(
            section.get("receive_buffer_bytes", DEFAULT_RECEIVE_BUFFER_BYTES),
            "kafka.receive_buffer_bytes",
        ),
        security=dict(security),
    )
    return SourceSettings(
        brokers=brokers,
        topic=topic,
        partitions=partitions,
        initial_offsets=initial_offsets,
        default_initial_offset=default_initial_offset,
        connection=connection,
    )


def _parse_decoding_section(value: Any, base_path: Path) -> DecodingSettings:
    section = _require_mapping(value, "decoding")
    schema = _load_record_schema(section.get("schema"), base_path, "decoding.schema")

    metadata: dict[str, str | None] = {}
    for key, expected_type in _METADATA_FIELD_TYPES.items():
        label = f"decoding.{key}"
        field_name = _optional_string(section.get(key), label)
        if field_name is not None:
            field = schema.get_field(field_name)
            if field is None:
                raise ConfigurationError(f"{label} '{field_name}' does not exist in schema.")
            if field.type_name != expected_type:
                raise ConfigurationError(
                    f"{label} '{field_name}' must be of type {expected_type}, "
                    f"not {field.type_name}."
                )
        metadata[key] = field_name
    metadata_names = [name for name in metadata.values() if name]
    if len(set(metadata_names)) != len(metadata_names):
        raise ConfigurationError("decoding metadata fields must use distinct field names.")

    format_name = _optional_string(section.get("format"), "decoding.format")
    message_schema: RecordSchema | None = None
    if format_name is None:
        _validate_raw_content_field(schema, metadata_names)
    else:
        format_name = format_name.lower()
        if format_name not in registered_formats():
            raise ConfigurationError(
                f"decoding.format '{format_name}' is not supported. "
                f"Supported formats: {', '.join(registered_formats())}."
            )
        message_schema = _resolve_message_schema(section, schema, metadata_names, base_path)

    return DecodingSettings(
        schema=schema,
        format_name=format_name,
        message_schema=message_schema,
        time_field=metadata["time_field"],
        key_field=metadata["key_field"],
        partition_field=metadata["partition_field"],
        offset_field=metadata["offset_field"],
    )


def _validate_raw_content_field(schema: RecordSchema, metadata_names: Sequence[str]) -> None:
    content_fields = [field for field in schema.fields if field.name not in metadata_names]
    if len(content_fields) != 1:
        raise ConfigurationError(
            "Without decoding.format the schema must contain exactly one message field "
            f"besides the metadata fields, found {len(content_fields)}."
        )
    if content_fields[0].type_name != "bytes":
        raise ConfigurationError(
            f"Message field '{content_fields[0].name}' must be of type bytes "
            "when no decoding.format is set."
        )


def _resolve_message_schema(
    section: Mapping[str, Any],
    schema: RecordSchema,
    metadata_names: Sequence[str],
    base_path: Path,
) -> RecordSchema:
    if section.get("message_schema") is None:
        try:
            return derive_message_schema(schema, metadata_names)
        except SchemaError as exc:
            raise ConfigurationError(str(exc)) from exc

    message_schema = _load_record_schema(
        section.get("message_schema"), base_path, "decoding.message_schema"
    )
    for field in message_schema.fields:
        if field.name in metadata_names or schema.get_field(field.name) is None:
            raise ConfigurationError(
                f"decoding.message_schema field '{field.name}' does not exist in schema "
                "as a message field."
            )
    return message_schema


def _load_record_schema(definition: Any, base_path: Path, label: str) -> RecordSchema:
    text = _load_schema_definition(definition, base_path, label)
    if not text.strip():
        raise ConfigurationError(f"{label} cannot be empty.")
    try:
        return parse_record_schema(text)
    except SchemaError as exc:
        raise ConfigurationError(f"{label}: {exc}") from exc


def _load_schema_definition(definition: Any, base_path: Path, label: str) -> str:
    if isinstance(definition, str):
        return definition
    mapping = _require_mapping(definition, label)
    inline = mapping.get("inline")
    path_value = mapping.get("path")
    if inline and path_value:
        raise ConfigurationError(f"{label} must not set both inline and path.")
    if inline:
        if isinstance(inline, Mapping):
            return json.dumps(dict(inline))
        if not isinstance(inline, str):
            raise ConfigurationError(f"{label} inline value must be a string.")
        return inline
    if path_value:
        if not isinstance(path_value, str):
            raise ConfigurationError(f"{label} path must be a string.")
        schema_path = _resolve_path(base_path, path_value)
        if not schema_path.exists():
            raise ConfigurationError(f"Schema file not found: {schema_path}")
        return schema_path.read_text(encoding="utf-8")
    raise ConfigurationError(f"{label} requires either inline or path.")


def _normalize_brokers(value: Any) -> tuple[BrokerEndpoint, ...]:
    if value is None:
        raise ConfigurationError("kafka.brokers is required.")
    entries: list[str] = []
    if isinstance(value, str):
        entries = [item.strip() for item in value.split(",") if item.strip()]
    elif isinstance(value, Sequence):
        for item in value:
            if not isinstance(item, str):
                raise ConfigurationError("kafka.brokers entries must be strings.")
            stripped = item.strip()
            if stripped:
                entries.append(stripped)
    else:
        raise ConfigurationError("kafka.brokers must be a string or list of strings.")
    if not entries:
        raise ConfigurationError("kafka.brokers must contain at least one broker.")

    brokers: list[BrokerEndpoint] = []
    for entry in entries:
        host, separator, port_text = entry.rpartition(":")
        if not separator or not host:
            raise ConfigurationError(f"Broker '{entry}' must be in the form host:port.")
        try:
            port = int(port_text)
        except ValueError as exc:
            raise ConfigurationError(f"Broker '{entry}' has an invalid port.") from exc
        if port <= 0:
            raise ConfigurationError(f"Broker '{entry}' has an invalid port.")
        endpoint = BrokerEndpoint(host=host, port=port)
        if endpoint in brokers:
            raise ConfigurationError(f"Broker '{entry}' is listed more than once.")
        brokers.append(endpoint)
    return tuple(brokers)


def _normalize_partitions(value: Any) -> frozenset[int]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items: Sequence[Any] = [item.strip() for item in value.split(",") if item.strip()]
    elif isinstance(value, Sequence):
        items = value
    else:
        raise ConfigurationError("kafka.partitions must be a string or list of integers.")
    return frozenset(_require_partition_id(item, "kafka.partitions") for item in items)


def _normalize_initial_offsets(value: Any) -> dict[int, DesiredOffset]:
    if value is None:
        return {}
    pairs: list[tuple[Any, Any]] = []
    if isinstance(value, str):
        for entry in (item.strip() for item in value.split(",")):
            if not entry:
                continue
            partition_text, separator, offset_text = entry.partition(":")
            if not separator:
                raise ConfigurationError(
                    f"kafka.initial_offsets entry '{entry}' must be in the form partition:offset."
                )
            pairs.append((partition_text.strip(), offset_text.strip()))
    elif isinstance(value, Mapping):
        pairs = list(value.items())
    else:
        raise ConfigurationError("kafka.initial_offsets must be a mapping or string.")

    offsets: dict[int, DesiredOffset] = {}
    for partition_value, offset_value in pairs:
        partition = _require_partition_id(partition_value, "kafka.initial_offsets")
        if partition in offsets:
            raise ConfigurationError(
                f"kafka.initial_offsets sets partition {partition} more than once."
            )
        offsets[partition] = parse_desired_offset(
            offset_value, f"kafka.initial_offsets[{partition}]"
        )
    return offsets


def _require_partition_id(value: Any, field_name: str) -> int:
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise ConfigurationError(f"{field_name} entries must be integers.") from exc
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{field_name} entries must be integers.")
    if value < 0:
        raise ConfigurationError(f"{field_name} entries must not be negative.")
    return value


def _resolve_path(base_path: Path, raw_path: str) -> Path:
    candidate = Path(raw_path)
    if not candidate.is_absolute():
        return (base_path / candidate).resolve()
    return candidate


def _require_mapping(value: Any, section_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Configuration section '{section_name}' is required.")
    return value


def _require_non_empty_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{field_name} must be a string.")
    stripped = value.strip()
    if not stripped:
        raise ConfigurationError(f"{field_name} must not be empty.")
    return stripped


def _optional_string(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"{field_name} must be a string.")
    stripped = value.strip()
    return stripped or None


def _require_positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be an integer.")
    if not isinstance(value, int):
        raise ConfigurationError(f"{field_name} must be an integer.")
    if value <= 0:
        raise ConfigurationError(f"{field_name} must be greater than zero.")
    return value
