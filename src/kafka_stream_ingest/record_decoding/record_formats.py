"""Pluggable byte-to-record formats selected by name."""

from __future__ import annotations

import csv
import json
import struct
from collections.abc import Callable, Mapping
from functools import partial
from typing import Any, Protocol

from kafka_stream_ingest.schema_management import RecordSchema, SchemaError, SchemaField

from .structured_records import StructuredRecord, StructuredRecordBuilder

_AVRO_COMPLEX_TYPES = frozenset({"record", "enum", "array", "map", "fixed"})
_DELIMITED_TYPES = frozenset({"boolean", "int", "long", "float", "double", "bytes", "string"})
_REGISTRY_HEADER_SIZE = 5


class RecordFormatError(Exception):
    """Raised when a format is unknown or cannot handle the message schema."""


class RecordDecodeError(Exception):
    """Raised when message bytes cannot be turned into a record of the message schema."""


class RecordFormat(Protocol):
    """Reader turning one message payload into a structured record."""

    schema: RecordSchema

    def read(self, payload: bytes) -> StructuredRecord: ...


class TextRecordFormat:
    """Whole payload as UTF-8 text in the single string field of the schema."""

    def __init__(self, schema: RecordSchema) -> None:
        if len(schema.fields) != 1 or schema.fields[0].type_name != "string":
            raise RecordFormatError("The text format requires a schema with one string field.")
        self.schema = schema

    def read(self, payload: bytes) -> StructuredRecord:
        return _build_record(self.schema, {self.schema.fields[0].name: _decode_utf8(payload)})


class DelimitedRecordFormat:
    """One delimited line whose values map to the schema fields in order."""

    def __init__(self, schema: RecordSchema, *, delimiter: str) -> None:
        unsupported = [
            field.name for field in schema.fields if field.type_name not in _DELIMITED_TYPES
        ]
        if unsupported:
            raise RecordFormatError(
                f"Delimited formats only support simple field types, found {unsupported}."
            )
        self.schema = schema
        self._delimiter = delimiter

    def read(self, payload: bytes) -> StructuredRecord:
        line = _decode_utf8(payload).rstrip("\r\n")
        try:
            rows = list(csv.reader([line], delimiter=self._delimiter))
        except csv.Error as exc:
            raise RecordDecodeError(f"Invalid delimited payload: {exc}") from exc
        raw_values = rows[0] if rows else []
        values = {
            field.name: _convert_text(field, raw)
            for field, raw in zip(self.schema.fields, raw_values, strict=False)
        }
        return _build_record(self.schema, values)


class JsonRecordFormat:
    """UTF-8 JSON object whose members are picked by field name."""

    def __init__(self, schema: RecordSchema) -> None:
        self.schema = schema

    def read(self, payload: bytes) -> StructuredRecord:
        try:
            decoded = json.loads(_decode_utf8(payload))
        except json.JSONDecodeError as exc:
            raise RecordDecodeError(f"Invalid JSON payload: {exc}") from exc
        if not isinstance(decoded, Mapping):
            raise RecordDecodeError("Decoded JSON payload root must be an object.")
        values = {
            field.name: _convert_json(field, decoded.get(field.name))
            for field in self.schema.fields
        }
        return _build_record(self.schema, values)


class AvroRecordFormat:
    """Avro binary body decoded against the message schema.

    With `schema_registry_framing` every payload must start with the Confluent Schema
    Registry header (magic byte 0 + 4-byte schema id), which is dropped before decoding.
    Without it the payload is plain Avro binary.
    """

    def __init__(self, schema: RecordSchema, *, schema_registry_framing: bool = False) -> None:
        self.schema = schema
        self._schema_registry_framing = schema_registry_framing
        self._named_types: dict[str, Mapping[str, Any]] = {}
        self._register_named_types(schema.definition)

    def read(self, payload: bytes) -> StructuredRecord:
        if self._schema_registry_framing:
            if len(payload) < _REGISTRY_HEADER_SIZE or payload[0] != 0:
                raise RecordDecodeError("Payload does not start with a schema registry header.")
            payload = payload[_REGISTRY_HEADER_SIZE:]
        reader = _AvroBinaryReader(payload)
        decoded = self._decode_avro_node(self.schema.definition, reader)
        if reader.remaining > 0:
            raise RecordDecodeError("Avro payload contains trailing bytes.")
        return _build_record(self.schema, decoded)

    def _decode_avro_node(self, schema: Any, reader: _AvroBinaryReader) -> Any:
        if isinstance(schema, list):
            index = reader.read_long()
            if index < 0 or index >= len(schema):
                raise RecordDecodeError(f"Avro union index out of range: {index}")
            return self._decode_avro_node(schema[index], reader)

        if isinstance(schema, str):
            return self._decode_avro_type(schema, None, reader)

        if not isinstance(schema, Mapping):
            raise RecordDecodeError("Invalid Avro schema node encountered during decode.")

        node_type = schema.get("type")
        if isinstance(node_type, list | Mapping):
            return self._decode_avro_node(node_type, reader)
        if isinstance(node_type, str):
            return self._decode_avro_type(node_type, schema, reader)

        raise RecordDecodeError("Avro schema node is missing a valid 'type'.")

    def _decode_avro_type(
        self,
        type_name: str,
        schema_node: Mapping[str, Any] | None,
        reader: _AvroBinaryReader,
    ) -> Any:
        if type_name == "null":
            return None
        if type_name == "boolean":
            return reader.read_boolean()
        if type_name in {"int", "long"}:
            return reader.read_long()
        if type_name == "float":
            return reader.read_float()
        if type_name == "double":
            return reader.read_double()
        if type_name == "bytes":
            return reader.read_bytes()
        if type_name == "string":
            return reader.read_string()

        if type_name not in _AVRO_COMPLEX_TYPES:
            named_type = self._named_types.get(type_name)
            if named_type is None:
                raise RecordDecodeError(f"Unsupported or unknown Avro type reference: {type_name}")
            return self._decode_avro_node(named_type, reader)
        if schema_node is None:
            raise RecordDecodeError(f"Avro {type_name} definition is missing from the schema.")

        if type_name == "record":
            record_output: dict[str, Any] = {}
            for field in schema_node.get("fields") or ():
                record_output[str(field["name"])] = self._decode_avro_node(
                    field.get("type"), reader
                )
            return record_output

        if type_name == "enum":
            symbols = schema_node.get("symbols") or ()
            index = reader.read_long()
            if index < 0 or index >= len(symbols):
                raise RecordDecodeError(f"Avro enum index out of range: {index}")
            return symbols[index]

        if type_name == "array":
            items_schema = schema_node.get("items")
            items: list[Any] = []
            while True:
                count = reader.read_block_count()
                if count == 0:
                    break
                for _ in range(count):
                    items.append(self._decode_avro_node(items_schema, reader))
            return items

        if type_name == "map":
            values_schema = schema_node.get("values")
            map_output: dict[str, Any] = {}
            while True:
                count = reader.read_block_count()
                if count == 0:
                    break
                for _ in range(count):
                    key = reader.read_string()
                    map_output[key] = self._decode_avro_node(values_schema, reader)
            return map_output

        size = schema_node.get("size")
        if not isinstance(size, int) or size < 0:
            raise RecordDecodeError("Fixed schema requires a non-negative integer size.")
        return reader.read_exact(size)

    def _register_named_types(self, schema: Any) -> None:
        if isinstance(schema, list):
            for node in schema:
                self._register_named_types(node)
            return
        if not isinstance(schema, Mapping):
            return

        node_type = schema.get("type")
        if isinstance(node_type, Mapping | list):
            self._register_named_types(node_type)
            return
        if node_type in {"record", "enum", "fixed"}:
            name = schema.get("name")
            if isinstance(name, str) and name:
                self._named_types.setdefault(name, schema)
        if node_type == "record":
            for field in schema.get("fields") or ():
                if isinstance(field, Mapping):
                    self._register_named_types(field.get("type"))
        elif node_type == "array":
            self._register_named_types(schema.get("items"))
        elif node_type == "map":
            self._register_named_types(schema.get("values"))


_FORMAT_FACTORIES: dict[str, Callable[[RecordSchema], RecordFormat]] = {
    "avro": AvroRecordFormat,
    "avro-confluent": partial(AvroRecordFormat, schema_registry_framing=True),
    "csv": partial(DelimitedRecordFormat, delimiter=","),
    "json": JsonRecordFormat,
    "text": TextRecordFormat,
    "tsv": partial(DelimitedRecordFormat, delimiter="\t"),
}


def registered_formats() -> tuple[str, ...]:
    """Names accepted by create_record_format."""
    return tuple(sorted(_FORMAT_FACTORIES))


def create_record_format(format_name: str, schema: RecordSchema) -> RecordFormat:
    """Build the reader registered under `format_name` for the message schema."""
    factory = _FORMAT_FACTORIES.get(format_name.lower())
    if factory is None:
        raise RecordFormatError(f"Unsupported message format: {format_name}")
    return factory(schema)


def _build_record(schema: RecordSchema, values: Mapping[str, Any]) -> StructuredRecord:
    builder = StructuredRecordBuilder(schema)
    try:
        for name, value in values.items():
            builder.set(name, value)
        return builder.build()
    except SchemaError as exc:
        raise RecordDecodeError(str(exc)) from exc


def _decode_utf8(payload: bytes) -> str:
    try:
        return bytes(payload).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise RecordDecodeError("Payload is not valid UTF-8 text.") from exc


def _convert_text(field: SchemaField, raw: str) -> Any:
    if field.type_name == "string":
        return raw
    if raw == "":
        return None
    try:
        if field.type_name in {"int", "long"}:
            return int(raw)
        if field.type_name in {"float", "double"}:
            return float(raw)
    except ValueError as exc:
        raise RecordDecodeError(
            f"Value '{raw}' of field '{field.name}' is not a valid {field.type_name}."
        ) from exc
    if field.type_name == "boolean":
        lowered = raw.strip().lower()
        if lowered not in {"true", "false"}:
            raise RecordDecodeError(f"Value '{raw}' of field '{field.name}' is not a boolean.")
        return lowered == "true"
    return raw.encode("utf-8")


def _convert_json(field: SchemaField, value: Any) -> Any:
    if field.type_name in {"float", "double"} and isinstance(value, int) and not isinstance(
        value, bool
    ):
        return float(value)
    if field.type_name in {"bytes", "fixed"} and isinstance(value, str):
        return value.encode("utf-8")
    return value


class _AvroBinaryReader:
    """Small Avro binary reader supporting the schema types used by this project."""

    def __init__(self, payload: bytes) -> None:
        self._data = payload
        self._offset = 0

    @property
    def remaining(self) -> int:
        """Number of unread bytes."""
        return len(self._data) - self._offset

    def read_exact(self, size: int) -> bytes:
        """Read exactly `size` bytes or raise RecordDecodeError."""
        if size < 0:
            raise RecordDecodeError("Negative read size is invalid.")
        end = self._offset + size
        if end > len(self._data):
            raise RecordDecodeError("Unexpected end of Avro payload.")
        chunk = bytes(self._data[self._offset : end])
        self._offset = end
        return chunk

    def read_boolean(self) -> bool:
        return self.read_exact(1) != b"\x00"

    def read_float(self) -> float:
        """Read an Avro float (32-bit little-endian)."""
        return struct.unpack("<f", self.read_exact(4))[0]

    def read_double(self) -> float:
        """Read an Avro double (64-bit little-endian)."""
        return struct.unpack("<d", self.read_exact(8))[0]

    def read_bytes(self) -> bytes:
        length = self.read_long()
        if length < 0:
            raise RecordDecodeError("Negative bytes length in Avro payload.")
        return self.read_exact(length)

    def read_string(self) -> str:
        raw = self.read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise RecordDecodeError("Invalid UTF-8 string in Avro payload.") from exc

    def read_long(self) -> int:
        """Read Avro zigzag-encoded long."""
        shift = 0
        raw_value = 0
        while True:
            byte = self.read_exact(1)[0]
            raw_value |= (byte & 0x7F) << shift
            if (byte & 0x80) == 0:
                break
            shift += 7
            if shift > 63:
                raise RecordDecodeError("Avro varint is too long.")
        return (raw_value >> 1) ^ -(raw_value & 1)

    def read_block_count(self) -> int:
        """Read the item count of the next array/map block, skipping its byte size."""
        count = self.read_long()
        if count < 0:
            self.read_long()
            count = -count
        return count
