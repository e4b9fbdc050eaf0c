"""Record decoding entities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from kafka_stream_ingest.schema_management import RecordSchema, SchemaError, check_field_value


@dataclass(frozen=True)
class MessageEnvelope:
    """Raw Kafka message plus the timestamp of the batch it was consumed in."""

    key: bytes | None
    value: bytes
    partition: int
    offset: int
    batch_timestamp: int


@dataclass(frozen=True)
class StructuredRecord:
    """Named, schema-typed values of one decoded message."""

    schema: RecordSchema
    values: Mapping[str, Any]

    def get(self, name: str) -> Any:
        return self.values.get(name)

    def as_dict(self) -> dict[str, Any]:
        return {name: self.values.get(name) for name in self.schema.field_names}


class StructuredRecordBuilder:
    """Collect field values, checking each one against the schema as it is set."""

    def __init__(self, schema: RecordSchema) -> None:
        self._schema = schema
        self._values: dict[str, Any] = {}

    def set(self, name: str, value: Any) -> StructuredRecordBuilder:
        field = self._schema.get_field(name)
        if field is None:
            raise SchemaError(f"Field '{name}' does not exist in schema '{self._schema.name}'.")
        check_field_value(field, value)
        self._values[name] = value
        return self

    def build(self) -> StructuredRecord:
        for field in self._schema.fields:
            if field.name in self._values:
                continue
            if not (field.nullable or field.type_name == "null"):
                raise SchemaError(f"Field '{field.name}' is not nullable but has no value.")
            self._values[field.name] = None
        return StructuredRecord(schema=self._schema, values=dict(self._values))
