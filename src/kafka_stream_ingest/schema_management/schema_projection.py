"""Schema parsing and value checking service."""

from __future__ import annotations

import json
from collections.abc import Collection, Mapping, Sequence
from typing import Any

from .schema_models import RecordSchema, SchemaField

_INT_RANGE = (-(2**31), 2**31 - 1)
_LONG_RANGE = (-(2**63), 2**63 - 1)
_PRIMITIVE_TYPES = frozenset(
    {"null", "boolean", "int", "long", "float", "double", "bytes", "string"}
)
_COMPLEX_TYPES = frozenset({"record", "enum", "array", "map", "fixed"})


class SchemaError(Exception):
    """Raised for schema parsing failures and schema/value mismatches."""


def parse_record_schema(text: str) -> RecordSchema:
    """Parse an Avro-style record definition into a RecordSchema."""
    try:
        root = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Invalid record schema JSON: {exc}") from exc
    if not isinstance(root, Mapping):
        raise SchemaError("Record schema root must be a JSON object.")
    return record_schema_from_definition(root)


def record_schema_from_definition(root: Mapping[str, Any]) -> RecordSchema:
    """Build a RecordSchema from an already decoded record definition."""
    if root.get("type") != "record":
        raise SchemaError("Record schema root must have type 'record'.")
    record_fields = root.get("fields")
    if not isinstance(record_fields, Sequence) or isinstance(record_fields, str):
        raise SchemaError("Record schema requires a fields array.")

    named_types: dict[str, Mapping[str, Any]] = {}
    _register_named_types(root, named_types)

    fields: list[SchemaField] = []
    seen_names: set[str] = set()
    for field in record_fields:
        if not isinstance(field, Mapping) or not isinstance(field.get("name"), str):
            raise SchemaError("Record field definitions must include a name.")
        name = field["name"]
        if name in seen_names:
            raise SchemaError(f"Duplicate field detected: {name}")
        seen_names.add(name)
        type_name, nullable, definition = _resolve_field_type(field.get("type"), named_types)
        fields.append(
            SchemaField(name=name, type_name=type_name, nullable=nullable, definition=definition)
        )

    if not fields:
        raise SchemaError("Record schema must define at least one field.")
    record_name = root.get("name")
    return RecordSchema(
        name=record_name if isinstance(record_name, str) else "record",
        fields=tuple(fields),
        definition=root,
    )


def derive_message_schema(schema: RecordSchema, excluded: Collection[str]) -> RecordSchema:
    """Return the sub-schema of `schema` without the `excluded` field names."""
    excluded_names = set(excluded)
    raw_fields = schema.definition.get("fields", ())
    kept_definitions = [
        field
        for field in raw_fields
        if isinstance(field, Mapping) and field.get("name") not in excluded_names
    ]
    if not kept_definitions:
        raise SchemaError("Message schema must keep at least one field.")
    definition = {
        **schema.definition,
        "name": f"{schema.name}_message",
        "fields": kept_definitions,
    }
    return record_schema_from_definition(definition)


def check_field_value(field: SchemaField, value: Any) -> None:
    """Raise SchemaError when `value` cannot be stored in `field`."""
    if value is None:
        if field.nullable or field.type_name == "null":
            return
        raise SchemaError(f"Field '{field.name}' is not nullable.")
    if not _value_matches(field.type_name, field.definition, value):
        raise SchemaError(
            f"Value of type {type(value).__name__} is not compatible with field "
            f"'{field.name}' of type {field.type_name}."
        )


def _value_matches(type_name: str, definition: Any, value: Any) -> bool:
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name in {"int", "long"}:
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        low, high = _INT_RANGE if type_name == "int" else _LONG_RANGE
        return low <= value <= high
    if type_name in {"float", "double"}:
        return isinstance(value, int | float) and not isinstance(value, bool)
    if type_name == "bytes":
        return isinstance(value, bytes | bytearray | memoryview)
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "fixed":
        return isinstance(value, bytes | bytearray) and len(value) == definition.get("size")
    if type_name == "enum":
        return isinstance(value, str) and value in definition.get("symbols", ())
    if type_name == "array":
        return isinstance(value, list | tuple)
    if type_name in {"map", "record"}:
        return isinstance(value, Mapping)
    return False


def _resolve_field_type(
    schema: Any, named_types: Mapping[str, Mapping[str, Any]]
) -> tuple[str, bool, Any]:
    if isinstance(schema, list):
        non_null = [item for item in schema if item != "null"]
        if not non_null:
            return "null", True, schema
        if len(non_null) > 1:
            raise SchemaError("Only unions of null and a single type are supported.")
        type_name, _, definition = _resolve_field_type(non_null[0], named_types)
        return type_name, len(non_null) != len(schema), definition
    if isinstance(schema, str):
        if schema in _PRIMITIVE_TYPES:
            return schema, False, {}
        named = named_types.get(schema)
        if named is None:
            raise SchemaError(f"Unknown schema type reference: {schema}")
        return _resolve_field_type(named, named_types)
    if isinstance(schema, Mapping):
        inner = schema.get("type")
        if isinstance(inner, list | Mapping):
            return _resolve_field_type(inner, named_types)
        if inner in _PRIMITIVE_TYPES or inner in _COMPLEX_TYPES:
            return inner, False, schema
        if isinstance(inner, str):
            return _resolve_field_type(inner, named_types)
    raise SchemaError("Unsupported schema segment.")


def _register_named_types(schema: Any, named_types: dict[str, Mapping[str, Any]]) -> None:
    if isinstance(schema, list):
        for node in schema:
            _register_named_types(node, named_types)
        return
    if not isinstance(schema, Mapping):
        return

    node_type = schema.get("type")
    if isinstance(node_type, Mapping | list):
        _register_named_types(node_type, named_types)
        return
    if node_type in {"record", "enum", "fixed"}:
        name = schema.get("name")
        if isinstance(name, str) and name:
            named_types.setdefault(name, schema)
    if node_type == "record":
        for field in schema.get("fields") or ():
            if isinstance(field, Mapping):
                _register_named_types(field.get("type"), named_types)
    elif node_type == "array":
        _register_named_types(schema.get("items"), named_types)
    elif node_type == "map":
        _register_named_types(schema.get("values"), named_types)
