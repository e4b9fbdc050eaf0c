"""Schema management exports."""

from .schema_models import RecordSchema, SchemaField
from .schema_projection import (
    SchemaError,
    check_field_value,
    derive_message_schema,
    parse_record_schema,
)

__all__ = [
    "RecordSchema",
    "SchemaField",
    "SchemaError",
    "check_field_value",
    "derive_message_schema",
    "parse_record_schema",
]
