"""Schema management entities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SchemaField:
    """One named field of a record schema."""

    name: str
    type_name: str
    nullable: bool
    definition: Any


@dataclass(frozen=True)
class RecordSchema:
    """Ordered set of named fields parsed from an Avro-style record definition."""

    name: str
    fields: tuple[SchemaField, ...]
    definition: Mapping[str, Any]

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(field.name for field in self.fields)

    def get_field(self, name: str) -> SchemaField | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None
