"""Per-message transform from Kafka envelopes to structured records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from kafka_stream_ingest.configuration.runtime_settings import DecodingSettings
from kafka_stream_ingest.schema_management import (
    RecordSchema,
    SchemaError,
    derive_message_schema,
)

from .record_formats import RecordDecodeError, RecordFormat, create_record_format
from .structured_records import MessageEnvelope, StructuredRecord, StructuredRecordBuilder


@dataclass(frozen=True)
class DecoderState:
    """Values derived once per worker from the decoding settings."""

    schema: RecordSchema
    time_field: str | None
    key_field: str | None
    partition_field: str | None
    offset_field: str | None
    message_field: str | None


def derive_decoder_state(settings: DecodingSettings) -> DecoderState:
    """Pick the schema, metadata fields and the raw message field from settings."""
    message_field = None
    if settings.format_name is None:
        metadata_fields = set(settings.metadata_fields)
        message_field = next(
            (name for name in settings.schema.field_names if name not in metadata_fields), None
        )
    return DecoderState(
        schema=settings.schema,
        time_field=settings.time_field,
        key_field=settings.key_field,
        partition_field=settings.partition_field,
        offset_field=settings.offset_field,
        message_field=message_field,
    )


class ContentRenderer(Protocol):
    """Strategy placing the message payload into the output record."""

    def render(
        self, builder: StructuredRecordBuilder, message_field: str | None, payload: bytes
    ) -> None: ...


class RawContent:
    """Copy the payload bytes unchanged into the message field."""

    def render(
        self, builder: StructuredRecordBuilder, message_field: str | None, payload: bytes
    ) -> None:
        if message_field is None:
            raise RecordDecodeError("Schema has no field left for the raw message.")
        builder.set(message_field, payload)


class FormattedContent:
    """Parse the payload with a named format and copy every parsed field by name."""

    def __init__(self, format_name: str, message_schema: RecordSchema) -> None:
        self.format_name = format_name
        self.message_schema = message_schema
        self._reader: RecordFormat | None = None

    @property
    def reader(self) -> RecordFormat:
        if self._reader is None:
            self._reader = create_record_format(self.format_name, self.message_schema)
        return self._reader

    def render(
        self, builder: StructuredRecordBuilder, message_field: str | None, payload: bytes
    ) -> None:
        message_record = self.reader.read(payload)
        for name in message_record.schema.field_names:
            builder.set(name, message_record.get(name))

    def __getstate__(self) -> dict[str, Any]:
        state = self.__dict__.copy()
        state["_reader"] = None
        return state


class RecordDecoder:
    """Turn a message envelope into a record of the output schema.

    Derived state is computed on the first call and cached on the instance; it is
    left out when the decoder is pickled, so every worker copy rebuilds its own.
    """

    def __init__(self, settings: DecodingSettings, content: ContentRenderer) -> None:
        self.settings = settings
        self.content = content
        self._state: DecoderState | None = None

    @property
    def state(self) -> DecoderState:
        if self._state is None:
            self._state = derive_decoder_state(self.settings)
        return self._state

    def decode(self, envelope: MessageEnvelope) -> StructuredRecord:
        state = self.state
        builder = StructuredRecordBuilder(state.schema)
        try:
            if state.time_field:
                builder.set(state.time_field, envelope.batch_timestamp)
            if state.key_field:
                builder.set(state.key_field, envelope.key)
            if state.partition_field:
                builder.set(state.partition_field, envelope.partition)
            if state.offset_field:
                builder.set(state.offset_field, envelope.offset)
            self.content.render(builder, state.message_field, envelope.value)
            return builder.build()
        except SchemaError as exc:
            raise RecordDecodeError(
                f"Message at partition {envelope.partition} offset {envelope.offset} "
                f"does not fit the output schema: {exc}"
            ) from exc

    __call__ = decode

    def __getstate__(self) -> dict[str, Any]:
        state = self.__dict__.copy()
        state["_state"] = None
        return state


def build_record_decoder(settings: DecodingSettings) -> RecordDecoder:
    """Choose the raw or formatted decoder from the presence of a message format."""
    if settings.format_name is None:
        return RecordDecoder(settings, RawContent())
    message_schema = settings.message_schema or derive_message_schema(
        settings.schema, settings.metadata_fields
    )
    return RecordDecoder(settings, FormattedContent(settings.format_name, message_schema))
