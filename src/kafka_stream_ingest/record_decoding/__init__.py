"""Record decoding domain exports."""

from .record_decoder import (
    DecoderState,
    FormattedContent,
    RawContent,
    RecordDecoder,
    build_record_decoder,
    derive_decoder_state,
)
from .record_formats import (
    RecordDecodeError,
    RecordFormat,
    RecordFormatError,
    create_record_format,
    registered_formats,
)
from .structured_records import MessageEnvelope, StructuredRecord, StructuredRecordBuilder

__all__ = [
    "DecoderState",
    "FormattedContent",
    "MessageEnvelope",
    "RawContent",
    "RecordDecodeError",
    "RecordDecoder",
    "RecordFormat",
    "RecordFormatError",
    "StructuredRecord",
    "StructuredRecordBuilder",
    "build_record_decoder",
    "create_record_format",
    "derive_decoder_state",
    "registered_formats",
]
