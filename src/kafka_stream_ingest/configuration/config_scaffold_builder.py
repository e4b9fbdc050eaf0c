"""Configuration scaffold generation helpers."""

from __future__ import annotations

from pathlib import Path

DEFAULT_CONFIG_FILENAME = "ingest.yaml"

_CONFIG_SCAFFOLD_TEMPLATE = """# Source configuration template for kafka-stream-ingest.
# Replace every <REQUIRED> placeholder before running resolve-offsets or consume.
# Replace <OPTIONAL> placeholders only when your setup needs them, otherwise delete them.

kafka:
  # One host:port entry per broker. Every broker is queried while resolving offsets.
  brokers:
    - "<REQUIRED>"
  topic: "<REQUIRED>"
  # Leave partitions empty to read every partition the brokers report for the topic.
  partitions: []
  # Starting offset per partition: a number, earliest or latest.
  initial_offsets:
    # 0: earliest
  # Used for every partition without an initial_offsets entry.
  default_initial_offset: latest
  timeout_seconds: "<OPTIONAL>"
  receive_buffer_bytes: "<OPTIONAL>"
  security:
    security.protocol: "<OPTIONAL>"
    sasl.mechanisms: "<OPTIONAL>"
    sasl.username: "<OPTIONAL>"
    sasl.password: "<OPTIONAL>"

decoding:
  # Output record schema (Avro-style record JSON), inline or by path.
  schema:
    inline: "<REQUIRED>"
    # path: "<OPTIONAL>"
  # Message format (avro, avro-confluent, csv, json, text, tsv). Without a format the
  # schema needs exactly one bytes field besides the metadata fields, which receives
  # the raw message.
  # format: "<OPTIONAL>"
  # Optional names of schema fields receiving message metadata.
  # time_field: "<OPTIONAL>"
  # key_field: "<OPTIONAL>"
  # partition_field: "<OPTIONAL>"
  # offset_field: "<OPTIONAL>"
"""


def build_placeholder_configuration() -> str:
    """Build a YAML source configuration template with placeholders and inline guidance."""
    return _CONFIG_SCAFFOLD_TEMPLATE


def write_placeholder_configuration(output_path: Path | str) -> Path:
    """Write the placeholder configuration template to the requested output path.

    Args:
      output_path: Destination file path for the scaffold.

    Returns:
      The resolved destination path.

    Raises:
      FileExistsError: If the destination file already exists.
      OSError: If writing the scaffold fails.
    """
    destination = Path(output_path)
    if destination.exists():
        raise FileExistsError(f"Configuration file already exists: {destination.resolve()}")
    destination.write_text(build_placeholder_configuration(), encoding="utf-8")
    return destination.resolve()
