"""Command line interface entry point."""

from __future__ import annotations

import base64
import json
import logging
import sys
from typing import Any

import click

from kafka_stream_ingest.broker_connections import BrokerConnectionError
from kafka_stream_ingest.configuration import (
    DEFAULT_CONFIG_FILENAME,
    ConfigurationError,
    load_configuration,
    write_placeholder_configuration,
)
from kafka_stream_ingest.offset_resolution.offset_reconciliation import (
    PartialOffsetResolutionError,
)
from kafka_stream_ingest.offset_resolution.resolution_use_case import resolve_starting_offsets
from kafka_stream_ingest.record_decoding import RecordDecodeError, RecordFormatError
from kafka_stream_ingest.stream_assembly import (
    ConsumerStream,
    StreamConsumptionError,
    assemble_stream,
    create_stream_consumer,
)

_RESOLUTION_ERRORS = (ConfigurationError, BrokerConnectionError, PartialOffsetResolutionError)
_CONSUME_ERRORS = (
    *_RESOLUTION_ERRORS,
    RecordFormatError,
    RecordDecodeError,
    StreamConsumptionError,
)


class CliError(Exception):
    """Custom CLI error."""


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="kafka-stream-ingest")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for diagnostics written to stderr",
)
def cli(log_level: str) -> None:
    """Resolve Kafka starting offsets and decode topic messages into records."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command(name="generate-config")
@click.option(
    "--output",
    "output_path",
    required=False,
    default=DEFAULT_CONFIG_FILENAME,
    show_default=True,
    type=click.Path(path_type=str),
    help="Path to the YAML source configuration template to write",
)
def generate_config(output_path: str) -> None:
    """Generate a placeholder YAML source configuration with guidance comments."""
    try:
        resolved_output = write_placeholder_configuration(output_path)
    except (FileExistsError, OSError) as exc:
        raise CliError(str(exc)) from exc
    click.echo(str(resolved_output))


@cli.command(name="resolve-offsets")
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(path_type=str),
    help="Path to YAML/JSON source configuration file",
)
def resolve_offsets_command(config_path: str) -> None:
    """Print the concrete starting offset of every partition as JSON."""
    try:
        configuration = load_configuration(config_path)
        offsets = resolve_starting_offsets(configuration.source)
    except _RESOLUTION_ERRORS as exc:
        raise CliError(str(exc)) from exc
    rendered = {str(partition.partition): offset for partition, offset in sorted(offsets.items())}
    click.echo(json.dumps(rendered))


@cli.command(name="consume")
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(path_type=str),
    help="Path to YAML/JSON source configuration file",
)
@click.option(
    "--max-messages",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many decoded records",
)
@click.option(
    "--batch-size",
    type=click.IntRange(min=1),
    default=100,
    show_default=True,
    help="Messages requested from Kafka per batch",
)
@click.option(
    "--poll-timeout",
    type=click.FloatRange(min=0),
    default=1.0,
    show_default=True,
    help="Seconds to wait for each batch",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=5,
    show_default=True,
    help="Stop after this many consecutive empty batches",
)
def consume_command(
    config_path: str,
    max_messages: int | None,
    batch_size: int,
    poll_timeout: float,
    max_idle_polls: int,
) -> None:
    """Decode messages from the resolved offsets and print them as JSON lines."""
    try:
        configuration = load_configuration(config_path)
        handoff = assemble_stream(configuration)
        stream = ConsumerStream(
            handoff,
            create_stream_consumer(configuration.source),
            batch_size=batch_size,
            poll_timeout_seconds=poll_timeout,
            max_idle_polls=max_idle_polls,
        )
        for batch in stream.batches(max_messages):
            for record in batch:
                click.echo(json.dumps(record.as_dict(), default=_json_default))
    except _CONSUME_ERRORS as exc:
        raise CliError(str(exc)) from exc


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes | bytearray | memoryview):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for console_scripts wiring."""
    argv = argv if argv is not None else sys.argv[1:]
    try:
        cli.main(args=list(argv), standalone_mode=False)
    except CliError as exc:
        click.echo(str(exc), err=True)
        return 1
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.Abort:
        click.echo("Aborted.", err=True)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
