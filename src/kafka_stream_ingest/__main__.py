"""Module entry point for `python -m kafka_stream_ingest`."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
