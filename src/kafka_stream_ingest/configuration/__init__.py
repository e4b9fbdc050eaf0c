"""Configuration domain exports."""

from .config_scaffold_builder import (
    DEFAULT_CONFIG_FILENAME,
    build_placeholder_configuration,
    write_placeholder_configuration,
)
from .loader import (
    ConfigurationError,
    build_configuration,
    load_configuration,
    parse_desired_offset,
)
from .runtime_settings import (
    BrokerEndpoint,
    Configuration,
    ConnectionSettings,
    DecodingSettings,
    SourceSettings,
)

__all__ = [
    "BrokerEndpoint",
    "Configuration",
    "ConnectionSettings",
    "DecodingSettings",
    "SourceSettings",
    "ConfigurationError",
    "build_configuration",
    "load_configuration",
    "parse_desired_offset",
    "DEFAULT_CONFIG_FILENAME",
    "build_placeholder_configuration",
    "write_placeholder_configuration",
]
