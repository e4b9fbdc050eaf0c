"""Broker connection exports."""

from .connection_set import (
    BROKER_GUIDANCE,
    BrokerClientProtocol,
    BrokerConnection,
    BrokerConnectionError,
    BrokerConnectionSet,
    ClientFactory,
    create_broker_client,
)

__all__ = [
    "BROKER_GUIDANCE",
    "BrokerClientProtocol",
    "BrokerConnection",
    "BrokerConnectionError",
    "BrokerConnectionSet",
    "ClientFactory",
    "create_broker_client",
]
