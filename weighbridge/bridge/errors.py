"""Exceptions raised by the device bridge."""
from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge failures."""


class BindError(BridgeError):
    """A listening socket could not be bound.

    Ports are fixed configuration, so this is fatal at startup and is never
    retried.
    """

    def __init__(self, component: str, host: str, port: int, cause: OSError | None = None):
        self.component = component
        self.host = host
        self.port = port
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{component} could not bind {host}:{port}{detail}")


class ConfigError(BridgeError, ValueError):
    """Invalid bridge configuration."""
