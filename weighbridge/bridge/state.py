"""Shared value types for the device bridge."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable


class ConnectionState(Enum):
    """Lifecycle of an outbound device connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Endpoint:
    """Fixed host/port target of an outbound device link."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


# Receives one raw chunk per transport read
DataHandler = Callable[[bytes], None]

# Receives (old_state, new_state) on every transition
StateListener = Callable[[ConnectionState, ConnectionState], None]
