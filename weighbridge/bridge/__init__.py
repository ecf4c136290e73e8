"""Weighbridge device bridge.

Relays raw byte streams from weighbridge hardware (RFID readers dialling in,
a weight scale terminal we dial out to) to browser clients over WebSocket,
one WebSocket server per channel.
"""

from .broadcaster import Broadcaster
from .config import BridgeConfig, LinkConfig, ListenerConfig, load_config
from .errors import BindError, BridgeError, ConfigError
from .link import DeviceLink
from .listener import DeviceListener, PeerSession
from .router import BridgeRouter, Channel
from .state import ConnectionState, Endpoint

__all__ = [
    "BindError",
    "BridgeConfig",
    "BridgeError",
    "BridgeRouter",
    "Broadcaster",
    "Channel",
    "ConfigError",
    "ConnectionState",
    "DeviceLink",
    "DeviceListener",
    "Endpoint",
    "LinkConfig",
    "ListenerConfig",
    "PeerSession",
    "load_config",
]
