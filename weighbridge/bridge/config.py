from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from .errors import ConfigError

DEFAULT_WS_HOST = "0.0.0.0"

# RFID readers dial in to this port
DEFAULT_RFID_HOST = "0.0.0.0"
DEFAULT_RFID_TCP_PORT = 30080
DEFAULT_RFID_WS_PORT = 8080

# Weight scale terminal we dial out to
DEFAULT_WEIGHT_HOST = "10.40.7.181"
DEFAULT_WEIGHT_PORT = 7000
DEFAULT_WEIGHT_WS_PORT = 8081
DEFAULT_RECONNECT_DELAY = 5.0


@dataclass(slots=True)
class ListenerConfig:
    """Inbound TCP channel (hardware connects to us)."""

    host: str = DEFAULT_RFID_HOST
    port: int = DEFAULT_RFID_TCP_PORT
    ws_port: int = DEFAULT_RFID_WS_PORT

    def validate(self, section: str = "rfid") -> None:
        _check_port(f"{section}.port", self.port)
        _check_port(f"{section}.ws_port", self.ws_port)


@dataclass(slots=True)
class LinkConfig:
    """Outbound TCP channel (we connect to the hardware)."""

    host: str = DEFAULT_WEIGHT_HOST
    port: int = DEFAULT_WEIGHT_PORT
    ws_port: int = DEFAULT_WEIGHT_WS_PORT
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY

    def validate(self, section: str = "weight") -> None:
        if not self.host:
            raise ConfigError(f"{section}.host must not be empty")
        _check_port(f"{section}.port", self.port)
        if self.port == 0:
            raise ConfigError(f"{section}.port must be a real device port, got 0")
        _check_port(f"{section}.ws_port", self.ws_port)
        if self.reconnect_delay <= 0:
            raise ConfigError(f"{section}.reconnect_delay must be positive, got {self.reconnect_delay}")


@dataclass(slots=True)
class BridgeConfig:
    """Top-level configuration for the device bridge."""

    ws_host: str = DEFAULT_WS_HOST
    rfid: ListenerConfig = field(default_factory=ListenerConfig)
    weight: LinkConfig = field(default_factory=LinkConfig)

    def validate(self) -> None:
        self.rfid.validate("rfid")
        self.weight.validate("weight")
        ports = [
            ("rfid.port", self.rfid.port),
            ("rfid.ws_port", self.rfid.ws_port),
            ("weight.ws_port", self.weight.ws_port),
        ]
        seen: Dict[int, str] = {}
        for name, port in ports:
            # Port 0 asks the OS for an ephemeral port, so it can repeat
            if port == 0:
                continue
            if port in seen:
                raise ConfigError(f"{name} and {seen[port]} both use port {port}")
            seen[port] = name


def _check_port(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= 65535:
        raise ConfigError(f"{name} out of range: {value}")


def _as_port(name: str, value: Any) -> int:
    """Coerce a parsed port value without truncating fractions."""
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigError(f"{name} must be an integer, got {value!r}")
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ConfigError(f"{name} must be an integer, got {value!r}")


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    data = raw.get(key) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"'{key}' section must be an object")
    return data


def config_from_dict(raw: Dict[str, Any]) -> BridgeConfig:
    """Build a validated config from a parsed JSON/YAML mapping."""
    rfid_raw = _section(raw, "rfid")
    weight_raw = _section(raw, "weight")

    try:
        rfid = ListenerConfig(
            host=str(rfid_raw.get("host", DEFAULT_RFID_HOST)),
            port=_as_port("port", rfid_raw.get("port", DEFAULT_RFID_TCP_PORT)),
            ws_port=_as_port("ws_port", rfid_raw.get("ws_port", DEFAULT_RFID_WS_PORT)),
        )
        weight = LinkConfig(
            host=str(weight_raw.get("host", DEFAULT_WEIGHT_HOST)),
            port=_as_port("port", weight_raw.get("port", DEFAULT_WEIGHT_PORT)),
            ws_port=_as_port("ws_port", weight_raw.get("ws_port", DEFAULT_WEIGHT_WS_PORT)),
            reconnect_delay=float(weight_raw.get("reconnect_delay", DEFAULT_RECONNECT_DELAY)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc

    cfg = BridgeConfig(
        ws_host=str(raw.get("ws_host", DEFAULT_WS_HOST)),
        rfid=rfid,
        weight=weight,
    )
    cfg.validate()
    return cfg


def load_config(path: str | Path) -> BridgeConfig:
    """Parse a YAML/JSON config file into a structured config object."""

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(file_path)

    text = file_path.read_text(encoding="utf-8")
    try:
        if file_path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text) or {}
        else:
            raw = json.loads(text or "{}")
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not parse {file_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be an object/dict")

    return config_from_dict(raw)
