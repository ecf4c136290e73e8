"""Bridge router - wires device sources to their broadcasters.

The BridgeRouter is the main entry point: it owns one Channel per hardware
data source and sequences startup and shutdown so that no new work begins
while the bridge is half-started or tearing down.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from .broadcaster import Broadcaster
from .config import BridgeConfig
from .errors import BindError
from .link import DeviceLink
from .listener import DeviceListener
from .state import Endpoint

logger = logging.getLogger("weighbridge.bridge.router")

DataSource = Union[DeviceLink, DeviceListener]


@dataclass
class Channel:
    """One hardware data source paired with one broadcaster."""

    name: str
    source: DataSource
    broadcaster: Broadcaster


class BridgeRouter:
    """Fans hardware byte streams out to WebSocket subscribers.

    Example:
        router = BridgeRouter.from_config(BridgeConfig())
        await router.start()
        ...
        await router.stop()
    """

    def __init__(self, channels: List[Channel]):
        names = [ch.name for ch in channels]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate channel names: {names}")

        self._channels: Dict[str, Channel] = {ch.name: ch for ch in channels}
        self._running = False

        for channel in channels:
            channel.source.set_data_handler(self._make_forwarder(channel))

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "BridgeRouter":
        """Build the RFID (inbound) and weight (outbound) channels."""
        rfid = Channel(
            name="rfid",
            source=DeviceListener(
                host=config.rfid.host,
                port=config.rfid.port,
                name="rfid",
            ),
            broadcaster=Broadcaster("rfid", config.ws_host, config.rfid.ws_port),
        )
        weight = Channel(
            name="weight",
            source=DeviceLink(
                Endpoint(config.weight.host, config.weight.port),
                name="weight",
                reconnect_delay=config.weight.reconnect_delay,
            ),
            broadcaster=Broadcaster("weight", config.ws_host, config.weight.ws_port),
        )
        return cls([rfid, weight])

    @staticmethod
    def _make_forwarder(channel: Channel):
        broadcaster = channel.broadcaster
        label = channel.name.upper()

        def forward(data: bytes) -> None:
            logger.debug("%s data received: %r", label, data)
            broadcaster.publish(data)

        return forward

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start broadcasters, then listeners, then outbound links.

        Raises:
            BindError: if any port cannot be bound. Components started before
                the failure are stopped again before the error propagates.
        """
        if self._running:
            return
        logger.info("Starting bridge...")
        for channel in self._channels.values():
            logger.info(
                "  %s: %s -> ws port %s",
                channel.name.upper(),
                channel.source.describe(),
                channel.broadcaster.port,
            )

        started_broadcasters: List[Broadcaster] = []
        started_listeners: List[DeviceListener] = []
        try:
            for channel in self._channels.values():
                await channel.broadcaster.start()
                started_broadcasters.append(channel.broadcaster)
            for listener in self.listeners:
                await listener.listen()
                started_listeners.append(listener)
        except BindError as e:
            logger.error("Startup failed: %s", e)
            await self._rollback(started_listeners, started_broadcasters)
            raise

        for link in self.links:
            await link.start()

        self._running = True
        logger.info("Bridge started successfully")

    async def _rollback(
        self,
        listeners: List[DeviceListener],
        broadcasters: List[Broadcaster],
    ) -> None:
        for listener in listeners:
            await listener.close()
        for broadcaster in broadcasters:
            await broadcaster.stop()
        logger.info("Rolled back %d listener(s) and %d broadcaster(s)", len(listeners), len(broadcasters))

    async def stop(self) -> None:
        """Close listeners, then links, then broadcasters."""
        if not self._running:
            return
        logger.info("Shutting down servers...")
        self._running = False
        for listener in self.listeners:
            await listener.close()
        for link in self.links:
            await link.close()
        for channel in self._channels.values():
            await channel.broadcaster.stop()
        logger.info("Bridge stopped")

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run the bridge until ``stop_event`` is set or the task is cancelled."""
        stop_event = stop_event or asyncio.Event()
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    # --- Properties ---

    @property
    def channels(self) -> List[Channel]:
        return list(self._channels.values())

    def channel(self, name: str) -> Channel:
        return self._channels[name]

    @property
    def listeners(self) -> List[DeviceListener]:
        return [ch.source for ch in self._channels.values() if isinstance(ch.source, DeviceListener)]

    @property
    def links(self) -> List[DeviceLink]:
        return [ch.source for ch in self._channels.values() if isinstance(ch.source, DeviceLink)]

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> dict:
        """Get per-channel bridge statistics."""
        return {
            "running": self._running,
            "channels": {
                name: {**ch.broadcaster.get_stats(), **ch.source.get_stats()}
                for name, ch in self._channels.items()
            },
        }
