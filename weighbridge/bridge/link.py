"""Device link - resilient outbound TCP connection to a hardware endpoint.

The weight scale terminal acts as a TCP server and pushes readings to a single
client. The link keeps that connection alive for the lifetime of the process:
when the socket drops or a connect attempt fails, one reconnect is scheduled
after a fixed delay, forever.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from .state import ConnectionState, DataHandler, Endpoint, StateListener

logger = logging.getLogger("weighbridge.bridge.link")

Connector = Callable[[str, int], Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]]

DEFAULT_RECONNECT_DELAY = 5.0


class DeviceLink:
    """Self-reconnecting TCP client for a device at a fixed endpoint.

    Received bytes are handed to the data handler verbatim, one call per
    transport read. Errors never propagate to the caller; they are logged and
    followed by a reconnect attempt.

    Example:
        link = DeviceLink(Endpoint("10.40.7.181", 7000))
        link.set_data_handler(broadcaster.publish)
        link.connect()
        ...
        await link.close()
    """

    def __init__(
        self,
        endpoint: Endpoint,
        name: str = "weight",
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        read_size: int = 4096,
        connector: Optional[Connector] = None,
    ):
        self.endpoint = endpoint
        self.name = name
        self.reconnect_delay = reconnect_delay
        self.read_size = read_size
        self._connector: Connector = connector or asyncio.open_connection

        self._state = ConnectionState.DISCONNECTED
        self._data_handler: Optional[DataHandler] = None
        self._state_listeners: List[StateListener] = []
        self._task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

        self.connect_attempts = 0
        self.chunks_received = 0
        self.bytes_received = 0

    def set_data_handler(self, handler: Optional[DataHandler]) -> None:
        """Set the callback receiving each raw chunk."""
        self._data_handler = handler

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    # --- Lifecycle ---

    async def start(self) -> None:
        """Begin connecting. Failures are retried in the background."""
        self._closed = False
        self.connect()

    def connect(self) -> None:
        """Start a connection attempt unless one is already live.

        Returns immediately; the outcome is reported through state
        transitions and log output.
        """
        if self._closed:
            logger.debug("Ignoring connect on closed %s link", self.name)
            return
        if self._task is not None and not self._task.done():
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"device-link-{self.name}")

    async def close(self) -> None:
        """Tear down the connection and stop reconnecting."""
        self._closed = True

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._set_state(ConnectionState.DISCONNECTED)

        logger.info("Device link %s closed", self.name)

    # --- Connection ---

    async def _run(self) -> None:
        self.connect_attempts += 1
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to %s device at %s", self.name, self.endpoint)

        writer: Optional[asyncio.StreamWriter] = None
        try:
            reader, writer = await self._connector(self.endpoint.host, self.endpoint.port)
            self._set_state(ConnectionState.CONNECTED)
            logger.info("Connected to %s device at %s", self.name, self.endpoint)

            await self._read_loop(reader)
            logger.info("%s device at %s closed the connection", self.name, self.endpoint)
        except OSError as e:
            logger.warning("%s device connection error (%s): %s", self.name, self.endpoint, e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected error on %s device link: %s", self.name, e)
        finally:
            try:
                if writer is not None:
                    await self._close_writer(writer)
            finally:
                self._set_state(ConnectionState.DISCONNECTED)
                self._schedule_reconnect()

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        while True:
            data = await reader.read(self.read_size)
            if not data:
                return
            self.chunks_received += 1
            self.bytes_received += len(data)
            self._emit(data)

    def _emit(self, data: bytes) -> None:
        if self._data_handler is None:
            return
        try:
            self._data_handler(data)
        except Exception:
            logger.exception("Data handler for %s link failed", self.name)

    async def _close_writer(self, writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug("Error while closing %s socket: %s", self.name, e)

    # --- Reconnect ---

    def _schedule_reconnect(self) -> None:
        if self._closed:
            return
        if self._reconnect_handle is not None:
            logger.debug("Reconnect to %s device already pending", self.name)
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._on_reconnect_timer)
        logger.info("Reconnecting to %s device in %.1fs", self.name, self.reconnect_delay)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if self._closed:
            logger.debug("Reconnect timer fired after %s link closed", self.name)
            return
        self.connect()

    # --- State ---

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.debug("%s link: %s -> %s", self.name, old_state.value, new_state.value)
        for listener in list(self._state_listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("State listener for %s link failed", self.name)

    # --- Properties ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def describe(self) -> str:
        return f"TCP client -> {self.endpoint}"

    def get_stats(self) -> dict:
        return {
            "state": self._state.value,
            "connect_attempts": self.connect_attempts,
            "chunks_received": self.chunks_received,
            "bytes_received": self.bytes_received,
        }
