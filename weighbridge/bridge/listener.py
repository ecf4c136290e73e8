"""Device listener - accepts TCP connections from hardware that dials in.

RFID readers are configured with the bridge's address and open the connection
themselves, sometimes several readers at once. Each peer is serviced
independently; when a peer goes away its resources are released and the
reader is expected to redial.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from .errors import BindError
from .state import DataHandler

logger = logging.getLogger("weighbridge.bridge.listener")


class PeerSession:
    """Represents a connected hardware peer."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        session_id: int,
    ):
        self.reader = reader
        self.writer = writer
        self.session_id = session_id
        self.chunks_received = 0
        self._addr = writer.get_extra_info("peername")

    @property
    def address(self) -> str:
        if self._addr:
            return f"{self._addr[0]}:{self._addr[1]}"
        return "unknown"

    async def close(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug("Error closing peer %s: %s", self.address, e)


class DeviceListener:
    """TCP server forwarding every chunk from every peer to one data handler."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 30080,
        name: str = "rfid",
        read_size: int = 4096,
    ):
        self.host = host
        self.port = port
        self.name = name
        self.read_size = read_size

        self._server: Optional[asyncio.Server] = None
        self._peers: Dict[int, PeerSession] = {}
        self._data_handler: Optional[DataHandler] = None
        self._session_counter = 0
        self.chunks_received = 0

    def set_data_handler(self, handler: Optional[DataHandler]) -> None:
        """Set the callback receiving each raw chunk."""
        self._data_handler = handler

    async def start(self) -> None:
        await self.listen()

    async def listen(self, port: Optional[int] = None) -> None:
        """Bind and begin accepting peers.

        Raises:
            BindError: if the port cannot be bound.
        """
        if self._server is not None:
            return
        if port is not None:
            self.port = port

        try:
            self._server = await asyncio.start_server(
                self._handle_peer,
                self.host,
                self.port,
            )
        except OSError as e:
            raise BindError(f"{self.name} TCP listener", self.host, self.port, e) from e

        addrs = ", ".join(str(s.getsockname()) for s in self._server.sockets)
        logger.info("%s TCP server listening on %s", self.name.upper(), addrs)

    async def close(self) -> None:
        """Stop accepting and drop every connected peer."""
        server = self._server
        if server is None:
            return
        self._server = None
        server.close()

        for peer in list(self._peers.values()):
            await peer.close()

        await server.wait_closed()
        logger.info("%s TCP server stopped", self.name.upper())

    # --- Peers ---

    async def _handle_peer(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self._session_counter += 1
        peer = PeerSession(reader, writer, self._session_counter)
        self._peers[peer.session_id] = peer

        logger.info("New %s TCP connection: %s (session %d)", self.name.upper(), peer.address, peer.session_id)

        try:
            await self._peer_loop(peer)
        except asyncio.CancelledError:
            pass
        except OSError as e:
            logger.warning("%s TCP socket error from %s: %s", self.name.upper(), peer.address, e)
        finally:
            self._peers.pop(peer.session_id, None)
            await peer.close()
            logger.info("%s TCP connection closed: %s", self.name.upper(), peer.address)

    async def _peer_loop(self, peer: PeerSession) -> None:
        while True:
            data = await peer.reader.read(self.read_size)
            if not data:
                return
            peer.chunks_received += 1
            self.chunks_received += 1
            self._emit(data, peer)

    def _emit(self, data: bytes, peer: PeerSession) -> None:
        if self._data_handler is None:
            return
        try:
            self._data_handler(data)
        except Exception:
            logger.exception("Data handler for %s failed on data from %s", self.name, peer.address)

    # --- Properties ---

    @property
    def peer_count(self) -> int:
        return len(self._peers)

    @property
    def peers(self) -> list:
        return list(self._peers.values())

    @property
    def is_listening(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> Optional[int]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def describe(self) -> str:
        return f"TCP server {self.host}:{self.port}"

    def get_stats(self) -> dict:
        return {
            "listening": self.is_listening,
            "peers": self.peer_count,
            "chunks_received": self.chunks_received,
        }
