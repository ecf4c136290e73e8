"""Broadcaster - fans out device payloads to WebSocket subscribers.

Each channel owns one Broadcaster, which is a WebSocket server on its own port.
Browsers connect to it and receive every payload the channel's device produces
from that point on. Delivery is best-effort: subscribers that are not OPEN at
the moment of a publish are skipped, never queued.
"""
from __future__ import annotations

import logging
from typing import Optional, Set

from websockets.asyncio.server import Server, ServerConnection, broadcast, serve
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .errors import BindError

logger = logging.getLogger("weighbridge.bridge.broadcaster")


class Broadcaster:
    """WebSocket server holding the live subscriber set of one channel."""

    def __init__(self, name: str, host: str = "0.0.0.0", port: int = 8080):
        self.name = name
        self.host = host
        self.port = port

        self._server: Optional[Server] = None
        self._subscribers: Set[ServerConnection] = set()
        self.messages_published = 0

    # --- Lifecycle ---

    async def start(self) -> None:
        """Open the WebSocket server.

        Raises:
            BindError: if the port cannot be bound.
        """
        if self._server is not None:
            return
        try:
            self._server = await serve(self._handle_session, self.host, self.port)
        except OSError as e:
            raise BindError(f"{self.name} WebSocket server", self.host, self.port, e) from e

        logger.info(
            "%s WebSocket server listening on ws://%s:%s",
            self.name.upper(),
            self.host,
            self.bound_port,
        )

    async def stop(self) -> None:
        """Close the server and drop every subscriber."""
        server = self._server
        if server is None:
            return
        self._server = None
        server.close()
        await server.wait_closed()
        self._subscribers.clear()
        logger.info("%s WebSocket server stopped", self.name.upper())

    # --- Subscribers ---

    def subscribe(self, session: ServerConnection) -> None:
        self._subscribers.add(session)
        logger.info(
            "%s subscriber connected: %s (%d total)",
            self.name.upper(),
            _describe(session),
            len(self._subscribers),
        )

    def unsubscribe(self, session: ServerConnection) -> None:
        """Remove a session. Safe to call for sessions already removed."""
        if session not in self._subscribers:
            return
        self._subscribers.discard(session)
        logger.info(
            "%s subscriber disconnected: %s (%d total)",
            self.name.upper(),
            _describe(session),
            len(self._subscribers),
        )

    async def _handle_session(self, websocket: ServerConnection) -> None:
        self.subscribe(websocket)
        try:
            # Inbound client messages are read and discarded
            async for _message in websocket:
                pass
        except ConnectionClosed as e:
            logger.debug("%s subscriber %s closed: %s", self.name, _describe(websocket), e)
        finally:
            self.unsubscribe(websocket)

    # --- Publishing ---

    def publish(self, data: bytes) -> int:
        """Send one text frame with ``data`` to every OPEN subscriber.

        Returns the number of subscribers the frame was handed to. Send
        failures are left to the transport; a broken subscriber is removed
        when its connection reports closure.
        """
        message = data.decode("utf-8", errors="replace")
        recipients = [s for s in list(self._subscribers) if s.protocol.state is State.OPEN]
        self.messages_published += 1
        if recipients:
            broadcast(recipients, message)
        logger.debug("%s published %d bytes to %d subscriber(s)", self.name, len(data), len(recipients))
        return len(recipients)

    # --- Properties ---

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def subscribers(self) -> Set[ServerConnection]:
        return set(self._subscribers)

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> Optional[int]:
        if self._server is None:
            return None
        sockets = list(self._server.sockets)
        if not sockets:
            return None
        return sockets[0].getsockname()[1]

    def get_stats(self) -> dict:
        return {
            "subscribers": self.subscriber_count,
            "messages_published": self.messages_published,
        }


def _describe(session: ServerConnection) -> str:
    addr = getattr(session, "remote_address", None)
    if addr:
        return f"{addr[0]}:{addr[1]}"
    return "unknown"
