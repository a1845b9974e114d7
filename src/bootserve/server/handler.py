"""Per-connection read/respond loop.

Each accepted connection gets its own :class:`ConnectionHandler`
running as one task on a worker loop::

    READING --data--> RESPONDING --payload written--> READING
       |                  |
       +--EOF / error-----+--error--> CLOSED

Any non-empty read is answered with the full fixed payload.  Errors end
only this connection; nothing propagates to the acceptor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from bootserve.core.state import CONNECTION_TRANSITIONS, assert_transition
from bootserve.core.types import ConnectionState
from bootserve.logging.setup import current_peer

if TYPE_CHECKING:
    import socket

log = logging.getLogger(__name__)

RESPONSE = b"test"
BUFFER_SIZE = 1024


def format_peer(peer: object) -> str:
    """Render a socket address tuple as ``host:port``."""
    if isinstance(peer, tuple) and len(peer) >= 2:  # noqa: PLR2004
        host, port = peer[0], peer[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(peer)


class ConnectionHandler:
    """Read/respond state machine for one accepted connection.

    Parameters
    ----------
    sock:
        The accepted socket; owned exclusively by this handler.
    peer:
        Peer address as returned by ``accept()``.
    response:
        Payload written back for every non-empty read.
    buffer_size:
        Maximum bytes consumed per read.
    logger:
        Diagnostics sink; defaults to this module's logger.

    """

    def __init__(
        self,
        sock: socket.socket | None,
        peer: object,
        *,
        response: bytes = RESPONSE,
        buffer_size: int = BUFFER_SIZE,
        logger: logging.Logger | None = None,
    ) -> None:
        self._sock = sock
        self.peer = format_peer(peer)
        self._response = response
        self._buffer_size = buffer_size
        self._log = logger or log
        self.state = ConnectionState.READING
        self.requests = 0

    def _transition(self, target: ConnectionState) -> None:
        assert_transition(self.state, target, CONNECTION_TRANSITIONS)
        self.state = target

    async def run(self) -> None:
        """Open streams on the socket and serve until the peer goes away."""
        if self._sock is None:
            msg = "handler was built without a socket; use run_streams()"
            raise RuntimeError(msg)
        try:
            reader, writer = await asyncio.open_connection(sock=self._sock)
        except OSError as exc:
            self._log.error("failed to open connection streams: %s", exc)
            self._sock.close()
            self._transition(ConnectionState.CLOSED)
            return
        await self.run_streams(reader, writer)

    async def run_streams(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve the read/respond loop over already-open streams."""
        token = current_peer.set(self.peer)
        try:
            await self._serve(reader, writer)
        finally:
            if self.state is not ConnectionState.CLOSED:
                self._transition(ConnectionState.CLOSED)
            await self._close(writer)
            current_peer.reset(token)

    async def _serve(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        while True:
            try:
                data = await reader.read(self._buffer_size)
            except OSError as exc:
                self._log.error("failed to read from socket: %s", exc)
                self._transition(ConnectionState.CLOSED)
                return

            if not data:
                # Peer closed its side.
                self._transition(ConnectionState.CLOSED)
                return

            self._transition(ConnectionState.RESPONDING)
            try:
                writer.write(self._response)
                await writer.drain()
            except OSError as exc:
                self._log.error("failed to write to socket: %s", exc)
                self._transition(ConnectionState.CLOSED)
                return

            self.requests += 1
            self._transition(ConnectionState.READING)

    async def _close(self, writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as exc:
            self._log.debug("error while closing connection: %s", exc)
        self._log.debug("connection closed after %d responses", self.requests)
