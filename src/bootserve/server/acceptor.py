"""Listening socket and accept loop.

Usage::

    listener = await bind(config.server_address, config.server_port)
    await accept_loop(listener, runtime.spawn, ConnectionHandler)
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from typing import TYPE_CHECKING, Any, Protocol

from bootserve.errors import BindError
from bootserve.server.handler import format_peer

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

log = logging.getLogger(__name__)

DEFAULT_BACKLOG = 128
_MAX_PORT = 65535


class _Handler(Protocol):
    def run(self) -> Coroutine[Any, Any, None]: ...


def _split_target(target: str) -> tuple[str, int]:
    host, sep, port = target.rpartition(":")
    if not sep:
        msg = f"missing port in {target!r}"
        raise ValueError(msg)
    if not (port.isascii() and port.isdigit()):
        msg = f"invalid port {port!r}"
        raise ValueError(msg)
    port_num = int(port)
    if not 0 <= port_num <= _MAX_PORT:
        msg = f"port out of range: {port_num}"
        raise ValueError(msg)
    return host.strip("[]"), port_num


class Listener:
    """A bound, listening, non-blocking TCP socket."""

    def __init__(self, sock: socket.socket, target: str) -> None:
        self._sock = sock
        self.target = target

    @property
    def address(self) -> tuple[str, int]:
        """The locally bound ``(host, port)``; useful when binding port 0."""
        host, port = self._sock.getsockname()[:2]
        return host, port

    @property
    def closed(self) -> bool:
        return self._sock.fileno() == -1

    async def accept(self) -> tuple[socket.socket, Any]:
        """Wait for the next connection and return ``(socket, peer)``."""
        loop = asyncio.get_running_loop()
        return await loop.sock_accept(self._sock)

    def close(self) -> None:
        self._sock.close()

    async def __aenter__(self) -> Listener:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.close()


def _listen_on(
    infos: list[tuple[Any, ...]],
    backlog: int,
) -> socket.socket:
    """Bind the first address in *infos* that accepts; raise the last error."""
    last_exc: OSError | None = None
    for family, type_, proto, _, sockaddr in infos:
        sock: socket.socket | None = None
        try:
            sock = socket.socket(family, type_, proto)
            if os.name == "posix":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            sock.listen(backlog)
            sock.setblocking(False)
        except OSError as exc:
            if sock is not None:
                sock.close()
            last_exc = exc
            continue
        return sock
    if last_exc is None:
        msg = "no addresses to bind"
        raise OSError(msg)
    raise last_exc


async def bind(
    address: str,
    port: str,
    *,
    backlog: int = DEFAULT_BACKLOG,
) -> Listener:
    """Bind ``"address:port"`` once and start listening.

    The port is kept as the configured string and only interpreted here,
    so an invalid value shows up as a :class:`BindError`.  Name
    resolution runs on the loop's default executor; each resolved
    address is tried in order until one binds.
    """
    target = f"{address}:{port}"
    loop = asyncio.get_running_loop()
    try:
        host, port_num = _split_target(target)
        infos = await loop.getaddrinfo(
            host or None,
            port_num,
            type=socket.SOCK_STREAM,
            flags=socket.AI_PASSIVE,
        )
        sock = _listen_on(infos, backlog)
    except (OSError, ValueError) as exc:
        raise BindError(target, exc) from exc
    return Listener(sock, target)


async def accept_loop(
    listener: Listener,
    spawn: Callable[[Coroutine[Any, Any, None]], object],
    handler_factory: Callable[[socket.socket, Any], _Handler],
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Accept forever, spawning one handler per connection.

    Returns only on a listener-level error, which is logged.  Handlers
    that were already spawned keep running.
    """
    logger = logger or log
    while True:
        try:
            conn, peer = await listener.accept()
        except ConnectionAbortedError as exc:
            logger.warning("connection aborted before accept completed: %s", exc)
            continue
        except OSError as exc:
            logger.error("application error: %s", exc)
            return

        logger.info("accept: %s", format_peer(peer))
        handler = handler_factory(conn, peer)
        try:
            spawn(handler.run())
        except RuntimeError as exc:
            logger.error("cannot spawn handler for %s: %s", format_peer(peer), exc)
            conn.close()
            return
