"""TCP server: runtime substrate, acceptor and connection handler.

Public API::

    from bootserve.server import run

    run()   # blocks until a fatal startup or listener error
"""

from bootserve.server.acceptor import Listener, accept_loop, bind
from bootserve.server.core import run, serve, start
from bootserve.server.handler import RESPONSE, ConnectionHandler
from bootserve.server.runtime import Runtime, RuntimeParams, size_runtime

__all__ = [
    "RESPONSE",
    "ConnectionHandler",
    "Listener",
    "Runtime",
    "RuntimeParams",
    "accept_loop",
    "bind",
    "run",
    "serve",
    "size_runtime",
    "start",
]
