"""Process bootstrap: config -> logging -> runtime -> listener.

Usage::

    from bootserve.server.core import run

    run()                       # config/config.yaml, never returns normally
    run("/etc/bootserve.yaml")

Startup failures (runtime construction, bind) are logged at ERROR and
make :func:`run` return; there is no exit-code discrimination.
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING

from bootserve.config import resolve
from bootserve.errors import BindError, RuntimeBuildError
from bootserve.logging import configure_logging
from bootserve.server.acceptor import accept_loop, bind
from bootserve.server.handler import ConnectionHandler
from bootserve.server.runtime import Runtime, size_runtime

if TYPE_CHECKING:
    from pathlib import Path

    from bootserve.config.settings import ResolvedConfig

log = logging.getLogger(__name__)


async def serve(
    config: ResolvedConfig,
    runtime: Runtime,
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Bind the configured address and accept until a listener error."""
    logger = logger or log
    try:
        listener = await bind(config.server_address, config.server_port)
    except BindError as exc:
        logger.error("tcp listener error: %s", exc)
        return

    logger.info("listening on: %s", listener.target)
    handler_factory = functools.partial(ConnectionHandler, logger=logger.getChild("conn"))
    async with listener:
        await accept_loop(listener, runtime.spawn, handler_factory, logger=logger)


def start(config: ResolvedConfig, *, logger: logging.Logger | None = None) -> None:
    """Build the runtime from *config* and serve on it.

    Returns once the accept loop ends.  Handlers already spawned are left
    running by the accept loop itself; the runtime shutdown on the way out
    is process exit, which cancels whatever connections are still open.
    """
    logger = logger or log
    runtime = Runtime(size_runtime(config))
    try:
        runtime.start()
    except RuntimeBuildError as exc:
        logger.error("runtime error: %s", exc)
        return

    try:
        runtime.block_on(serve(config, runtime, logger=logger))
    finally:
        runtime.shutdown()


def run(config_path: str | Path | None = None) -> None:
    """Resolve configuration, configure logging and serve forever."""
    config = resolve(config_path, logger=log)
    logger = configure_logging(config.logger).getChild("server")

    from bootserve import __version__

    logger.info("Initializing bootserve (version: %s)", __version__)
    logger.info("Start %s (version: %s)", config.app_name, config.app_version)
    start(config, logger=logger)
