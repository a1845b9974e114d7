"""Logging subsystem for bootserve.

Public API::

    from bootserve.logging import configure_logging

    configure_logging(config.logger)
"""

from bootserve.logging.setup import configure_logging, current_peer

__all__ = ["configure_logging", "current_peer"]
