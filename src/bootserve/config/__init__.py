"""Configuration subsystem for bootserve.

Public API::

    from bootserve.config import resolve

    config = resolve("config/config.yaml")   # never raises
    config.server_port                        # typed, variant-aware access
    config.app.app_name                       # direct section access
"""

from bootserve.config.loader import DEFAULT_CONFIG_PATH, resolve
from bootserve.config.settings import (
    DEFAULT_APP,
    DEFAULT_LOGGER,
    DEFAULT_SERVER,
    AppSettings,
    LoggerSettings,
    PooledAsyncServerSettings,
    ResolvedConfig,
    ServerSettings,
    StructuredFileLoggerSettings,
)

__all__ = [
    "DEFAULT_APP",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_LOGGER",
    "DEFAULT_SERVER",
    "AppSettings",
    "LoggerSettings",
    "PooledAsyncServerSettings",
    "ResolvedConfig",
    "ServerSettings",
    "StructuredFileLoggerSettings",
    "resolve",
]
