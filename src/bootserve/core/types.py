"""Enumerated types for bootserve.

All enums inherit from :class:`enum.StrEnum` so their ``.value`` is the
exact string that appears in the configuration file or in log output.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Configuration variants
# ---------------------------------------------------------------------------


class ServerKind(StrEnum):
    POOLED_ASYNC = "pooled-async"


class LoggerKind(StrEnum):
    STRUCTURED_FILE = "structured-file"


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class ConnectionState(StrEnum):
    READING = "reading"
    RESPONDING = "responding"
    CLOSED = "closed"
