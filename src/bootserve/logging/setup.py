"""Structured logging configuration for bootserve.

Provides JSON and text formatters, a connection-context filter that
injects the current peer into every log record, and a one-call
``configure_logging`` function driven by the ``logger`` config section.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, assert_never

from bootserve.config.settings import StructuredFileLoggerSettings

if TYPE_CHECKING:
    from bootserve.config.settings import LoggerSettings

ROOT_LOGGER = "bootserve"

# Level used when the configured name is not recognised.
DEFAULT_LEVEL = logging.DEBUG

_LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Peer descriptor of the connection whose handler task is running.
current_peer: ContextVar[str] = ContextVar("current_peer", default="-")

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        # Handled explicitly below
        "peer",
    }
)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for the log file.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller or injected by filters.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.message,
        }

        peer = getattr(record, "peer", None)
        if peer is not None and peer != "-":
            data["peer"] = peer

        # Caller-supplied extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(peer)s %(name)s - %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%dT%H:%M:%S%z")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class ConnectionContextFilter(logging.Filter):
    """Inject the current connection's peer into every log record.

    Falls back to ``"-"`` outside a connection handler so formatters
    can always reference ``%(peer)s``.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "peer"):
            record.peer = current_peer.get()  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_level(name: str) -> int | None:
    """Map a configured level name to a :mod:`logging` level, or ``None``."""
    return _LEVELS.get(name.strip().lower())


def configure_logging(
    settings: LoggerSettings,
    *,
    console: bool = True,
) -> logging.Logger:
    """Configure the ``bootserve`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output:
    stderr text output (unless *console* is false) and, for the
    ``structured-file`` kind, a midnight-rotated JSON-lines file.

    Returns the root ``bootserve`` logger.
    """
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = False

    ctx_filter = ConnectionContextFilter()

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(TextFormatter())
        stream.addFilter(ctx_filter)
        root.addHandler(stream)

    match settings:
        case StructuredFileLoggerSettings():
            level = parse_level(settings.log_level)
            root.setLevel(DEFAULT_LEVEL if level is None else level)
            _add_file_handler(root, settings, ctx_filter)
            if level is None:
                root.warning(
                    "unknown log level %r, using %s",
                    settings.log_level,
                    logging.getLevelName(DEFAULT_LEVEL),
                )
        case _ as unreachable:
            assert_never(unreachable)

    return root


def _add_file_handler(
    root: logging.Logger,
    settings: StructuredFileLoggerSettings,
    ctx_filter: logging.Filter,
) -> None:
    target = Path(settings.logfile_path) / settings.logfile_name
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fh = TimedRotatingFileHandler(target, when="midnight", encoding="utf-8")
    except OSError as exc:
        root.warning("Could not open log file %s: %s", target, exc)
        return
    fh.setFormatter(StructuredFormatter())
    fh.addFilter(ctx_filter)
    root.addHandler(fh)
