"""Typed, frozen pydantic models for every configuration section.

This module is the **single source of truth** for default values.
Each section is converted in one ``model_validate`` step: a table either
validates completely or raises :class:`~bootserve.errors.SectionError`,
and the loader then substitutes the section default.  Partial merges
never happen.

Access pattern::

    from bootserve.config import resolve

    cfg = resolve("config/config.yaml")
    cfg.server_address, cfg.server_port     # typed, variant-aware
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Annotated, Any, ClassVar, TypeAlias, TypeVar, assert_never

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from bootserve.core.types import LoggerKind, ServerKind
from bootserve.errors import SectionError

M = TypeVar("M", bound=BaseModel)

# Unsigned 64-bit integer; YAML ``true`` is not a thread count.
UInt = Annotated[StrictInt, Field(ge=0, le=2**64 - 1)]

# ---------------------------------------------------------------------------
# Structured conversion
# ---------------------------------------------------------------------------


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(part) for part in err["loc"])
    if err["type"] == "missing":
        return f"missing field '{field}'"
    return f"field '{field}': {err['msg']}"


def _validate(model: type[M], section: str, data: Any) -> M:  # noqa: ANN401
    if not isinstance(data, Mapping):
        raise SectionError(section, f"expected a table, got {type(data).__name__}")
    try:
        # Non-string keys can never name a field.
        return model.model_validate({k: v for k, v in data.items() if isinstance(k, str)})
    except ValidationError as exc:
        raise SectionError(section, _describe(exc)) from exc


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


class PooledAsyncServerSettings(_Section):
    """Event-loop worker pool backend (thread counts, keep-alive, bind target)."""

    kind: ClassVar[ServerKind] = ServerKind.POOLED_ASYNC

    worker_threads: UInt = 5
    blocking_threads: UInt = 50
    keep_alive: UInt = 60
    stack_size: UInt = 3145728
    address: StrictStr = "127.0.0.1"
    port: StrictStr = "8000"


def _build_pooled_async(data: Any) -> PooledAsyncServerSettings:  # noqa: ANN401
    return _validate(PooledAsyncServerSettings, ServerKind.POOLED_ASYNC.value, data)


# Union of every server backend.  Add new variants here and to
# SERVER_BUILDERS; the accessors below stop type-checking until the new
# arm is handled.
ServerSettings: TypeAlias = PooledAsyncServerSettings

SERVER_BUILDERS: dict[ServerKind, Callable[[Any], ServerSettings]] = {
    ServerKind.POOLED_ASYNC: _build_pooled_async,
}

DEFAULT_SERVER_KIND = ServerKind.POOLED_ASYNC
DEFAULT_SERVER: ServerSettings = PooledAsyncServerSettings()


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


class AppSettings(_Section):
    """Descriptive application identity."""

    app_name: StrictStr = "xxx"
    version: StrictStr = "1.0.0"


def build_app(data: Any) -> AppSettings:  # noqa: ANN401
    return _validate(AppSettings, "app", data)


DEFAULT_APP = AppSettings()


# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------


class StructuredFileLoggerSettings(_Section):
    """Console plus daily-rotated JSON-lines file output."""

    kind: ClassVar[LoggerKind] = LoggerKind.STRUCTURED_FILE

    log_level: StrictStr = "debug"
    logfile_path: StrictStr = "./output/logs"
    logfile_name: StrictStr = "app_log"


def _build_structured_file(data: Any) -> StructuredFileLoggerSettings:  # noqa: ANN401
    return _validate(StructuredFileLoggerSettings, LoggerKind.STRUCTURED_FILE.value, data)


LoggerSettings: TypeAlias = StructuredFileLoggerSettings

LOGGER_BUILDERS: dict[LoggerKind, Callable[[Any], LoggerSettings]] = {
    LoggerKind.STRUCTURED_FILE: _build_structured_file,
}

DEFAULT_LOGGER_KIND = LoggerKind.STRUCTURED_FILE
DEFAULT_LOGGER: LoggerSettings = StructuredFileLoggerSettings()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedConfig:
    """Aggregate of every resolved section, shared read-only process-wide."""

    server: ServerSettings = DEFAULT_SERVER
    app: AppSettings = DEFAULT_APP
    logger: LoggerSettings = DEFAULT_LOGGER
    source: str | None = None

    @classmethod
    def default(cls) -> ResolvedConfig:
        """Return the configuration built entirely from compiled-in defaults."""
        return cls()

    # -- application --------------------------------------------------------

    @property
    def app_name(self) -> str:
        return self.app.app_name

    @property
    def app_version(self) -> str:
        return self.app.version

    # -- server -------------------------------------------------------------

    @property
    def server_address(self) -> str:
        match self.server:
            case PooledAsyncServerSettings(address=address):
                return address
            case _ as unreachable:
                assert_never(unreachable)

    @property
    def server_port(self) -> str:
        match self.server:
            case PooledAsyncServerSettings(port=port):
                return port
            case _ as unreachable:
                assert_never(unreachable)

    @property
    def server_worker_threads(self) -> int:
        match self.server:
            case PooledAsyncServerSettings(worker_threads=worker_threads):
                return worker_threads
            case _ as unreachable:
                assert_never(unreachable)

    @property
    def server_blocking_threads(self) -> int:
        match self.server:
            case PooledAsyncServerSettings(blocking_threads=blocking_threads):
                return blocking_threads
            case _ as unreachable:
                assert_never(unreachable)

    @property
    def server_keep_alive(self) -> int:
        match self.server:
            case PooledAsyncServerSettings(keep_alive=keep_alive):
                return keep_alive
            case _ as unreachable:
                assert_never(unreachable)

    @property
    def server_stack_size(self) -> int:
        match self.server:
            case PooledAsyncServerSettings(stack_size=stack_size):
                return stack_size
            case _ as unreachable:
                assert_never(unreachable)

    # -- logger -------------------------------------------------------------

    @property
    def logger_log_level(self) -> str:
        match self.logger:
            case StructuredFileLoggerSettings(log_level=log_level):
                return log_level
            case _ as unreachable:
                assert_never(unreachable)

    @property
    def logger_logfile_path(self) -> str:
        match self.logger:
            case StructuredFileLoggerSettings(logfile_path=logfile_path):
                return logfile_path
            case _ as unreachable:
                assert_never(unreachable)

    @property
    def logger_logfile_name(self) -> str:
        match self.logger:
            case StructuredFileLoggerSettings(logfile_name=logfile_name):
                return logfile_name
            case _ as unreachable:
                assert_never(unreachable)

    def summary(self) -> dict[str, Any]:
        """Return the resolved values as plain nested dicts."""
        return {
            "source": self.source,
            "server": {"kind": self.server.kind.value, **self.server.model_dump()},
            "app": self.app.model_dump(),
            "logger": {"kind": self.logger.kind.value, **self.logger.model_dump()},
        }
