"""Fault-tolerant configuration resolution.

:func:`resolve` turns a YAML file into a :class:`ResolvedConfig` and
never raises.  Every problem degrades to a compiled-in default and is
reported through the injected logger:

* unreadable file or unparsable YAML -> everything defaulted;
* missing section, unknown ``kind`` or a bad field -> only that
  section defaulted.

Layout::

    server:
      kind: pooled-async       # selects the table below
    pooled-async:
      worker_threads: 5
      ...
    app:
      app_name: xxx
      version: 1.0.0
    logger:
      kind: structured-file
    structured-file:
      log_level: debug
      ...
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeVar

import yaml

from bootserve.config.settings import (
    DEFAULT_APP,
    DEFAULT_LOGGER,
    DEFAULT_LOGGER_KIND,
    DEFAULT_SERVER,
    DEFAULT_SERVER_KIND,
    LOGGER_BUILDERS,
    SERVER_BUILDERS,
    AppSettings,
    LoggerSettings,
    ResolvedConfig,
    ServerSettings,
    build_app,
)
from bootserve.errors import SectionError

DEFAULT_CONFIG_PATH = "config/config.yaml"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, section: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with the env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise SectionError(
        section,
        f"environment variable '${{{var_name}}}' referenced at '{path}' "
        "is not set and has no default",
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    section: str,
    path: str = "",
    memo: dict[int, Any] | None = None,
) -> Any:  # noqa: ANN401
    """Return a copy of *data* with every ``${VAR}`` string resolved.

    YAML aliases share one node; *memo* maps each container already
    copied to its copy so every shared node is visited once.
    """
    if isinstance(data, str):
        return _resolve_value(data, section, path or section)
    if not isinstance(data, (Mapping, list)):
        return data
    if memo is None:
        memo = {}
    if id(data) in memo:
        return memo[id(data)]
    if isinstance(data, Mapping):
        table: dict[Any, Any] = {}
        memo[id(data)] = table
        for key, value in data.items():
            table[key] = _resolve_env_vars(
                value, section, f"{path}.{key}" if path else str(key), memo
            )
        return table
    items: list[Any] = []
    memo[id(data)] = items
    for idx, item in enumerate(data):
        items.append(_resolve_env_vars(item, section, f"{path}[{idx}]", memo))
    return items


# ---------------------------------------------------------------------------
# Reading and parsing
# ---------------------------------------------------------------------------


def _read_text(path: Path) -> str:
    with path.open(encoding="utf-8") as fh:
        return fh.read()


def _parse(text: str) -> dict[str, Any]:
    """Parse *text* into the raw tree.

    An empty document is an empty tree.  Any other non-mapping top level
    raises :class:`yaml.YAMLError` so the caller treats it like bad syntax.
    """
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"top level must be a mapping, got {type(data).__name__}"
        raise yaml.YAMLError(msg)
    return data


# ---------------------------------------------------------------------------
# Section extraction
# ---------------------------------------------------------------------------


def _convert(
    section: str,
    table: Any,  # noqa: ANN401
    builder: Callable[[Any], T],
) -> T:
    """Expand env references in *table* and build the typed section."""
    try:
        expanded = _resolve_env_vars(table, section)
    except RecursionError:
        raise SectionError(section, "table is nested too deeply") from None
    return builder(expanded)


def _select_kind(
    name: str,
    section: Any,  # noqa: ANN401
    default_kind: str,
    logger: logging.Logger,
) -> str:
    kind = section.get("kind") if isinstance(section, Mapping) else None
    if isinstance(kind, str):
        return kind
    logger.warning("no usable 'kind' in [%s] section, assuming '%s'", name, default_kind)
    logger.info("use default %s kind", name)
    return default_kind


def _resolve_variant(
    name: str,
    raw: Mapping[str, Any],
    file: str,
    builders: Mapping[Any, Callable[[Any], T]],
    default_kind: str,
    default: T,
    logger: logging.Logger,
) -> T:
    """Resolve a ``kind``-discriminated section (``server`` / ``logger``)."""
    if name not in raw:
        logger.warning("not found [%s] section in %s", name, file)
        logger.info("use default %s config", name)
        return default

    kind = _select_kind(name, raw[name], default_kind, logger)
    builder = builders.get(kind)
    if builder is None:
        logger.warning("invalid %s kind (%s)", name, kind)
        logger.info("use default %s config", name)
        return default

    if kind not in raw:
        logger.warning("not found [%s] section in %s", kind, file)
        logger.info("use default %s config", kind)
        return default

    try:
        return _convert(kind, raw[kind], builder)
    except SectionError as exc:
        logger.warning("can't deserialize %s config: %s", kind, exc.reason)
        logger.info("use default %s config", kind)
        return default


def _resolve_app(
    raw: Mapping[str, Any],
    file: str,
    logger: logging.Logger,
) -> AppSettings:
    if "app" not in raw:
        logger.warning("not found [app] section in %s", file)
        logger.info("use default application config")
        return DEFAULT_APP
    try:
        return _convert("app", raw["app"], build_app)
    except SectionError as exc:
        logger.warning("can't deserialize application config: %s", exc.reason)
        logger.info("use default application config")
        return DEFAULT_APP


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def resolve(
    path: str | Path | None = None,
    *,
    logger: logging.Logger | None = None,
) -> ResolvedConfig:
    """Load *path* (default :data:`DEFAULT_CONFIG_PATH`) into a :class:`ResolvedConfig`.

    Never raises for any file content.  *logger* receives every fallback
    diagnostic; it defaults to this module's logger.
    """
    logger = logger or log
    file = str(path if path is not None else DEFAULT_CONFIG_PATH)

    try:
        text = _read_text(Path(file))
    except (OSError, ValueError) as exc:
        logger.warning("can't read a config file: %s", exc)
        logger.info("use default config")
        return ResolvedConfig.default()

    try:
        raw = _parse(text)
    except (yaml.YAMLError, ValueError, TypeError, RecursionError) as exc:
        logger.warning("can't deserialize config: %s", exc)
        logger.info("use default config")
        return ResolvedConfig.default()

    server: ServerSettings = _resolve_variant(
        "server",
        raw,
        file,
        SERVER_BUILDERS,
        DEFAULT_SERVER_KIND.value,
        DEFAULT_SERVER,
        logger,
    )
    app = _resolve_app(raw, file, logger)
    logger_settings: LoggerSettings = _resolve_variant(
        "logger",
        raw,
        file,
        LOGGER_BUILDERS,
        DEFAULT_LOGGER_KIND.value,
        DEFAULT_LOGGER,
        logger,
    )

    return ResolvedConfig(
        server=server,
        app=app,
        logger=logger_settings,
        source=file,
    )

