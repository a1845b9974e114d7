"""bootserve command-line entry point.

Usage::

    bootserve
    bootserve -c /etc/bootserve/config.yaml
    bootserve -c config.yaml --debug
    bootserve -c config.yaml --validate-only
    python -m bootserve -c config.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

log = logging.getLogger(__name__)


def _get_version() -> str:
    from bootserve import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    from bootserve.config import DEFAULT_CONFIG_PATH

    parser = argparse.ArgumentParser(
        prog="bootserve",
        description="bootserve: config-driven asyncio TCP service",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        metavar="PATH",
        help=f"Path to the YAML configuration file (default: {DEFAULT_CONFIG_PATH}).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Show configuration diagnostics at DEBUG level.",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Resolve the configuration, print it and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, resolves config, starts server."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- bootstrap logging (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if args.validate_only:
        from bootserve.config import resolve

        config = resolve(args.config)
        _print_settings_summary(config)
        sys.exit(0)

    from bootserve.server.core import run

    try:
        run(args.config)
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down")


def _print_settings_summary(config) -> None:
    """Print the resolved configuration as indented JSON on stdout."""
    sys.stdout.write(json.dumps(config.summary(), indent=2) + "\n")
