"""Root conftest for the bootserve test suite."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


# ---------------------------------------------------------------------------
# Config data shared by multiple test modules
# ---------------------------------------------------------------------------


@pytest.fixture()
def full_config_data() -> dict:
    """Return a dict with every section and field set to non-default values."""
    return {
        "server": {"kind": "pooled-async"},
        "pooled-async": {
            "worker_threads": 8,
            "blocking_threads": 16,
            "keep_alive": 30,
            "stack_size": 1048576,
            "address": "0.0.0.0",
            "port": "9000",
        },
        "app": {"app_name": "ibis-test", "version": "2.3.4"},
        "logger": {"kind": "structured-file"},
        "structured-file": {
            "log_level": "info",
            "logfile_path": "/var/log/ibis",
            "logfile_name": "ibis.log",
        },
    }


@pytest.fixture()
def write_config(tmp_path: Path):
    """Return a writer that dumps a dict (or raw text/bytes) to a temp file."""

    def _write(data: dict | str | bytes, name: str = "config.yaml") -> Path:
        path = tmp_path / name
        if isinstance(data, bytes):
            path.write_bytes(data)
        elif isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        else:
            path.write_text(
                yaml.safe_dump(data, default_flow_style=False, sort_keys=False),
                encoding="utf-8",
            )
        return path

    return _write


@pytest.fixture()
def tmp_config_file(write_config, full_config_data: dict) -> Path:
    """Write *full_config_data* to a temp YAML file and return its path."""
    return write_config(full_config_data)


# ---------------------------------------------------------------------------
# Logger cleanup: configure_logging mutates the ``bootserve`` logger
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_bootserve_logger():
    """Restore the ``bootserve`` logger hierarchy after every test."""
    root = logging.getLogger("bootserve")
    saved = (list(root.handlers), root.level, root.propagate)
    yield
    for handler in list(root.handlers):
        if handler not in saved[0]:
            root.removeHandler(handler)
            handler.close()
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    root.propagate = saved[2]
