"""bootserve: configuration-driven asyncio TCP service bootstrap.

Usage::

    import bootserve

    bootserve.run()                         # config/config.yaml
    bootserve.run("/etc/bootserve.yaml")
"""

__version__ = "1.0.0"


def run(config_path=None) -> None:
    """Start the service; returns only after a fatal startup or listener error."""
    from bootserve.server.core import run as _run

    _run(config_path)


__all__ = ["__version__", "run"]
