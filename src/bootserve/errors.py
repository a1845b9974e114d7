"""Exception types shared across bootserve.

Configuration problems never escape :func:`bootserve.config.resolve`;
:class:`SectionError` exists only so a section builder can abort its
own extraction.  The other two are fatal at startup and are logged by
:func:`bootserve.server.core.run` before it returns.
"""

from __future__ import annotations


class BootserveError(Exception):
    """Base class for every bootserve-specific error."""


class SectionError(BootserveError, ValueError):
    """A configuration section could not be converted to its typed form."""

    def __init__(self, section: str, reason: str) -> None:
        self.section = section
        self.reason = reason
        super().__init__(f"[{section}] {reason}")


class RuntimeBuildError(BootserveError, RuntimeError):
    """The concurrency substrate rejected its sizing parameters."""


class BindError(BootserveError, OSError):
    """The listener could not be bound to ``address:port``."""

    def __init__(self, target: str, cause: BaseException) -> None:
        self.target = target
        self.cause = cause
        super().__init__(f"cannot bind {target}: {cause}")
