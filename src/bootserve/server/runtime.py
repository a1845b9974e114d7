"""Concurrency substrate sized from the ``server`` configuration.

:func:`size_runtime` is the sizing policy: it copies thread counts,
keep-alive and stack size out of :class:`ResolvedConfig` without
validating them.  :class:`Runtime` builds the substrate from those
parameters, and whatever the underlying primitives reject surfaces as
:class:`~bootserve.errors.RuntimeBuildError`.

Shape of a running runtime::

    bootstrap thread   block_on(acceptor)       one event loop
    worker threads     <app>-thread-1..N        one event loop each
    blocking pool      <app>-thread-blocking-n  default executor of every loop
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from bootserve.errors import RuntimeBuildError
from bootserve.server.pool import BlockingPool, LoopExecutor

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from concurrent.futures import Future

    from bootserve.config.settings import ResolvedConfig

log = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Sizing policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeParams:
    """Parameters handed to :class:`Runtime`."""

    worker_threads: int
    blocking_threads: int
    keep_alive: float
    stack_size: int
    thread_name: str


def size_runtime(config: ResolvedConfig) -> RuntimeParams:
    """Derive runtime parameters from the resolved ``server`` section."""
    return RuntimeParams(
        worker_threads=config.server_worker_threads,
        blocking_threads=config.server_blocking_threads,
        keep_alive=float(config.server_keep_alive),
        stack_size=config.server_stack_size,
        thread_name=f"{config.app_name}-thread",
    )


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class _Worker:
    """One worker thread driving its own event loop."""

    def __init__(self, name: str, pool: BlockingPool) -> None:
        self.loop = asyncio.new_event_loop()
        self.loop.set_default_executor(LoopExecutor(pool))
        self._ready = threading.Event()
        self.thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self.thread.start()
        self._ready.wait()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        try:
            self.loop.run_forever()
        finally:
            _cancel_all_tasks(self.loop)
            self.loop.run_until_complete(self.loop.shutdown_asyncgens())
            self.loop.close()

    def stop(self) -> None:
        if self.loop.is_closed():
            return
        if not self.thread.is_alive():
            self.loop.close()
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join()


def _cancel_all_tasks(loop: asyncio.AbstractEventLoop) -> None:
    pending = asyncio.all_tasks(loop)
    if not pending:
        return
    for task in pending:
        task.cancel()
    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))


class Runtime:
    """Pool of event-loop worker threads plus a shared blocking pool.

    Parameters
    ----------
    params:
        Sizing produced by :func:`size_runtime`.

    """

    def __init__(self, params: RuntimeParams) -> None:
        self._params = params
        self._workers: list[_Worker] = []
        self._pool: BlockingPool | None = None
        self._next: itertools.cycle[_Worker] | None = None
        self._previous_stack_size: int | None = None
        self._started = False

    @property
    def params(self) -> RuntimeParams:
        return self._params

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def blocking_pool(self) -> BlockingPool:
        if self._pool is None:
            msg = "runtime not started"
            raise RuntimeError(msg)
        return self._pool

    def start(self) -> None:
        """Build the substrate.  Raises :class:`RuntimeBuildError`."""
        if self._started:
            return
        p = self._params
        if p.worker_threads < 1:
            msg = f"worker_threads must be >= 1 (got {p.worker_threads})"
            raise RuntimeBuildError(msg)

        try:
            self._previous_stack_size = threading.stack_size(p.stack_size)
        except (ValueError, OverflowError) as exc:
            msg = f"invalid stack_size {p.stack_size}: {exc}"
            raise RuntimeBuildError(msg) from exc

        try:
            self._pool = BlockingPool(
                max_threads=p.blocking_threads,
                keep_alive=p.keep_alive,
                thread_name_prefix=p.thread_name,
            )
            for idx in range(1, p.worker_threads + 1):
                worker = _Worker(f"{p.thread_name}-{idx}", self._pool)
                self._workers.append(worker)
                worker.start()
        except (ValueError, RuntimeError, OSError) as exc:
            self.shutdown()
            msg = f"cannot build runtime: {exc}"
            raise RuntimeBuildError(msg) from exc

        self._next = itertools.cycle(self._workers)
        self._started = True
        log.debug(
            "runtime started: %d workers, <=%d blocking threads (keep-alive %ss, stack %d bytes)",
            p.worker_threads,
            p.blocking_threads,
            p.keep_alive,
            p.stack_size,
        )

    def spawn(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        """Schedule *coro* on the next worker loop (round robin)."""
        if self._next is None:
            coro.close()
            msg = "runtime not started"
            raise RuntimeError(msg)
        worker = next(self._next)
        future = asyncio.run_coroutine_threadsafe(coro, worker.loop)
        future.add_done_callback(_log_task_failure)
        return future

    def block_on(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run *coro* to completion on a new loop owned by the calling thread."""
        loop = asyncio.new_event_loop()
        loop.set_default_executor(LoopExecutor(self.blocking_pool))
        try:
            asyncio.set_event_loop(loop)
            return loop.run_until_complete(coro)
        finally:
            try:
                _cancel_all_tasks(loop)
                loop.run_until_complete(loop.shutdown_asyncgens())
            finally:
                asyncio.set_event_loop(None)
                loop.close()

    def shutdown(self) -> None:
        """Stop worker loops and the blocking pool.  Idempotent."""
        for worker in self._workers:
            worker.stop()
        self._workers.clear()
        self._next = None
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None
        if self._previous_stack_size is not None:
            threading.stack_size(self._previous_stack_size)
            self._previous_stack_size = None
        self._started = False

    def __enter__(self) -> Runtime:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()


def _log_task_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        log.error("spawned task failed", exc_info=exc)
