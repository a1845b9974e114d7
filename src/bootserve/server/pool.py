"""Bounded auxiliary thread pool with idle-thread reclamation.

asyncio only accepts a :class:`~concurrent.futures.ThreadPoolExecutor`
as a loop's default executor, so :class:`BlockingPool` subclasses it
but replaces the scheduling: threads are started on demand up to
``max_threads`` and exit after ``keep_alive`` idle seconds.

Usage::

    pool = BlockingPool(max_threads=50, keep_alive=60.0)
    loop.set_default_executor(LoopExecutor(pool))
    await loop.run_in_executor(None, socket.getaddrinfo, host, port)
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

log = logging.getLogger(__name__)

_Job = tuple[Future, Any, tuple, dict]


class BlockingPool(ThreadPoolExecutor):
    """Elastic pool for operations that would block an event loop.

    Parameters
    ----------
    max_threads:
        Upper bound on concurrently running auxiliary threads (>= 1).
    keep_alive:
        Seconds an idle thread waits for work before exiting.
    thread_name_prefix:
        Prefix for thread names (``<prefix>-blocking-<n>``).

    """

    def __init__(
        self,
        max_threads: int,
        keep_alive: float,
        thread_name_prefix: str = "bootserve",
    ) -> None:
        if not 0 <= keep_alive <= threading.TIMEOUT_MAX:
            msg = (
                f"keep_alive must be between 0 and {threading.TIMEOUT_MAX} "
                f"seconds (got {keep_alive})"
            )
            raise ValueError(msg)
        # Validates max_threads > 0 the same way the stdlib pool does.
        super().__init__(max_workers=max_threads, thread_name_prefix=thread_name_prefix)
        self._keep_alive = keep_alive
        self._jobs: queue.SimpleQueue[_Job | None] = queue.SimpleQueue()
        self._idle = threading.Semaphore(0)
        self._lock = threading.Lock()
        self._threads: set[threading.Thread] = set()
        self._closed = False
        self._counter = itertools.count(1)

    @property
    def thread_count(self) -> int:
        """Number of auxiliary threads currently alive."""
        with self._lock:
            return len(self._threads)

    def submit(self, fn, /, *args, **kwargs) -> Future:  # type: ignore[override]
        with self._lock:
            if self._closed:
                msg = "cannot schedule new futures after shutdown"
                raise RuntimeError(msg)
            future: Future = Future()
            self._jobs.put((future, fn, args, kwargs))
            if self._idle.acquire(blocking=False):
                return future
            if len(self._threads) < self._max_workers:
                self._start_thread()
            return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:  # noqa: FBT001, FBT002
        with self._lock:
            if not self._closed:
                self._closed = True
                if cancel_futures:
                    self._drain()
                self._jobs.put(None)
            threads = list(self._threads)
        if wait:
            for thread in threads:
                if thread is not threading.current_thread():
                    thread.join()

    # -- internals ----------------------------------------------------------

    def _start_thread(self) -> None:
        thread = threading.Thread(
            target=self._work,
            name=f"{self._thread_name_prefix}-blocking-{next(self._counter)}",
            daemon=True,
        )
        self._threads.add(thread)
        thread.start()

    def _drain(self) -> None:
        while True:
            try:
                item = self._jobs.get_nowait()
            except queue.Empty:
                return
            if item is not None:
                item[0].cancel()

    def _work(self) -> None:
        me = threading.current_thread()
        while True:
            try:
                item = self._jobs.get(timeout=self._keep_alive)
            except queue.Empty:
                with self._lock:
                    # A submit that already claimed our idle slot expects
                    # us to pick up its job, so only exit when none did.
                    if self._jobs.empty() and self._idle.acquire(blocking=False):
                        self._threads.discard(me)
                        log.debug("%s idle for %ss, exiting", me.name, self._keep_alive)
                        return
                continue

            if item is None:
                # Shutdown sentinel: pass it on to the next thread.
                self._jobs.put(None)
                with self._lock:
                    self._threads.discard(me)
                return

            future, fn, args, kwargs = item
            del item
            if not future.set_running_or_notify_cancel():
                self._idle.release()
                continue
            # Mark idle before publishing, so whoever reacts to the result
            # can reuse this thread.
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:  # noqa: BLE001
                self._idle.release()
                future.set_exception(exc)
            else:
                self._idle.release()
                future.set_result(result)
            del future


class LoopExecutor(ThreadPoolExecutor):
    """Per-loop handle on a shared :class:`BlockingPool`.

    Closing an event loop shuts its default executor down; the handle
    absorbs that so the pool keeps serving the other loops until its
    owner calls :meth:`BlockingPool.shutdown`.
    """

    def __init__(self, pool: BlockingPool) -> None:
        super().__init__(max_workers=1)
        self._pool = pool

    def submit(self, fn, /, *args, **kwargs) -> Future:  # type: ignore[override]
        return self._pool.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:  # noqa: FBT001, FBT002
        pass
