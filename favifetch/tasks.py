from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Coroutine, List, Optional, Set

from .log import get_logger

log = get_logger(__name__)


class TaskManager:
    """Registry of in-flight resolution jobs with cooperative mass cancellation.

    Registry mutations go through a single lock, so `submit`, the per-task
    cleanup callback and `shutdown_and_cancel_all` never interleave, even when
    shutdown is triggered from a thread other than the event loop's.
    """

    def __init__(self, *, shutdown_wait_s: float = 2.0):
        self.shutdown_wait_s = shutdown_wait_s
        self._tasks: Set[asyncio.Task] = set()
        self._lock = threading.RLock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutting_down = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Optional[asyncio.Task]:
        """Start `coro` as a tracked task; no-op once shutdown has begun."""
        with self._lock:
            if self._shutting_down:
                coro.close()
                return None
            loop = asyncio.get_running_loop()
            self._loop = loop
            task = loop.create_task(coro)
            self._tasks.add(task)
        task.add_done_callback(self._discard)
        return task

    def run_unless_shutting_down(self, fn: Callable[[], None]) -> bool:
        """Call `fn` only if shutdown has not begun; shutdown waits for it to return."""
        with self._lock:
            if self._shutting_down:
                return False
            fn()
            return True

    def _discard(self, task: asyncio.Task) -> None:
        with self._lock:
            self._tasks.discard(task)

    def _begin_shutdown(self) -> List[asyncio.Task]:
        with self._lock:
            self._shutting_down = True
            tasks = list(self._tasks)
            self._tasks.clear()
        return tasks

    def shutdown_and_cancel_all(self) -> bool:
        """Cancel every registered task and reject further submissions.

        Safe from any thread. Returns False when the owning loop did not
        acknowledge the cancellation within `shutdown_wait_s`; teardown goes
        on regardless.
        """
        tasks = self._begin_shutdown()
        loop = self._loop
        if not tasks:
            return True
        log.info("Cancelling %d in-flight favicon job(s)", len(tasks))

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is None or running is loop or loop.is_closed():
            for t in tasks:
                t.cancel()
            return True

        acknowledged = threading.Event()

        def _cancel() -> None:
            for t in tasks:
                t.cancel()
            acknowledged.set()

        try:
            loop.call_soon_threadsafe(_cancel)
        except RuntimeError:
            # Loop closed between the check above and now.
            return True
        if not acknowledged.wait(self.shutdown_wait_s):
            log.warning("Task cancellation not acknowledged within %.1fs; continuing teardown", self.shutdown_wait_s)
            return False
        return True

    async def aclose(self) -> bool:
        """Cancel all tasks and wait (bounded) for them to finish unwinding."""
        tasks = self._begin_shutdown()
        for t in tasks:
            t.cancel()
        if not tasks:
            return True
        _done, pending = await asyncio.wait(tasks, timeout=self.shutdown_wait_s)
        if pending:
            log.warning("%d favicon job(s) still unwinding after %.1fs", len(pending), self.shutdown_wait_s)
            return False
        return True
