"""Background task runner for deliveries.

Deliveries run off the request path. Instead of unsupervised
``asyncio.create_task`` calls, all background work goes through this runner
so it can be keyed, inspected and drained on shutdown.

Keys identify a unit of work (a webhook delivery id). Per key there is at
most one running task and at most one pending timer.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

logger = logging.getLogger("lead-delivery-tasks")

JobFactory = Callable[[], Awaitable[Any]]


class BackgroundTaskRunner:
    """Tracks fire-and-forget tasks and delayed retries on the running loop."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()
        self._running_keys: set[str] = set()
        self._timers: dict[str, asyncio.Task] = {}
        self._closed = False

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        key: str | None = None,
        name: str | None = None,
    ) -> asyncio.Task | None:
        """Run a coroutine in the background.

        If ``key`` already has a running task the coroutine is dropped and
        None is returned. A pending timer for the key is cancelled, since the
        work is now running immediately.
        """
        if self._closed:
            coro.close()
            logger.warning(f"Runner is shut down, dropping task {name or key}")
            return None

        if key is not None:
            if key in self._running_keys:
                coro.close()
                logger.debug(f"Task for {key} already running, skipping")
                return None
            self._cancel_timer(key)

        return self._spawn(coro, key=key, name=name)

    def schedule(
        self,
        delay: float,
        factory: JobFactory,
        *,
        key: str,
        name: str | None = None,
    ) -> None:
        """Run ``factory()`` after ``delay`` seconds, replacing any pending timer for ``key``."""
        if self._closed:
            logger.warning(f"Runner is shut down, not scheduling {name or key}")
            return

        self._cancel_timer(key)
        timer = asyncio.create_task(
            self._fire_after(delay, factory, key, name), name=f"timer:{name or key}"
        )
        self._timers[key] = timer
        timer.add_done_callback(lambda t, k=key: self._forget_timer(k, t))

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def running_count(self) -> int:
        """Number of tasks currently running."""
        return len(self._tasks)

    @property
    def scheduled_count(self) -> int:
        """Number of pending timers."""
        return len(self._timers)

    def has_timer(self, key: str) -> bool:
        """Whether a retry timer is pending for ``key``."""
        return key in self._timers

    def is_running(self, key: str) -> bool:
        """Whether a task for ``key`` is running right now."""
        return key in self._running_keys

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def drain(self, timeout: float | None = None, include_timers: bool = False) -> bool:
        """Wait until running tasks (and optionally pending timers) finish.

        Tasks started while draining are waited for as well.

        Returns:
            True if everything finished, False on timeout.
        """

        async def _wait_all() -> None:
            while True:
                pending = set(self._tasks)
                if include_timers:
                    pending |= set(self._timers.values())
                if not pending:
                    return
                await asyncio.wait(pending)

        try:
            await asyncio.wait_for(_wait_all(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop accepting work, cancel timers, and drain running tasks.

        Cancelled retries are not lost: their delivery rows keep
        ``next_attempt_at`` and the recovery sweep picks them up.
        """
        self._closed = True
        for key in list(self._timers):
            self._cancel_timer(key)

        finished = await self.drain(timeout=timeout)
        if not finished:
            logger.warning(
                f"Cancelling {len(self._tasks)} delivery task(s) still running at shutdown"
            )
            for task in list(self._tasks):
                task.cancel()
            for task in list(self._tasks):
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        key: str | None,
        name: str | None,
    ) -> asyncio.Task:
        task = asyncio.create_task(self._run(coro, key), name=name or key)
        self._tasks.add(task)
        if key is not None:
            self._running_keys.add(key)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Coroutine[Any, Any, Any], key: str | None) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Background task {key or ''} failed")
        finally:
            if key is not None:
                self._running_keys.discard(key)

    async def _fire_after(
        self, delay: float, factory: JobFactory, key: str, name: str | None
    ) -> None:
        await asyncio.sleep(delay)
        # The timer has fired; hand over to a regular keyed task
        self._timers.pop(key, None)
        coro = factory()
        if key in self._running_keys:
            close = getattr(coro, "close", None)
            if close is not None:
                close()
            logger.debug(f"Retry for {key} fired while a task was running, skipping")
            return
        self._spawn(coro, key=key, name=name)

    def _cancel_timer(self, key: str) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None and not timer.done():
            timer.cancel()

    def _forget_timer(self, key: str, timer: asyncio.Task) -> None:
        if self._timers.get(key) is timer:
            del self._timers[key]
