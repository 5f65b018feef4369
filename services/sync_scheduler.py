from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

from core.settings import SYNC
from services.sync_service import SyncResult, SyncService
from services.tasks import TaskService


logger = logging.getLogger("taskbox.sync")

MUTATION_EVENTS = ("after_create", "after_update", "after_complete", "after_delete", "after_reorder")


class SyncScheduler:
    """Runs sync cycles on a timer and pushes after local edits.

    Cycles and pushes share one lock so they never overlap. Push requests
    raised while a push is pending collapse into that push.
    """

    def __init__(
        self,
        sync: SyncService,
        *,
        interval_sec: float = SYNC.interval_sec,
        startup_delay_sec: float = SYNC.startup_delay_sec,
    ) -> None:
        self.sync = sync
        self.interval_sec = interval_sec
        self.startup_delay_sec = startup_delay_sec
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock: Optional[asyncio.Lock] = None
        self._push_requested: Optional[asyncio.Event] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._push_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Future] = set()

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    # ---------- lifecycle ----------
    def start(self) -> None:
        """Start the timer and the push worker on the running event loop."""

        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._lock = asyncio.Lock()
        self._push_requested = asyncio.Event()
        self._timer_task = asyncio.create_task(self._timer_loop())
        self._push_task = asyncio.create_task(self._push_worker())
        for event in MUTATION_EVENTS:
            TaskService.subscribe(event, self._on_local_change)
        logger.info(
            "Sync scheduler started (every %ss, first run after %ss)",
            self.interval_sec,
            self.startup_delay_sec,
        )

    async def stop(self) -> None:
        """Cancel the timer and worker; an in-flight cycle still completes."""

        for event in MUTATION_EVENTS:
            TaskService.unsubscribe(event, self._on_local_change)
        tasks = [t for t in (self._timer_task, self._push_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        self._timer_task = None
        self._push_task = None
        logger.info("Sync scheduler stopped")

    # ---------- triggers ----------
    def request_push(self) -> None:
        """Ask for a push; safe to call from any thread."""

        if self._loop is None or self._push_requested is None or self._loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._push_requested.set()
        else:
            self._loop.call_soon_threadsafe(self._push_requested.set)

    async def run_cycle_now(self) -> SyncResult:
        return await self._run_exclusive(self.sync.run_cycle)

    async def push_now(self) -> SyncResult:
        return await self._run_exclusive(self.sync.push_now)

    # ---------- internals ----------
    def _on_local_change(self, task_id: str) -> None:
        logger.debug("Local change on %s, push requested", task_id)
        self.request_push()

    async def _run_exclusive(self, fn: Callable[[], SyncResult]) -> SyncResult:
        if self._lock is None:
            raise RuntimeError("SyncScheduler.start() has not been called")
        async with self._lock:
            future = asyncio.ensure_future(asyncio.to_thread(fn))
            self._in_flight.add(future)
            future.add_done_callback(self._in_flight.discard)
            # Cancelling the caller must not abandon a half-applied cycle.
            return await asyncio.shield(future)

    async def _timer_loop(self) -> None:
        await asyncio.sleep(self.startup_delay_sec)
        while True:
            try:
                await self.run_cycle_now()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled sync cycle failed")
            await asyncio.sleep(self.interval_sec)

    async def _push_worker(self) -> None:
        assert self._push_requested is not None
        while True:
            await self._push_requested.wait()
            self._push_requested.clear()
            try:
                await self.push_now()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Requested push failed")


__all__ = ["MUTATION_EVENTS", "SyncScheduler"]
