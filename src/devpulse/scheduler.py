"""Periodic, unsolicited snapshot broadcasts."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable

import structlog

from devpulse import logging as console
from devpulse.debugger import DebugSessionDetector
from devpulse.metrics import MetricsSnapshot

log = structlog.get_logger()


class PeriodicScheduler:
    """Broadcasts a fresh MetricsSnapshot every interval seconds.

    A tick is skipped entirely while a debugger is paused; missed ticks are
    not made up later. Ticks never overlap.
    """

    def __init__(
        self,
        detector: DebugSessionDetector,
        build_snapshot: Callable[[], MetricsSnapshot],
        publish: Callable[[str], Awaitable[int]],
        interval: float = 3.0,
    ) -> None:
        """
        Args:
            detector: Debug session gate checked on every tick
            build_snapshot: Blocking snapshot builder (run in an executor)
            publish: Coroutine function fanning out a serialized payload
            interval: Seconds between ticks
        """
        self._detector = detector
        self._build_snapshot = build_snapshot
        self._publish = publish
        self.interval = interval
        self._stop_event = asyncio.Event()
        self._tick_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self.ticks_sent = 0
        self.ticks_skipped = 0

    @property
    def is_running(self) -> bool:
        """Check if the scheduler task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the scheduler task on the running loop."""
        if self.is_running:
            return
        # Event and Lock bind to the first loop that waits on them; one pair per run
        self._stop_event = asyncio.Event()
        self._tick_lock = asyncio.Lock()
        self._task = asyncio.create_task(self._run(), name="devpulse-scheduler")
        log.info("scheduler_started", interval=self.interval)

    async def stop(self) -> None:
        """Stop the scheduler and wait for the task to finish."""
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                log.error("scheduler_task_failed", error=str(e))
            self._task = None
        log.info("scheduler_stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                break  # Stop requested during sleep
            except asyncio.TimeoutError:
                pass

            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("tick_failed", error=str(e))
                console.tick_failed(str(e))

    async def tick(self) -> bool:
        """Run one tick.

        Returns:
            True if a snapshot was broadcast, False if the tick was skipped
        """
        if self._tick_lock.locked():
            log.debug("tick_skipped", reason="in_flight")
            self.ticks_skipped += 1
            return False

        async with self._tick_lock:
            if self._detector.is_active():
                log.debug("tick_skipped", reason="debug_session")
                self.ticks_skipped += 1
                return False

            loop = asyncio.get_running_loop()
            snapshot = await loop.run_in_executor(None, self._build_snapshot)
            await self._publish(json.dumps({"metrics": snapshot.to_dict()}))
            self.ticks_sent += 1
            return True
