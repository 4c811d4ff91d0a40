"""
Interval Scheduler

Provides ScheduledLoop, which fires an async callback once per interval
for as long as it runs, accounting for callback execution time to
prevent drift.

Unlike a bare asyncio.sleep() loop, this scheduler:
- Schedules relative to the original timeline, not callback completion
- Skips missed intervals instead of queueing them
- Reports drift metrics for observability

Usage:
    async def refresh():
        ...

    scheduler = ScheduledLoop(30.0, refresh, name="sheet")
    await scheduler.start()

    # Later:
    scheduler.stop()
    await scheduler.wait_stopped()
"""

import asyncio
import time
from typing import Callable, Awaitable
from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """
    Interval scheduler that accounts for execution time.

    The first callback fires one full interval after start(); callers
    that need an immediate run invoke the callback themselves first.

    Attributes:
        interval: The interval in seconds between executions
        callback: Async function to call each interval
        drift_seconds: Total accumulated drift (for observability)
        skipped_count: Number of intervals skipped (to catch up)
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize a scheduled loop.

        Args:
            interval_seconds: Time between executions (supports sub-second)
            callback: Async function to call each interval
            name: Name for logging/identification
            clock: Monotonic time source
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name
        self._clock = clock

        self._next_run: float = 0
        self._running = False
        self._sleeping = False
        self._task: asyncio.Task | None = None

        # Observability metrics
        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._error_count: int = 0
        self._last_execution_time: float = 0
        self._last_drift_ms: float = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduled loop in a background task."""
        if self._running:
            return

        self._running = True
        if self._task and not self._task.done():
            # Stopped mid-callback; that loop picks up again after it
            return
        self._task = asyncio.create_task(self._run(), name=f"scheduler:{self.name}")

    def stop(self) -> None:
        """
        Stop the scheduled loop.

        Only an idle loop is cancelled. A callback already running is left
        to finish; the loop exits after it returns.
        """
        self._running = False
        if self._task and self._sleeping:
            self._task.cancel()

    async def wait_stopped(self) -> None:
        """Wait for the loop task (and any callback in flight) to finish."""
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        await asyncio.wait([task])
        if self._task is task:
            self._task = None

    async def _run(self) -> None:
        """Main loop that fires callback once per interval."""
        self._next_run = self._clock() + self.interval

        while self._running:
            sleep_duration = self._next_run - self._clock()
            if sleep_duration > 0:
                self._sleeping = True
                try:
                    await asyncio.sleep(sleep_duration)
                except asyncio.CancelledError:
                    break
                finally:
                    self._sleeping = False

            if not self._running:
                break

            # Track drift (how late we are)
            drift = self._clock() - self._next_run
            self._drift_total += max(0, drift)
            self._last_drift_ms = drift * 1000

            try:
                start = self._clock()
                await self.callback()
                self._last_execution_time = self._clock() - start
                self._execution_count += 1
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._error_count += 1
                logger.error(f"Scheduled callback '{self.name}' error: {e}", exc_info=True)

            # Skip missed intervals to catch up (don't queue up missed executions)
            now = self._clock()
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            # First skip is expected (the one we just executed)
            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals "
                    f"(execution took {self._last_execution_time:.3f}s)"
                )

    @property
    def drift_seconds(self) -> float:
        """Total accumulated drift in seconds."""
        return self._drift_total

    @property
    def skipped_count(self) -> int:
        """Number of intervals skipped to catch up."""
        return self._skipped_count

    @property
    def execution_count(self) -> int:
        """Total number of successful executions."""
        return self._execution_count

    @property
    def error_count(self) -> int:
        return self._error_count

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "execution_count": self._execution_count,
            "error_count": self._error_count,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }
