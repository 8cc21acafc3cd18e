"""
Cron-driven scheduler for schedule groups.

Each group gets its own asyncio task. The task computes the next firing time
with croniter, waits for it on the shutdown event (so stopping interrupts the
wait immediately), then hands the group to the run callback.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from .grouper import ScheduleGroup
from ..utils.time import calculate_next_run, get_system_now

logger = logging.getLogger(__name__)

GroupRunner = Callable[[ScheduleGroup], Awaitable[object]]

# Long waits are split so that wall-clock jumps (suspend, DST) are noticed
MAX_WAIT_CHUNK_SECONDS = 300.0
STOP_GRACE_SECONDS = 30.0


class CronScheduler:
    """Runs each schedule group whenever its cron expression fires."""

    def __init__(
        self,
        runner: GroupRunner,
        timezone: ZoneInfo | None = None,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            runner: Coroutine function that runs one group's servers
            timezone: Timezone cron expressions are evaluated in
            shutdown_event: Event that stops every scheduled task when set
        """
        self._runner: GroupRunner = runner
        self._timezone: ZoneInfo | None = timezone
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._next_runs: dict[str, datetime] = {}

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def next_runs(self) -> dict[str, datetime]:
        """Next firing time per cron expression."""
        return dict(self._next_runs)

    def next_run_for(self, group: ScheduleGroup, now: datetime | None = None) -> datetime:
        return calculate_next_run(group.schedule, now, self._timezone)

    def start(self, groups: list[ScheduleGroup]) -> None:
        """Start one task per group."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        for group in groups:
            self._next_runs[group.schedule] = self.next_run_for(group)
            task = asyncio.create_task(
                self._group_loop(group), name=f"schedule:{group.schedule}"
            )
            self._tasks[group.schedule] = task
            logger.info(
                f"Scheduled {group.describe()} "
                + f"(next run: {self._next_runs[group.schedule].isoformat()})"
            )

    async def stop(self, grace_period: float = STOP_GRACE_SECONDS) -> None:
        """
        Stop every scheduled task.

        Tasks waiting for their next firing exit immediately. A group that is
        mid-run gets ``grace_period`` seconds to finish before it is cancelled.
        """
        self._shutdown_event.set()
        if not self._tasks:
            return

        logger.info(f"Stopping {len(self._tasks)} scheduled task(s)...")
        tasks = list(self._tasks.values())
        _, pending = await asyncio.wait(tasks, timeout=grace_period)
        for task in pending:
            logger.warning(f"Task {task.get_name()} did not finish in time, cancelling")
            _ = task.cancel()

        _ = await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    async def _group_loop(self, group: ScheduleGroup) -> None:
        while not self._shutdown_event.is_set():
            next_run = self.next_run_for(group)
            self._next_runs[group.schedule] = next_run

            if not await self._wait_until(next_run):
                logger.debug(f"Shutdown requested, leaving schedule '{group.schedule}'")
                return

            logger.info(f"Schedule '{group.schedule}' fired for: {', '.join(group.server_names)}")
            try:
                _ = await self._runner(group)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Scheduled run for '{group.schedule}' failed: {e}")

    async def _wait_until(self, target: datetime) -> bool:
        """
        Wait until ``target``.

        Returns:
            False if shutdown was requested before the target time
        """
        while True:
            if self._shutdown_event.is_set():
                return False
            remaining = (target - get_system_now(self._timezone)).total_seconds()
            if remaining <= 0:
                return True
            try:
                _ = await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=min(remaining, MAX_WAIT_CHUNK_SECONDS),
                )
                return False
            except asyncio.TimeoutError:
                continue
