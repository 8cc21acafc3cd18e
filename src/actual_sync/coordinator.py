"""
Process-level coordination of sync runs.

The coordinator owns one instance of every stateful component (threshold
tracker, rate gate, dispatcher, sinks, scheduler) and wires each sync outcome
through them: orchestrator → events → history/metrics → dispatcher.
Runs of the same server are serialized with a per-server lock, so a manual
"run now" can never overlap a scheduled run of that server.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from .bot import TelegramCommandBot
from .config.schema import ActualSyncConfig, ServerConfig, resolve_sync_policy
from .events import EventBus, EventType, SyncEvent
from .history import SyncHistoryStore
from .metrics import SyncMetrics
from .notifications import (
    DispatchResult,
    NotificationDispatcher,
    NotificationGate,
    NotificationPreferences,
    ThresholdTracker,
)
from .notifications.channels import NotificationChannel, build_channels
from .scheduling import CronScheduler, ScheduleGroup, ScheduleGrouper
from .sync import BudgetClientFactory, RetryExecutor, SyncOrchestrator, SyncOutcome
from .utils.core.exceptions import ConfigurationError
from .utils.core.version import get_version
from .utils.time import Clock, cron_to_human, resolve_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunReport:
    """What happened for one server run."""

    outcome: SyncOutcome
    dispatch: DispatchResult | None
    trigger: str = "manual"

    def to_dict(self) -> dict[str, object]:
        return {
            "trigger": self.trigger,
            "outcome": self.outcome.to_dict(),
            "dispatch": self.dispatch.to_dict() if self.dispatch else None,
        }


class Coordinator:
    """Runs servers on demand and on schedule, and feeds every outcome to the sinks."""

    def __init__(
        self,
        config: ActualSyncConfig,
        client_factory: BudgetClientFactory,
        channels: list[NotificationChannel] | None = None,
        history: SyncHistoryStore | None = None,
        metrics: SyncMetrics | None = None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            config: Validated configuration
            client_factory: Creates a budgeting client per run
            channels: Notification channels (built from config when omitted)
            history: Optional history sink
            metrics: Optional metrics sink
            event_bus: Event channel (a private one is created when omitted)
            clock: Monotonic clock shared by the rate windows and run timing
            shutdown_event: Event that stops scheduling and abandons retry delays
        """
        self.config: ActualSyncConfig = config
        self.shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self.events: EventBus = event_bus or EventBus()
        self.history: SyncHistoryStore | None = history
        self.metrics: SyncMetrics | None = metrics

        self.orchestrator: SyncOrchestrator = SyncOrchestrator(
            client_factory,
            retry_executor=RetryExecutor(shutdown_event=self.shutdown_event),
            clock=clock,
        )

        thresholds = config.notifications.thresholds
        rate_limit = config.notifications.rate_limit
        self.dispatcher: NotificationDispatcher = NotificationDispatcher(
            tracker=ThresholdTracker(
                consecutive_failure_threshold=thresholds.consecutive_failures,
                failure_rate_threshold=thresholds.failure_rate,
                rate_period_seconds=thresholds.rate_period_minutes * 60,
                clock=clock,
            ),
            gate=NotificationGate(
                min_interval_seconds=rate_limit.min_interval_minutes * 60,
                max_per_hour=rate_limit.max_per_hour,
                clock=clock,
            ),
            channels=channels if channels is not None else build_channels(config.notifications),
        )

        self.groups: list[ScheduleGroup] = ScheduleGrouper.from_config(config)
        self.scheduler: CronScheduler = CronScheduler(
            self._run_scheduled_group,
            timezone=resolve_timezone(config.sync.timezone),
            shutdown_event=self.shutdown_event,
        )
        self.command_bot: TelegramCommandBot | None = None
        self._server_locks: dict[str, asyncio.Lock] = {}
        self._started: bool = False

    @classmethod
    def from_config(
        cls,
        config: ActualSyncConfig,
        client_factory: BudgetClientFactory,
        event_bus: EventBus | None = None,
    ) -> "Coordinator":
        """
        Create a coordinator with the sinks and channels the config enables.

        When the Telegram channel is enabled with commands, the command bot is
        attached as well; it shares the notification preferences of the channel.
        """
        history = (
            SyncHistoryStore(config.history.db_path, config.history.retention_days)
            if config.history.enabled
            else None
        )
        metrics = SyncMetrics(version=get_version()) if config.metrics.enabled else None

        telegram = config.notifications.telegram
        preferences = NotificationPreferences.load(
            telegram.notify_mode, Path(telegram.preferences_file)
        )
        coordinator = cls(
            config,
            client_factory,
            channels=build_channels(config.notifications, telegram_preferences=preferences),
            history=history,
            metrics=metrics,
            event_bus=event_bus,
        )

        if telegram.enabled and telegram.commands_enabled:
            if telegram.bot_token and telegram.chat_id:
                coordinator.command_bot = TelegramCommandBot(
                    coordinator,
                    telegram.bot_token,
                    telegram.chat_id,
                    preferences,
                    poll_timeout=telegram.poll_timeout_seconds,
                )
            else:
                logger.warning("Telegram commands enabled but bot_token or chat_id is missing")
        return coordinator

    def get_server(self, name: str) -> ServerConfig:
        """
        Look up a configured server.

        Raises:
            ConfigurationError: If no server has that name
        """
        for server in self.config.servers:
            if server.name == name:
                return server
        known = ", ".join(s.name for s in self.config.servers)
        raise ConfigurationError(f'Server "{name}" not found. Available servers: {known}')

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._server_locks.get(name)
        if lock is None:
            lock = self._server_locks[name] = asyncio.Lock()
        return lock

    def is_running(self, name: str) -> bool:
        """Whether a run of this server is currently in progress."""
        lock = self._server_locks.get(name)
        return lock is not None and lock.locked()

    async def run_server(self, name: str, trigger: str = "manual") -> RunReport:
        """
        Run one server now.

        Waits for an in-progress run of the same server to finish first.

        Args:
            name: Server name
            trigger: What started the run ("manual", "schedule", "remote")

        Returns:
            RunReport with the outcome and the dispatch result

        Raises:
            ConfigurationError: If the server is not configured
        """
        server = self.get_server(name)
        policy = resolve_sync_policy(server, self.config.sync)
        lock = self._lock_for(name)

        if lock.locked():
            logger.info(f"Sync of {name} already in progress, waiting for it to finish")

        async with lock:
            correlation_id = uuid.uuid4().hex
            self.events.publish(
                SyncEvent(
                    type=EventType.SYNC_STARTED,
                    server=name,
                    payload={"correlation_id": correlation_id, "trigger": trigger},
                )
            )

            outcome = await self.orchestrator.run(server, policy, correlation_id)
            self.events.publish(
                SyncEvent(type=EventType.SYNC_FINISHED, server=name, payload=outcome.to_dict())
            )

            await self._record_outcome(outcome)
            dispatch = await self._dispatch(outcome)

        return RunReport(outcome=outcome, dispatch=dispatch, trigger=trigger)

    async def run_group(self, group: ScheduleGroup, trigger: str = "schedule") -> list[RunReport]:
        """Run a group's servers one after the other."""
        reports: list[RunReport] = []
        for server in group.servers:
            if self.shutdown_event.is_set():
                logger.info(f"Shutdown requested, skipping remaining servers of '{group.schedule}'")
                break
            reports.append(await self.run_server(server.name, trigger))
        return reports

    async def run_all(self, trigger: str = "manual") -> list[RunReport]:
        """Run every configured server, one after the other, in configuration order."""
        reports: list[RunReport] = []
        for server in self.config.servers:
            if self.shutdown_event.is_set():
                logger.info("Shutdown requested, skipping remaining servers")
                break
            reports.append(await self.run_server(server.name, trigger))

        succeeded = sum(1 for r in reports if not r.outcome.is_failure)
        logger.info(f"Sync of all servers finished: {succeeded}/{len(reports)} without failure")
        return reports

    async def _run_scheduled_group(self, group: ScheduleGroup) -> list[RunReport]:
        return await self.run_group(group, trigger="schedule")

    async def _record_outcome(self, outcome: SyncOutcome) -> None:
        if self.history is not None:
            try:
                _ = await asyncio.to_thread(self.history.record, outcome)
            except Exception as e:
                logger.exception(f"Failed to record sync history for {outcome.server_name}: {e}")

        if self.metrics is not None:
            try:
                self.metrics.record(outcome)
            except Exception as e:
                logger.exception(f"Failed to update metrics for {outcome.server_name}: {e}")

    async def _dispatch(self, outcome: SyncOutcome) -> DispatchResult | None:
        try:
            result = await self.dispatcher.dispatch(outcome)
        except Exception as e:
            logger.exception(f"Failed to dispatch notification for {outcome.server_name}: {e}")
            return None

        if not result.sent:
            logger.info(f"No notification sent for {outcome.server_name}: {result.reason}")
        self.events.publish(
            SyncEvent(
                type=EventType.NOTIFICATION_DISPATCHED,
                server=outcome.server_name,
                payload=result.to_dict(),
            )
        )
        return result

    def reset_alert_state(self, server: str | None = None) -> None:
        """Forget failure thresholds and alert rate limits for one server, or all."""
        self.dispatcher.tracker.reset(server)
        self.dispatcher.gate.reset(server)
        logger.info(f"Alert state reset for {server or 'all servers'}")

    def describe_schedules(self) -> list[str]:
        return [group.describe() for group in self.groups]

    async def start(self, announce: bool = True) -> None:
        """Start the scheduler and sinks, and announce startup on every channel."""
        if self._started:
            logger.warning("Coordinator already started")
            return

        if self.history is not None:
            try:
                _ = await asyncio.to_thread(self.history.prune)
            except Exception as e:
                logger.exception(f"Failed to prune sync history: {e}")

        if self.metrics is not None and self.config.metrics.port is not None:
            self.metrics.serve(self.config.metrics.port)

        self.scheduler.start(self.groups)
        self._started = True

        for line in self.describe_schedules():
            logger.info(f"Schedule: {line}")

        if announce:
            await self._announce_startup()

        if self.command_bot is not None:
            self.command_bot.start()

    async def _announce_startup(self) -> None:
        next_runs = self.scheduler.next_runs()
        next_sync = min(next_runs.values()).isoformat() if next_runs else "not scheduled"
        text = "\n".join(
            [
                f"Version: {get_version()}",
                f"Servers: {', '.join(s.name for s in self.config.servers)}",
                "Schedules:",
                *(f"  • {cron_to_human(g.schedule)}: {', '.join(g.server_names)}" for g in self.groups),
                f"Next sync: {next_sync}",
            ]
        )
        try:
            _ = await self.dispatcher.send_announcement("🚀 Service Started", text)
        except Exception as e:
            logger.exception(f"Failed to send startup notification: {e}")

    async def stop(self) -> None:
        """Stop scheduling, abandon pending retry delays and close the sinks."""
        logger.info("Stopping coordinator...")
        self.shutdown_event.set()
        if self.command_bot is not None:
            await self.command_bot.stop()
        await self.scheduler.stop()
        self._started = False

        if self.history is not None:
            try:
                self.history.close()
            except Exception as e:
                logger.exception(f"Failed to close sync history: {e}")
        logger.info("Coordinator stopped")
