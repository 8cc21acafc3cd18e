"""
Telegram command bot.

Long-polls the Bot API ``getUpdates`` method for messages from the configured
chat and answers commands: service status, sync history and statistics,
notification preferences and remote "run now" requests. Messages from any
other chat are ignored.

A ``/sync`` request runs in a background task through
:meth:`Coordinator.run_server`, so it shares the per-server lock, sinks and
alerting with scheduled runs. The command is acknowledged at once and the
result is sent when the run finishes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from ..config.schema import NotifyMode, resolve_sync_policy
from ..notifications.channels.telegram import MAX_MESSAGE_LENGTH, TELEGRAM_API_URL
from ..sync.types import SyncStatus
from ..utils.core.exceptions import ConfigurationError, NotificationError
from ..utils.time import cron_to_human

if TYPE_CHECKING:
    from ..coordinator import Coordinator
    from ..history import HistoryRecord
    from ..notifications.preferences import NotificationPreferences

logger = logging.getLogger(__name__)

CommandHandler = Callable[[list[str]], Awaitable[str]]

# Pause before polling again after a failed getUpdates call
ERROR_BACKOFF_SECONDS = 5.0
# Time stop() gives remote syncs that are still running
STOP_GRACE_SECONDS = 30.0
DEFAULT_LIST_LIMIT = 5
MAX_LIST_LIMIT = 20

STATUS_ICONS: dict[SyncStatus, str] = {
    SyncStatus.SUCCESS: "✅",
    SyncStatus.PARTIAL: "⚠️",
    SyncStatus.FAILURE: "❌",
}

NOTIFY_MODE_ALIASES: dict[str, NotifyMode] = {
    "always": NotifyMode.ALWAYS,
    "all": NotifyMode.ALWAYS,
    "errors": NotifyMode.ERRORS_ONLY,
    "errors_only": NotifyMode.ERRORS_ONLY,
    "never": NotifyMode.NEVER,
    "off": NotifyMode.NEVER,
}

NOTIFY_MODE_DESCRIPTIONS: dict[NotifyMode, str] = {
    NotifyMode.ALWAYS: "every sync result",
    NotifyMode.ERRORS_ONLY: "failed and partial syncs only",
    NotifyMode.NEVER: "no sync results (commands still answer)",
}


def format_duration(seconds: float) -> str:
    """Format a duration as "1d 2h 3m 4s", leaving out leading zero parts."""
    total = max(0, int(seconds))
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)

    parts: list[str] = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def parse_limit(args: list[str], default: int = DEFAULT_LIST_LIMIT) -> int:
    """
    Read an optional count argument, clamped to 1..MAX_LIST_LIMIT.

    Raises:
        ValueError: If the argument is not a number
    """
    if not args:
        return default
    try:
        value = int(args[0])
    except ValueError:
        raise ValueError(f"'{args[0]}' is not a number") from None
    return max(1, min(value, MAX_LIST_LIMIT))


def describe_record(record: HistoryRecord) -> str:
    icon = STATUS_ICONS.get(record.status, "•")
    line = (
        f"{icon} {format_timestamp(record.timestamp)} {record.server_name}: "
        + f"{record.status.value} in {record.duration_ms / 1000:.1f}s"
    )
    if record.accounts_processed:
        line += f", {record.accounts_succeeded}/{record.accounts_processed} accounts"
    if record.error_message:
        step = f" [{record.failed_step}]" if record.failed_step else ""
        line += f"\n    {record.error_message}{step}"
    return line


class TelegramCommandBot:
    """Answers commands sent to the service's Telegram chat."""

    def __init__(
        self,
        coordinator: Coordinator,
        bot_token: str,
        chat_id: str,
        preferences: NotificationPreferences,
        api_url: str = TELEGRAM_API_URL,
        poll_timeout: int = 30,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the bot.

        Args:
            coordinator: Coordinator whose servers, history and alert state are exposed
            bot_token: Telegram bot token
            chat_id: The only chat whose commands are answered
            preferences: Notification preferences changed by /notify
            api_url: Bot API base URL
            poll_timeout: Long-poll timeout for getUpdates in seconds
            client: Shared HTTP client; one is created (and closed on stop) when omitted
        """
        self.coordinator: Coordinator = coordinator
        self.bot_token: str = bot_token
        self.chat_id: str = str(chat_id)
        self.preferences: NotificationPreferences = preferences
        self.api_url: str = api_url.rstrip("/")
        self.poll_timeout: int = poll_timeout
        self.started_at: float = time.time()

        self._client: httpx.AsyncClient | None = client
        self._owns_client: bool = client is None
        self._offset: int | None = None
        self._stopping: asyncio.Event = asyncio.Event()
        self._poll_task: asyncio.Task[None] | None = None
        self._sync_tasks: set[asyncio.Task[None]] = set()

        self.commands: dict[str, tuple[str, CommandHandler]] = {
            "help": ("Show this help message", self.cmd_help),
            "ping": ("Check that the bot is responding", self.cmd_ping),
            "status": ("Service status and the last result per server", self.cmd_status),
            "history": ("Recent sync runs, e.g. /history 10", self.cmd_history),
            "stats": ("Sync statistics for the last 30 days", self.cmd_stats),
            "servers": ("Configured servers and their schedules", self.cmd_servers),
            "errors": ("Recent failed syncs, e.g. /errors 10", self.cmd_errors),
            "notify": ("Set notifications: /notify always|errors|never", self.cmd_notify),
            "sync": ("Sync now: /sync <server> or /sync all", self.cmd_sync),
            "test": ("Send a test notification to every channel", self.cmd_test),
            "reset": ("Reset alert thresholds: /reset [server]", self.cmd_reset),
        }

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _method_url(self, method: str) -> str:
        return f"{self.api_url}/bot{self.bot_token}/{method}"

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def start(self) -> None:
        """Start polling for commands in a background task."""
        if self.is_running:
            logger.warning("Telegram command bot already running")
            return
        self._stopping.clear()
        self.started_at = time.time()
        self._poll_task = asyncio.create_task(self._poll_loop(), name="telegram-commands")
        logger.info(f"Telegram command bot started ({len(self.commands)} commands)")

    async def stop(self, grace_period: float = STOP_GRACE_SECONDS) -> None:
        """Stop polling, give running remote syncs time to finish and close the HTTP client."""
        self._stopping.set()
        if self._poll_task is not None:
            _ = self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if not await self.wait_for_syncs(grace_period):
            logger.warning("Remote syncs still running after grace period, cancelling")
            for task in self._sync_tasks:
                _ = task.cancel()
            _ = await asyncio.gather(*self._sync_tasks, return_exceptions=True)

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Telegram command bot stopped")

    async def wait_for_syncs(self, timeout: float | None = None) -> bool:
        """
        Wait for remote syncs started with /sync.

        Returns:
            True when none is left running
        """
        if not self._sync_tasks:
            return True
        _, pending = await asyncio.wait(set(self._sync_tasks), timeout=timeout)
        return not pending

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                updates = await self.get_updates()
                for update in updates:
                    await self.process_update(update)
            except asyncio.CancelledError:
                raise
            except (httpx.HTTPError, NotificationError, ValueError) as e:
                logger.error(f"Telegram polling failed: {e}")
                try:
                    _ = await asyncio.wait_for(self._stopping.wait(), timeout=ERROR_BACKOFF_SECONDS)
                except TimeoutError:
                    pass

    async def get_updates(self) -> list[dict[str, Any]]:
        """
        Fetch new messages, acknowledging the ones already handled.

        Raises:
            httpx.HTTPError: On transport errors and non-2xx responses
            NotificationError: If the Bot API reports an error
        """
        params: dict[str, str | int] = {
            "timeout": self.poll_timeout,
            "allowed_updates": '["message"]',
        }
        if self._offset is not None:
            params["offset"] = self._offset

        response = await self._http().get(
            self._method_url("getUpdates"), params=params, timeout=self.poll_timeout + 10
        )
        _ = response.raise_for_status()
        body: Any = response.json()
        if not isinstance(body, dict) or body.get("ok") is not True:
            description = body.get("description", "unknown error") if isinstance(body, dict) else body
            raise NotificationError(f"Telegram getUpdates failed: {description}")

        updates: list[dict[str, Any]] = [u for u in body.get("result", []) if isinstance(u, dict)]
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = max(self._offset or 0, update_id + 1)
        return updates

    async def process_update(self, update: dict[str, Any]) -> str | None:
        """
        Answer one update if it is a command from the configured chat.

        Returns:
            The reply that was sent, or None when the update was ignored
        """
        message = update.get("message")
        if not isinstance(message, dict):
            return None

        chat: Any = message.get("chat") or {}
        chat_id = str(chat.get("id", "")) if isinstance(chat, dict) else ""
        if chat_id != self.chat_id:
            logger.warning(f"Ignoring Telegram message from unauthorized chat {chat_id}")
            return None

        text = message.get("text")
        if not isinstance(text, str) or not text.startswith("/"):
            return None

        reply = await self.handle_command(text)
        _ = await self.send_message(reply)
        return reply

    async def handle_command(self, text: str) -> str:
        """Run a command line such as ``/history 10`` and return the reply text."""
        parts = text.strip().split()
        # Commands sent in groups carry the bot name: /status@my_bot
        name = parts[0][1:].split("@", 1)[0].lower()
        args = parts[1:]

        entry = self.commands.get(name)
        if entry is None:
            return f"❓ Unknown command: /{name}\nUse /help to see the available commands."

        logger.info(f"Telegram command received: /{name} {' '.join(args)}".rstrip())
        _, handler = entry
        try:
            return await handler(args)
        except Exception as e:
            logger.exception(f"Error executing Telegram command /{name}: {e}")
            return f"❌ Error executing command: {e}"

    async def send_message(self, text: str) -> bool:
        """
        Send a plain-text message to the configured chat.

        Returns:
            True if Telegram accepted the message
        """
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[: MAX_MESSAGE_LENGTH - 3] + "..."
        try:
            response = await self._http().post(
                self._method_url("sendMessage"),
                json={"chat_id": self.chat_id, "text": text, "disable_web_page_preview": True},
                timeout=10.0,
            )
            _ = response.raise_for_status()
            body: Any = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to send Telegram reply: {e}")
            return False

        if isinstance(body, dict) and body.get("ok") is False:
            logger.error(f"Telegram rejected reply: {body.get('description', 'unknown error')}")
            return False
        return True

    # Commands

    async def cmd_help(self, args: list[str]) -> str:
        lines = ["🤖 Actual Budget Sync", "", "Available commands:"]
        lines.extend(f"/{name} - {description}" for name, (description, _) in self.commands.items())
        lines.extend(["", f"Notification mode: {self.preferences.mode.value}"])
        return "\n".join(lines)

    async def cmd_ping(self, args: list[str]) -> str:
        return "🏓 Pong! Bot is running."

    async def cmd_status(self, args: list[str]) -> str:
        coordinator = self.coordinator
        lines = [
            "📊 Service Status",
            "",
            f"Uptime: {format_duration(time.time() - self.started_at)}",
            f"Notification mode: {self.preferences.mode.value}",
            "",
            "Servers:",
        ]

        for server in coordinator.config.servers:
            if coordinator.is_running(server.name):
                state = "🔄 sync in progress"
            elif coordinator.history is None:
                state = "history disabled"
            else:
                last = await asyncio.to_thread(coordinator.history.last_outcome, server.name)
                if last is None:
                    state = "⏳ no runs yet"
                else:
                    icon = STATUS_ICONS.get(last.status, "•")
                    state = f"{icon} {last.status.value} at {format_timestamp(last.timestamp)}"
            lines.append(f"• {server.name}: {state}")

        next_runs = coordinator.scheduler.next_runs()
        if next_runs:
            lines.extend(["", f"Next sync: {format_timestamp(min(next_runs.values()))}"])

        alert_stats = coordinator.dispatcher.get_stats()
        if alert_stats:
            lines.extend(["", "Alert state:"])
            for server_name, stats in alert_stats.items():
                lines.append(
                    f"• {server_name}: {stats['consecutive_failures']} consecutive failure(s), "
                    + f"{stats['notifications_last_hour']} alert(s) in the last hour"
                )
        return "\n".join(lines)

    async def cmd_history(self, args: list[str]) -> str:
        history = self.coordinator.history
        if history is None:
            return "ℹ️ Sync history is disabled."
        try:
            limit = parse_limit(args)
        except ValueError as e:
            return f"❌ {e}. Usage: /history [count]"

        records = await asyncio.to_thread(history.recent, None, limit)
        if not records:
            return "📜 No sync history yet."
        return "\n".join([f"📜 Last {len(records)} sync(s)", "", *map(describe_record, records)])

    async def cmd_stats(self, args: list[str]) -> str:
        history = self.coordinator.history
        if history is None:
            return "ℹ️ Sync history is disabled."

        overall = await asyncio.to_thread(history.statistics)
        if overall.total_syncs == 0:
            return "📈 No syncs recorded in the last 30 days."

        lines = [
            "📈 Statistics (last 30 days)",
            "",
            f"Total syncs: {overall.total_syncs}",
            f"Successful: {overall.successful_syncs}",
            f"Partial: {overall.partial_syncs}",
            f"Failed: {overall.failed_syncs}",
            f"Success rate: {(overall.success_rate or 0.0) * 100:.1f}%",
        ]
        if overall.avg_duration_ms is not None:
            lines.append(f"Average duration: {overall.avg_duration_ms / 1000:.1f}s")
        lines.append(f"Accounts processed: {overall.total_accounts_processed}")

        server_names = await asyncio.to_thread(history.server_names)
        if len(server_names) > 1:
            lines.extend(["", "Per server:"])
            for name in server_names:
                stats = await asyncio.to_thread(history.statistics, name)
                if stats.total_syncs == 0:
                    continue
                lines.append(
                    f"• {name}: {stats.successful_syncs}/{stats.total_syncs} successful "
                    + f"({(stats.success_rate or 0.0) * 100:.0f}%)"
                )
        return "\n".join(lines)

    async def cmd_servers(self, args: list[str]) -> str:
        config = self.coordinator.config
        lines = [f"🖥️ Configured servers ({len(config.servers)})"]
        for server in config.servers:
            policy = resolve_sync_policy(server, config.sync)
            lines.extend(
                [
                    "",
                    f"• {server.name}",
                    f"  URL: {server.url}",
                    f"  Schedule: {cron_to_human(policy.schedule)} ({policy.schedule})",
                    f"  Retries: {policy.max_retries}, base delay {policy.base_retry_delay:g}s",
                ]
            )
        return "\n".join(lines)

    async def cmd_errors(self, args: list[str]) -> str:
        history = self.coordinator.history
        if history is None:
            return "ℹ️ Sync history is disabled."
        try:
            limit = parse_limit(args)
        except ValueError as e:
            return f"❌ {e}. Usage: /errors [count]"

        records = await asyncio.to_thread(history.recent_errors, limit)
        if not records:
            return "✅ No failed syncs recorded."
        return "\n".join([f"🚨 Last {len(records)} failed sync(s)", "", *map(describe_record, records)])

    async def cmd_notify(self, args: list[str]) -> str:
        if not args:
            current = self.preferences.mode
            options = "\n".join(
                f"• {mode.value}: {description}"
                for mode, description in NOTIFY_MODE_DESCRIPTIONS.items()
            )
            return (
                f"🔔 Notification mode: {current.value} ({NOTIFY_MODE_DESCRIPTIONS[current]})\n\n"
                + f"Options:\n{options}\n\nUsage: /notify always|errors|never"
            )

        mode = NOTIFY_MODE_ALIASES.get(args[0].lower())
        if mode is None:
            return f"❌ Unknown mode '{args[0]}'. Usage: /notify always|errors|never"

        try:
            self.preferences.set_mode(mode)
        except OSError as e:
            logger.error(f"Failed to save notification preferences: {e}")
            return f"⚠️ Notification mode set to {mode.value} until restart, but it could not be saved: {e}"
        return f"✅ Notification mode set to {mode.value}: {NOTIFY_MODE_DESCRIPTIONS[mode]}"

    async def cmd_sync(self, args: list[str]) -> str:
        coordinator = self.coordinator
        available = ", ".join(s.name for s in coordinator.config.servers)
        if not args:
            return f"Usage: /sync <server> or /sync all\nServers: {available}"
        if coordinator.shutdown_event.is_set() or self._stopping.is_set():
            return "⏹️ The service is shutting down, no new syncs are started."

        target = " ".join(args)
        if target.lower() == "all":
            names = [s.name for s in coordinator.config.servers]
        else:
            try:
                names = [coordinator.get_server(target).name]
            except ConfigurationError:
                return f"❌ Unknown server '{target}'. Servers: {available}"

        busy = [name for name in names if coordinator.is_running(name)]
        task = asyncio.create_task(self._run_remote_sync(names), name=f"remote-sync:{target}")
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)

        reply = f"🔄 Starting sync of {', '.join(names)}..."
        if busy:
            reply += f"\n{', '.join(busy)} already syncing, will run once the current sync ends."
        return reply

    async def _run_remote_sync(self, names: list[str]) -> None:
        for name in names:
            if self.coordinator.shutdown_event.is_set():
                logger.info("Shutdown requested, skipping remaining remote syncs")
                break
            try:
                report = await self.coordinator.run_server(name, trigger="remote")
            except Exception as e:
                logger.exception(f"Remote sync of {name} failed: {e}")
                _ = await self.send_message(f"❌ Sync of {name} could not run: {e}")
                continue

            outcome = report.outcome
            icon = STATUS_ICONS.get(outcome.status, "•")
            text = (
                f"{icon} Sync of {name} finished: {outcome.status.value} "
                + f"in {outcome.duration_seconds:.1f}s"
            )
            if outcome.accounts_processed:
                text += f"\nAccounts: {outcome.accounts_succeeded}/{outcome.accounts_processed} synced"
            if outcome.error_message:
                text += f"\nError: {outcome.error_message}"
            _ = await self.send_message(text)

    async def cmd_test(self, args: list[str]) -> str:
        result = await self.coordinator.dispatcher.send_test_notification()
        if not result.sent:
            return f"⚠️ Test notification not sent: {result.reason}"

        reply = (
            f"🧪 Test notification delivered to {result.delivered_count}/"
            + f"{len(result.channel_results)} channel(s)"
        )
        if result.failed_channels:
            reply += f"\nFailed: {', '.join(result.failed_channels)}"
        return reply

    async def cmd_reset(self, args: list[str]) -> str:
        server: str | None = None
        if args:
            try:
                server = self.coordinator.get_server(" ".join(args)).name
            except ConfigurationError as e:
                return f"❌ {e}"

        self.coordinator.reset_alert_state(server)
        return f"🔄 Alert thresholds and rate limits reset for {server or 'all servers'}."
