"""
Grouping of servers by effective cron schedule.

Servers sharing an expression share one scheduled job, and run one after the
other when it fires.
"""

from dataclasses import dataclass, field

from ..config.schema import ActualSyncConfig, ServerConfig, resolve_sync_policy
from ..utils.time import cron_to_human


@dataclass
class ScheduleGroup:
    """Servers that fire on the same cron expression."""

    schedule: str
    servers: list[ServerConfig] = field(default_factory=list)

    @property
    def server_names(self) -> list[str]:
        return [server.name for server in self.servers]

    def describe(self) -> str:
        """Human-readable summary, e.g. ``Daily at 03:00: main, family``."""
        return f"{cron_to_human(self.schedule)}: {', '.join(self.server_names)}"


class ScheduleGrouper:
    """Builds schedule groups from servers and their effective schedules."""

    @staticmethod
    def group(targets: list[tuple[ServerConfig, str]]) -> list[ScheduleGroup]:
        """
        Group servers by exact equality of their cron expression.

        Groups come out in the order their expression is first seen, and
        members keep the order of ``targets``.

        Args:
            targets: (server, effective cron expression) pairs

        Returns:
            One ScheduleGroup per distinct expression
        """
        groups: dict[str, ScheduleGroup] = {}
        for server, schedule in targets:
            group = groups.get(schedule)
            if group is None:
                group = groups[schedule] = ScheduleGroup(schedule=schedule)
            group.servers.append(server)
        return list(groups.values())

    @classmethod
    def from_config(cls, config: ActualSyncConfig) -> list[ScheduleGroup]:
        """Group the configured servers by their resolved schedule."""
        targets = [
            (server, resolve_sync_policy(server, config.sync).schedule)
            for server in config.servers
        ]
        return cls.group(targets)
