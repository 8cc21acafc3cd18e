"""Configuration schema for Actual Sync using nested Pydantic models."""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.time.scheduling import is_valid_cron
from ..utils.time.timezone import resolve_timezone

DEFAULT_SCHEDULE = "03 03 */2 * *"


def _validate_cron(value: str) -> str:
    value = " ".join(value.split())
    if not is_valid_cron(value):
        raise ValueError(
            f'Invalid cron schedule: "{value}" '
            + "(expected 5 fields: minute hour day month dayOfWeek)"
        )
    return value


class SyncConfig(BaseModel):
    """Global sync policy applied to every server without an override."""

    max_retries: Annotated[int, Field(ge=0, le=10)] = Field(
        default=5,
        description="Retries after the first attempt for retryable remote errors",
    )
    base_retry_delay_ms: Annotated[int, Field(ge=1000)] = Field(
        default=3000,
        description="Base delay for exponential backoff, in milliseconds",
    )
    schedule: str = Field(
        default=DEFAULT_SCHEDULE,
        description="Cron expression (minute hour day month dayOfWeek)",
    )
    timezone: str | None = Field(
        default=None,
        description="IANA timezone the schedules are evaluated in (system timezone when unset)",
    )

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        """Validate the cron expression."""
        return _validate_cron(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Validate that the timezone exists."""
        if v:
            _ = resolve_timezone(v)
        return v or None


class ServerSyncOverride(BaseModel):
    """Per-server sync policy override. Unset fields fall back to the global policy."""

    max_retries: Annotated[int, Field(ge=0, le=10)] | None = None
    base_retry_delay_ms: Annotated[int, Field(ge=1000)] | None = None
    schedule: str | None = None

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str | None) -> str | None:
        """Validate the cron expression when one is given."""
        if v is None or not v.strip():
            return v
        return _validate_cron(v)


class ServerConfig(BaseModel):
    """One remote budget server to synchronize."""

    name: str = Field(..., min_length=1, description="Unique server name")
    url: str = Field(
        ...,
        description="Base URL of the budget server",
        pattern=r"^https?://.*",
    )
    password: str = Field(..., min_length=1, description="Server password")
    sync_id: str = Field(..., min_length=1, description="Budget sync ID")
    data_dir: str = Field(..., min_length=1, description="Local working directory")
    encryption_password: str | None = Field(
        default=None,
        description="End-to-end encryption password for the budget file",
    )
    sync: ServerSyncOverride | None = None
    log_level: str | None = Field(
        default=None,
        description="Log level for this server's sync runs",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Normalize the server URL."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str | None:
        """Normalize the log level."""
        return _normalize_level(v) if v else None


class ThresholdsConfig(BaseModel):
    """Failure thresholds that must be crossed before a failure alert is sent."""

    consecutive_failures: Annotated[int, Field(ge=1)] = 3
    failure_rate: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    rate_period_minutes: Annotated[int, Field(ge=1)] = 60


class RateLimitConfig(BaseModel):
    """Per-server limits on failure alert volume."""

    min_interval_minutes: Annotated[float, Field(ge=0)] = 15
    max_per_hour: Annotated[int, Field(ge=1)] = 4


class EmailConfig(BaseModel):
    """SMTP email channel."""

    enabled: bool = False
    host: str = "smtp.gmail.com"
    port: Annotated[int, Field(gt=0, le=65535)] = 587
    secure: bool = False
    username: str = ""
    password: str = ""
    from_address: str = ""
    to: list[str] = Field(default_factory=list)


class WebhookConfig(BaseModel):
    """A named Slack or Discord webhook."""

    name: str = Field(..., min_length=1)
    url: str = Field(..., pattern=r"^https?://.*")
    enabled: bool = True


class NotifyMode(Enum):
    """Which sync notifications the Telegram chat receives."""

    ALWAYS = "always"
    ERRORS_ONLY = "errors_only"
    NEVER = "never"


class TelegramConfig(BaseModel):
    """Telegram bot channel and command bot."""

    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""
    notify_mode: NotifyMode = NotifyMode.ALWAYS
    commands_enabled: bool = Field(
        default=True,
        description="Answer commands such as /status and /sync sent to the configured chat",
    )
    poll_timeout_seconds: Annotated[int, Field(ge=1, le=50)] = 30
    preferences_file: str = Field(
        default="data/telegram-preferences.json",
        description="Where the mode chosen with /notify is remembered across restarts",
    )


class NotificationsConfig(BaseModel):
    """Notification channels, thresholds and rate limits."""

    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    slack: list[WebhookConfig] = Field(default_factory=list)
    discord: list[WebhookConfig] = Field(default_factory=list)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


class HistoryConfig(BaseModel):
    """Sync history persistence."""

    enabled: bool = True
    db_path: str = "data/sync-history.db"
    retention_days: Annotated[int, Field(ge=1)] = 90


class MetricsConfig(BaseModel):
    """Prometheus metrics exposition."""

    enabled: bool = True
    port: Annotated[int, Field(gt=0, le=65535)] | None = None


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize the log level."""
        return _normalize_level(v)


class ActualSyncConfig(BaseModel):
    """
    Configuration model for Actual Sync with nested structure.

    This model defines all configuration options with validation,
    type hints, and default values.
    """

    servers: list[ServerConfig] = Field(..., min_length=1)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config: ClassVar[ConfigDict] = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",
        frozen=True,
    )

    @model_validator(mode="after")
    def validate_unique_server_names(self) -> Self:
        """Reject configurations that reuse a server name."""
        seen: set[str] = set()
        duplicates: list[str] = []
        for server in self.servers:
            if server.name in seen and server.name not in duplicates:
                duplicates.append(server.name)
            seen.add(server.name)
        if duplicates:
            raise ValueError(
                f"Duplicate server names found: {', '.join(duplicates)}. "
                + "Each server must have a unique name."
            )
        return self


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _normalize_level(value: str) -> str:
    level = value.upper()
    if level == "WARN":
        level = "WARNING"
    if level not in _LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value}")
    return level


@dataclass(frozen=True)
class SyncPolicy:
    """Resolved sync policy for one server."""

    max_retries: int
    base_retry_delay: float
    schedule: str


def resolve_sync_policy(server: ServerConfig, global_sync: SyncConfig) -> SyncPolicy:
    """
    Merge a server's override over the global sync policy.

    Any override that is set wins, including ``0``. An empty schedule string
    falls back to the global schedule.

    Args:
        server: Server configuration
        global_sync: Global sync configuration

    Returns:
        The resolved SyncPolicy (delay in seconds)
    """
    override = server.sync or ServerSyncOverride()

    max_retries = (
        override.max_retries
        if override.max_retries is not None
        else global_sync.max_retries
    )
    delay_ms = (
        override.base_retry_delay_ms
        if override.base_retry_delay_ms is not None
        else global_sync.base_retry_delay_ms
    )
    schedule = override.schedule if override.schedule else global_sync.schedule

    return SyncPolicy(
        max_retries=max_retries,
        base_retry_delay=delay_ms / 1000.0,
        schedule=schedule,
    )
