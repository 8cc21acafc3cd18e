"""Tests for the configuration schema and sync policy resolution."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.actual_sync.config.schema import (
    DEFAULT_SCHEDULE,
    ActualSyncConfig,
    NotifyMode,
    SyncConfig,
    resolve_sync_policy,
)
from tests.utils.test_helpers import create_server_config, create_test_config


def server_entry(name: str = "Main", **overrides: object) -> dict[str, object]:
    entry: dict[str, object] = {
        "name": name,
        "url": "https://budget.example.com",
        "password": "correct-horse-battery",
        "sync_id": f"sync-{name.lower()}",
        "data_dir": f"/tmp/actual-sync-tests/{name.lower()}",
    }
    entry.update(overrides)
    return entry


class TestDefaults:
    """Test cases for default values."""

    def test_minimal_config_defaults(self) -> None:
        config = create_test_config()

        assert config.sync.max_retries == 5
        assert config.sync.base_retry_delay_ms == 3000
        assert config.sync.schedule == DEFAULT_SCHEDULE
        assert config.sync.timezone is None
        assert config.notifications.thresholds.consecutive_failures == 3
        assert config.notifications.thresholds.failure_rate == 0.5
        assert config.notifications.thresholds.rate_period_minutes == 60
        assert config.notifications.rate_limit.min_interval_minutes == 15
        assert config.notifications.rate_limit.max_per_hour == 4
        assert config.history.enabled is True
        assert config.history.retention_days == 90
        assert config.metrics.port is None
        assert config.logging.level == "INFO"


class TestServerValidation:
    """Test cases for server entries."""

    def test_url_trailing_slash_is_removed(self) -> None:
        server = create_server_config(url="https://budget.example.com/")

        assert server.url == "https://budget.example.com"

    @pytest.mark.parametrize("url", ["budget.example.com", "ftp://budget.example.com"])
    def test_invalid_url(self, url: str) -> None:
        with pytest.raises(ValidationError):
            _ = create_server_config(url=url)

    @pytest.mark.parametrize("field", ["name", "password", "sync_id", "data_dir"])
    def test_required_fields_must_not_be_empty(self, field: str) -> None:
        with pytest.raises(ValidationError):
            _ = create_server_config(**{field: ""})

    def test_duplicate_server_names(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate server names found: Main"):
            _ = create_test_config(servers=[server_entry("Main"), server_entry("Main")])

    def test_at_least_one_server(self) -> None:
        with pytest.raises(ValidationError):
            _ = create_test_config(servers=[])

    @pytest.mark.parametrize(("raw", "expected"), [("debug", "DEBUG"), ("warn", "WARNING")])
    def test_server_log_level_is_normalized(self, raw: str, expected: str) -> None:
        assert create_server_config(log_level=raw).log_level == expected

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log level"):
            _ = create_server_config(log_level="verbose")


class TestSyncValidation:
    """Test cases for schedules, timezones and retry settings."""

    def test_schedule_whitespace_is_normalized(self) -> None:
        assert SyncConfig(schedule="0  3 *  * *").schedule == "0 3 * * *"

    @pytest.mark.parametrize("schedule", ["0 3 * *", "61 3 * * *", "every day"])
    def test_invalid_schedule(self, schedule: str) -> None:
        with pytest.raises(ValidationError, match="Invalid cron schedule"):
            _ = SyncConfig(schedule=schedule)

    def test_invalid_override_schedule(self) -> None:
        with pytest.raises(ValidationError):
            _ = create_server_config(sync={"schedule": "not a cron"})

    def test_unknown_timezone(self) -> None:
        with pytest.raises(ValidationError, match="Unknown timezone"):
            _ = SyncConfig(timezone="Mars/Olympus_Mons")

    def test_known_timezone(self) -> None:
        assert SyncConfig(timezone="Europe/Madrid").timezone == "Europe/Madrid"

    def test_retry_delay_lower_bound(self) -> None:
        with pytest.raises(ValidationError):
            _ = SyncConfig(base_retry_delay_ms=500)

    def test_retry_count_bounds(self) -> None:
        with pytest.raises(ValidationError):
            _ = SyncConfig(max_retries=11)
        with pytest.raises(ValidationError):
            _ = SyncConfig(max_retries=-1)


class TestConfigModel:
    """Test cases for the top-level model behaviour."""

    def test_unknown_top_level_key(self) -> None:
        with pytest.raises(ValidationError):
            _ = create_test_config(unexpected={"a": 1})

    def test_config_is_immutable(self) -> None:
        config = create_test_config()

        with pytest.raises(ValidationError):
            config.servers = []  # pyright: ignore[reportAttributeAccessIssue]

    def test_threshold_bounds(self) -> None:
        with pytest.raises(ValidationError):
            _ = create_test_config(notifications={"thresholds": {"failure_rate": 1.5}})

    def test_webhook_url_validation(self) -> None:
        with pytest.raises(ValidationError):
            _ = create_test_config(notifications={"slack": [{"name": "ops", "url": "nope"}]})

    def test_model_validate_full_document(self) -> None:
        config = ActualSyncConfig.model_validate(
            {
                "servers": [server_entry("Main", encryption_password="s3cret")],
                "sync": {"schedule": "0 4 * * *", "timezone": "UTC"},
                "notifications": {
                    "email": {"enabled": True, "from_address": "a@b.c", "to": ["d@e.f"]},
                    "discord": [{"name": "alerts", "url": "https://discord.com/api/webhooks/1/x"}],
                },
                "history": {"db_path": "/tmp/history.db", "retention_days": 30},
                "metrics": {"port": 9090},
                "logging": {"level": "debug"},
            }
        )

        assert config.servers[0].encryption_password == "s3cret"
        assert config.notifications.email.to == ["d@e.f"]
        assert config.metrics.port == 9090
        assert config.logging.level == "DEBUG"


    def test_telegram_command_settings(self) -> None:
        config = create_test_config(
            notifications={
                "telegram": {
                    "enabled": True,
                    "bot_token": "123:ABC",
                    "chat_id": "42",
                    "notify_mode": "errors_only",
                    "commands_enabled": False,
                }
            }
        )

        telegram = config.notifications.telegram
        assert telegram.notify_mode is NotifyMode.ERRORS_ONLY
        assert telegram.commands_enabled is False
        assert telegram.poll_timeout_seconds == 30
        assert telegram.preferences_file == "data/telegram-preferences.json"

    @pytest.mark.parametrize(
        "telegram",
        [{"notify_mode": "sometimes"}, {"poll_timeout_seconds": 0}, {"poll_timeout_seconds": 60}],
    )
    def test_invalid_telegram_settings(self, telegram: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            _ = create_test_config(notifications={"telegram": telegram})

class TestResolveSyncPolicy:
    """Test cases for merging per-server overrides over the global policy."""

    def test_global_policy_without_override(self) -> None:
        policy = resolve_sync_policy(
            create_server_config(),
            SyncConfig(max_retries=4, base_retry_delay_ms=2000, schedule="0 3 * * *"),
        )

        assert policy.max_retries == 4
        assert policy.base_retry_delay == 2.0
        assert policy.schedule == "0 3 * * *"

    def test_override_wins_including_zero(self) -> None:
        server = create_server_config(
            sync={"max_retries": 0, "base_retry_delay_ms": 1500, "schedule": "0 6 * * *"}
        )

        policy = resolve_sync_policy(server, SyncConfig(max_retries=5))

        assert policy.max_retries == 0
        assert policy.base_retry_delay == 1.5
        assert policy.schedule == "0 6 * * *"

    def test_partial_override(self) -> None:
        server = create_server_config(sync={"max_retries": 1})

        policy = resolve_sync_policy(server, SyncConfig(base_retry_delay_ms=4000))

        assert policy.max_retries == 1
        assert policy.base_retry_delay == 4.0
        assert policy.schedule == DEFAULT_SCHEDULE

    def test_empty_schedule_falls_back(self) -> None:
        server = create_server_config(sync={"schedule": ""})

        policy = resolve_sync_policy(server, SyncConfig(schedule="0 2 * * *"))

        assert policy.schedule == "0 2 * * *"
