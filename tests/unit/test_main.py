"""
Tests for main.py entry point functionality.

This module tests logging setup and rotation, configuration loading, the
one-shot ``--force-run`` mode and the main entry point with the budgeting
client replaced by a fake.
"""

from __future__ import annotations

import logging
import logging.handlers
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from src.actual_sync.config.manager import ConfigManager
from src.actual_sync.config.schema import ActualSyncConfig
from src.actual_sync.coordinator import Coordinator, RunReport
from src.actual_sync.main import (
    ERROR_LOG_FILE,
    LOG_FILE,
    cleanup_old_logs,
    force_run,
    load_configuration,
    log_run_summary,
    main,
    rotate_logs_on_startup,
    setup_logging,
)
from src.actual_sync.sync.types import SyncStatus
from src.actual_sync.utils.core.exceptions import BudgetClientError
from src.actual_sync.utils.time import ManualClock
from tests.utils.test_helpers import FakeBudgetClient, create_outcome


@pytest.fixture
def restore_root_logger() -> Generator[None, None, None]:
    """Put the root logger back the way it was after setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def write_config(tmp_path: Path) -> Path:
    config_path = tmp_path / "config.yml"
    _ = config_path.write_text(
        f"""
servers:
  - name: Main
    url: https://budget.example.com
    password: correct-horse-battery
    sync_id: sync-main
    data_dir: {tmp_path / "main"}
history:
  db_path: {tmp_path / "history.db"}
metrics:
  enabled: false
""",
        encoding="utf-8",
    )
    return config_path


class TestLogging:
    """Test cases for logging setup and rotation."""

    @pytest.mark.usefixtures("restore_root_logger")
    def test_setup_logging_creates_handlers(self, tmp_path: Path) -> None:
        setup_logging(tmp_path / "logs", console_level="WARNING")

        root = logging.getLogger()
        rotating = [
            h for h in root.handlers if isinstance(h, logging.handlers.RotatingFileHandler)
        ]
        assert len(rotating) == 2
        assert {Path(h.baseFilename).name for h in rotating} == {LOG_FILE, ERROR_LOG_FILE}
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_rotate_logs_on_startup(self, tmp_path: Path) -> None:
        _ = (tmp_path / LOG_FILE).write_text("previous run")

        rotate_logs_on_startup(tmp_path)

        assert not (tmp_path / LOG_FILE).exists()
        rotated = list(tmp_path.glob(f"{LOG_FILE}.*"))
        assert len(rotated) == 1
        assert rotated[0].read_text() == "previous run"

    def test_cleanup_old_logs_keeps_newest(self, tmp_path: Path) -> None:
        for index in range(5):
            _ = (tmp_path / f"{LOG_FILE}.2024010{index}_000000").write_text(str(index))

        cleanup_old_logs(tmp_path, max_files=2)

        assert len(list(tmp_path.glob(f"{LOG_FILE}.*"))) == 2


class TestLoadConfiguration:
    def test_missing_file_exits(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _ = load_configuration(ConfigManager(), tmp_path / "missing.yml")

        assert exc_info.value.code == 1

    def test_invalid_file_exits(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yml"
        _ = config_path.write_text("servers: []\n")

        with pytest.raises(SystemExit) as exc_info:
            _ = load_configuration(ConfigManager(), config_path)

        assert exc_info.value.code == 1

    def test_valid_file_is_set_as_current(self, tmp_path: Path) -> None:
        manager = ConfigManager()
        config_path = write_config(tmp_path)

        config = load_configuration(manager, config_path)

        assert manager.get_current_config() is config
        assert manager.config_file_path == config_path


class TestForceRun:
    """Test cases for the one-shot sync mode."""

    @pytest.mark.asyncio
    async def test_all_servers_succeed(self, multi_server_config: ActualSyncConfig) -> None:
        coordinator = Coordinator(
            multi_server_config, FakeBudgetClient, channels=[], clock=ManualClock()
        )

        assert await force_run(coordinator, None) == 0

    @pytest.mark.asyncio
    async def test_single_server(self, multi_server_config: ActualSyncConfig) -> None:
        clients: list[FakeBudgetClient] = []

        def factory() -> FakeBudgetClient:
            client = FakeBudgetClient()
            clients.append(client)
            return client

        coordinator = Coordinator(multi_server_config, factory, channels=[])

        assert await force_run(coordinator, "Family") == 0
        assert len(clients) == 1
        assert clients[0].calls[0][1] == "https://family.example.com"

    @pytest.mark.asyncio
    async def test_unknown_server(self, multi_server_config: ActualSyncConfig) -> None:
        coordinator = Coordinator(multi_server_config, FakeBudgetClient, channels=[])

        assert await force_run(coordinator, "Nope") == 1

    @pytest.mark.asyncio
    async def test_failure_gives_nonzero_exit(self, minimal_config: ActualSyncConfig) -> None:
        coordinator = Coordinator(
            minimal_config,
            lambda: FakeBudgetClient(errors={"connect": [BudgetClientError("Invalid password")]}),
            channels=[],
        )

        assert await force_run(coordinator, None) == 1


class TestMain:
    """Test cases for the main entry point."""

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("restore_root_logger")
    async def test_force_run_end_to_end(self, tmp_path: Path) -> None:
        config_path = write_config(tmp_path)
        clients: list[FakeBudgetClient] = []

        def factory() -> FakeBudgetClient:
            client = FakeBudgetClient()
            clients.append(client)
            return client

        with (
            patch("src.actual_sync.main.create_client_factory", return_value=factory),
            patch("src.actual_sync.main.setup_signal_handlers"),
        ):
            await main(
                [
                    "--config-file",
                    str(config_path),
                    "--log-folder",
                    str(tmp_path / "logs"),
                    "--force-run",
                ]
            )

        assert len(clients) == 1
        assert clients[0].count("disconnect") == 1
        assert (tmp_path / "logs" / LOG_FILE).exists()
        assert (tmp_path / "history.db").exists()

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("restore_root_logger")
    async def test_force_run_failure_exits_with_error(self, tmp_path: Path) -> None:
        config_path = write_config(tmp_path)

        def factory() -> FakeBudgetClient:
            return FakeBudgetClient(errors={"connect": [BudgetClientError("Invalid password")]})

        with (
            patch("src.actual_sync.main.create_client_factory", return_value=factory),
            patch("src.actual_sync.main.setup_signal_handlers"),
        ):
            with pytest.raises(SystemExit) as exc_info:
                await main(
                    [
                        "--config-file",
                        str(config_path),
                        "--log-folder",
                        str(tmp_path / "logs"),
                        "--force-run",
                    ]
                )

        assert exc_info.value.code == 1

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("restore_root_logger")
    async def test_missing_config_exits(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            await main(
                [
                    "--config-file",
                    str(tmp_path / "missing.yml"),
                    "--log-folder",
                    str(tmp_path / "logs"),
                ]
            )

        assert exc_info.value.code == 1


def test_run_summary_accepts_every_status() -> None:
    """Test that the summary helper accepts every status without error."""
    reports = [
        RunReport(outcome=create_outcome(status=status, error_message="x"), dispatch=None)
        for status in SyncStatus
    ]

    log_run_summary(reports)
