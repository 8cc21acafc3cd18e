"""
Main entry point for Actual Sync.

This module sets up logging, loads configuration, builds the coordinator and
either runs a one-off sync (``--force-run``) or keeps the scheduler running
until SIGINT/SIGTERM, with graceful shutdown in both cases.
"""

import asyncio
import logging
import logging.handlers
import signal
import sys
from datetime import datetime
from pathlib import Path

from .config.manager import ConfigManager
from .config.schema import ActualSyncConfig
from .coordinator import Coordinator, RunReport
from .events import EventBus, EventBusLogHandler
from .sync.client import BudgetClientFactory
from .utils.cli.args import get_parsed_args
from .utils.core.version import get_version

LOG_FILE = "actual-sync.log"
ERROR_LOG_FILE = "actual-sync-errors.log"


def rotate_logs_on_startup(logs_dir: Path) -> None:
    """
    Rotate existing log files on startup with timestamp-based naming.

    Args:
        logs_dir: Directory containing log files
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    for log_file in (LOG_FILE, ERROR_LOG_FILE):
        log_path = logs_dir / log_file
        if log_path.exists():
            backup_path = logs_dir / f"{log_file}.{timestamp}"
            try:
                _ = log_path.rename(backup_path)
                print(f"Rotated {log_file} to {backup_path.name}")
            except OSError as e:
                print(f"Warning: Failed to rotate {log_file}: {e}")


def cleanup_old_logs(logs_dir: Path, max_files: int = 10) -> None:
    """
    Clean up old timestamped log files, keeping only the most recent ones.

    Args:
        logs_dir: Directory containing log files
        max_files: Maximum number of timestamped log files to keep per type
    """
    for log_type in (LOG_FILE, ERROR_LOG_FILE):
        timestamped_files = [
            path for path in logs_dir.glob(f"{log_type}.*") if path.name != log_type
        ]
        timestamped_files.sort(key=lambda x: x.stat().st_mtime, reverse=True)

        for file_path in timestamped_files[max_files:]:
            try:
                file_path.unlink()
                print(f"Cleaned up old log file: {file_path.name}")
            except OSError as e:
                print(f"Warning: Failed to remove {file_path.name}: {e}")


def setup_logging(
    logs_dir: Path, console_level: str = "INFO", event_bus: EventBus | None = None
) -> None:
    """
    Configure logging with rotation and multiple handlers.

    Args:
        logs_dir: Directory for the log files
        console_level: Level of the console handler
        event_bus: When given, log records are also published as events
    """
    logs_dir.mkdir(exist_ok=True, parents=True)

    rotate_logs_on_startup(logs_dir)
    cleanup_old_logs(logs_dir, max_files=10)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
    )
    simple_formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    # File handler with rotation (5MB max, keep 5 backups)
    file_handler = logging.handlers.RotatingFileHandler(
        logs_dir / LOG_FILE,
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(detailed_formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(simple_formatter)

    error_handler = logging.handlers.RotatingFileHandler(
        logs_dir / ERROR_LOG_FILE,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    if event_bus is not None:
        root_logger.addHandler(EventBusLogHandler(event_bus))

    # Set specific log levels for noisy libraries
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("actual").setLevel(logging.WARNING)


def set_console_level(level: str) -> None:
    """Apply the configured log level to the console handler."""
    for handler in logging.getLogger().handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(level)


logger = logging.getLogger(__name__)


def create_client_factory() -> BudgetClientFactory:
    """
    Factory for the Actual Budget client.

    Raises:
        SystemExit: If the ``actual`` extra is not installed
    """
    try:
        from .sync.actual_client import ActualBudgetClient
    except ImportError as e:
        logger.error(f"The Actual Budget client library is not installed: {e}")
        logger.error("Install it with: pip install 'actual-sync[actual]'")
        sys.exit(1)
    return ActualBudgetClient


def setup_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """
    Setup signal handlers for graceful shutdown.

    SIGTERM and SIGINT set the shutdown event, which stops the scheduler and
    abandons pending retry delays.
    """
    loop = asyncio.get_running_loop()

    def signal_handler(signum: int, _frame: object) -> None:
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name} signal, initiating graceful shutdown...")
        _ = loop.call_soon_threadsafe(shutdown_event.set)

    _ = signal.signal(signal.SIGTERM, signal_handler)
    _ = signal.signal(signal.SIGINT, signal_handler)

    logger.debug("Signal handlers registered for graceful shutdown")


def load_configuration(config_manager: ConfigManager, config_path: Path) -> ActualSyncConfig:
    """
    Load and validate the configuration file.

    Raises:
        SystemExit: If the file is missing or invalid
    """
    if not config_path.exists():
        logger.error(f"Configuration file '{config_path}' not found")
        logger.error("Please copy 'config.example.yml' to that location and configure it")
        sys.exit(1)

    try:
        config = config_manager.load_config(config_path)
    except Exception as e:
        logger.exception(f"Failed to load configuration: {e}")
        logger.error("Please check your configuration file for errors")
        sys.exit(1)

    config_manager.set_current_config(config)
    config_manager.config_file_path = config_path
    logger.info(f"Configuration loaded and validated successfully ({len(config.servers)} server(s))")
    return config


def log_run_summary(reports: list[RunReport]) -> None:
    for report in reports:
        outcome = report.outcome
        line = (
            f"{outcome.server_name}: {outcome.status.value} in {outcome.duration_seconds:.1f}s "
            + f"({outcome.accounts_succeeded} succeeded, {outcome.accounts_failed} failed)"
        )
        if outcome.error_message:
            line += f" - {outcome.error_message}"
        logger.info(line)


async def force_run(coordinator: Coordinator, server: str | None) -> int:
    """
    Sync once and report the result.

    Returns:
        Process exit code: 0 when no run failed, 1 otherwise
    """
    if server is not None:
        known = [s.name for s in coordinator.config.servers]
        if server not in known:
            logger.error(f'Server "{server}" not found. Available servers: {", ".join(known)}')
            return 1
        logger.info(f"Force run requested for server {server}")
        reports = [await coordinator.run_server(server, trigger="manual")]
    else:
        logger.info("Force run requested for all servers")
        reports = await coordinator.run_all(trigger="manual")

    log_run_summary(reports)
    return 1 if any(r.outcome.is_failure for r in reports) else 0


async def run_service(coordinator: Coordinator) -> None:
    """Run the scheduler until the shutdown event is set."""
    await coordinator.start()
    logger.info("Actual Sync is running, waiting for scheduled syncs")
    _ = await coordinator.shutdown_event.wait()


async def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the Actual Sync application.

    This function sets up logging, loads configuration, creates the
    coordinator, sets up signal handlers, and runs with comprehensive error
    handling.
    """
    parsed_args = get_parsed_args(argv)

    event_bus = EventBus()
    setup_logging(parsed_args.log_folder, event_bus=event_bus)
    logger.info(f"Actual Sync {get_version()} starting up...")

    config_manager = ConfigManager()
    coordinator: Coordinator | None = None
    exit_code = 0

    try:
        config = load_configuration(config_manager, parsed_args.config_file)
        set_console_level(config.logging.level)

        try:
            coordinator = Coordinator.from_config(
                config, create_client_factory(), event_bus=event_bus
            )
        except SystemExit:
            raise
        except Exception as e:
            logger.exception(f"Failed to initialize: {e}")
            sys.exit(1)

        setup_signal_handlers(coordinator.shutdown_event)

        if parsed_args.force_run:
            exit_code = await force_run(coordinator, parsed_args.server)
        else:
            await run_service(coordinator)

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except SystemExit:
        # Re-raise SystemExit to preserve exit codes
        raise
    except Exception as e:
        logger.exception(f"Fatal error in main: {e}")
        exit_code = 1
    finally:
        if coordinator is not None:
            try:
                await coordinator.stop()
            except Exception as e:
                logger.exception(f"Error during shutdown: {e}")

        logger.info("Actual Sync shutdown complete")

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
