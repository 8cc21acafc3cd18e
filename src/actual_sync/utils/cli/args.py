"""
Command-line argument parsing for Actual Sync.

This module parses the configuration file and log folder locations and the
one-shot sync options.
"""

import argparse
import sys
from pathlib import Path
from typing import NamedTuple

from ..core.version import get_version


class PathValidationError(Exception):
    """Raised when a path validation fails."""

    pass


class ParsedArgs(NamedTuple):
    """Container for parsed command-line arguments."""

    config_file: Path
    log_folder: Path
    force_run: bool
    server: str | None


class DefaultPaths:
    """Default paths for Actual Sync."""

    CONFIG_FILE: Path = Path("config/config.yml")
    LOG_FOLDER: Path = Path("logs")


def validate_config_file_path(config_file_str: str) -> Path:
    """
    Validate configuration file path.

    Args:
        config_file_str: String path to configuration file

    Returns:
        Resolved Path object for the configuration file

    Raises:
        PathValidationError: If the configuration file path is invalid
    """
    try:
        config_file = Path(config_file_str).expanduser().resolve()
    except (OSError, ValueError) as e:
        raise PathValidationError(f"Invalid config file path: {e}") from e

    if config_file.exists() and config_file.is_dir():
        raise PathValidationError(
            f"Config file path exists but is not a file: {config_file}"
        )

    return config_file


def validate_folder_path(path_str: str, folder_name: str) -> Path:
    """
    Validate and resolve a folder path.

    Args:
        path_str: String representation of the folder path
        folder_name: Name of the folder (for error messages)

    Returns:
        Resolved absolute path to the folder

    Raises:
        PathValidationError: If the path is invalid
    """
    try:
        path = Path(path_str).expanduser().resolve()
    except (OSError, ValueError) as e:
        raise PathValidationError(f"Invalid {folder_name} path: {e}") from e

    if path.exists() and not path.is_dir():
        raise PathValidationError(
            f"{folder_name.capitalize()} path exists but is not a directory: {path}"
        )

    return path


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create the argument parser for Actual Sync.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="actual-sync",
        description="Actual Sync - scheduled bank sync for Actual Budget servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  actual-sync
    Run the scheduler with default paths

  actual-sync --force-run
    Sync every configured server once and exit

  actual-sync --force-run --server Main
    Sync a single server once and exit

  actual-sync --config-file /etc/actual-sync/config.yml --log-folder /var/log/actual-sync
    Use custom config and log locations
""",
    )

    defaults = DefaultPaths()

    _ = parser.add_argument(
        "--config-file",
        type=str,
        default=str(defaults.CONFIG_FILE),
        help="Path to the configuration file (default: %(default)s).",
        metavar="PATH",
    )

    _ = parser.add_argument(
        "--log-folder",
        type=str,
        default=str(defaults.LOG_FOLDER),
        help=(
            "Path to the log folder (default: %(default)s). "
            "The directory will be created if it doesn't exist."
        ),
        metavar="PATH",
    )

    _ = parser.add_argument(
        "--force-run",
        action="store_true",
        help="Sync immediately and exit instead of running the scheduler.",
    )

    _ = parser.add_argument(
        "--server",
        type=str,
        default=None,
        help="With --force-run, sync only the named server.",
        metavar="NAME",
    )

    _ = parser.add_argument(
        "--version", action="version", version=f"%(prog)s {get_version()}"
    )

    return parser


def parse_arguments(args: list[str] | None = None) -> ParsedArgs:
    """
    Parse command-line arguments.

    Args:
        args: List of arguments to parse (defaults to sys.argv[1:])

    Returns:
        ParsedArgs containing validated and resolved paths

    Raises:
        SystemExit: If argument parsing or path validation fails, or --help is requested
    """
    parser = create_argument_parser()
    parsed = parser.parse_args(args)

    config_file_str: str = getattr(parsed, "config_file", "")
    log_folder_str: str = getattr(parsed, "log_folder", "")
    force_run: bool = bool(getattr(parsed, "force_run", False))
    server: str | None = getattr(parsed, "server", None)

    if server is not None and not force_run:
        parser.error("--server can only be used together with --force-run")

    try:
        config_file = validate_config_file_path(config_file_str)
        log_folder = validate_folder_path(log_folder_str, "log folder")
    except PathValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    return ParsedArgs(
        config_file=config_file,
        log_folder=log_folder,
        force_run=force_run,
        server=server,
    )


def get_parsed_args(args: list[str] | None = None) -> ParsedArgs:
    """
    Parse arguments and ensure the log directory exists.

    Raises:
        SystemExit: If argument parsing fails
        OSError: If directory creation fails
    """
    parsed_args = parse_arguments(args)
    parsed_args.log_folder.mkdir(parents=True, exist_ok=True)
    return parsed_args
