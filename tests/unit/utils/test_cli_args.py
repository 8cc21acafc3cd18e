"""Tests for command-line argument parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.actual_sync.utils.cli.args import (
    DefaultPaths,
    ParsedArgs,
    get_parsed_args,
    parse_arguments,
)


class TestParseArguments:
    """Test cases for parse_arguments."""

    def test_defaults(self) -> None:
        args = parse_arguments([])

        assert isinstance(args, ParsedArgs)
        assert args.config_file == DefaultPaths.CONFIG_FILE.resolve()
        assert args.log_folder == DefaultPaths.LOG_FOLDER.resolve()
        assert args.force_run is False
        assert args.server is None

    def test_custom_paths(self, tmp_path: Path) -> None:
        args = parse_arguments(
            [
                "--config-file",
                str(tmp_path / "config.yml"),
                "--log-folder",
                str(tmp_path / "logs"),
            ]
        )

        assert args.config_file == tmp_path / "config.yml"
        assert args.log_folder == tmp_path / "logs"

    def test_force_run_single_server(self) -> None:
        args = parse_arguments(["--force-run", "--server", "Main"])

        assert args.force_run is True
        assert args.server == "Main"

    def test_server_requires_force_run(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _ = parse_arguments(["--server", "Main"])

        assert exc_info.value.code == 2

    def test_config_file_pointing_at_directory(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _ = parse_arguments(["--config-file", str(tmp_path)])

        assert exc_info.value.code == 1

    def test_log_folder_pointing_at_file(self, tmp_path: Path) -> None:
        not_a_dir = tmp_path / "file.txt"
        _ = not_a_dir.write_text("x")

        with pytest.raises(SystemExit) as exc_info:
            _ = parse_arguments(["--log-folder", str(not_a_dir)])

        assert exc_info.value.code == 1

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _ = parse_arguments(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("actual-sync ")


class TestGetParsedArgs:
    def test_creates_log_folder(self, tmp_path: Path) -> None:
        log_folder = tmp_path / "nested" / "logs"

        args = get_parsed_args(["--log-folder", str(log_folder)])

        assert args.log_folder.is_dir()
