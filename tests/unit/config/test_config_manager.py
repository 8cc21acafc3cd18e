"""Tests for loading configuration files with ConfigManager."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from src.actual_sync.config.manager import ConfigManager
from tests.utils.test_helpers import create_test_config

VALID_CONFIG = """
servers:
  - name: Main
    url: https://budget.example.com/
    password: correct-horse-battery
    sync_id: 1cfdbb80-6274-49bf-b0c2-737235a4c81f
    data_dir: /tmp/actual-sync-tests/main
  - name: Family
    url: https://family.example.com
    password: correct-horse-battery
    sync_id: 4ff2ce2b-2e63-4b0e-9f6b-0c3e0c4c3ad1
    data_dir: /tmp/actual-sync-tests/family
    sync:
      schedule: "0 6 * * *"
sync:
  max_retries: 3
  schedule: "0 3 * * *"
"""


def write_config(tmp_path: Path, content: str) -> Path:
    config_path = tmp_path / "config.yml"
    _ = config_path.write_text(content, encoding="utf-8")
    return config_path


class TestLoadConfig:
    """Test cases for ConfigManager.load_config."""

    def test_load_valid_config(self, tmp_path: Path) -> None:
        config = ConfigManager.load_config(write_config(tmp_path, VALID_CONFIG))

        assert [s.name for s in config.servers] == ["Main", "Family"]
        assert config.servers[0].url == "https://budget.example.com"
        assert config.sync.max_retries == 3
        assert config.servers[1].sync is not None
        assert config.servers[1].sync.schedule == "0 6 * * *"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            _ = ConfigManager.load_config(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(yaml.YAMLError, match="Invalid YAML syntax"):
            _ = ConfigManager.load_config(write_config(tmp_path, "servers: [unclosed"))

    def test_document_must_be_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="must contain a YAML dictionary"):
            _ = ConfigManager.load_config(write_config(tmp_path, "- a\n- b\n"))

    def test_empty_file_fails_validation(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            _ = ConfigManager.load_config(write_config(tmp_path, ""))

    def test_security_warnings_are_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        content = VALID_CONFIG.replace("https://family.example.com", "http://family.example.com")

        with caplog.at_level(logging.WARNING):
            _ = ConfigManager.load_config(write_config(tmp_path, content))

        assert "unencrypted HTTP connection" in caplog.text


class TestSecurityWarnings:
    """Test cases for non-fatal security findings."""

    def test_clean_config_has_no_warnings(self) -> None:
        assert ConfigManager.security_warnings(create_test_config()) == []

    def test_findings(self) -> None:
        config = create_test_config(
            servers=[
                {
                    "name": "Main",
                    "url": "http://budget.example.com",
                    "password": "hunter2",
                    "sync_id": "abc",
                    "data_dir": "/tmp/main",
                }
            ]
        )

        warnings = ConfigManager.security_warnings(config)

        assert len(warnings) == 3
        assert any("unencrypted HTTP" in w for w in warnings)
        assert any("weak password" in w for w in warnings)
        assert any("default/example password" in w for w in warnings)

    def test_local_http_is_fine(self) -> None:
        config = create_test_config(
            servers=[
                {
                    "name": "Main",
                    "url": "http://localhost:5006",
                    "password": "correct-horse-battery",
                    "sync_id": "abc",
                    "data_dir": "/tmp/main",
                }
            ]
        )

        assert ConfigManager.security_warnings(config) == []


class TestCurrentConfig:
    """Test cases for the held configuration."""

    def test_get_before_set(self) -> None:
        with pytest.raises(RuntimeError, match="No configuration has been set"):
            _ = ConfigManager().get_current_config()

    def test_set_and_lookup(self, tmp_path: Path) -> None:
        manager = ConfigManager()
        config_path = write_config(tmp_path, VALID_CONFIG)
        manager.set_current_config(manager.load_config(config_path))
        manager.config_file_path = config_path

        assert manager.get_server_names() == ["Main", "Family"]
        family = manager.get_server("Family")
        assert family is not None
        assert family.url == "https://family.example.com"
        assert manager.get_server("Nope") is None
        assert manager.config_file_path == config_path
