"""Configuration manager for Actual Sync.

This module provides functionality for loading and validating YAML
configuration files with Pydantic model validation. Configuration is
immutable for the lifetime of the process.
"""

import logging
import threading
from pathlib import Path

import yaml
from pydantic import ValidationError

from .schema import ActualSyncConfig, ServerConfig


logger = logging.getLogger(__name__)

_EXAMPLE_PASSWORDS = frozenset({"hunter2", "password", "your_password_here"})
_LOCAL_HOSTS = ("localhost", "127.0.0.1", "[::1]")


class ConfigManager:
    """
    Configuration manager for handling YAML config files with Pydantic validation.

    Holds the configuration the process was started with and provides
    lookups by server name.
    """

    def __init__(self) -> None:
        """Initialize the configuration manager."""
        self._current_config: ActualSyncConfig | None = None
        self._config_lock: threading.RLock = threading.RLock()
        self._config_file_path: Path | None = None

    @staticmethod
    def load_config(config_path: Path) -> ActualSyncConfig:
        """
        Load and validate configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            ActualSyncConfig: Validated configuration object

        Raises:
            FileNotFoundError: If the config file doesn't exist
            yaml.YAMLError: If the YAML syntax is invalid
            ValueError: If the document is not a mapping
            ValidationError: If the configuration fails Pydantic validation
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as f:
                raw_config_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if raw_config_data is None:
            config_data: dict[str, object] = {}
        elif isinstance(raw_config_data, dict):
            config_data = raw_config_data  # pyright: ignore[reportUnknownVariableType]
        else:
            raise ValueError(
                f"Configuration file must contain a YAML dictionary, got {type(raw_config_data).__name__}"
            )

        try:
            config = ActualSyncConfig.model_validate(config_data)
        except ValidationError as e:
            logger.error(f"Configuration validation failed for {config_path}")
            raise e

        for warning in ConfigManager.security_warnings(config):
            logger.warning(warning)

        return config

    @staticmethod
    def security_warnings(config: ActualSyncConfig) -> list[str]:
        """
        Collect non-fatal security warnings for a configuration.

        Args:
            config: Validated configuration

        Returns:
            Human-readable warnings, one per finding
        """
        warnings: list[str] = []
        for server in config.servers:
            if server.url.startswith("http://") and not any(
                host in server.url for host in _LOCAL_HOSTS
            ):
                warnings.append(
                    f'Server "{server.name}" uses unencrypted HTTP connection: {server.url}'
                )
            if len(server.password) < 8:
                warnings.append(
                    f'Server "{server.name}" has a weak password (< 8 characters)'
                )
            if server.password in _EXAMPLE_PASSWORDS:
                warnings.append(
                    f'Server "{server.name}" appears to use a default/example password'
                )
        return warnings

    def set_current_config(self, config: ActualSyncConfig) -> None:
        """
        Set the current configuration.

        Args:
            config: Configuration object to set as current
        """
        with self._config_lock:
            self._current_config = config

    def get_current_config(self) -> ActualSyncConfig:
        """
        Get the current configuration.

        Returns:
            ActualSyncConfig: The current configuration

        Raises:
            RuntimeError: If no configuration has been set
        """
        with self._config_lock:
            if self._current_config is None:
                raise RuntimeError(
                    "No configuration has been set. Call set_current_config() first."
                )
            return self._current_config

    def get_server(self, name: str) -> ServerConfig | None:
        """Get a server configuration by name, or None if it isn't configured."""
        for server in self.get_current_config().servers:
            if server.name == name:
                return server
        return None

    def get_server_names(self) -> list[str]:
        """Get the configured server names in configuration order."""
        return [server.name for server in self.get_current_config().servers]

    @property
    def config_file_path(self) -> Path | None:
        """Path the current configuration was loaded from, if any."""
        return self._config_file_path

    @config_file_path.setter
    def config_file_path(self, path: Path | None) -> None:
        self._config_file_path = path
