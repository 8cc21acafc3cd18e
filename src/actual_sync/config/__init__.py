"""Configuration loading and validation for Actual Sync."""

from .manager import ConfigManager
from .schema import (
    ActualSyncConfig,
    NotifyMode,
    ServerConfig,
    SyncConfig,
    SyncPolicy,
    resolve_sync_policy,
)

__all__ = [
    "ActualSyncConfig",
    "ConfigManager",
    "NotifyMode",
    "ServerConfig",
    "SyncConfig",
    "SyncPolicy",
    "resolve_sync_policy",
]
