"""
Global test configuration fixtures for Actual Sync tests.

This module provides reusable pytest fixtures for configuration objects,
deterministic clocks and in-memory sinks. All fixtures return properly typed
and validated objects.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from src.actual_sync.config.schema import ActualSyncConfig, ServerConfig
from src.actual_sync.history import SyncHistoryStore
from src.actual_sync.utils.time import ManualClock
from tests.utils.test_helpers import create_server_config, create_test_config


@pytest.fixture
def manual_clock() -> ManualClock:
    """A monotonic clock that only moves when advanced."""
    return ManualClock(start=1_000.0)


@pytest.fixture
def server_config(tmp_path: Path) -> ServerConfig:
    """A single server whose data directory lives in the test's temp dir."""
    return create_server_config("Main", data_dir=tmp_path / "main")


@pytest.fixture
def minimal_config(tmp_path: Path) -> ActualSyncConfig:
    """
    Create a minimal valid configuration.

    One server, default sync policy, no notification channels and both
    history and metrics disabled.

    Returns:
        ActualSyncConfig: Minimal configuration
    """
    return create_test_config(
        servers=[
            {
                "name": "Main",
                "url": "https://budget.example.com",
                "password": "correct-horse-battery",
                "sync_id": "sync-main",
                "data_dir": str(tmp_path / "main"),
            }
        ],
        history={"enabled": False},
        metrics={"enabled": False},
    )


@pytest.fixture
def multi_server_config(tmp_path: Path) -> ActualSyncConfig:
    """
    Create a configuration with three servers and two distinct schedules.

    ``Main`` and ``Family`` share the global schedule, ``Business`` overrides
    it together with its retry policy.
    """
    return create_test_config(
        servers=[
            {
                "name": "Main",
                "url": "https://main.example.com",
                "password": "correct-horse-battery",
                "sync_id": "sync-main",
                "data_dir": str(tmp_path / "main"),
            },
            {
                "name": "Business",
                "url": "https://business.example.com",
                "password": "correct-horse-battery",
                "sync_id": "sync-business",
                "data_dir": str(tmp_path / "business"),
                "sync": {
                    "schedule": "0 6 * * 1-5",
                    "max_retries": 0,
                    "base_retry_delay_ms": 1000,
                },
            },
            {
                "name": "Family",
                "url": "https://family.example.com",
                "password": "correct-horse-battery",
                "sync_id": "sync-family",
                "data_dir": str(tmp_path / "family"),
            },
        ],
        sync={"schedule": "0 3 * * *", "max_retries": 2, "base_retry_delay_ms": 1000},
        history={"enabled": False},
        metrics={"enabled": False},
    )


@pytest.fixture
def history_store() -> Generator[SyncHistoryStore, None, None]:
    """An in-memory history store, closed after the test."""
    store = SyncHistoryStore(":memory:")
    yield store
    store.close()
