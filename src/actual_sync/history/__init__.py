"""Persistent sync history."""

from .store import HistoryRecord, HistoryStatistics, SyncHistoryStore

__all__ = ["HistoryRecord", "HistoryStatistics", "SyncHistoryStore"]
