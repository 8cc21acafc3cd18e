"""Prometheus metrics exposition."""

from .prometheus import SyncMetrics

__all__ = ["SyncMetrics"]
