"""Shared utilities for Actual Sync."""
