"""Shared test utilities for Actual Sync tests."""
