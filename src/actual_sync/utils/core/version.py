"""
Version utilities for Actual Sync.

Reads the installed package version, falling back to pyproject.toml when the
package runs from a source checkout.
"""

import logging
import tomllib
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

logger = logging.getLogger(__name__)

DISTRIBUTION_NAME = "actual-sync"
UNKNOWN_VERSION = "unknown"


@lru_cache(maxsize=1)
def get_version() -> str:
    """
    Get the project version.

    Returns:
        Version string (e.g. "1.0.0"), or "unknown" when it cannot be determined
    """
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        logger.debug("Package metadata not found, falling back to pyproject.toml")

    for candidate in (
        Path("pyproject.toml"),
        Path(__file__).resolve().parents[4] / "pyproject.toml",
    ):
        if not candidate.exists():
            continue
        try:
            with open(candidate, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.debug(f"Could not read {candidate}: {e}")
            continue

        project = data.get("project")
        if isinstance(project, dict):
            project_version = project.get("version")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
            if isinstance(project_version, str):
                return project_version

    return UNKNOWN_VERSION
