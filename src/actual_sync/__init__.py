"""
Actual Sync - scheduled bank sync for Actual Budget servers.
"""

import asyncio
import logging
import sys

from .main import main as async_main


def main() -> None:
    """Synchronous entry point that runs the async main function."""
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        logger = logging.getLogger(__name__)
        logger.info("Actual Sync stopped by user")
    except Exception as e:
        logger = logging.getLogger(__name__)
        logger.exception(f"Failed to start Actual Sync: {e}")
        print(f"Failed to start Actual Sync: {e}", file=sys.stderr)
        sys.exit(1)


__all__ = ["main"]
