"""
Logging helpers that attach sync-run context to log records.
"""

import logging
from collections.abc import MutableMapping


class ServerLogAdapter(logging.LoggerAdapter[logging.Logger]):
    """
    Logger adapter that tags every message with a server name and correlation ID.

    The values are also exposed on the record (``record.server`` and
    ``record.correlation_id``) for handlers that forward structured data.
    """

    def __init__(
        self, logger: logging.Logger, server: str, correlation_id: str | None = None
    ) -> None:
        super().__init__(logger, {"server": server, "correlation_id": correlation_id})
        self.server: str = server
        self.correlation_id: str | None = correlation_id

    def process(
        self, msg: object, kwargs: MutableMapping[str, object]
    ) -> tuple[object, MutableMapping[str, object]]:
        extra = kwargs.get("extra")
        merged: dict[str, object] = {
            "server": self.server,
            "correlation_id": self.correlation_id,
        }
        if isinstance(extra, dict):
            merged.update(extra)  # pyright: ignore[reportUnknownArgumentType]
        kwargs["extra"] = merged

        prefix = f"[{self.server}]"
        if self.correlation_id:
            prefix += f" [{self.correlation_id[:8]}]"
        return f"{prefix} {msg}", kwargs


def get_server_logger(
    base_name: str,
    server: str,
    correlation_id: str | None = None,
    level: str | None = None,
) -> ServerLogAdapter:
    """
    Create a log adapter for one server's sync run.

    Args:
        base_name: Parent logger name (usually the calling module's ``__name__``)
        server: Server name, also used as the child logger's name
        correlation_id: Identifier of the current run
        level: Optional per-server log level (e.g. "DEBUG")

    Returns:
        ServerLogAdapter wrapping ``<base_name>.<server>``
    """
    server_logger = logging.getLogger(f"{base_name}.{server}")
    if level:
        server_logger.setLevel(level)
    return ServerLogAdapter(server_logger, server, correlation_id)
