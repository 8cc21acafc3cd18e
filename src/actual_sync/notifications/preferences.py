"""
Notification preferences chosen from the Telegram chat.

The mode set with ``/notify`` decides which sync notifications the Telegram
channel receives. It is saved to a small JSON file so that it survives
restarts; the value from the configuration file is only the initial default.
"""

import json
import logging
import tempfile
from pathlib import Path

from .formatter import FormattedMessage, Severity
from ..config.schema import NotifyMode
from ..utils.time import get_system_now

logger = logging.getLogger(__name__)

# Severities of sync notifications each mode lets through; announcements always pass
_ALLOWED_SEVERITIES: dict[NotifyMode, frozenset[Severity]] = {
    NotifyMode.ALWAYS: frozenset({Severity.SUCCESS, Severity.WARNING, Severity.ERROR}),
    NotifyMode.ERRORS_ONLY: frozenset({Severity.WARNING, Severity.ERROR}),
    NotifyMode.NEVER: frozenset(),
}


def mode_allows(mode: NotifyMode, message: FormattedMessage) -> bool:
    """
    Whether a message should be delivered under ``mode``.

    Partial runs (warning severity) count as errors; service announcements
    (info severity) are delivered in every mode.
    """
    if message.severity is Severity.INFO:
        return True
    return message.severity in _ALLOWED_SEVERITIES[mode]


class NotificationPreferences:
    """Holds the Telegram notification mode and persists changes to it."""

    def __init__(
        self, default_mode: NotifyMode = NotifyMode.ALWAYS, path: Path | None = None
    ) -> None:
        """
        Initialize preferences.

        Args:
            default_mode: Mode used when nothing has been saved yet
            path: JSON file the mode is saved to (not persisted when None)
        """
        self.path: Path | None = path
        self.mode: NotifyMode = default_mode

    @classmethod
    def load(cls, default_mode: NotifyMode, path: Path | None) -> "NotificationPreferences":
        """
        Create preferences, applying a previously saved mode if there is one.

        A missing or unreadable file leaves the default mode in place.
        """
        preferences = cls(default_mode, path)
        if path is None or not path.exists():
            return preferences

        try:
            with path.open("r", encoding="utf-8") as f:
                data: object = json.load(f)
            if isinstance(data, dict) and "notify_mode" in data:
                preferences.mode = NotifyMode(data["notify_mode"])  # pyright: ignore[reportUnknownArgumentType]
                logger.info(f"Loaded notification preferences (mode={preferences.mode.value})")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load notification preferences from {path}: {e}")
        return preferences

    def allows(self, message: FormattedMessage) -> bool:
        return mode_allows(self.mode, message)

    def set_mode(self, mode: NotifyMode) -> None:
        """
        Change the mode and save it.

        Raises:
            OSError: If the preferences file could not be written
        """
        self.mode = mode
        logger.info(f"Notification mode changed to {mode.value}")
        if self.path is not None:
            self.save()

    def save(self) -> None:
        """Write the preferences file atomically through a temporary file."""
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "notify_mode": self.mode.value,
            "last_updated": get_system_now().isoformat(),
        }

        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as temp_file:
                temp_path = Path(temp_file.name)
                json.dump(data, temp_file, indent=2)
                temp_file.flush()

            _ = temp_path.replace(self.path)
            logger.debug(f"Notification preferences saved to {self.path}")
        except OSError:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise
