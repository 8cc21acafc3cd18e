"""
Unified message formatting for notification channels.

Every channel receives the same information. The formatter builds one
:class:`FormattedMessage` holding a title, a plain-text body, an HTML body
and a severity; each channel renders that for its own platform.
"""

from dataclasses import dataclass, field
from enum import Enum
from html import escape

from ..sync.types import SyncOutcome, SyncStatus
from .threshold import ThresholdStatus

SUBJECT_PREFIX = "[Actual Budget Sync]"
MAX_ACCOUNT_ERROR_LENGTH = 80


class Severity(Enum):
    """Notification severity, with the colour channels use for it."""

    SUCCESS = 0x28A745
    WARNING = 0xFFC107
    ERROR = 0xDC3545
    INFO = 0x17A2B8

    @property
    def hex_color(self) -> str:
        return f"#{self.value:06x}"


@dataclass(frozen=True)
class FormattedMessage:
    """A channel-independent notification."""

    title: str
    text: str
    html: str
    severity: Severity
    subject: str
    fields: dict[str, str] = field(default_factory=dict)


class MessageFormatter:
    """Builds notifications for sync outcomes and service announcements."""

    @staticmethod
    def format_duration(duration_ms: int) -> str:
        """
        Render a duration the way notifications show it.

        Examples:
            >>> MessageFormatter.format_duration(450)
            '450ms'
            >>> MessageFormatter.format_duration(12345)
            '12.3s'
        """
        if duration_ms >= 1000:
            return f"{duration_ms / 1000:.1f}s"
        return f"{duration_ms}ms"

    @staticmethod
    def truncate(text: str, limit: int = MAX_ACCOUNT_ERROR_LENGTH) -> str:
        if len(text) <= limit:
            return text
        return text[: limit - 3] + "..."

    @classmethod
    def format_sync_notification(
        cls, outcome: SyncOutcome, thresholds: ThresholdStatus | None = None
    ) -> FormattedMessage:
        """
        Format the notification for one sync outcome.

        Args:
            outcome: Finalized sync outcome
            thresholds: Threshold evaluation that allowed a failure alert

        Returns:
            FormattedMessage for all channels
        """
        if outcome.status is SyncStatus.FAILURE:
            emoji, status_text, severity = "❌", "Failed", Severity.ERROR
        elif outcome.accounts_failed > 0:
            emoji, status_text, severity = "⚠️", "Completed with Issues", Severity.WARNING
        else:
            emoji, status_text, severity = "✅", "Successful", Severity.SUCCESS

        title = f"{emoji} Sync {status_text}"
        subject = f"{SUBJECT_PREFIX} {title}: {outcome.server_name}"
        duration = cls.format_duration(outcome.duration_ms)

        fields: dict[str, str] = {
            "Server": outcome.server_name,
            "Duration": duration,
        }

        lines = [title, "", f"Server: {outcome.server_name}", f"Duration: {duration}"]

        if outcome.status is SyncStatus.FAILURE and outcome.accounts_processed == 0:
            error = outcome.error_message or "Unknown error"
            lines.append(f"Error: {error}")
            fields["Error"] = error
            if outcome.error_code:
                lines.append(f"Code: {outcome.error_code}")
                fields["Code"] = outcome.error_code
            if outcome.failed_step:
                lines.append(f"Step: {outcome.failed_step}")
                fields["Step"] = outcome.failed_step
        else:
            result = f"{outcome.accounts_succeeded}/{outcome.accounts_processed} synced"
            if outcome.accounts_failed:
                result += f", {outcome.accounts_failed} failed"
            lines.append(f"Result: {result}")
            fields["Result"] = result

            if outcome.succeeded_accounts:
                lines.extend(["", "✅ Synced:"])
                lines.extend(f"  • {name}" for name in outcome.succeeded_accounts)

            if outcome.failed_accounts:
                lines.extend(["", "❌ Failed:"])
                for failure in outcome.failed_accounts:
                    lines.append(f"  • {failure.name}")
                    if failure.error:
                        lines.append(f"    {cls.truncate(failure.error)}")

            if outcome.status is SyncStatus.FAILURE and outcome.error_message:
                lines.extend(["", f"Error: {outcome.error_message}"])
                fields["Error"] = outcome.error_message

        if thresholds is not None and thresholds.should_notify:
            summary = (
                f"{thresholds.consecutive_count} consecutive failure(s), "
                + f"failure rate {thresholds.failure_rate:.0%}"
            )
            lines.extend(["", f"Alert: {summary}"])
            fields["Alert"] = summary

        lines.append("")
        lines.append(f"Correlation ID: {outcome.correlation_id}")

        text = "\n".join(lines)
        return FormattedMessage(
            title=title,
            text=text,
            html=cls._render_html(title, "\n".join(lines[2:]), severity),
            severity=severity,
            subject=subject,
            fields=fields,
        )

    @classmethod
    def format_announcement(
        cls, title: str, text: str, severity: Severity = Severity.INFO
    ) -> FormattedMessage:
        """Format a free-form announcement such as the startup message."""
        return FormattedMessage(
            title=title,
            text=f"{title}\n\n{text}",
            html=cls._render_html(title, text, severity),
            severity=severity,
            subject=f"{SUBJECT_PREFIX} {title}",
        )

    @staticmethod
    def _render_html(title: str, text: str, severity: Severity) -> str:
        body = "<br>\n".join(escape(line) for line in text.splitlines())
        return (
            "<!DOCTYPE html>\n<html>\n<body style=\"font-family: Arial, sans-serif;\">\n"
            + f'<div style="background: {severity.hex_color}; color: white; padding: 15px;">'
            + f"<h2>{escape(title)}</h2></div>\n"
            + f'<div style="padding: 20px; background: #f8f9fa;">{body}</div>\n'
            + "</body>\n</html>\n"
        )
