"""Slack incoming-webhook channel."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from .base import DEFAULT_TIMEOUT, HttpChannel

if TYPE_CHECKING:
    from ..formatter import FormattedMessage


class SlackWebhookChannel(HttpChannel):
    """Posts notifications to a Slack incoming webhook."""

    def __init__(
        self,
        name: str,
        webhook_url: str,
        username: str = "Actual Budget Sync",
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(name, timeout=timeout, client=client)
        self.webhook_url: str = webhook_url
        self.username: str = username

    def build_payload(self, message: FormattedMessage) -> dict[str, object]:
        """Build the Slack attachment payload for a message."""
        fields = [
            {"title": key, "value": value, "short": len(value) < 40}
            for key, value in message.fields.items()
        ]
        attachment: dict[str, object] = {
            "color": message.severity.hex_color,
            "title": message.title,
            "text": message.text,
            "fallback": message.title,
        }
        if fields:
            attachment["fields"] = fields

        return {
            "username": self.username,
            "text": message.title,
            "attachments": [attachment],
        }

    async def send(self, message: FormattedMessage) -> None:
        _ = await self.post_json(self.webhook_url, self.build_payload(message))
