"""Telegram bot channel."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from .base import DEFAULT_TIMEOUT, HttpChannel
from ..preferences import NotificationPreferences
from ...utils.core.exceptions import ChannelDeliveryError

if TYPE_CHECKING:
    from ..formatter import FormattedMessage

TELEGRAM_API_URL = "https://api.telegram.org"
# Telegram rejects messages longer than this
MAX_MESSAGE_LENGTH = 4096


class TelegramChannel(HttpChannel):
    """Sends notifications through the Telegram Bot API."""

    def __init__(
        self,
        name: str,
        bot_token: str,
        chat_id: str,
        api_url: str = TELEGRAM_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        preferences: NotificationPreferences | None = None,
    ) -> None:
        super().__init__(name, timeout=timeout, client=client)
        self.bot_token: str = bot_token
        self.chat_id: str = chat_id
        self.api_url: str = api_url.rstrip("/")
        self.preferences: NotificationPreferences = preferences or NotificationPreferences()

    def accepts(self, message: FormattedMessage) -> bool:
        return self.preferences.allows(message)

    @property
    def send_message_url(self) -> str:
        return f"{self.api_url}/bot{self.bot_token}/sendMessage"

    async def send(self, message: FormattedMessage) -> None:
        text = message.text
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[: MAX_MESSAGE_LENGTH - 3] + "..."

        response = await self.post_json(
            self.send_message_url,
            {
                "chat_id": self.chat_id,
                "text": text,
                "disable_web_page_preview": True,
            },
        )

        try:
            body: object = response.json()
        except ValueError:
            return
        if isinstance(body, dict) and body.get("ok") is False:  # pyright: ignore[reportUnknownMemberType]
            description = str(body.get("description", "unknown error"))  # pyright: ignore[reportUnknownMemberType, reportUnknownArgumentType]
            raise ChannelDeliveryError(self.name, f"Telegram API error: {description}")
