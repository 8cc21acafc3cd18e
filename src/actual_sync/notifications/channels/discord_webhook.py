"""Discord webhook channel built on discord.py."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiohttp
import discord

from .base import NotificationChannel
from ...utils.core.exceptions import ChannelDeliveryError

if TYPE_CHECKING:
    from ..formatter import FormattedMessage

# Discord embed limits
MAX_DESCRIPTION_LENGTH = 4096
MAX_FIELD_VALUE_LENGTH = 1024
MAX_FIELDS = 25


class DiscordWebhookChannel(NotificationChannel):
    """Posts notifications as embeds to a Discord webhook."""

    def __init__(
        self, name: str, webhook_url: str, username: str = "Actual Budget Sync"
    ) -> None:
        super().__init__(name)
        self.webhook_url: str = webhook_url
        self.username: str = username

    def build_embed(self, message: FormattedMessage) -> discord.Embed:
        """Create the embed for a message."""
        description = message.text
        if len(description) > MAX_DESCRIPTION_LENGTH:
            description = description[: MAX_DESCRIPTION_LENGTH - 3] + "..."

        embed = discord.Embed(
            title=message.title,
            description=description,
            color=discord.Color(message.severity.value),
        )
        for key, value in list(message.fields.items())[:MAX_FIELDS]:
            _ = embed.add_field(
                name=key,
                value=value[:MAX_FIELD_VALUE_LENGTH],
                inline=len(value) < 40,
            )
        _ = embed.set_footer(text="Actual Budget Sync")
        return embed

    async def send(self, message: FormattedMessage) -> None:
        embed = self.build_embed(message)
        try:
            async with aiohttp.ClientSession() as session:
                webhook = discord.Webhook.from_url(self.webhook_url, session=session)
                await webhook.send(embed=embed, username=self.username)
        except ValueError as e:
            # from_url rejects malformed webhook URLs
            raise ChannelDeliveryError(self.name, f"Invalid webhook URL: {e}") from e
        except discord.HTTPException as e:
            raise ChannelDeliveryError(
                self.name, f"Discord API error {e.status}: {e.text}"
            ) from e
        except aiohttp.ClientError as e:
            raise ChannelDeliveryError(self.name, f"Request failed: {e}") from e
