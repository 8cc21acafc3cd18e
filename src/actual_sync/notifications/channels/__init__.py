"""
Notification channels and their construction from configuration.

Misconfigured channels are logged and skipped rather than raised, so one bad
entry never keeps the remaining channels from being used.
"""

import logging

import httpx

from .base import HttpChannel, NotificationChannel
from .discord_webhook import DiscordWebhookChannel
from .email import EmailChannel
from .slack import SlackWebhookChannel
from .telegram import TelegramChannel
from ..preferences import NotificationPreferences
from ...config.schema import NotificationsConfig

logger = logging.getLogger(__name__)


def build_channels(
    config: NotificationsConfig,
    http_client: httpx.AsyncClient | None = None,
    telegram_preferences: NotificationPreferences | None = None,
) -> list[NotificationChannel]:
    """
    Create the enabled notification channels.

    Args:
        config: Notifications configuration
        http_client: Optional shared client for the HTTP-based channels
        telegram_preferences: Notification mode shared with the Telegram command
            bot (the configured mode, not persisted, when omitted)

    Returns:
        Channels in configuration order (email, Slack, Discord, Telegram)
    """
    channels: list[NotificationChannel] = []

    email = config.email
    if email.enabled:
        if not email.to or not email.from_address:
            logger.error("Email notifications enabled but 'from_address' or 'to' is empty, skipping")
        else:
            channels.append(
                EmailChannel(
                    name="email",
                    host=email.host,
                    port=email.port,
                    from_address=email.from_address,
                    recipients=email.to,
                    username=email.username,
                    password=email.password,
                    secure=email.secure,
                )
            )

    for webhook in config.slack:
        if webhook.enabled:
            channels.append(
                SlackWebhookChannel(
                    name=f"slack:{webhook.name}", webhook_url=webhook.url, client=http_client
                )
            )

    for webhook in config.discord:
        if webhook.enabled:
            channels.append(
                DiscordWebhookChannel(name=f"discord:{webhook.name}", webhook_url=webhook.url)
            )

    telegram = config.telegram
    if telegram.enabled:
        if not telegram.bot_token or not telegram.chat_id:
            logger.error("Telegram notifications enabled but bot token or chat ID is empty, skipping")
        else:
            channels.append(
                TelegramChannel(
                    name="telegram",
                    bot_token=telegram.bot_token,
                    chat_id=telegram.chat_id,
                    client=http_client,
                    preferences=telegram_preferences
                    or NotificationPreferences(telegram.notify_mode),
                )
            )

    logger.info(
        f"Configured {len(channels)} notification channel(s)"
        + (f": {', '.join(c.name for c in channels)}" if channels else "")
    )
    return channels


__all__ = [
    "DiscordWebhookChannel",
    "EmailChannel",
    "HttpChannel",
    "NotificationChannel",
    "SlackWebhookChannel",
    "TelegramChannel",
    "build_channels",
]
