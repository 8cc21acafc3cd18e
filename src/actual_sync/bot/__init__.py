"""Telegram command bot for querying and triggering syncs from a chat."""

from .telegram_commands import TelegramCommandBot

__all__ = ["TelegramCommandBot"]
