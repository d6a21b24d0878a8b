"""Telegram Bot API transport."""

from src.core.telegram.client import (
    ChatTransport,
    MessageTooLongError,
    TelegramClient,
    TelegramClientError,
    telegram_client,
)

__all__ = [
    "ChatTransport",
    "MessageTooLongError",
    "TelegramClient",
    "TelegramClientError",
    "telegram_client",
]
