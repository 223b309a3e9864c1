"""Telegram Bot API client and update model."""

from .client import BotApi, TelegramClient
from .types import ALLOWED_UPDATES, Update, UpdateKind, decode_update

__all__ = [
    "ALLOWED_UPDATES",
    "BotApi",
    "TelegramClient",
    "Update",
    "UpdateKind",
    "decode_update",
]
