from __future__ import annotations

import enum
import logging
from typing import Protocol

from telegram import Bot
from telegram.error import TelegramError

LOGGER = logging.getLogger(__name__)


class SendResult(str, enum.Enum):
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


class MessageTransport(Protocol):
    async def send(self, phone: str, body: str) -> SendResult:
        ...


def normalize_phone(raw: str | None) -> str:
    if raw is None:
        return ""
    return "".join(char for char in raw if char.isdigit())


def render_relay_message(phone: str, body: str) -> str:
    return (
        f"📱 Birthday text for +{phone}\n"
        f"sms:+{phone}\n\n"
        f"{body}\n\n"
        "Tap the link or forward the text from your messaging app."
    )


class TelegramRelayTransport:
    """Hands the final text to the owner's chat, ready to forward to the recipient."""

    def __init__(self, *, bot: Bot, chat_id: int) -> None:
        self._bot = bot
        self._chat_id = chat_id

    async def send(self, phone: str, body: str) -> SendResult:
        if not body.strip():
            return SendResult.CANCELLED

        try:
            await self._bot.send_message(chat_id=self._chat_id, text=render_relay_message(phone, body))
        except TelegramError as exc:
            LOGGER.warning("Relaying birthday text failed: %s", exc)
            return SendResult.FAILED
        return SendResult.SENT
