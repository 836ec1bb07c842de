"""Telegram notifier: delivers messages through a Telegram bot.

Uses python-telegram-bot 21.x with async/await. Only outbound messages
are needed, so a bare ``telegram.Bot`` is used instead of a polling
``Application``.

Configuration: STEPCAST_TELEGRAM_BOT_TOKEN and STEPCAST_TELEGRAM_CHANNEL_ID
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import InvalidToken, TelegramError

from stepcast.channels.base import Notifier
from stepcast.core.errors import ConfigError, DispatchError
from stepcast.models import SendResult

logger = logging.getLogger(__name__)

# Maximum Telegram message length
MAX_MESSAGE_LENGTH = 4096


class TelegramNotifier(Notifier):
    """Sends text messages to a Telegram chat or channel.

    Attributes:
        token: Bot API token.
        parse_mode: Telegram parse mode applied to every message.
    """

    def __init__(self, token: str, parse_mode: str | None = "Markdown") -> None:
        self.token = token
        self.parse_mode = parse_mode or None
        self._bot: Bot | None = None

    @property
    def name(self) -> str:
        return "telegram"

    async def start(self) -> None:
        """Initialises the bot (fetches its identity once).

        Raises:
            ConfigError: If Telegram rejects the token.
        """
        if self._bot is not None:
            return
        try:
            bot = Bot(self.token)
            await bot.initialize()
        except InvalidToken as exc:
            raise ConfigError(
                "Telegram rejected the bot token",
                error_code="CONFIG_INVALID_TOKEN",
            ) from exc
        except TelegramError as exc:
            # Unreachable API at startup is not fatal; sends retry on their own.
            logger.warning("Telegram bot initialisation failed: %s", exc)
        else:
            logger.info("Telegram bot initialised: @%s", bot.username)
        self._bot = bot

    async def stop(self) -> None:
        """Shuts the bot down."""
        if self._bot is None:
            return
        try:
            await self._bot.shutdown()
        except TelegramError:
            logger.exception("Error while shutting down the Telegram bot")
        self._bot = None
        logger.info("Telegram bot stopped")

    async def send(self, destination: str, text: str) -> SendResult:
        """Sends ``text`` to ``destination``, split into 4096-char chunks."""
        try:
            bot = self._require_bot()
            for chunk in _split_message(text):
                await bot.send_message(
                    chat_id=destination,
                    text=chunk,
                    parse_mode=self.parse_mode,
                )
        except (TelegramError, DispatchError) as exc:
            logger.warning("Telegram send to %s failed: %s", destination, exc)
            return SendResult.failure(str(exc))
        return SendResult.success()

    def _require_bot(self) -> Bot:
        if self._bot is None:
            raise DispatchError(
                "Telegram bot not started",
                error_code="NOTIFIER_NOT_STARTED",
            )
        return self._bot


def _split_message(text: str) -> list[str]:
    """Splits long messages into Telegram-compatible chunks.

    Tries to split at newlines, then at spaces.

    Args:
        text: The text to split.

    Returns:
        List of text chunks (each <= MAX_MESSAGE_LENGTH).
    """
    if len(text) <= MAX_MESSAGE_LENGTH:
        return [text]

    chunks: list[str] = []
    remaining = text

    while remaining:
        if len(remaining) <= MAX_MESSAGE_LENGTH:
            chunks.append(remaining)
            break

        split_pos = remaining.rfind("\n", 0, MAX_MESSAGE_LENGTH)
        if split_pos == -1:
            split_pos = remaining.rfind(" ", 0, MAX_MESSAGE_LENGTH)
        if split_pos == -1:
            split_pos = MAX_MESSAGE_LENGTH

        chunks.append(remaining[:split_pos])
        remaining = remaining[split_pos:].lstrip("\n ")

    return chunks
