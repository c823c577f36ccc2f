import asyncio
from typing import Any, Callable, Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramRetryAfter

from .events import VerdictReport
from .formatter import MessageFormatter
from ..utils.logger import get_logger


def html_bot(token: str) -> Bot:
    return Bot(token=token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))


class TelegramNotifier:
    """Sends the probe verdict to a Telegram chat once the run is over."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        topic_id: Optional[int] = None,
        locale: str = "en",
        enabled: bool = True,
        notify_success: bool = True,
        notify_failure: bool = True,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        bot_factory: Callable[[str], Any] = html_bot,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.logger = get_logger(__name__)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.topic_id = topic_id
        self.enabled = bool(enabled and bot_token and chat_id)
        self.notify_success = notify_success
        self.notify_failure = notify_failure
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.bot_factory = bot_factory
        self.sleep = sleep
        self.formatter = MessageFormatter(locale=locale)

        if self.enabled:
            topic_info = f", topic_id={topic_id}" if topic_id else ""
            self.logger.info(f"TelegramNotifier enabled with locale={self.formatter.locale}{topic_info}")
        else:
            self.logger.info("TelegramNotifier is disabled")

    def wants(self, report: VerdictReport) -> bool:
        if not self.enabled:
            return False
        return self.notify_success if report.healthy else self.notify_failure

    async def send_verdict(self, report: VerdictReport) -> bool:
        """Deliver the verdict message. Returns False when skipped or undeliverable."""
        if not self.wants(report):
            return False

        text = self.formatter.format_verdict(report)
        bot = self.bot_factory(self.bot_token)
        try:
            for attempt in range(1, self.retry_attempts + 1):
                try:
                    await bot.send_message(chat_id=self.chat_id, text=text, message_thread_id=self.topic_id)
                    self.logger.info("Verdict sent to Telegram")
                    return True
                except TelegramRetryAfter as e:
                    delay = float(e.retry_after)
                    self.logger.warning(f"Telegram rate limit hit, waiting {delay}s")
                except TelegramAPIError as e:
                    delay = min(self.retry_delay * attempt, 30.0)
                    self.logger.warning(f"Telegram API error (attempt {attempt}/{self.retry_attempts}): {e}")

                if attempt < self.retry_attempts:
                    await self.sleep(delay)

            self.logger.error(f"Giving up on Telegram verdict after {self.retry_attempts} attempts")
            return False
        finally:
            await bot.session.close()
