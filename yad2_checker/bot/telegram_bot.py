import logging
from abc import ABC, abstractmethod
from typing import Union

from telegram import Bot, LinkPreviewOptions
from telegram.error import BadRequest, TelegramError

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def deliver(self, subscriber_id: str, text: str) -> bool:
        """Send text to one subscriber; True on success. Never raises."""


def chat_id_of(subscriber_id: str) -> Union[int, str]:
    # numeric ids are users/groups, "@name" is a public channel
    try:
        return int(subscriber_id)
    except ValueError:
        return subscriber_id


class TelegramNotifier(Notifier):
    def __init__(self, bot: Bot):
        self.bot = bot

    async def deliver(self, subscriber_id: str, text: str) -> bool:
        try:
            await self.bot.send_message(
                chat_id=chat_id_of(subscriber_id),
                text=text,
                parse_mode="HTML",
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except BadRequest as e:
            # chat not found, bot blocked, broken markup: retrying won't help
            logger.warning("Send rejected for %s: %s", subscriber_id, e)
            return False
        except TelegramError as e:
            logger.warning("Send failed to %s: %s", subscriber_id, e)
            return False
        return True
