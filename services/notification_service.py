"""
services/notification_service.py
---------------------------------
Best-effort delivery of chat messages to users other than the one who
sent the current update (receipts, rewards, admin alerts).
A failed delivery is logged and never undoes the action that caused it.
"""

from typing import Optional

from telegram.error import Forbidden, TelegramError

from config import ADMIN_IDS
from repositories.user_repo import UserRepository
from utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Sends messages through the bot and swallows delivery errors."""

    def __init__(self, user_repo: Optional[UserRepository] = None):
        self.user_repo = user_repo or UserRepository()

    async def send(self, bot, chat_id: int, text: str, **kwargs) -> bool:
        """
        Send one message.

        Returns:
            True if Telegram accepted it, False otherwise.
        """
        try:
            await bot.send_message(chat_id=chat_id, text=text, **kwargs)
            return True
        except Forbidden:
            logger.warning(f"User {chat_id} blocked the bot or never started it.")
        except TelegramError as e:
            logger.error(f"Failed to send message to {chat_id}: {e}")
        return False

    def admin_ids(self) -> set[int]:
        """ADMIN_IDS from the environment plus users flagged as admin."""
        return set(ADMIN_IDS) | set(self.user_repo.list_admin_ids())

    async def notify_admins(self, bot, text: str, exclude: Optional[int] = None, **kwargs) -> int:
        """
        Send the same message to every admin.

        Returns:
            Number of admins reached.
        """
        sent = 0
        for admin_id in sorted(self.admin_ids()):
            if admin_id == exclude:
                continue
            if await self.send(bot, admin_id, text, **kwargs):
                sent += 1
        return sent
