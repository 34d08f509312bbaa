"""
security/auth.py
-----------------
Access-control decorators for the Telegram bot.

    @active_user_only  - registers/refreshes the caller, then blocks banned
                         users, and non-admins while maintenance mode is on.
    @admin_only        - only ADMIN_IDS or users flagged is_admin.
"""

from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from repositories.settings_repo import SettingsRepository
from repositories.user_repo import UserRepository
from services.user_service import is_admin
from utils.logger import get_logger

logger = get_logger(__name__)
user_repo = UserRepository()
settings_repo = SettingsRepository()

BANNED_MESSAGE = "🚫 You are banned from using this bot."
MAINTENANCE_MESSAGE = "🔧 The bot is under maintenance. Please try again later."
ADMIN_ONLY_MESSAGE = "⛔ This command is for admins only."


async def deny(update: Update, text: str) -> None:
    """Tell the caller why nothing happened, for messages and button presses alike."""
    if update.callback_query:
        await update.callback_query.answer(text, show_alert=True)
    elif update.effective_message:
        await update.effective_message.reply_text(text)


def active_user_only(func: Callable):
    """
    Decorator for every user-facing handler.

    Usage:
        @active_user_only
        async def my_handler(update, context):
            ...

    Behavior:
        - Upserts the caller so usernames stay current.
        - Banned users get BANNED_MESSAGE and the handler does not run.
        - In maintenance mode only admins get through.
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        tg_user = update.effective_user
        if not tg_user:
            return

        user = user_repo.ensure_user(tg_user.id, tg_user.first_name, tg_user.last_name, tg_user.username)
        if user.banned:
            logger.warning(f"🚫 Banned user {tg_user.id} (@{tg_user.username}) tried to use the bot")
            await deny(update, BANNED_MESSAGE)
            return

        if not is_admin(tg_user.id, user) and settings_repo.get().maintenance_mode:
            await deny(update, MAINTENANCE_MESSAGE)
            return

        return await func(update, context, *args, **kwargs)

    return wrapper


def admin_only(func: Callable):
    """Decorator that restricts a handler to admins. Stack it under @active_user_only."""
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        tg_user = update.effective_user
        if not tg_user:
            return

        if not is_admin(tg_user.id, user_repo.get(tg_user.id)):
            logger.warning(f"🚫 Non-admin {tg_user.id} tried admin handler {func.__name__}")
            await deny(update, ADMIN_ONLY_MESSAGE)
            return

        return await func(update, context, *args, **kwargs)

    return wrapper
