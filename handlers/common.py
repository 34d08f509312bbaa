"""
handlers/common.py
-------------------
Helpers shared by all handler modules.
"""

from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from utils.errors import MarketplaceError
from utils.logger import get_logger

logger = get_logger(__name__)


async def reply(update: Update, text: str, **kwargs):
    """Reply to the current message in legacy Markdown."""
    kwargs.setdefault("parse_mode", "Markdown")
    return await update.effective_message.reply_text(text, **kwargs)


def marketplace_errors(func: Callable):
    """
    Reply with the message of any MarketplaceError the handler raises.
    Other exceptions propagate to the application error handler.
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        try:
            return await func(update, context, *args, **kwargs)
        except MarketplaceError as e:
            logger.info(f"{func.__name__} rejected for user {update.effective_user.id}: {e.code}")
            await reply(update, str(e))

    return wrapper
