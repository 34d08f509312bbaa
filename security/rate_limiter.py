"""
security/rate_limiter.py
-------------------------
Rate limiting middleware to prevent abuse.
Limits the number of updates (messages or button presses) a user can
send within a time window.
"""

import time
from collections import defaultdict
from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import RATE_LIMIT_MESSAGES, RATE_LIMIT_WINDOW_SECONDS
from utils.logger import get_logger

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "⚠️ You are sending too many requests. Please wait a moment and try again."

# In-memory storage for rate tracking: {user_id: [timestamp1, timestamp2, ...]}
_user_timestamps: dict[int, list[float]] = defaultdict(list)


def _cleanup(user_id: int, now: float) -> None:
    """Remove expired timestamps for a user."""
    cutoff = now - RATE_LIMIT_WINDOW_SECONDS
    _user_timestamps[user_id] = [
        t for t in _user_timestamps[user_id] if t > cutoff
    ]


def is_rate_limited(user_id: int) -> bool:
    """
    Record one request for the user and report whether it exceeds the limit.
    Requests over the limit are not recorded.
    """
    now = time.time()
    _cleanup(user_id, now)
    if len(_user_timestamps[user_id]) >= RATE_LIMIT_MESSAGES:
        return True
    _user_timestamps[user_id].append(now)
    return False


def reset() -> None:
    _user_timestamps.clear()


def rate_limited(func: Callable):
    """
    Decorator that enforces rate limiting per user.

    Configuration (via .env):
        RATE_LIMIT_MESSAGES: Max updates per window (default: 30).
        RATE_LIMIT_WINDOW_SECONDS: Window duration in seconds (default: 60).
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        if is_rate_limited(user.id):
            logger.warning(f"⚠️ Rate limit hit for user {user.id}")
            if update.callback_query:
                await update.callback_query.answer(RATE_LIMIT_MESSAGE, show_alert=True)
            elif update.effective_message:
                await update.effective_message.reply_text(RATE_LIMIT_MESSAGE)
            return

        return await func(update, context, *args, **kwargs)

    return wrapper
