"""
handlers/callback_router.py
----------------------------
Single entry point for inline-button presses.

The callback data is parsed into a CallbackData and dispatched on its
action through ROUTES. Each route receives (update, context, data).
"""

from typing import Awaitable, Callable

from telegram import Update
from telegram.ext import ContextTypes

from handlers import admin_handler, company_handler, sale_handler, user_handler
from handlers.keyboards import CallbackData
from security.auth import ADMIN_ONLY_MESSAGE, active_user_only
from security.rate_limiter import rate_limited
from services.user_service import UserService
from utils.errors import MarketplaceError
from utils.formatting import plain
from utils.logger import get_logger

logger = get_logger(__name__)
user_service = UserService()

Route = Callable[[Update, ContextTypes.DEFAULT_TYPE, CallbackData], Awaitable[None]]

ROUTES: dict[str, Route] = {
    "browse": user_handler.browse_callback,
    "product": user_handler.product_callback,
    "company": user_handler.company_callback,
    "fav": user_handler.favorite_callback,
    "cart": user_handler.cart_callback,
    "code": user_handler.code_callback,
    "lb": user_handler.leaderboard_callback,
    "sale": sale_handler.sale_callback,
    "wd": company_handler.withdrawal_callback,
    "billing": admin_handler.billing_callback,
    "admin": admin_handler.admin_callback,
}

ADMIN_ACTIONS = frozenset({"billing", "admin"})

STALE_BUTTON_MESSAGE = "⚠️ This button is no longer valid."
# answerCallbackQuery rejects longer alert texts.
MAX_ALERT_CHARS = 200


async def dispatch(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    routes: dict[str, Route],
    admin_actions: frozenset = ADMIN_ACTIONS,
) -> None:
    """
    Parse the callback data and run the matching route.

    Unknown actions and malformed arguments are answered with an alert.
    MarketplaceErrors are shown as an alert with their message; anything
    else propagates to the application error handler.
    """
    query = update.callback_query
    try:
        data = CallbackData.parse(query.data)
    except ValueError:
        logger.warning(f"Malformed callback data from {update.effective_user.id}: {query.data!r}")
        await query.answer(STALE_BUTTON_MESSAGE, show_alert=True)
        return

    route = routes.get(data.action)
    if route is None:
        logger.warning(f"No route for callback action '{data.action}'")
        await query.answer(STALE_BUTTON_MESSAGE, show_alert=True)
        return

    if data.action in admin_actions and not user_service.is_admin(update.effective_user.id):
        await query.answer(ADMIN_ONLY_MESSAGE, show_alert=True)
        return

    try:
        await route(update, context, data)
    except MarketplaceError as e:
        await query.answer(plain(e.message, MAX_ALERT_CHARS), show_alert=True)
        return
    except (ValueError, IndexError):
        logger.warning(f"Bad arguments in callback data {query.data!r}")
        await query.answer(STALE_BUTTON_MESSAGE, show_alert=True)
        return

    await query.answer()


@active_user_only
@rate_limited
async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await dispatch(update, context, ROUTES)
