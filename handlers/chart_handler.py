"""
handlers/chart_handler.py
--------------------------
Handles admin chart commands.
Delegates to ChartService and sends images.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import reply
from security.auth import active_user_only, admin_only
from services.chart_service import ChartService
from utils.logger import get_logger

logger = get_logger(__name__)
chart_service = ChartService()


@active_user_only
@admin_only
async def sales_chart_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /sales_chart - bar chart of daily sale volume.

    Usage:
        /sales_chart     → last 14 days
        /sales_chart 30  → last 30 days
    """
    days = 14
    if context.args:
        try:
            days = int(context.args[0])
        except ValueError:
            days = 0
        if not 1 <= days <= 90:
            await reply(update, "⚠️ Usage: /sales\\_chart \\[days 1-90]")
            return

    buf = chart_service.generate_daily_sales_bar(days)
    if buf:
        await update.effective_message.reply_photo(photo=buf, caption=f"📈 Daily sales, last {days} days")
    else:
        await reply(update, "📭 No sales in that period.")


@active_user_only
@admin_only
async def revenue_chart_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /revenue_chart - where a month's sale volume went.

    Usage:
        /revenue_chart         → current month
        /revenue_chart 1       → January current year
        /revenue_chart 12 2025 → December 2025
    """
    year, month = None, None
    if context.args:
        try:
            month = int(context.args[0])
            if len(context.args) >= 2:
                year = int(context.args[1])
        except ValueError:
            month = 0
        if month is not None and not 1 <= month <= 12:
            await reply(update, "⚠️ Usage: /revenue\\_chart \\[month] \\[year]")
            return

    buf = chart_service.generate_revenue_split_pie(year, month)
    if buf:
        await update.effective_message.reply_photo(photo=buf, caption="🥧 Revenue split")
    else:
        await reply(update, "📭 No sales in that month.")
