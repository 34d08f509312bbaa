"""
handlers/export_handler.py
---------------------------
Handles admin data export commands (CSV, Excel).
Delegates to ExportService.
"""

from datetime import date

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import reply
from security.auth import active_user_only, admin_only
from services.export_service import ExportService
from utils.logger import get_logger

logger = get_logger(__name__)
export_service = ExportService()


@active_user_only
@admin_only
async def export_users_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export_users - all users as CSV."""
    await reply(update, "📄 Preparing users CSV...")
    buffer = export_service.export_users_csv()
    await update.effective_message.reply_document(
        document=buffer,
        filename=f"users_{date.today():%Y%m%d}.csv",
        caption="👥 Users export",
    )


@active_user_only
@admin_only
async def export_companies_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export_companies - all companies as CSV."""
    await reply(update, "📄 Preparing companies CSV...")
    buffer = export_service.export_companies_csv()
    await update.effective_message.reply_document(
        document=buffer,
        filename=f"companies_{date.today():%Y%m%d}.csv",
        caption="🏢 Companies export",
    )


@active_user_only
@admin_only
async def export_sales_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /export_sales - current month's sales as Excel.
    Optional: /export_sales 2026 1 (for January 2026).
    """
    today = date.today()
    year, month = today.year, today.month

    if context.args and len(context.args) >= 2:
        try:
            year = int(context.args[0])
            month = int(context.args[1])
            date(year, month, 1)
        except ValueError:
            await reply(update, "⚠️ Usage: /export\\_sales \\[year month]\nExample: /export\\_sales 2026 1")
            return

    await reply(update, "📊 Preparing Excel file...")
    buffer = export_service.export_sales_excel(year, month)
    await update.effective_message.reply_document(
        document=buffer,
        filename=f"sales_{year}_{month:02d}.xlsx",
        caption=f"📊 Sales {month:02d}/{year}",
    )
