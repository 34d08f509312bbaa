"""
main.py
-------
Entry point for the referral marketplace Telegram bot.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Configure and start the Telegram bot with all handlers.
    - Schedule the daily admin report and withdrawal reminders.
    - Run with long polling, or as a webhook when WEBHOOK_URL is set.
"""

import html
import traceback
from datetime import time as dt_time

from telegram import BotCommand, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from config import (
    APP_ENV,
    BOT_TOKEN,
    WEBHOOK_PATH,
    WEBHOOK_PORT,
    WEBHOOK_SECRET,
    WEBHOOK_URL,
)
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from handlers.admin_handler import (
    admin_command,
    ban_command,
    billing_withdraw_command,
    billing_withdrawals_command,
    broadcast_command,
    companies_command,
    company_info_command,
    company_status_command,
    demote_command,
    find_company_command,
    find_user_command,
    maintenance_command,
    promote_command,
    settings_command,
    unban_command,
    user_info_command,
    users_command,
)
from handlers.callback_router import handle_callback
from handlers.chart_handler import revenue_chart_command, sales_chart_command
from handlers.company_handler import (
    add_product_command,
    company_command,
    company_stats_command,
    delete_product_command,
    deny_withdrawal_command,
    edit_company_command,
    edit_product_command,
    my_products_command,
    register_company_command,
    withdrawals_command,
)
from handlers.export_handler import (
    export_companies_command,
    export_sales_command,
    export_users_command,
)
from handlers.message_handler import handle_text_message
from handlers.sale_handler import sell_command
from handlers.start_handler import help_command, profile_command, start_command
from handlers.user_handler import (
    browse_command,
    cart_command,
    codes_command,
    favorites_command,
    feecalculator_command,
    leaderboard_command,
    orders_command,
    payouts_command,
    referrals_command,
    withdraw_command,
)
from services.admin_service import AdminService
from services.notification_service import NotificationService
from services.withdrawal_service import WithdrawalService
from utils.formatting import md, money
from utils.logger import get_logger

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "❌ Something went wrong. Please try again later."

# Edited messages are never delivered: re-running an edited /withdraw or
# /broadcast would repeat its side effects.
ALLOWED_UPDATES = [Update.MESSAGE, Update.CALLBACK_QUERY]
NEW_MESSAGES = filters.UpdateType.MESSAGE

COMMANDS = [
    ("start", start_command, "🚀 Start the bot"),
    ("help", help_command, "📖 Show help"),
    ("browse", browse_command, "🛍 Browse products"),
    ("referrals", referrals_command, "📈 Referral stats"),
    ("codes", codes_command, "🔗 Your referral codes"),
    ("favorites", favorites_command, "⭐ Favorites"),
    ("cart", cart_command, "🛒 Cart"),
    ("orders", orders_command, "🧾 Your purchases"),
    ("profile", profile_command, "👤 Profile"),
    ("leaderboard", leaderboard_command, "🏆 Top referrers"),
    ("withdraw", withdraw_command, "💸 Request a payout"),
    ("payouts", payouts_command, "📜 Your payout requests"),
    ("feecalculator", feecalculator_command, "🧮 Fee calculator"),
    ("register_company", register_company_command, "🏢 Register a company"),
    ("company", company_command, "🏢 Your companies"),
    ("edit_company", edit_company_command, "✏️ Edit a company"),
    ("company_stats", company_stats_command, "📊 Company analytics"),
    ("add_product", add_product_command, "➕ Add a product"),
    ("my_products", my_products_command, "📦 Your products"),
    ("edit_product", edit_product_command, "✏️ Edit a product"),
    ("delete_product", delete_product_command, "🗑️ Delete a product"),
    ("sell", sell_command, "🧾 Record a sale"),
    ("withdrawals", withdrawals_command, "⏳ Pending withdrawal requests"),
    ("deny_withdrawal", deny_withdrawal_command, "❌ Decline a withdrawal"),
    ("admin", admin_command, "🛠 Admin panel"),
    ("users", users_command, None),
    ("companies", companies_command, None),
    ("find_user", find_user_command, None),
    ("find_company", find_company_command, None),
    ("user_info", user_info_command, None),
    ("company_info", company_info_command, None),
    ("settings", settings_command, None),
    ("maintenance", maintenance_command, None),
    ("ban", ban_command, None),
    ("unban", unban_command, None),
    ("promote", promote_command, None),
    ("demote", demote_command, None),
    ("company_status", company_status_command, None),
    ("broadcast", broadcast_command, None),
    ("billing_withdraw", billing_withdraw_command, None),
    ("billing_withdrawals", billing_withdrawals_command, None),
    ("export_users", export_users_command, None),
    ("export_companies", export_companies_command, None),
    ("export_sales", export_sales_command, None),
    ("sales_chart", sales_chart_command, None),
    ("revenue_chart", revenue_chart_command, None),
]


async def send_daily_report(context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Scheduled job: send the daily platform summary to all admins.
    Runs every day at 20:00.
    """
    report = AdminService().daily_report_text()
    sent = await NotificationService().notify_admins(context.bot, report, parse_mode="Markdown")
    logger.info(f"Sent daily report to {sent} admin(s)")


async def send_withdrawal_reminders(context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Scheduled job: remind company owners of withdrawal requests pending
    for more than a day. Runs daily at 09:00.
    """
    notifier = NotificationService()
    stale = WithdrawalService().stale_pending(hours=24)
    for owner_id, withdrawals in stale.items():
        lines = [f"⏰ *{len(withdrawals)} withdrawal request(s) waiting for you*\n"]
        for w in withdrawals:
            lines.append(f"• #{w.id} {money(w.amount)} from {md(w.company_name)}")
        lines.append("\nReview them with /withdrawals.")
        await notifier.send(context.bot, owner_id, "\n".join(lines), parse_mode="Markdown")
    logger.info(f"Sent withdrawal reminders to {len(stale)} owner(s)")


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log every unhandled exception and tell the user something went wrong."""
    tb = "".join(traceback.format_exception(None, context.error, context.error.__traceback__))
    logger.error(f"Unhandled exception while processing an update: {context.error}\n{tb}")

    if isinstance(update, Update):
        if update.callback_query:
            await update.callback_query.answer(GENERIC_ERROR_MESSAGE, show_alert=True)
        elif update.effective_message:
            await update.effective_message.reply_text(GENERIC_ERROR_MESSAGE)

    if APP_ENV != "production":
        await NotificationService().notify_admins(
            context.bot,
            f"<b>Unhandled error</b>\n<pre>{html.escape(tb[-3500:])}</pre>",
            parse_mode="HTML",
        )


async def set_bot_commands(application: Application) -> None:
    """Register the public bot commands menu in Telegram on startup."""
    commands = [BotCommand(name, description) for name, _, description in COMMANDS if description]
    await application.bot.set_my_commands(commands)
    logger.info("Bot commands menu registered successfully.")


def build_application() -> Application:
    app = Application.builder().token(BOT_TOKEN).post_init(set_bot_commands).build()

    for name, callback, _ in COMMANDS:
        app.add_handler(CommandHandler(name, callback, filters=NEW_MESSAGES))
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(NEW_MESSAGES & filters.TEXT & ~filters.COMMAND, handle_text_message))
    app.add_error_handler(error_handler)

    job_queue = app.job_queue
    if job_queue:
        job_queue.run_daily(
            send_withdrawal_reminders,
            time=dt_time(hour=9, minute=0),
            name="withdrawal_reminders",
        )
        job_queue.run_daily(
            send_daily_report,
            time=dt_time(hour=20, minute=0),
            name="daily_report",
        )
        logger.info("Scheduled withdrawal reminders (09:00) + daily report (20:00)")
    return app


def main() -> None:
    """Initialize and run the bot."""
    if not BOT_TOKEN:
        logger.error("BOT_TOKEN is not set. Add it to your .env file.")
        raise SystemExit(1)

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()

    # ── 2. Build the Telegram application ─────────────────
    logger.info(f"Starting Telegram bot ({APP_ENV})...")
    app = build_application()

    # ── 3. Run ────────────────────────────────────────────
    try:
        if WEBHOOK_URL:
            logger.info(f"🚀 Listening for webhooks on port {WEBHOOK_PORT} at /{WEBHOOK_PATH}")
            app.run_webhook(
                listen="0.0.0.0",
                port=WEBHOOK_PORT,
                url_path=WEBHOOK_PATH,
                webhook_url=f"{WEBHOOK_URL}/{WEBHOOK_PATH}",
                secret_token=WEBHOOK_SECRET or None,
                allowed_updates=ALLOWED_UPDATES,
            )
        else:
            logger.info("🚀 Bot is running with long polling! Press Ctrl+C to stop.")
            app.run_polling(drop_pending_updates=True, allowed_updates=ALLOWED_UPDATES)
    finally:
        # ── 4. Cleanup on shutdown ────────────────────────
        close_pool()
        logger.info("Bot stopped.")


if __name__ == "__main__":
    main()
