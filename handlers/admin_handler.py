"""
handlers/admin_handler.py
--------------------------
Admin commands: panel, settings, maintenance, user and company directory,
moderation, broadcast and billing withdrawals.
"""

import asyncio

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import marketplace_errors, reply
from handlers.keyboards import (
    CallbackData,
    admin_keyboard,
    billing_list_keyboard,
    directory_keyboard,
    withdrawal_decision_keyboard,
)
from models.withdrawal import STATUS_APPROVED, STATUS_PENDING
from repositories.settings_repo import SettingsRepository
from security.auth import active_user_only, admin_only
from security.rate_limiter import rate_limited
from services.admin_service import AdminService
from services.company_service import CompanyService
from services.notification_service import NotificationService
from services.withdrawal_service import WithdrawalService
from utils.errors import ValidationError
from utils.formatting import md, money, parse_amount, parse_int
from utils.logger import get_logger

logger = get_logger(__name__)
admin_service = AdminService()
company_service = CompanyService()
withdrawal_service = WithdrawalService()
notification_service = NotificationService()
settings_repo = SettingsRepository()

# Telegram allows about 30 messages per second to different chats.
BROADCAST_DELAY_SECONDS = 0.05


# ── Panel / settings ──────────────────────────────────────

@active_user_only
@admin_only
async def admin_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    maintenance = settings_repo.get().maintenance_mode
    await reply(update, admin_service.stats_text(), reply_markup=admin_keyboard(maintenance))


@active_user_only
@admin_only
@marketplace_errors
async def settings_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /settings [key value]."""
    args = context.args or []
    if len(args) >= 2:
        admin_service.update_setting(update.effective_user.id, args[0], args[1])
        await reply(update, "✅ Setting updated.\n\n" + admin_service.settings_text())
        return
    await reply(update, admin_service.settings_text())


@active_user_only
@admin_only
@marketplace_errors
async def maintenance_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /maintenance on|off."""
    arg = context.args[0].lower() if context.args else ""
    if arg not in ("on", "off"):
        raise ValidationError("⚠️ Usage: /maintenance on|off")
    admin_service.set_maintenance(update.effective_user.id, arg == "on")
    await reply(update, f"🔧 Maintenance mode is now *{arg.upper()}*.")


async def admin_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    """
    admin:stats / admin:settings / admin:maint:<on|off>
    admin:users:<page> / admin:companies:<page> / admin:user:<id> / admin:co:<id>
    """
    query = update.callback_query
    op = data.arg(0)
    if op == "settings":
        await query.message.reply_text(admin_service.settings_text(), parse_mode="Markdown")
        return
    if op in ("users", "companies"):
        page_of = admin_service.users_page if op == "users" else admin_service.companies_page
        text, entries, page, pages = page_of(data.int_arg(1))
        await query.edit_message_text(
            text,
            parse_mode="Markdown",
            reply_markup=directory_keyboard(op, entries, page, pages) if entries else None,
        )
        return
    if op == "user":
        await query.message.reply_text(admin_service.user_detail_text(str(data.int_arg(1))), parse_mode="Markdown")
        return
    if op == "co":
        await query.message.reply_text(admin_service.company_detail_text(data.int_arg(1)), parse_mode="Markdown")
        return
    if op == "maint":
        admin_service.set_maintenance(update.effective_user.id, data.arg(1) == "on")
    maintenance = settings_repo.get().maintenance_mode
    await query.edit_message_text(
        admin_service.stats_text(), parse_mode="Markdown", reply_markup=admin_keyboard(maintenance)
    )


# ── Directory ─────────────────────────────────────────────

@active_user_only
@admin_only
async def users_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /users [page]."""
    page = parse_int(context.args[0]) if context.args else None
    text, users, page, pages = admin_service.users_page((page or 1) - 1)
    await reply(update, text, reply_markup=directory_keyboard("users", users, page, pages) if users else None)


@active_user_only
@admin_only
async def companies_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /companies [page]."""
    page = parse_int(context.args[0]) if context.args else None
    text, companies, page, pages = admin_service.companies_page((page or 1) - 1)
    await reply(
        update, text, reply_markup=directory_keyboard("companies", companies, page, pages) if companies else None
    )


@active_user_only
@admin_only
@marketplace_errors
async def find_user_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /find_user <id|@username|name>."""
    await reply(update, admin_service.find_users_text(" ".join(context.args or [])))


@active_user_only
@admin_only
@marketplace_errors
async def find_company_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /find_company <id|prefix|name>."""
    await reply(update, admin_service.find_companies_text(" ".join(context.args or [])))


@active_user_only
@admin_only
@marketplace_errors
async def user_info_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not context.args:
        raise ValidationError("⚠️ Usage: /user\\_info <user\\_id|@username>")
    await reply(update, admin_service.user_detail_text(context.args[0]))


@active_user_only
@admin_only
@marketplace_errors
async def company_info_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    company_id = parse_int(context.args[0]) if context.args else None
    if not company_id:
        raise ValidationError("⚠️ Usage: /company\\_info <company\\_id>")
    await reply(update, admin_service.company_detail_text(company_id))


# ── Moderation ────────────────────────────────────────────

async def _set_banned(update: Update, context: ContextTypes.DEFAULT_TYPE, banned: bool) -> None:
    if not context.args:
        raise ValidationError(f"⚠️ Usage: /{'ban' if banned else 'unban'} <user\\_id|@username>")
    user = admin_service.set_banned(update.effective_user.id, context.args[0], banned)
    await reply(update, f"{'🚫 Banned' if banned else '✅ Unbanned'} {md(user.display_name)}.")


@active_user_only
@admin_only
@marketplace_errors
async def ban_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_banned(update, context, True)


@active_user_only
@admin_only
@marketplace_errors
async def unban_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_banned(update, context, False)


async def _set_rights(update: Update, context: ContextTypes.DEFAULT_TYPE, allowed: bool) -> None:
    if not context.args:
        raise ValidationError(f"⚠️ Usage: /{'promote' if allowed else 'demote'} <user\\_id|@username>")
    user = admin_service.set_company_rights(update.effective_user.id, context.args[0], allowed)
    await reply(
        update,
        f"✅ {md(user.display_name)} {'can now' if allowed else 'can no longer'} register companies.",
    )
    if allowed:
        await notification_service.send(
            context.bot,
            user.telegram_id,
            "🎉 You can now register a company with /register\\_company.",
            parse_mode="Markdown",
        )


@active_user_only
@admin_only
@marketplace_errors
async def promote_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_rights(update, context, True)


@active_user_only
@admin_only
@marketplace_errors
async def demote_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _set_rights(update, context, False)


@active_user_only
@admin_only
@marketplace_errors
async def company_status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /company_status <company_id> active|suspended."""
    args = context.args or []
    company_id = parse_int(args[0]) if args else None
    if not company_id or len(args) < 2:
        raise ValidationError("⚠️ Usage: /company\\_status <company\\_id> active|suspended")
    company = company_service.set_status(update.effective_user.id, company_id, args[1].lower())
    await reply(update, f"✅ {md(company.name)} is now *{company.status}*.")
    await notification_service.send(
        context.bot,
        company.owner_id,
        f"ℹ️ Your company *{md(company.name)}* is now *{company.status}*.",
        parse_mode="Markdown",
    )


@active_user_only
@admin_only
@marketplace_errors
async def broadcast_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /broadcast <text> - send a plain-text message to every non-banned user."""
    text = " ".join(context.args or []).strip()
    if not text:
        raise ValidationError("⚠️ Usage: /broadcast <message>")

    targets = admin_service.broadcast_targets()
    await reply(update, f"📣 Broadcasting to {len(targets)} users...")
    sent = 0
    for user_id in targets:
        if await notification_service.send(context.bot, user_id, f"📣 {text}"):
            sent += 1
        await asyncio.sleep(BROADCAST_DELAY_SECONDS)

    logger.info(f"Admin {update.effective_user.id} broadcast to {sent}/{len(targets)} users")
    await reply(update, f"✅ Delivered to {sent} of {len(targets)} users.")


# ── Billing withdrawals ───────────────────────────────────

@active_user_only
@admin_only
@marketplace_errors
async def billing_withdraw_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /billing_withdraw <company_id> <amount> [reason]."""
    args = context.args or []
    company_id = parse_int(args[0]) if args else None
    amount = parse_amount(args[1]) if len(args) >= 2 else None
    if not company_id or amount is None:
        raise ValidationError("⚠️ Usage: /billing\\_withdraw <company\\_id> <amount> \\[reason]")
    reason = " ".join(args[2:]) or None

    admin = update.effective_user
    withdrawal = withdrawal_service.request_billing(admin.id, company_id, amount, reason)
    await reply(
        update,
        f"✅ Billing withdrawal #{withdrawal.id} of {money(withdrawal.amount)} from "
        f"{md(withdrawal.company_name)} sent to the owner for approval.",
    )
    company = company_service.get(company_id)
    await notification_service.send(
        context.bot,
        company.owner_id,
        withdrawal_service.request_text(withdrawal, "the platform admin"),
        parse_mode="Markdown",
        reply_markup=withdrawal_decision_keyboard(withdrawal),
    )


@active_user_only
@admin_only
async def billing_withdrawals_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    statuses = (STATUS_PENDING, STATUS_APPROVED)
    items = withdrawal_service.list_billing(statuses)
    await reply(
        update,
        withdrawal_service.billing_text(statuses),
        reply_markup=billing_list_keyboard(items) if items else None,
    )


async def billing_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    """billing:confirm:<id> - the approved payout was transferred."""
    withdrawal = withdrawal_service.confirm_billing(update.effective_user.id, data.int_arg(1))
    await update.callback_query.message.reply_text(
        f"💸 Billing withdrawal #{withdrawal.id} of {money(withdrawal.amount)} marked as paid."
    )
    company = company_service.get(withdrawal.company_id)
    await notification_service.send(
        context.bot,
        company.owner_id,
        f"💸 Withdrawal #{withdrawal.id} of {money(withdrawal.amount)} from "
        f"{md(company.name)} has been paid out.",
        parse_mode="Markdown",
    )
