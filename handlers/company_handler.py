"""
handlers/company_handler.py
----------------------------
Company owner commands: registration, products, and decisions on
withdrawal requests.
"""

from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import marketplace_errors, reply
from handlers.keyboards import (
    CallbackData,
    billing_confirm_keyboard,
    withdrawal_decision_keyboard,
)
from models.withdrawal import KIND_REFERRAL, Withdrawal
from security.auth import active_user_only
from security.rate_limiter import rate_limited
from services.company_service import CompanyService
from services.notification_service import NotificationService
from services.product_service import ProductService
from services.withdrawal_service import WithdrawalService
from utils.errors import ValidationError
from utils.formatting import md, money, parse_int
from utils.logger import get_logger

logger = get_logger(__name__)
company_service = CompanyService()
product_service = ProductService()
withdrawal_service = WithdrawalService()
notification_service = NotificationService()

AWAITING_KEY = "awaiting"
AWAITING_DECLINE_REASON = "decline_reason"
DECLINE_ID_KEY = "decline_withdrawal_id"

REGISTER_USAGE = (
    "⚠️ Usage: /register\\_company <name> | \\[description] | \\[email]\n"
    "Example: /register\\_company Blue Bakery | Fresh bread daily | hi@bluebakery.com"
)
ADD_PRODUCT_USAGE = (
    "⚠️ Usage: /add\\_product <company\\_id> <price> <quantity> <title> | \\[description]\n"
    "Example: /add\\_product 3 4.50 20 Sourdough loaf | Baked every morning"
)
EDIT_PRODUCT_USAGE = (
    "⚠️ Usage: /edit\\_product <product\\_id> <field> <value>\n"
    "Fields: title, description, price, quantity, status (instock, lowstock, outofstock)"
)
EDIT_COMPANY_USAGE = (
    "⚠️ Usage: /edit\\_company <company\\_id> name|description|email <value>\n"
    "Send - as the value to clear the description or email."
)


def _split_pipe(args: list[str]) -> list[str]:
    return [part.strip() for part in " ".join(args).split("|")]


# ── Companies ─────────────────────────────────────────────

@active_user_only
@rate_limited
@marketplace_errors
async def register_company_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /register_company <name> | [description] | [email]."""
    if not context.args:
        raise ValidationError(REGISTER_USAGE)
    parts = _split_pipe(context.args)
    name = parts[0]
    description = parts[1] if len(parts) > 1 and parts[1] else None
    email = parts[2] if len(parts) > 2 and parts[2] else None

    user = update.effective_user
    company = company_service.register_company(user.id, name, description, email)
    await reply(
        update,
        f"✅ Company *{md(company.name)}* registered (#{company.id}).\n"
        f"Referral codes for it start with *{company.code_prefix}-*.\n\n"
        f"Add products with /add\\_product {company.id} <price> <quantity> <title>",
    )
    await notification_service.notify_admins(
        context.bot,
        f"🏢 New company *{md(company.name)}* (#{company.id}) by {md(user.username or user.id)}",
        exclude=user.id,
        parse_mode="Markdown",
    )


@active_user_only
@rate_limited
async def company_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /company - the caller's companies with balances and sales."""
    await reply(update, company_service.dashboard_text(update.effective_user.id))


@active_user_only
@rate_limited
@marketplace_errors
async def edit_company_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /edit_company <company_id> name|description|email <value>."""
    args = context.args or []
    company_id = parse_int(args[0]) if args else None
    if not company_id or len(args) < 3:
        raise ValidationError(EDIT_COMPANY_USAGE)
    company = company_service.edit_company(
        update.effective_user.id, company_id, args[1], " ".join(args[2:])
    )
    await reply(update, f"✅ Company #{company.id} updated.\n\n" + company_service.company_text(company.id))


@active_user_only
@rate_limited
@marketplace_errors
async def company_stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /company_stats <company_id> - sales and referral analytics."""
    company_id = parse_int(context.args[0]) if context.args else None
    if not company_id:
        raise ValidationError("⚠️ Usage: /company\\_stats <company\\_id>")
    await reply(update, company_service.analytics_text(update.effective_user.id, company_id))


# ── Products ──────────────────────────────────────────────

@active_user_only
@rate_limited
@marketplace_errors
async def add_product_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    args = context.args or []
    if len(args) < 4:
        raise ValidationError(ADD_PRODUCT_USAGE)
    company_id = parse_int(args[0])
    quantity = parse_int(args[2])
    if not company_id or quantity is None:
        raise ValidationError(ADD_PRODUCT_USAGE)
    parts = _split_pipe(args[3:])
    description = parts[1] if len(parts) > 1 and parts[1] else None

    product = product_service.add_product(
        update.effective_user.id, company_id, parts[0], args[1], quantity, description
    )
    await reply(
        update,
        f"✅ Product *{md(product.title)}* added (#{product.id}): "
        f"{money(product.price)} x{product.quantity}",
    )


@active_user_only
@rate_limited
async def my_products_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await reply(update, product_service.my_products_text(update.effective_user.id))


@active_user_only
@rate_limited
@marketplace_errors
async def edit_product_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /edit_product <product_id> <field> <value>."""
    args = context.args or []
    product_id = parse_int(args[0]) if args else None
    if not product_id or len(args) < 3:
        raise ValidationError(EDIT_PRODUCT_USAGE)
    product = product_service.edit_product(
        update.effective_user.id, product_id, args[1], " ".join(args[2:])
    )
    await reply(update, f"✅ Product #{product.id} updated.\n\n" + product_service.product_text(product.id))


@active_user_only
@rate_limited
@marketplace_errors
async def delete_product_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    product_id = parse_int(context.args[0]) if context.args else None
    if not product_id:
        raise ValidationError("⚠️ Usage: /delete\\_product <product\\_id>")
    product = product_service.delete_product(update.effective_user.id, product_id)
    await reply(update, f"🗑️ Product *{md(product.title)}* deleted.")


# ── Withdrawal decisions ──────────────────────────────────

@active_user_only
@rate_limited
async def withdrawals_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /withdrawals - pending requests for the caller's companies, one message each."""
    pending = withdrawal_service.pending_for_owner(update.effective_user.id)
    if not pending:
        await reply(update, "📭 No pending withdrawal requests.")
        return
    await reply(update, f"⏳ *{len(pending)} pending request(s)*")
    for w in pending:
        await reply(
            update,
            withdrawal_service.request_text(w, f"user {w.user_id}"),
            reply_markup=withdrawal_decision_keyboard(w),
        )


@active_user_only
@rate_limited
@marketplace_errors
async def deny_withdrawal_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deny_withdrawal <id> [reason]."""
    withdrawal_id = parse_int(context.args[0]) if context.args else None
    if not withdrawal_id:
        raise ValidationError("⚠️ Usage: /deny\\_withdrawal <withdrawal\\_id> \\[reason]")
    reason = " ".join(context.args[1:]) or None
    await decline_and_notify(update, context, withdrawal_id, reason)


async def withdrawal_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    """wd:approve:<id> / wd:decline:<id>"""
    op, withdrawal_id = data.arg(0), data.int_arg(1)
    query = update.callback_query

    if op == "decline":
        context.user_data[AWAITING_KEY] = AWAITING_DECLINE_REASON
        context.user_data[DECLINE_ID_KEY] = withdrawal_id
        await query.message.reply_text(
            f"✍️ Send the reason for declining request #{withdrawal_id}, or - for no reason."
        )
        return

    withdrawal = withdrawal_service.approve(update.effective_user.id, withdrawal_id)
    await query.edit_message_text(f"✅ Request #{withdrawal.id} of {money(withdrawal.amount)} approved.")
    await _notify_approved(context, withdrawal)


async def decline_and_notify(
    update: Update, context: ContextTypes.DEFAULT_TYPE, withdrawal_id: int, reason: Optional[str]
) -> None:
    withdrawal = withdrawal_service.decline(update.effective_user.id, withdrawal_id, reason)
    await reply(update, f"❌ Request #{withdrawal.id} declined.")

    text = (
        f"❌ Your withdrawal request #{withdrawal.id} of {money(withdrawal.amount)} "
        f"from {md(withdrawal.company_name)} was declined."
    )
    if reason:
        text += f"\nReason: {md(reason)}"
    if withdrawal.kind == KIND_REFERRAL:
        await notification_service.send(context.bot, withdrawal.user_id, text, parse_mode="Markdown")
    else:
        await notification_service.notify_admins(context.bot, text, parse_mode="Markdown")


async def _notify_approved(context: ContextTypes.DEFAULT_TYPE, withdrawal: Withdrawal) -> None:
    if withdrawal.kind == KIND_REFERRAL:
        await notification_service.send(
            context.bot,
            withdrawal.user_id,
            f"✅ Your payout #{withdrawal.id} of {money(withdrawal.amount)} from "
            f"{md(withdrawal.company_name)} was approved. The company will pay you directly.",
            parse_mode="Markdown",
        )
        return
    await notification_service.notify_admins(
        context.bot,
        f"✅ Billing withdrawal #{withdrawal.id} of {money(withdrawal.amount)} from "
        f"{md(withdrawal.company_name)} was approved by the owner. Mark it paid once transferred.",
        parse_mode="Markdown",
        reply_markup=billing_confirm_keyboard(withdrawal),
    )
