"""
handlers/user_handler.py
-------------------------
Buyer and referrer commands: browsing, favorites, cart, referral codes,
leaderboard, payouts and the fee calculator, plus their inline buttons.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import marketplace_errors, reply
from handlers.keyboards import (
    CallbackData,
    browse_keyboard,
    leaderboard_keyboard,
    list_keyboard,
    product_keyboard,
    withdrawal_decision_keyboard,
)
from repositories.user_repo import UserRepository
from security.auth import active_user_only
from security.rate_limiter import rate_limited
from services.company_service import CompanyService
from services.notification_service import NotificationService
from services.product_service import ProductService
from services.referral_service import ReferralService
from services.sale_service import SaleService
from services.user_service import CART, FAVORITES, UserService
from services.withdrawal_service import WithdrawalService
from utils.errors import ValidationError
from utils.formatting import md, money, parse_amount, parse_int
from utils.logger import get_logger

logger = get_logger(__name__)
user_service = UserService()
product_service = ProductService()
company_service = CompanyService()
referral_service = ReferralService()
sale_service = SaleService()
withdrawal_service = WithdrawalService()
notification_service = NotificationService()
user_repo = UserRepository()

AWAITING_KEY = "awaiting"
AWAITING_FEE_AMOUNT = "fee_amount"

WITHDRAW_USAGE = (
    "⚠️ Usage: /withdraw <company\\_id> \\[amount]\n"
    "See your withdrawable earnings per company with /referrals."
)


# ── Browsing ──────────────────────────────────────────────

@active_user_only
@rate_limited
async def browse_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /browse - first page of products from active companies."""
    text, products, page, pages = product_service.browse(0)
    await reply(update, text, reply_markup=browse_keyboard(products, page, pages) if products else None)


async def browse_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    text, products, page, pages = product_service.browse(data.int_arg(0))
    await update.callback_query.edit_message_text(
        text, parse_mode="Markdown", reply_markup=browse_keyboard(products, page, pages)
    )


async def product_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    product = product_service.get(data.int_arg(0))
    await update.callback_query.message.reply_text(
        product_service.product_text(product.id),
        parse_mode="Markdown",
        reply_markup=product_keyboard(product),
    )


async def company_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    await update.callback_query.message.reply_text(
        company_service.company_text(data.int_arg(0)), parse_mode="Markdown"
    )


# ── Favorites / cart ──────────────────────────────────────

@active_user_only
@rate_limited
async def favorites_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = update.effective_user.id
    products = user_repo.list_items(FAVORITES, user_id)
    await reply(
        update,
        user_service.favorites_text(user_id),
        reply_markup=list_keyboard("fav", products) if products else None,
    )


@active_user_only
@rate_limited
async def cart_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = update.effective_user.id
    products = user_repo.list_items(CART, user_id)
    await reply(
        update,
        user_service.cart_text(user_id),
        reply_markup=list_keyboard("cart", products) if products else None,
    )


async def favorite_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    """fav:add:<product_id> / fav:del:<product_id>"""
    user_id = update.effective_user.id
    op, product_id = data.arg(0), data.int_arg(1)
    if op == "add":
        text = user_service.add_favorite(user_id, product_id)
    else:
        text = user_service.remove_favorite(user_id, product_id)
    await update.callback_query.message.reply_text(text, parse_mode="Markdown")


async def cart_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    """cart:add:<product_id> / cart:del:<product_id> / cart:clear"""
    user_id = update.effective_user.id
    op = data.arg(0)
    if op == "add":
        text = user_service.add_to_cart(user_id, data.int_arg(1))
    elif op == "del":
        text = user_service.remove_from_cart(user_id, data.int_arg(1))
    else:
        text = user_service.remove_from_cart(user_id)
    await update.callback_query.message.reply_text(text, parse_mode="Markdown")


# ── Referrals ─────────────────────────────────────────────

@active_user_only
@rate_limited
async def referrals_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await reply(update, referral_service.stats_text(update.effective_user.id))


@active_user_only
@rate_limited
async def codes_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await reply(update, referral_service.codes_text(update.effective_user.id))


async def code_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    """code:<company_id> - issue a referral code for the company."""
    code = referral_service.generate_code(data.int_arg(0), update.effective_user.id)
    await update.callback_query.message.reply_text(
        f"🔗 Your referral code for *{md(code.company_name)}*: `{code.code}`\n"
        f"Share it with a buyer. It works once.",
        parse_mode="Markdown",
    )


@active_user_only
@rate_limited
async def leaderboard_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    period = "month" if context.args and context.args[0].lower() == "month" else "all"
    await reply(update, referral_service.leaderboard_text(period), reply_markup=leaderboard_keyboard())


async def leaderboard_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    await update.callback_query.edit_message_text(
        referral_service.leaderboard_text(data.arg(0, "all")),
        parse_mode="Markdown",
        reply_markup=leaderboard_keyboard(),
    )


# ── Payouts ───────────────────────────────────────────────

@active_user_only
@rate_limited
@marketplace_errors
async def withdraw_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /withdraw <company_id> [amount] - request a referral payout from
    a company owner. Without an amount everything withdrawable is requested.
    """
    args = context.args or []
    company_id = parse_int(args[0]) if args else None
    if not company_id:
        raise ValidationError(WITHDRAW_USAGE)
    amount = None
    if len(args) >= 2:
        amount = parse_amount(args[1])
        if amount is None:
            raise ValidationError(WITHDRAW_USAGE)

    user = update.effective_user
    withdrawal = withdrawal_service.request_payout(user.id, company_id, amount)
    await reply(
        update,
        f"✅ Payout request #{withdrawal.id} of {money(withdrawal.amount)} sent to "
        f"{md(withdrawal.company_name)}. You'll be notified when they decide.",
    )

    company = company_service.get(company_id)
    requester = f"@{user.username}" if user.username else user.first_name
    await notification_service.send(
        context.bot,
        company.owner_id,
        withdrawal_service.request_text(withdrawal, requester),
        parse_mode="Markdown",
        reply_markup=withdrawal_decision_keyboard(withdrawal),
    )


@active_user_only
@rate_limited
async def payouts_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await reply(update, withdrawal_service.payouts_text(update.effective_user.id))


@active_user_only
@rate_limited
async def orders_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /orders - the caller's purchase history."""
    await reply(update, user_service.purchase_history_text(update.effective_user.id))


# ── Fee calculator ────────────────────────────────────────

@active_user_only
@rate_limited
@marketplace_errors
async def feecalculator_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /feecalculator [amount]. Without an amount the next text
    message is taken as the amount.
    """
    if context.args:
        amount = parse_amount(context.args[0])
        if amount is None:
            raise ValidationError("⚠️ Please send a positive amount, e.g. /feecalculator 100")
        await reply(update, sale_service.fee_calculator_text(amount))
        return

    context.user_data[AWAITING_KEY] = AWAITING_FEE_AMOUNT
    await reply(update, "🧮 Send the sale amount to calculate fees and rewards:")
