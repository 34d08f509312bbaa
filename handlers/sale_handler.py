"""
handlers/sale_handler.py
-------------------------
Recording in-person sales.

/sell shows a summary with Confirm/Cancel buttons. The parsed request and
its idempotency key stay in context.user_data until the seller decides,
so pressing Confirm twice records the sale once.
"""

import uuid

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import marketplace_errors, reply
from handlers.keyboards import CallbackData, sale_confirm_keyboard
from security.auth import active_user_only
from security.rate_limiter import rate_limited
from services.notification_service import NotificationService
from services.referral_service import ReferralService
from services.sale_service import SaleResult, SaleService, parse_sale_args
from utils.errors import MarketplaceError
from utils.formatting import md
from utils.logger import get_logger

logger = get_logger(__name__)
sale_service = SaleService()
referral_service = ReferralService()
notification_service = NotificationService()

PENDING_SALE_KEY = "pending_sale"


@active_user_only
@rate_limited
@marketplace_errors
async def sell_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /sell <product_id> @buyer <quantity> [referral_code]."""
    request = parse_sale_args(context.args or [])
    summary = sale_service.preview_sale(update.effective_user.id, request)

    sale_key = uuid.uuid4().hex
    context.user_data[PENDING_SALE_KEY] = {"key": sale_key, "request": request}
    await reply(update, summary, reply_markup=sale_confirm_keyboard(sale_key))


async def sale_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: CallbackData) -> None:
    """sale:ok:<key> / sale:cancel:<key>"""
    query = update.callback_query
    op, sale_key = data.arg(0), data.arg(1)
    pending = context.user_data.get(PENDING_SALE_KEY)

    if not pending or pending["key"] != sale_key:
        await query.edit_message_text("⌛ This sale has expired. Start again with /sell.")
        return

    if op == "cancel":
        context.user_data.pop(PENDING_SALE_KEY, None)
        await query.edit_message_text("❌ Sale cancelled.")
        return

    request = pending["request"]
    seller = update.effective_user
    try:
        result = sale_service.record_sale(
            sale_key,
            seller.id,
            request.product_id,
            request.buyer_username,
            request.quantity,
            request.referral_code,
        )
    except MarketplaceError:
        # The request itself is invalid; a retry would fail the same way.
        context.user_data.pop(PENDING_SALE_KEY, None)
        raise

    context.user_data.pop(PENDING_SALE_KEY, None)
    if result.duplicate:
        await query.edit_message_text(f"ℹ️ Sale #{result.sale.id} was already recorded.")
        return

    await query.edit_message_text(sale_service.seller_receipt(result), parse_mode="Markdown")
    await _notify_parties(update, context, result)


async def _notify_parties(update: Update, context: ContextTypes.DEFAULT_TYPE, result: SaleResult) -> None:
    """Receipts and alerts after the sale is committed. Failures are only logged."""
    bot = context.bot
    seller = update.effective_user
    seller_name = f"@{seller.username}" if seller.username else seller.first_name
    sale = result.sale

    if sale.buyer_id != seller.id:
        delivered = await notification_service.send(
            bot, sale.buyer_id, sale_service.buyer_receipt(result, seller_name), parse_mode="Markdown"
        )
        if not delivered:
            await update.effective_message.reply_text(
                f"⚠️ Could not deliver the receipt to {md(result.buyer.display_name)}. "
                f"They may have blocked the bot.",
                parse_mode="Markdown",
            )
        else:
            try:
                code = referral_service.generate_code(sale.company_id, sale.buyer_id)
                await notification_service.send(
                    bot,
                    sale.buyer_id,
                    f"🔗 Here is your new referral code: `{code.code}`\n"
                    f"Share it with friends to earn rewards!",
                    parse_mode="Markdown",
                )
            except MarketplaceError as e:
                logger.warning(f"No new referral code for buyer {sale.buyer_id}: {e.code}")

    if sale.referrer_id:
        await notification_service.send(
            bot, sale.referrer_id, sale_service.referrer_message(result), parse_mode="Markdown"
        )

    await notification_service.notify_admins(
        bot, sale_service.admin_message(result, seller_name), exclude=seller.id, parse_mode="Markdown"
    )
