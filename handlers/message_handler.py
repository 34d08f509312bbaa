"""
handlers/message_handler.py
----------------------------
Plain text messages (not commands).

A message answers whatever the bot asked last (kept under
context.user_data["awaiting"]); otherwise a referral code is looked up.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import marketplace_errors, reply
from handlers.company_handler import (
    AWAITING_DECLINE_REASON,
    DECLINE_ID_KEY,
    decline_and_notify,
)
from handlers.user_handler import AWAITING_FEE_AMOUNT, AWAITING_KEY
from security.auth import active_user_only
from security.rate_limiter import rate_limited
from services.referral_service import ReferralService
from services.sale_service import SaleService
from utils.codes import looks_like_code
from utils.formatting import parse_amount
from utils.logger import get_logger

logger = get_logger(__name__)
referral_service = ReferralService()
sale_service = SaleService()

FALLBACK_TEXT = "🤔 I didn't understand that. Send /help to see what I can do."


@active_user_only
@rate_limited
@marketplace_errors
async def handle_text_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    text = (update.effective_message.text or "").strip()
    if not text:
        return

    awaiting = context.user_data.get(AWAITING_KEY)

    if awaiting == AWAITING_FEE_AMOUNT:
        amount = parse_amount(text)
        if amount is None:
            await reply(update, "⚠️ Please send a positive amount, e.g. 100")
            return
        context.user_data.pop(AWAITING_KEY, None)
        await reply(update, sale_service.fee_calculator_text(amount))
        return

    if awaiting == AWAITING_DECLINE_REASON:
        withdrawal_id = context.user_data.pop(DECLINE_ID_KEY, None)
        context.user_data.pop(AWAITING_KEY, None)
        if withdrawal_id is not None:
            reason = None if text == "-" else text
            await decline_and_notify(update, context, withdrawal_id, reason)
            return

    if looks_like_code(text):
        await reply(update, referral_service.lookup_text(text))
        return

    await reply(update, FALLBACK_TEXT)
