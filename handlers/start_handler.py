"""
handlers/start_handler.py
--------------------------
Handles /start, /help and /profile.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.common import marketplace_errors, reply
from security.auth import active_user_only
from security.rate_limiter import rate_limited
from services.referral_service import ReferralService
from services.user_service import UserService
from utils.codes import looks_like_code
from utils.formatting import md
from utils.logger import get_logger

logger = get_logger(__name__)
user_service = UserService()
referral_service = ReferralService()

HELP_TEXT = """
🤖 *Referral Marketplace*
Buy from local companies, share referral codes, earn rewards.

*🛍 Shopping*
/browse - Browse products
/favorites - Your favorite products
/cart - Your cart
/orders - Your purchase history
/feecalculator - See how a sale amount is split

*🔗 Referrals*
/referrals - Your referral stats
/codes - Your referral codes
/leaderboard - Top referrers
/withdraw - Request a payout
/payouts - Your payout requests
/profile - Your profile and balances

*🏢 Companies*
/register\\_company - Register a company
/company - Your companies
/edit\\_company - Edit name, description or email
/company\\_stats - Sales and referral analytics
/add\\_product - Add a product
/my\\_products - Your products
/edit\\_product - Edit a product
/delete\\_product - Delete a product
/sell - Record a sale
/withdrawals - Pending withdrawal requests
/deny\\_withdrawal - Decline a request with a reason

Send a referral code (e.g. AB-7K2Q9X) to see who shared it.
"""

ADMIN_HELP_TEXT = """
*🛠 Admin*
/admin - Panel and statistics
/users \\[page], /companies \\[page] - Browse the directory
/find\\_user, /find\\_company <query> - Search
/user\\_info <id|@user>, /company\\_info <id> - Details
/settings - View or change fees
/maintenance on|off - Maintenance mode
/ban, /unban <id|@user>
/promote, /demote <id|@user> - Company registration rights
/company\\_status <id> active|suspended
/broadcast <text> - Message all users
/billing\\_withdraw <company\\_id> <amount> \\[reason]
/billing\\_withdrawals - Billing withdrawals
/export\\_users, /export\\_companies, /export\\_sales \\[year month]
/sales\\_chart \\[days], /revenue\\_chart \\[month year]
"""


@active_user_only
@rate_limited
@marketplace_errors
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /start - the user is already registered by @active_user_only.
    A deep-link payload that is a referral code is explained.
    """
    user = update.effective_user
    logger.info(f"User {user.id} (@{user.username}) started the bot.")

    await reply(
        update,
        f"👋 Welcome, {md(user.first_name)}!\n\n"
        f"Browse products from local companies with /browse.\n"
        f"Use someone's referral code when you buy to get a bonus, "
        f"and share your own codes to earn rewards.\n\n"
        f"Send /help to see everything I can do.",
    )

    if context.args and looks_like_code(context.args[0]):
        await reply(update, referral_service.lookup_text(context.args[0]))


@active_user_only
@rate_limited
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help - show all available commands."""
    text = HELP_TEXT
    if user_service.is_admin(update.effective_user.id):
        text += ADMIN_HELP_TEXT
    await reply(update, text)


@active_user_only
@rate_limited
@marketplace_errors
async def profile_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await reply(update, user_service.profile_text(update.effective_user.id))
