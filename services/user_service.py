"""
services/user_service.py
-------------------------
Registration, profile, purchase history, favorites and cart.
"""

from decimal import Decimal
from typing import Optional

from config import ADMIN_IDS
from models.user import User
from repositories.product_repo import ProductRepository
from repositories.referral_repo import ReferralRepository
from repositories.sale_repo import SaleRepository
from repositories.user_repo import UserRepository
from utils.errors import NotFoundError, ValidationError
from utils.formatting import md, money, short_date
from utils.logger import get_logger

logger = get_logger(__name__)

FAVORITES = "favorites"
CART = "cart_items"


def is_admin(telegram_id: int, user: Optional[User] = None) -> bool:
    """Admins are the ADMIN_IDS from the environment plus users flagged is_admin."""
    return telegram_id in ADMIN_IDS or bool(user and user.is_admin)


class UserService:
    """Handles everything a user does with their own account."""

    def __init__(
        self,
        user_repo: Optional[UserRepository] = None,
        product_repo: Optional[ProductRepository] = None,
        referral_repo: Optional[ReferralRepository] = None,
        sale_repo: Optional[SaleRepository] = None,
    ):
        self.repo = user_repo or UserRepository()
        self.products = product_repo or ProductRepository()
        self.referrals = referral_repo or ReferralRepository()
        self.sales = sale_repo or SaleRepository()

    def register(
        self,
        telegram_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> User:
        """Create the user on first contact, refresh their profile afterwards."""
        return self.repo.ensure_user(telegram_id, first_name, last_name, username)

    def get(self, telegram_id: int) -> User:
        user = self.repo.get(telegram_id)
        if not user:
            raise NotFoundError("❌ User not found. Send /start first.")
        return user

    def is_admin(self, telegram_id: int) -> bool:
        return is_admin(telegram_id, self.repo.get(telegram_id))

    def profile_text(self, telegram_id: int) -> str:
        user = self.get(telegram_id)
        codes = self.referrals.list_codes(telegram_id, active_only=True)
        joined = self.repo.joined_company_count(telegram_id)

        msg = (
            f"👤 *Your profile*\n\n"
            f"Name: {md(user.first_name or '-')}\n"
            f"Username: {md('@' + user.username) if user.username else '-'}\n"
            f"ID: `{user.telegram_id}`\n\n"
            f"🪙 Coin balance: {money(user.coin_balance)}\n"
            f"💰 Referral balance: {money(user.referral_balance)}\n"
            f"🏢 Joined companies: {joined}\n"
            f"🔗 Active referral codes: {len(codes)}\n"
        )
        roles = []
        if is_admin(telegram_id, user):
            roles.append("admin")
        if user.can_register_company:
            roles.append("company registration")
        if roles:
            msg += f"🎖 Rights: {', '.join(roles)}\n"
        return msg

    def purchase_history_text(self, telegram_id: int, limit: int = 10) -> str:
        """The buyer's latest purchases with the code used and bonus received."""
        purchases = self.sales.list_by_buyer(telegram_id, limit)
        if not purchases:
            return "🧾 You have no purchases yet. Use /browse to find products."
        total = self.sales.count_by_buyer(telegram_id)
        lines = [f"🧾 *Your purchases* ({total})\n"]
        for p in purchases:
            line = (
                f"• {short_date(p['created_at'])} *{md(p['product'] or 'Deleted product')}* "
                f"x{p['quantity']} from {md(p['company'])}: {money(p['amount'])}"
            )
            if p["referral_code"]:
                line += f"\n    🔗 `{p['referral_code']}` 🪙 +{money(p['buyer_bonus'])}"
            lines.append(line)
        if total > len(purchases):
            lines.append(f"\nShowing the latest {len(purchases)}.")
        return "\n".join(lines)

    # ── FAVORITES / CART ──────────────────────────────────

    def add_favorite(self, telegram_id: int, product_id: int) -> str:
        product = self._product_or_raise(product_id)
        if not self.repo.add_item(FAVORITES, telegram_id, product_id):
            return f"⭐ *{md(product.title)}* is already in your favorites."
        return f"⭐ Added *{md(product.title)}* to your favorites."

    def remove_favorite(self, telegram_id: int, product_id: int) -> str:
        if not self.repo.remove_item(FAVORITES, telegram_id, product_id):
            return "⚠️ That product is not in your favorites."
        return "🗑️ Removed from favorites."

    def favorites_text(self, telegram_id: int) -> str:
        products = self.repo.list_items(FAVORITES, telegram_id)
        if not products:
            return "⭐ You have no favorites yet. Use /browse to find products."
        lines = ["⭐ *Your favorites*\n"]
        for p in products:
            lines.append(f"• #{p.id} *{md(p.title)}* ({md(p.company_name)}) {money(p.price)}")
        return "\n".join(lines)

    def add_to_cart(self, telegram_id: int, product_id: int) -> str:
        product = self._product_or_raise(product_id)
        if not product.is_available():
            raise ValidationError(f"❌ *{md(product.title)}* is out of stock.")
        if not self.repo.add_item(CART, telegram_id, product_id):
            return f"🛒 *{md(product.title)}* is already in your cart."
        return f"🛒 Added *{md(product.title)}* to your cart."

    def remove_from_cart(self, telegram_id: int, product_id: Optional[int] = None) -> str:
        removed = self.repo.remove_item(CART, telegram_id, product_id)
        if not removed:
            return "⚠️ Nothing to remove."
        return "🧹 Cart cleared." if product_id is None else "🗑️ Removed from cart."

    def cart_text(self, telegram_id: int) -> str:
        products = self.repo.list_items(CART, telegram_id)
        if not products:
            return "🛒 Your cart is empty."
        lines = ["🛒 *Your cart*\n"]
        for p in products:
            lines.append(f"• #{p.id} *{md(p.title)}* ({md(p.company_name)}) {money(p.price)}")
        total = sum((p.price for p in products), Decimal("0.00"))
        lines.append(f"\n💵 Total: {money(total)}")
        lines.append("Show a product ID to the seller to buy it in person.")
        return "\n".join(lines)

    def _product_or_raise(self, product_id: int):
        product = self.products.get(product_id)
        if not product:
            raise NotFoundError(f"❌ Product #{product_id} not found.")
        return product
