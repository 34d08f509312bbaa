"""
services/sale_service.py
-------------------------
Recording in-person sales and splitting the money.

A sale of `quantity` units of a product to a buyer, optionally with a
referral code, is settled as:

    platform_fee    = amount * platform_fee_percent / 100
    referrer_bonus  = amount * referral_commission_percent / 100   (code only)
    buyer_bonus     = amount * buyer_discount_percent / 100        (code only)
    seller_earnings = amount - platform_fee - referrer_bonus - buyer_bonus

Every write of a sale happens in one ledger transaction, keyed by a
sale_key so that a retried confirmation is applied once.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from psycopg2.errors import UniqueViolation

from models.company import Company
from models.referral import Referral, ReferralCode
from models.sale import Sale, Settlement
from models.settings import PlatformSettings
from models.user import User
from repositories.company_repo import CompanyRepository
from repositories.ledger_repo import LedgerRepository
from repositories.product_repo import ProductRepository
from repositories.referral_repo import ReferralRepository
from repositories.settings_repo import SettingsRepository
from repositories.user_repo import UserRepository
from services.user_service import is_admin
from utils.codes import looks_like_code, normalize_code
from utils.errors import (
    InsufficientStockError,
    InvalidReferralCodeError,
    NotFoundError,
    PermissionDeniedError,
    SelfReferralError,
    ValidationError,
)
from utils.formatting import CENT, md, money, parse_int, percent, to_money
from utils.logger import get_logger

logger = get_logger(__name__)

SELL_USAGE = (
    "⚠️ Usage: /sell <product\\_id> @buyer <quantity> \\[referral\\_code]\n"
    "Example: /sell 12 @alice 2 AB-7K2Q9X"
)


def _pct(amount: Decimal, pct: Decimal) -> Decimal:
    return (amount * Decimal(pct) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_settlement(amount, settings: PlatformSettings, with_referral: bool) -> Settlement:
    """
    Split a sale amount between platform, referrer, buyer and seller.

    Each part is rounded half-up to cents and seller_earnings takes the
    remainder, so the four parts always add up to the amount exactly.

    Raises:
        ValidationError: If the amount is not positive, or the configured
            percentages would leave the seller with a negative share.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("⚠️ The sale amount must be positive.")

    platform_fee = _pct(amount, settings.platform_fee_percent)
    referrer_bonus = Decimal("0.00")
    buyer_bonus = Decimal("0.00")
    if with_referral:
        referrer_bonus = _pct(amount, settings.referral_commission_percent)
        buyer_bonus = _pct(amount, settings.buyer_discount_percent)

    seller_earnings = amount - platform_fee - referrer_bonus - buyer_bonus
    if seller_earnings < 0:
        raise ValidationError("⚠️ Fees and bonuses exceed the sale amount. Check the platform settings.")

    return Settlement(
        amount=amount,
        platform_fee=platform_fee,
        referrer_bonus=referrer_bonus,
        buyer_bonus=buyer_bonus,
        seller_earnings=seller_earnings,
    )


@dataclass
class SaleRequest:
    """Parsed arguments of /sell, kept in user_data until confirmed."""
    product_id: int
    buyer_username: str
    quantity: int
    referral_code: Optional[str] = None


@dataclass
class SaleResult:
    """Everything the handler needs to send receipts after the commit."""
    sale: Sale
    duplicate: bool
    product_title: str
    company_name: str
    buyer: User
    remaining_stock: Optional[int] = None
    referrer_balance: Optional[Decimal] = None
    buyer_coin_balance: Optional[Decimal] = None


def parse_sale_args(args: list[str]) -> SaleRequest:
    """
    Parse `/sell <product_id> @buyer <quantity> [code]`.

    Raises:
        ValidationError: With the usage text when anything is missing or malformed.
    """
    if len(args) < 3:
        raise ValidationError(SELL_USAGE)
    product_id = parse_int(args[0])
    quantity = parse_int(args[2])
    buyer = args[1].lstrip("@").strip()
    if not product_id or not quantity or not buyer:
        raise ValidationError(SELL_USAGE)
    code = None
    if len(args) >= 4:
        code = normalize_code(args[3])
        if not looks_like_code(code):
            raise InvalidReferralCodeError(f"❌ {md(args[3])} is not a referral code (expected AB-XXXXXX).")
    return SaleRequest(product_id=product_id, buyer_username=buyer.lower(), quantity=quantity, referral_code=code)


class SaleService:
    """Validates, previews and records sales."""

    def __init__(
        self,
        user_repo: Optional[UserRepository] = None,
        product_repo: Optional[ProductRepository] = None,
        referral_repo: Optional[ReferralRepository] = None,
        settings_repo: Optional[SettingsRepository] = None,
        ledger: Optional[LedgerRepository] = None,
        company_repo: Optional[CompanyRepository] = None,
    ):
        self.users = user_repo or UserRepository()
        self.products = product_repo or ProductRepository()
        self.companies = company_repo or CompanyRepository()
        self.referrals = referral_repo or ReferralRepository()
        self.settings = settings_repo or SettingsRepository()
        self.ledger = ledger or LedgerRepository()

    # ── PREVIEW ───────────────────────────────────────────

    def preview_sale(self, seller_id: int, request: SaleRequest) -> str:
        """
        Check a sale without writing anything and describe it for the
        Confirm/Cancel prompt. Everything is checked again, under lock,
        when the sale is recorded.
        """
        product = self.products.get(request.product_id)
        if not product:
            raise NotFoundError(f"❌ Product #{request.product_id} not found.")
        self._check_seller(self.companies.get(product.company_id), seller_id)
        buyer = self._buyer_or_raise(request.buyer_username)
        if product.quantity < request.quantity:
            raise InsufficientStockError(
                f"❌ Only {product.quantity} unit(s) of *{md(product.title)}* left."
            )

        with_referral = False
        if request.referral_code:
            code = self.referrals.get_code(request.referral_code)
            self._check_code(code, product.company_id, buyer.telegram_id)
            with_referral = True

        amount = product.price * request.quantity
        s = compute_settlement(amount, self.settings.get(), with_referral)
        msg = (
            f"🧾 *Confirm sale*\n\n"
            f"• Product: #{product.id} {md(product.title)}\n"
            f"• Company: {md(product.company_name)}\n"
            f"• Buyer: {md(buyer.display_name)}\n"
            f"• Quantity: {request.quantity} × {money(product.price)}\n"
            f"• Total: *{money(s.amount)}*\n"
            f"• Referral code: {md(request.referral_code) if request.referral_code else 'None'}\n\n"
            f"Platform fee: {money(s.platform_fee)}\n"
        )
        if with_referral:
            msg += (
                f"Referrer reward: {money(s.referrer_bonus)}\n"
                f"Buyer bonus: {money(s.buyer_bonus)}\n"
            )
        msg += f"Your earnings: *{money(s.seller_earnings)}*"
        return msg

    # ── RECORD ────────────────────────────────────────────

    def record_sale(
        self,
        sale_key: str,
        seller_id: int,
        product_id: int,
        buyer_username: str,
        quantity: int,
        referral_code: Optional[str] = None,
    ) -> SaleResult:
        """
        Record a sale and move all the money it involves in one transaction.

        A sale_key that was already applied returns the stored sale with
        duplicate=True and changes nothing, also when two confirmations of
        the same key race each other.

        Raises:
            MarketplaceError subclasses for every rejected sale; the
            transaction is rolled back and nothing is written.
        """
        if quantity <= 0:
            raise ValidationError("⚠️ Quantity must be at least 1.")
        buyer = self._buyer_or_raise(buyer_username)
        code_text = normalize_code(referral_code) if referral_code else None

        try:
            with self.ledger.transaction() as tx:
                result = self._apply_sale(tx, sale_key, seller_id, product_id, buyer, quantity, code_text)
        except UniqueViolation:
            # The other confirmation committed between our check and insert.
            with self.ledger.transaction() as tx:
                existing = tx.find_sale(sale_key)
                result = self._duplicate_result(tx, existing, buyer) if existing else None
            if result is None:
                raise
            return result

        if not result.duplicate:
            sale = result.sale
            logger.info(
                f"Sale #{sale.id}: {quantity}x product {sale.product_id} to {buyer.telegram_id} "
                f"for {sale.amount} (fee {sale.platform_fee}, referrer {sale.referrer_bonus}, "
                f"buyer {sale.buyer_bonus}, seller {sale.seller_earnings})"
            )
        return result

    def _apply_sale(
        self,
        tx,
        sale_key: str,
        seller_id: int,
        product_id: int,
        buyer: User,
        quantity: int,
        code_text: Optional[str],
    ) -> SaleResult:
        existing = tx.find_sale(sale_key)
        if existing:
            return self._duplicate_result(tx, existing, buyer)

        product = tx.lock_product(product_id)
        if not product:
            raise NotFoundError(f"❌ Product #{product_id} not found.")
        # A confirmation holding the product lock may have just committed this key.
        existing = tx.find_sale(sale_key)
        if existing:
            return self._duplicate_result(tx, existing, buyer)

        company = tx.lock_company(product.company_id)
        self._check_seller(company, seller_id)
        if product.quantity < quantity:
            raise InsufficientStockError(
                f"❌ Only {product.quantity} unit(s) of *{md(product.title)}* left."
            )

        settings = tx.load_settings(lock=True)

        code: Optional[ReferralCode] = None
        if code_text:
            code = tx.lock_referral_code(code_text)
            self._check_code(code, product.company_id, buyer.telegram_id)
            tx.mark_code_used(code.id, buyer.telegram_id)

        s = compute_settlement(product.price * quantity, settings, code is not None)

        remaining = tx.decrement_stock(product.id, quantity)
        buyer_coins = None
        referrer_balance = None
        if code is not None:
            buyer_coins = tx.credit_user(buyer.telegram_id, "coin_balance", s.buyer_bonus)
            referrer_balance = tx.credit_user(code.user_id, "referral_balance", s.referrer_bonus)
        tx.credit_company(company.id, s.seller_earnings)
        tx.credit_platform(s.platform_fee)

        sale = tx.insert_sale(Sale(
            sale_key=sale_key,
            product_id=product.id,
            company_id=company.id,
            seller_id=seller_id,
            buyer_id=buyer.telegram_id,
            quantity=quantity,
            unit_price=product.price,
            amount=s.amount,
            platform_fee=s.platform_fee,
            referrer_bonus=s.referrer_bonus,
            buyer_bonus=s.buyer_bonus,
            seller_earnings=s.seller_earnings,
            referral_code=code.code if code else None,
            referrer_id=code.user_id if code else None,
        ))
        if code is not None:
            tx.insert_referral(Referral(
                referral_code_id=code.id,
                code=code.code,
                referrer_id=code.user_id,
                buyer_id=buyer.telegram_id,
                company_id=company.id,
                product_id=product.id,
                sale_id=sale.id,
                amount=s.amount,
                commission=s.referrer_bonus,
            ))

        return SaleResult(
            sale=sale,
            duplicate=False,
            product_title=product.title,
            company_name=company.name,
            buyer=buyer,
            remaining_stock=remaining,
            referrer_balance=referrer_balance,
            buyer_coin_balance=buyer_coins,
        )

    @staticmethod
    def _duplicate_result(tx, existing: Sale, buyer: User) -> SaleResult:
        logger.info(f"Sale key {existing.sale_key} already applied as sale #{existing.id}")
        product = tx.lock_product(existing.product_id) if existing.product_id else None
        return SaleResult(
            sale=existing,
            duplicate=True,
            product_title=product.title if product else "-",
            company_name=product.company_name if product else "-",
            buyer=buyer,
        )

    # ── MESSAGES ──────────────────────────────────────────

    def seller_receipt(self, result: SaleResult) -> str:
        sale = result.sale
        msg = (
            f"🧾 *Sale receipt* #{sale.id}\n\n"
            f"• Product: {md(result.product_title)}\n"
            f"• Quantity: {sale.quantity}\n"
            f"• Total: {money(sale.amount)}\n"
            f"• Buyer: {md(result.buyer.display_name)}\n"
        )
        if sale.referral_code:
            msg += (
                f"• Referral code: {md(sale.referral_code)}\n"
                f"• Buyer bonus: {money(sale.buyer_bonus)}\n"
                f"• Referrer bonus: {money(sale.referrer_bonus)}\n"
            )
        else:
            msg += "• Referral code: None\n"
        msg += (
            f"• Platform fee: {money(sale.platform_fee)}\n"
            f"• Your earnings: *{money(sale.seller_earnings)}*\n"
        )
        if result.remaining_stock is not None:
            msg += f"• Stock left: {result.remaining_stock}\n"
        if sale.created_at:
            msg += f"• Date: {sale.created_at:%Y-%m-%d %H:%M} UTC"
        return msg

    def buyer_receipt(self, result: SaleResult, seller_name: str) -> str:
        sale = result.sale
        msg = (
            f"🛒 *Thank you for your purchase!*\n\n"
            f"• Product: {md(result.product_title)}\n"
            f"• Quantity: {sale.quantity}\n"
            f"• Total: {money(sale.amount)}\n"
            f"• Seller: {md(seller_name)}\n"
        )
        if sale.referral_code:
            msg += (
                f"• Referral code used: {md(sale.referral_code)}\n"
                f"• You received a {money(sale.buyer_bonus)} bonus for using a referral code!\n"
            )
            if result.buyer_coin_balance is not None:
                msg += f"• Your coin balance: {money(result.buyer_coin_balance)}\n"
        else:
            msg += "• Referral code used: None\n"
        return msg

    def referrer_message(self, result: SaleResult) -> str:
        sale = result.sale
        msg = (
            f"🎉 Your referral code {md(sale.referral_code)} was used by "
            f"{md(result.buyer.display_name)}!\n"
            f"You earned {money(sale.referrer_bonus)}."
        )
        if result.referrer_balance is not None:
            msg += f"\nYour referral balance: {money(result.referrer_balance)}"
        return msg

    def admin_message(self, result: SaleResult, seller_name: str) -> str:
        sale = result.sale
        return (
            f"📣 *Product sold*\n"
            f"{sale.quantity}x {md(result.product_title)} ({md(result.company_name)})\n"
            f"Seller: {md(seller_name)} → Buyer: {md(result.buyer.display_name)}\n"
            f"Total: {money(sale.amount)} | Fee: {money(sale.platform_fee)}"
            + (f" | Code: {md(sale.referral_code)}" if sale.referral_code else "")
        )

    def fee_calculator_text(self, amount: Decimal) -> str:
        """Show how an amount would be settled with a referral code."""
        settings = self.settings.get()
        s = compute_settlement(amount, settings, with_referral=True)
        return (
            f"🧮 *Fee calculator* for {money(s.amount)}\n\n"
            f"Platform fee ({percent(settings.platform_fee_percent)}): {money(s.platform_fee)}\n"
            f"Referrer reward ({percent(settings.referral_commission_percent)}): {money(s.referrer_bonus)}\n"
            f"Buyer bonus ({percent(settings.buyer_discount_percent)}): {money(s.buyer_bonus)}\n"
            f"Seller receives: *{money(s.seller_earnings)}*\n\n"
            f"Without a referral code the seller receives "
            f"{money(s.amount - s.platform_fee)}."
        )

    # ── HELPERS ───────────────────────────────────────────

    def _buyer_or_raise(self, username: str) -> User:
        buyer = self.users.get_by_username(username)
        if not buyer:
            raise NotFoundError(
                f"❌ Buyer @{md(username.lstrip('@'))} not found. They need to /start the bot first."
            )
        if buyer.banned:
            raise PermissionDeniedError("⛔ This buyer is banned.")
        return buyer

    def _check_seller(self, company: Company, seller_id: int) -> None:
        """Only the owner (or an admin) of an active company records its sales."""
        if not company.is_active():
            raise ValidationError(f"⛔ {md(company.name)} is suspended and cannot record sales.")
        if company.owner_id != seller_id and not is_admin(seller_id, self.users.get(seller_id)):
            raise PermissionDeniedError("⛔ Only the company owner can record sales of this product.")

    @staticmethod
    def _check_code(code: Optional[ReferralCode], company_id: int, buyer_id: int) -> None:
        if code is None or not code.active:
            raise InvalidReferralCodeError()
        if code.company_id != company_id:
            raise InvalidReferralCodeError("❌ This referral code belongs to another company.")
        if code.user_id == buyer_id:
            raise SelfReferralError()
