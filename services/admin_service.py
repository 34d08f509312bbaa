"""
services/admin_service.py
--------------------------
Admin-only operations: platform statistics, runtime settings, maintenance
mode, moderation (ban, company rights), the user and company directory and
the daily report.
"""

import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from models.company import Company
from models.settings import PlatformSettings
from models.user import User
from repositories.company_repo import CompanyRepository
from repositories.product_repo import ProductRepository
from repositories.referral_repo import ReferralRepository
from repositories.sale_repo import SaleRepository
from repositories.settings_repo import SettingsRepository
from repositories.user_repo import UserRepository
from repositories.withdrawal_repo import WithdrawalRepository
from services.user_service import is_admin
from utils.errors import NotFoundError, PermissionDeniedError, ValidationError
from utils.formatting import md, money, parse_int, percent, short_date
from utils.logger import get_logger

logger = get_logger(__name__)

DIRECTORY_PAGE_SIZE = 10

# Short names accepted by /settings <key> <value>.
SETTING_ALIASES = {
    "fee": "platform_fee_percent",
    "commission": "referral_commission_percent",
    "discount": "buyer_discount_percent",
    "min_withdrawal": "min_withdrawal_amount",
}
_PERCENT_FIELDS = (
    "platform_fee_percent",
    "referral_commission_percent",
    "buyer_discount_percent",
)


def validate_setting(settings: PlatformSettings, key: str, raw_value: str) -> tuple[str, Decimal]:
    """
    Parse and validate a settings change against the current settings.

    Returns:
        (column name, new value)

    Raises:
        ValidationError: Unknown key, not a number, a percentage outside
            0..100, combined deductions reaching 100%, or a non-positive
            minimum withdrawal.
    """
    field = SETTING_ALIASES.get((key or "").lower())
    if not field:
        raise ValidationError(f"⚠️ Unknown setting. Use one of: {md(', '.join(SETTING_ALIASES))}.")
    try:
        value = Decimal((raw_value or "").strip().rstrip("%"))
    except InvalidOperation:
        raise ValidationError("⚠️ The value must be a number.")
    if not value.is_finite():
        raise ValidationError("⚠️ The value must be a number.")

    if field in _PERCENT_FIELDS:
        if not Decimal(0) <= value <= Decimal(100):
            raise ValidationError("⚠️ Percentages must be between 0 and 100.")
        total = sum(
            (value if f == field else getattr(settings, f) for f in _PERCENT_FIELDS),
            Decimal(0),
        )
        if total >= 100:
            raise ValidationError(
                f"⚠️ Fee, commission and discount together would be {percent(total)}; they must stay below 100%."
            )
        return field, value.quantize(Decimal("0.01"))

    if value <= 0:
        raise ValidationError("⚠️ The minimum withdrawal must be positive.")
    return field, value.quantize(Decimal("0.01"))


class AdminService:
    """Platform administration."""

    def __init__(
        self,
        user_repo: Optional[UserRepository] = None,
        company_repo: Optional[CompanyRepository] = None,
        sale_repo: Optional[SaleRepository] = None,
        settings_repo: Optional[SettingsRepository] = None,
        withdrawal_repo: Optional[WithdrawalRepository] = None,
        referral_repo: Optional[ReferralRepository] = None,
        product_repo: Optional[ProductRepository] = None,
    ):
        self.users = user_repo or UserRepository()
        self.companies = company_repo or CompanyRepository()
        self.sales = sale_repo or SaleRepository()
        self.settings = settings_repo or SettingsRepository()
        self.withdrawals = withdrawal_repo or WithdrawalRepository()
        self.referrals = referral_repo or ReferralRepository()
        self.products = product_repo or ProductRepository()

    # ── PANEL ─────────────────────────────────────────────

    def stats_text(self) -> str:
        users = self.users.counts()
        companies = self.companies.counts()
        sales = self.sales.totals()
        codes = self.referrals.count_codes()
        withdrawals = self.withdrawals.count_by_status()
        settings = self.settings.get()
        return (
            f"🛠 *Admin panel*\n\n"
            f"👥 Users: {users['total']} ({users['banned']} banned, {users['new_today']} new today)\n"
            f"🏢 Companies: {companies['total']} ({companies['active']} active)\n"
            f"🔗 Referral codes: {codes['total']} ({codes['used']} used)\n\n"
            f"🧾 Sales: {sales['count']} ({sales['referred']} with a code)\n"
            f"💵 Volume: {money(sales['volume'])}\n"
            f"🏦 Platform balance: {money(settings.platform_balance)}\n"
            f"💳 Company billing balances: {money(companies['billing_total'])}\n\n"
            f"⏳ Pending withdrawals: {withdrawals.get('company_pending', 0)}\n"
            f"✅ Approved, awaiting payout: {withdrawals.get('approved', 0)}\n"
            f"🔧 Maintenance: {'ON' if settings.maintenance_mode else 'off'}"
        )

    def settings_text(self) -> str:
        s = self.settings.get()
        return (
            f"⚙️ *Platform settings*\n\n"
            f"fee: {percent(s.platform_fee_percent)}\n"
            f"commission: {percent(s.referral_commission_percent)}\n"
            f"discount: {percent(s.buyer_discount_percent)}\n"
            f"min\\_withdrawal: {money(s.min_withdrawal_amount)}\n"
            f"maintenance: {'on' if s.maintenance_mode else 'off'}\n\n"
            f"Change with /settings <key> <value>, e.g. /settings fee 2"
        )

    def update_setting(self, admin_id: int, key: str, raw_value: str) -> PlatformSettings:
        field, value = validate_setting(self.settings.get(), key, raw_value)
        updated = self.settings.update_field(field, value)
        logger.info(f"Admin {admin_id} set {field} = {value}")
        return updated

    def set_maintenance(self, admin_id: int, enabled: bool) -> None:
        self.settings.set_maintenance(enabled)
        logger.info(f"Admin {admin_id} turned maintenance {'on' if enabled else 'off'}")

    # ── MODERATION ────────────────────────────────────────

    def resolve_user(self, target: str) -> User:
        """Find a user by Telegram ID or @username."""
        target = (target or "").strip()
        user_id = parse_int(target)
        user = self.users.get(user_id) if user_id else self.users.get_by_username(target)
        if not user:
            raise NotFoundError(f"❌ User {md(target)} not found.")
        return user

    def set_banned(self, admin_id: int, target: str, banned: bool) -> User:
        user = self.resolve_user(target)
        if banned and (user.telegram_id == admin_id or is_admin(user.telegram_id, user)):
            raise PermissionDeniedError("⛔ Admins cannot be banned.")
        self.users.set_flag(user.telegram_id, "banned", banned)
        user.banned = banned
        logger.info(f"Admin {admin_id} {'banned' if banned else 'unbanned'} user {user.telegram_id}")
        return user

    def set_company_rights(self, admin_id: int, target: str, allowed: bool) -> User:
        user = self.resolve_user(target)
        self.users.set_flag(user.telegram_id, "can_register_company", allowed)
        user.can_register_company = allowed
        logger.info(
            f"Admin {admin_id} {'granted' if allowed else 'revoked'} company registration for {user.telegram_id}"
        )
        return user

    def broadcast_targets(self) -> list[int]:
        return self.users.list_active_ids()

    # ── DIRECTORY ─────────────────────────────────────────

    def users_page(self, page: int = 0) -> tuple[str, list[User], int, int]:
        """
        One page of registered users, newest first.

        Returns:
            (message, users on the page, page index, page count)
        """
        total = self.users.counts()["total"]
        page, pages = self._clamp_page(page, total)
        users = self.users.list_page(page * DIRECTORY_PAGE_SIZE, DIRECTORY_PAGE_SIZE)
        if not users:
            return "👥 No users yet.", [], 0, 1
        lines = [f"👥 *Users* ({total}, page {page + 1}/{pages})\n"]
        lines.extend(self._user_line(u) for u in users)
        return "\n".join(lines), users, page, pages

    def companies_page(self, page: int = 0) -> tuple[str, list[Company], int, int]:
        total = self.companies.counts()["total"]
        page, pages = self._clamp_page(page, total)
        companies = self.companies.list_page(page * DIRECTORY_PAGE_SIZE, DIRECTORY_PAGE_SIZE)
        if not companies:
            return "🏢 No companies yet.", [], 0, 1
        lines = [f"🏢 *Companies* ({total}, page {page + 1}/{pages})\n"]
        lines.extend(self._company_line(c) for c in companies)
        return "\n".join(lines), companies, page, pages

    def find_users_text(self, query: str) -> str:
        query = self._search_query(query)
        users = self.users.search(query)
        if not users:
            return f"🔍 No users match {md(query)}."
        lines = [f"🔍 *Users matching* {md(query)}\n"]
        lines.extend(self._user_line(u) for u in users)
        lines.append("\nDetails: /user\\_info <id>")
        return "\n".join(lines)

    def find_companies_text(self, query: str) -> str:
        query = self._search_query(query)
        companies = self.companies.search(query)
        if not companies:
            return f"🔍 No companies match {md(query)}."
        lines = [f"🔍 *Companies matching* {md(query)}\n"]
        lines.extend(self._company_line(c) for c in companies)
        lines.append("\nDetails: /company\\_info <id>")
        return "\n".join(lines)

    def company_detail_text(self, company_id: int) -> str:
        company = self.companies.get(company_id)
        if not company:
            raise NotFoundError(f"❌ Company #{company_id} not found.")
        owner = self.users.get(company.owner_id)
        sales = self.sales.totals(company_id=company.id)
        codes = self.referrals.count_codes(company.id)
        products = self.products.list_by_company(company.id)
        return (
            f"🏢 *{md(company.name)}* (#{company.id})\n\n"
            f"Status: {'🟢 active' if company.is_active() else '⛔ suspended'}\n"
            f"Owner: {md(owner.display_name if owner else company.owner_id)} (`{company.owner_id}`)\n"
            f"Prefix: {company.code_prefix}\n"
            f"Email: {md(company.email or '-')}\n"
            f"Registered: {short_date(company.created_at)}\n\n"
            f"💳 Billing balance: {money(company.billing_balance)}\n"
            f"📦 Products: {len(products)} ({sum(1 for p in products if p.is_available())} in stock)\n"
            f"🧾 Sales: {sales['count']} ({money(sales['volume'])})\n"
            f"🏦 Platform fees: {money(sales['platform_fees'])}\n"
            f"🔗 Referral codes: {codes['total']} ({codes['used']} used)"
        )

    def user_detail_text(self, target: str) -> str:
        user = self.resolve_user(target)
        now = datetime.now(timezone.utc)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        referrals = self.referrals.stats(user.telegram_id, month_start)
        owned = self.companies.list_by_owner(user.telegram_id)
        purchases = self.sales.count_by_buyer(user.telegram_id)

        flags = []
        if is_admin(user.telegram_id, user):
            flags.append("admin")
        if user.can_register_company:
            flags.append("company registration")
        if user.banned:
            flags.append("🚫 banned")
        msg = (
            f"👤 *{md(user.display_name)}* (`{user.telegram_id}`)\n\n"
            f"Name: {md(' '.join(filter(None, [user.first_name, user.last_name])) or '-')}\n"
            f"Joined: {short_date(user.created_at)}, last seen {short_date(user.last_active)}\n"
            f"Flags: {', '.join(flags) or '-'}\n\n"
            f"🪙 Coin balance: {money(user.coin_balance)}\n"
            f"💰 Referral balance: {money(user.referral_balance)}\n"
            f"🧾 Purchases: {purchases}\n"
            f"🔗 Referred sales: {referrals['total_referrals']} "
            f"({money(referrals['total_earnings'])} earned, {money(referrals['month_earnings'])} this month)\n"
        )
        if owned:
            msg += "🏢 Companies: " + ", ".join(f"{md(c.name)} (#{c.id})" for c in owned) + "\n"
        return msg

    @staticmethod
    def _clamp_page(page: int, total: int) -> tuple[int, int]:
        pages = max(math.ceil(total / DIRECTORY_PAGE_SIZE), 1)
        return min(max(page, 0), pages - 1), pages

    @staticmethod
    def _search_query(query: str) -> str:
        query = (query or "").strip()
        if len(query.lstrip("@")) < 2:
            raise ValidationError("⚠️ Search for at least 2 characters.")
        return query

    @staticmethod
    def _user_line(u: User) -> str:
        return f"• {md(str(u))}"

    @staticmethod
    def _company_line(c: Company) -> str:
        return f"• {md(str(c))} {money(c.billing_balance)}"

    # ── REPORTS ───────────────────────────────────────────

    def daily_report_text(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        sales = self.sales.totals(since=day_start)
        users = self.users.counts()
        withdrawals = self.withdrawals.count_by_status()
        settings = self.settings.get()
        return (
            f"📬 *Daily report* {day_start:%Y-%m-%d}\n\n"
            f"🧾 Sales today: {sales['count']} ({money(sales['volume'])})\n"
            f"🏦 Fees today: {money(sales['platform_fees'])}\n"
            f"🎁 Referral rewards today: {money(sales['referrer_bonuses'])}\n"
            f"👥 New users today: {users['new_today']}\n"
            f"⏳ Pending withdrawals: {withdrawals.get('company_pending', 0)}\n"
            f"💰 Platform balance: {money(settings.platform_balance)}"
        )
