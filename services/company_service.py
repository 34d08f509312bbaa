"""
services/company_service.py
----------------------------
Company registration, profile edits, owner views and analytics, and admin
status changes.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from models.company import COMPANY_STATUSES, Company
from repositories.company_repo import CompanyRepository
from repositories.product_repo import ProductRepository
from repositories.referral_repo import ReferralRepository
from repositories.sale_repo import SaleRepository
from repositories.user_repo import UserRepository
from services.user_service import is_admin
from utils.codes import code_prefix_from_name, random_prefix
from utils.errors import NotFoundError, PermissionDeniedError, ValidationError
from utils.formatting import display_name, md, money
from utils.logger import get_logger

logger = get_logger(__name__)

_MAX_PREFIX_ATTEMPTS = 30
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CompanyService:
    """Handles companies and their owners."""

    def __init__(
        self,
        company_repo: Optional[CompanyRepository] = None,
        user_repo: Optional[UserRepository] = None,
        product_repo: Optional[ProductRepository] = None,
        sale_repo: Optional[SaleRepository] = None,
        referral_repo: Optional[ReferralRepository] = None,
    ):
        self.repo = company_repo or CompanyRepository()
        self.users = user_repo or UserRepository()
        self.products = product_repo or ProductRepository()
        self.sales = sale_repo or SaleRepository()
        self.referrals = referral_repo or ReferralRepository()

    def register_company(
        self,
        owner_id: int,
        name: str,
        description: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Company:
        """
        Register a company owned by `owner_id`.

        Requires the can_register_company right or admin. A unique two-letter
        code prefix is derived from the name, or picked at random when the
        derived one is taken.
        """
        owner = self.users.get(owner_id)
        if not owner:
            raise NotFoundError("❌ User not found. Send /start first.")
        if not (owner.can_register_company or is_admin(owner_id, owner)):
            raise PermissionDeniedError(
                "⛔ You are not allowed to register companies. Ask an admin for access."
            )

        name = (name or "").strip()
        if not 2 <= len(name) <= 120:
            raise ValidationError("⚠️ Company name must be 2 to 120 characters long.")
        if self.repo.name_exists(name):
            raise ValidationError(f"⚠️ A company named {md(name)} already exists.")
        if email and not _EMAIL_RE.match(email):
            raise ValidationError("⚠️ That email address does not look valid.")

        prefix = code_prefix_from_name(name)
        attempts = 0
        while self.repo.prefix_exists(prefix):
            attempts += 1
            if attempts >= _MAX_PREFIX_ATTEMPTS:
                raise RuntimeError("No free company code prefix left")
            prefix = random_prefix()

        company = Company(
            owner_id=owner_id,
            name=name,
            code_prefix=prefix,
            description=description,
            email=email,
        )
        return self.repo.add(company)

    def get(self, company_id: int) -> Company:
        company = self.repo.get(company_id)
        if not company:
            raise NotFoundError(f"❌ Company #{company_id} not found.")
        return company

    def get_owned(self, owner_id: int, company_id: int) -> Company:
        """Return the company if `owner_id` owns it (admins pass too)."""
        company = self.get(company_id)
        if company.owner_id != owner_id and not is_admin(owner_id, self.users.get(owner_id)):
            raise PermissionDeniedError("⛔ This is not your company.")
        return company

    def owned_companies(self, owner_id: int) -> list[Company]:
        return self.repo.list_by_owner(owner_id)

    def dashboard_text(self, owner_id: int) -> str:
        companies = self.repo.list_by_owner(owner_id)
        if not companies:
            return (
                "🏢 You don't own any company yet.\n"
                "Register one with /register\\_company <name> | \\[description] | \\[email]"
            )
        lines = ["🏢 *Your companies*\n"]
        for c in companies:
            totals = self.sales.company_totals(c.id)
            product_count = len(self.products.list_by_company(c.id))
            lines.append(
                f"{'🟢' if c.is_active() else '⛔'} *{md(c.name)}* (#{c.id}, prefix {c.code_prefix})\n"
                f"   💳 Billing balance: {money(c.billing_balance)}\n"
                f"   📦 Products: {product_count} | 🧾 Sales: {totals['count']} ({money(totals['volume'])})"
            )
        lines.append(
            "\nManage: /add\\_product, /my\\_products, /sell, /withdrawals"
        )
        return "\n".join(lines)

    def company_text(self, company_id: int) -> str:
        """Public description shown when browsing."""
        c = self.get(company_id)
        msg = f"🏢 *{md(c.name)}*\n"
        if c.description:
            msg += f"{md(c.description)}\n"
        if c.email:
            msg += f"✉️ {md(c.email)}\n"
        if not c.is_active():
            msg += "⛔ Currently suspended.\n"
        return msg

    def edit_company(self, owner_id: int, company_id: int, field: str, value: Optional[str]) -> Company:
        """
        Change the name, description or email of an owned company.

        "-" clears the description or email. The code prefix never changes,
        so referral codes already handed out stay valid.
        """
        company = self.get_owned(owner_id, company_id)
        field = (field or "").lower()
        value = (value or "").strip()

        if field == "name":
            if not 2 <= len(value) <= 120:
                raise ValidationError("⚠️ Company name must be 2 to 120 characters long.")
            if self.repo.name_exists(value, exclude_id=company.id):
                raise ValidationError(f"⚠️ A company named {md(value)} already exists.")
        elif field in ("description", "email"):
            if value in ("", "-"):
                value = None
            elif field == "email" and not _EMAIL_RE.match(value):
                raise ValidationError("⚠️ That email address does not look valid.")
            elif field == "description" and len(value) > 1000:
                raise ValidationError("⚠️ The description is limited to 1000 characters.")
        else:
            raise ValidationError("⚠️ You can edit the name, description or email.")

        self.repo.update_field(company.id, field, value)
        setattr(company, field, value)
        logger.info(f"User {owner_id} changed {field} of company #{company.id}")
        return company

    def analytics_text(self, owner_id: int, company_id: int, days: int = 30) -> str:
        """Sales and referral figures of an owned company, all time and recent."""
        company = self.get_owned(owner_id, company_id)
        since = datetime.now(timezone.utc) - timedelta(days=days)
        overall = self.sales.totals(company_id=company.id)
        recent = self.sales.totals(since=since, company_id=company.id)
        codes = self.referrals.count_codes(company.id)

        msg = (
            f"📊 *{md(company.name)}* analytics\n\n"
            f"🧾 Sales: {overall['count']} ({money(overall['volume'])})\n"
            f"📅 Last {days} days: {recent['count']} ({money(recent['volume'])})\n"
            f"💳 Seller earnings: {money(overall['seller_earnings'])}\n"
            f"🔗 Sales with a code: {overall['referred']}\n"
            f"🎁 Commissions paid: {money(overall['referrer_bonuses'])}\n"
            f"🎟 Codes issued: {codes['total']} ({codes['used']} used)\n"
        )
        top = self.sales.top_products(company.id)
        if top:
            msg += "\n🏆 *Top products*\n"
            for row in top:
                msg += f"• {md(row['product'])}: {row['units']} sold, {money(row['volume'])}\n"
        referrers = self.referrals.company_referrers(company.id)
        if referrers:
            msg += "\n🤝 *Top referrers*\n"
            for row in referrers:
                name = display_name(row["username"], row["first_name"], row["user_id"])
                msg += f"• {md(name)}: {row['referrals']} sales, {money(row['revenue'])}\n"
        return msg

    def set_status(self, admin_id: int, company_id: int, status: str) -> Company:
        """Suspend or reactivate a company (admin only, checked by the handler)."""
        if status not in COMPANY_STATUSES:
            raise ValidationError(f"⚠️ Status must be one of: {', '.join(COMPANY_STATUSES)}.")
        company = self.get(company_id)
        self.repo.set_status(company_id, status)
        company.status = status
        logger.info(f"Admin {admin_id} set company #{company_id} status to {status}")
        return company
